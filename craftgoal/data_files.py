from __future__ import annotations

"""Runtime data file loaders (JSON).

Purpose: Centralize loading of the item catalog that drives classification and
the command alias table, keeping code free of hardcoded tables.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union


_CACHE: Dict[str, Any] = {}


def _load_required(path: Path) -> Any:
    key = str(path.resolve())
    if key in _CACHE:
        return _CACHE[key]
    if not path.exists():
        raise FileNotFoundError(f"required data file missing: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except Exception as e:
        raise RuntimeError(f"failed to parse {path}: {e}")
    _CACHE[key] = data
    return data


def _string_map(section: Any, label: str) -> Dict[str, str]:
    if not isinstance(section, dict):
        raise ValueError(f"item catalog '{label}' must be an object of {{item: name}}")
    out: Dict[str, str] = {}
    for k, v in section.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ValueError(f"item catalog '{label}' contains non-string key/value")
        if not k or not v:
            raise ValueError(f"item catalog '{label}' contains an empty name")
        out[k] = v
    return out


def _recipes(section: Any) -> Dict[str, List[Dict[str, int]]]:
    if not isinstance(section, dict):
        raise ValueError("item catalog 'recipes' must be an object of {item: [recipe, ...]}")
    out: Dict[str, List[Dict[str, int]]] = {}
    for item, alternatives in section.items():
        # A single recipe object is accepted as shorthand for one alternative
        if isinstance(alternatives, dict):
            alternatives = [alternatives]
        if not isinstance(item, str) or not isinstance(alternatives, list):
            raise ValueError(f"invalid recipe entry for '{item}'")
        parsed: List[Dict[str, int]] = []
        for recipe in alternatives:
            if not isinstance(recipe, dict) or not recipe:
                raise ValueError(f"recipe for '{item}' must be a non-empty object")
            try:
                counts = {str(k): int(v) for k, v in recipe.items()}
            except (TypeError, ValueError):
                raise ValueError(f"recipe for '{item}' has a non-integer count")
            if any(c <= 0 for c in counts.values()):
                raise ValueError(f"recipe for '{item}' has a non-positive count")
            parsed.append(counts)
        out[item] = parsed
    return out


def load_item_catalog(path: Union[Path, str] = Path("settings/item_catalog.json")) -> Dict[str, Any]:
    """Return the normalized item catalog.

    File shape::

        {
          "blocks":   {item: block_source},
          "smelting": {item: precursor},
          "hunting":  {item: entity_source},
          "recipes":  {item: [{ingredient: count}, ...]},
          "blacklist": [name_fragment, ...]
        }

    Every section is optional.
    """
    data = _load_required(Path(path))
    if not isinstance(data, dict):
        raise ValueError("item_catalog.json must contain a JSON object")
    blacklist = data.get("blacklist", [])
    if not isinstance(blacklist, list) or not all(isinstance(x, str) for x in blacklist):
        raise ValueError("item catalog 'blacklist' must be an array of strings")
    return {
        "blocks": _string_map(data.get("blocks", {}), "blocks"),
        "smelting": _string_map(data.get("smelting", {}), "smelting"),
        "hunting": _string_map(data.get("hunting", {}), "hunting"),
        "recipes": _recipes(data.get("recipes", {})),
        "blacklist": list(blacklist),
    }


def load_aliases(path: Union[Path, str] = Path("settings/aliases.json")) -> Dict[str, str]:
    """Return mapping of alias -> canonical item name (e.g., iron_pick -> iron_pickaxe)."""
    data = _load_required(Path(path))
    if not isinstance(data, dict):
        raise ValueError("aliases.json must be an object of {alias: canonical_name}")
    out: Dict[str, str] = {}
    for k, v in data.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ValueError("aliases.json contains invalid entry")
        out[k.strip().lower()] = v.strip()
    return out
