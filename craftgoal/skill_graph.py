from __future__ import annotations

"""Item classification used by the goal planner.

Purpose: Decide how an item is obtained (harvested block, smelted product,
hunted drop, or crafted component), which block/entity it comes from, and
which recipe produces it.

Engineering notes: Use plain item names (e.g., oak_log) rather than namespaced
ids. Keep the default catalog small and explicit; larger worlds load theirs
from settings/item_catalog.json.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .data_files import load_item_catalog


class ItemKind(str, Enum):
    BLOCK = "block"
    SMELT = "smelt"
    HUNT = "hunt"
    CRAFT = "craft"


@dataclass(frozen=True)
class Classification:
    kind: ItemKind
    source: str  # block/entity to harvest; empty for smelt/craft


DEFAULT_BLACKLIST: List[str] = [
    "coal_block",
    "iron_block",
    "gold_block",
    "diamond_block",
    "deepslate",
    "blackstone",
    "netherite",
    "_wood",
    "stripped_",
    "crimson",
    "warped",
    "dye",
]


# Minimal catalog sufficient for early tools (wooden -> stone -> iron)
DEFAULT_CATALOG: Dict[str, Any] = {
    "blocks": {
        "oak_log": "oak_log",
        "birch_log": "birch_log",
        "cobblestone": "stone",
        "coal": "coal_ore",
        "raw_iron": "iron_ore",
        "dirt": "dirt",
        "sand": "sand",
    },
    "smelting": {
        "iron_ingot": "raw_iron",
        "charcoal": "oak_log",
        "stone": "cobblestone",
        "glass": "sand",
    },
    "hunting": {
        "beef": "cow",
        "porkchop": "pig",
        "mutton": "sheep",
        "chicken": "chicken",
    },
    "recipes": {
        "oak_planks": [{"oak_log": 1}],
        "stick": [{"oak_planks": 2}],
        "crafting_table": [{"oak_planks": 4}],
        "wooden_pickaxe": [{"oak_planks": 3, "stick": 2}],
        "stone_pickaxe": [{"blackstone": 3, "stick": 2}, {"cobblestone": 3, "stick": 2}],
        "furnace": [{"cobblestone": 8}],
        "iron_pickaxe": [{"iron_ingot": 3, "stick": 2}],
        "torch": [{"coal": 1, "stick": 1}, {"charcoal": 1, "stick": 1}],
    },
    "blacklist": DEFAULT_BLACKLIST,
}


@dataclass
class ItemClassifier:
    """Pure lookups over an item catalog.

    Alternative recipes are tried in order; the first one with no blacklisted
    ingredient wins, falling back to the first alternative.
    """

    blocks: Mapping[str, str] = field(default_factory=dict)
    smelting: Mapping[str, str] = field(default_factory=dict)
    hunting: Mapping[str, str] = field(default_factory=dict)
    recipes: Mapping[str, Sequence[Mapping[str, int]]] = field(default_factory=dict)
    blacklist: Sequence[str] = field(default_factory=lambda: list(DEFAULT_BLACKLIST))

    @classmethod
    def from_catalog(cls, catalog: Mapping[str, Any]) -> "ItemClassifier":
        return cls(
            blocks=dict(catalog.get("blocks", {})),
            smelting=dict(catalog.get("smelting", {})),
            hunting=dict(catalog.get("hunting", {})),
            recipes={k: [dict(r) for r in v] for k, v in catalog.get("recipes", {}).items()},
            blacklist=list(catalog.get("blacklist", DEFAULT_BLACKLIST)),
        )

    @classmethod
    def from_file(cls, path: Union[Path, str]) -> "ItemClassifier":
        return cls.from_catalog(load_item_catalog(path))

    @classmethod
    def default(cls) -> "ItemClassifier":
        return cls.from_catalog(DEFAULT_CATALOG)

    def is_block(self, name: str) -> bool:
        return name in self.blocks

    def smelting_precursor(self, name: str) -> Optional[str]:
        return self.smelting.get(name)

    def is_huntable(self, name: str) -> bool:
        return name in self.hunting

    def source_for(self, name: str) -> str:
        if name in self.blocks:
            return self.blocks[name]
        if name in self.hunting:
            return self.hunting[name]
        return name

    def recipe_for(self, name: str) -> Optional[Dict[str, int]]:
        alternatives = self.recipes.get(name)
        if not alternatives:
            return None
        for recipe in alternatives:
            if not self._blacklisted(recipe.keys()):
                return dict(recipe)
        return dict(alternatives[0])

    def classify(self, name: str) -> Classification:
        if self.is_block(name):
            return Classification(ItemKind.BLOCK, self.source_for(name))
        if self.smelting_precursor(name):
            return Classification(ItemKind.SMELT, "")
        if self.is_huntable(name):
            return Classification(ItemKind.HUNT, self.source_for(name))
        return Classification(ItemKind.CRAFT, "")

    def _blacklisted(self, ingredients: Iterable[str]) -> bool:
        return any(frag in item for item in ingredients for frag in self.blacklist)
