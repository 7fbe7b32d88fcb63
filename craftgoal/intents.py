from __future__ import annotations

"""Parse chat commands into deterministic intents.

Purpose: Translate a small set of '!'-prefixed commands into explicit intent
dicts for the goal manager.

Supported patterns:
- !help
- !who
- !stop
- !reset
- !get <item words> [count]
- !status [<item words> [count]]

"""

import re
from typing import Dict, Optional


def normalize_item(words: str) -> str:
    """Map free-form item words to a bare item name, resolving aliases."""
    item_words = words.strip().lower().replace(" ", "_")
    if item_words.startswith("minecraft:"):
        item_words = item_words.split(":", 1)[1]
    try:
        from .data_files import load_aliases  # lazy import
        aliases = load_aliases()
    except Exception:
        aliases = {}
    base = aliases.get(item_words, item_words)
    return base.split(":", 1)[1] if base.startswith("minecraft:") else base


def parse_command_text(text: str) -> Optional[Dict[str, object]]:
    text = text.strip()
    if not text.startswith("!"):
        return None

    if text == "!help" or text.startswith("!help "):
        return {"type": "help"}

    if text == "!who" or text.startswith("!who "):
        return {"type": "who"}

    if text == "!stop":
        return {"type": "stop"}

    if text == "!reset":
        return {"type": "reset"}

    # !get <item words> [count]
    m = re.match(r"^!get\s+(.+?)(?:\s+(\d+))?$", text)
    if m:
        count = int(m.group(2)) if m.group(2) else 1
        if count <= 0:
            return {"type": "usage", "cmd": "get"}
        return {"type": "item_goal", "item": normalize_item(m.group(1)), "count": count}
    if text == "!get" or text.startswith("!get "):
        return {"type": "usage", "cmd": "get"}

    if text == "!status":
        return {"type": "status"}
    m2 = re.match(r"^!status\s+(.+?)(?:\s+(\d+))?$", text)
    if m2:
        count = int(m2.group(2)) if m2.group(2) else 1
        return {"type": "status", "item": normalize_item(m2.group(1)), "count": count}

    return None
