from __future__ import annotations

"""Latest telemetry per player, and a world view built on top of it.

Purpose: Keep the most recent telemetry state for each connected player in
memory and expose it to the goal planner as inventory counts and nearby
block/entity types. Nothing is persisted across restarts.
"""

import logging
from typing import Any, Dict, List, Optional, Set, Tuple


logger = logging.getLogger("craftgoal.state")


def _bare(item_id: str) -> str:
    return item_id.split(":", 1)[1] if item_id.startswith("minecraft:") else item_id


class StateService:
    def __init__(self) -> None:
        self._last_telemetry: Dict[str, Dict[str, Any]] = {}

    def update_telemetry(self, player_id: str, ts: str, state: Dict[str, Any]) -> None:
        # Partial updates (e.g., username only) merge into the previous state
        previous = self._last_telemetry.get(player_id, {}).get("state", {})
        merged = {**previous, **(state or {})}
        self._last_telemetry[player_id] = {"ts": ts, "state": merged}

    def get_player_state(self, player_id: str) -> Optional[Dict[str, Any]]:
        return self._last_telemetry.get(player_id)

    def forget(self, player_id: str) -> None:
        self._last_telemetry.pop(player_id, None)

    def select_state(self, player_state: Dict[str, Any], selector: Optional[List[str]]) -> Dict[str, Any]:
        if not selector:
            return player_state.get("state", {})
        full = player_state.get("state", {})
        return {k: full.get(k) for k in selector if k in full}


class PlayerWorld:
    """WorldView over one player's latest telemetry."""

    def __init__(self, state_service: StateService, player_id: str) -> None:
        self.state_service = state_service
        self.player_id = player_id

    def _state(self) -> Dict[str, Any]:
        player_state = self.state_service.get_player_state(self.player_id) or {}
        state = player_state.get("state", {})
        return state if isinstance(state, dict) else {}

    def inventory_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        inv = self._state().get("inventory", [])
        if not isinstance(inv, list):
            return counts
        for slot in inv:
            try:
                iid = _bare(str(slot.get("id")))
                c = int(slot.get("count", 0))
                if iid:
                    counts[iid] = counts.get(iid, 0) + c
            except Exception:
                continue
        return counts

    def _names(self, key: str) -> Set[str]:
        raw = self._state().get(key, [])
        if not isinstance(raw, list):
            return set()
        return {_bare(str(x)) for x in raw if x}

    def nearby_block_types(self) -> Set[str]:
        return self._names("nearby_blocks")

    def nearby_entity_types(self) -> Set[str]:
        return self._names("nearby_entities")

    def reserved_positions(self) -> List[Tuple[int, int, int]]:
        out: List[Tuple[int, int, int]] = []
        raw = self._state().get("reserved_positions", [])
        if not isinstance(raw, list):
            return out
        for pos in raw:
            if isinstance(pos, (list, tuple)) and len(pos) == 3:
                try:
                    out.append((int(pos[0]), int(pos[1]), int(pos[2])))
                except (TypeError, ValueError):
                    logger.debug("invalid reserved position ignored: %s", pos)
        return out
