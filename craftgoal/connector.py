from __future__ import annotations

"""Collaborator contracts consumed by the goal planner.

Purpose: Describe the world observation queries, skill primitives, execution
scope, and agent facade the planner drives, without binding it to a transport.
The WebSocket implementation lives in `dispatcher` and `state_service`.
"""

from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Protocol, Set, Tuple


Position = Tuple[int, int, int]


class WorldView(Protocol):
    def inventory_counts(self) -> Mapping[str, int]: ...

    def nearby_block_types(self) -> Set[str]: ...

    def nearby_entity_types(self) -> Set[str]: ...

    def reserved_positions(self) -> List[Position]: ...


class SkillLibrary(Protocol):
    """Action primitives. Each may succeed or fail without raising."""

    async def collect_block(self, source: str, quantity: int, exclude: Iterable[Position] = ()) -> bool: ...

    async def smelt_item(self, source: str, quantity: int) -> bool: ...

    async def attack_nearest(self, source: str) -> bool: ...

    async def craft_recipe(self, name: str, quantity: int) -> bool: ...

    async def move_away(self, distance: int) -> bool: ...


class ExecutionScope(Protocol):
    """Runs one action to completion or interruption.

    `run` returns False when the action raised or was interrupted; it never
    propagates action errors. In-flight actions poll `interrupted`.
    """

    interrupted: bool

    async def run(self, action: Callable[[], Awaitable[Any]]) -> bool: ...


class AgentFacade(Protocol):
    world: WorldView
    skills: SkillLibrary
    scope: ExecutionScope

    def is_idle(self) -> bool: ...
