from __future__ import annotations

"""Goal manager: advance an item goal by one bounded step per call.

Purpose: Own the goal tree for one agent, pick the next actionable node for the
active goal, gate it on reachability and agent idleness, and execute it through
the agent's execution scope.

How: Unreachable raw resources go through a two-phase backoff. The first miss
waits briefly and asks the driver to re-plan; the second consecutive miss
moves the agent away to find new terrain. Every outcome is returned as a
StepResult that is truthy only when the inventory actually grew.

"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Set

from .connector import AgentFacade
from .planner import CyclePolicy, GoalNode, GoalTree, RecipeCycleError, Snapshot
from .skill_graph import ItemClassifier, ItemKind


logger = logging.getLogger("craftgoal.goals")


class StepStatus(str, Enum):
    OK = "ok"
    NO_PROGRESS = "no_progress"
    INVALID_GOAL = "invalid_goal"
    UNREACHABLE = "unreachable"
    MOVED_AWAY = "moved_away"
    BUSY = "busy"


@dataclass(frozen=True)
class StepResult:
    status: StepStatus
    goal: str
    item: Optional[str] = None
    quantity: int = 0
    replan: bool = False
    note: str = ""

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.OK

    def __bool__(self) -> bool:
        return self.ok


@dataclass(frozen=True)
class GoalProgress:
    goal: str
    quantity: int
    depth: int
    fails: int
    next_item: Optional[str]
    next_quantity: int
    note: str = ""


class GoalManager:
    def __init__(
        self,
        classifier: ItemClassifier,
        agent: AgentFacade,
        *,
        backoff_delay_s: float = 0.5,
        move_away_distance: int = 8,
        cycle_policy: CyclePolicy = CyclePolicy.REJECT,
    ) -> None:
        self.agent = agent
        self.tree = GoalTree(classifier, cycle_policy)
        self.active_goal: Optional[GoalNode] = None
        self.backoff: Set[str] = set()
        self.backoff_delay_s = backoff_delay_s
        self.move_away_distance = move_away_distance

    def reset(self) -> None:
        """Forget every node, failure count and backoff mark."""
        self.tree.clear()
        self.backoff.clear()
        self.active_goal = None

    def _snapshot(self) -> Snapshot:
        pending = self.active_goal.name if self.active_goal is not None else None
        return Snapshot(dict(self.agent.world.inventory_counts()), pending=pending)

    def inventory_count(self, name: str) -> int:
        return int(self.agent.world.inventory_counts().get(name, 0))

    def _reachable(self, node: GoalNode) -> bool:
        if node.kind is ItemKind.BLOCK:
            return node.source in self.agent.world.nearby_block_types()
        if node.kind is ItemKind.HUNT:
            return node.source in self.agent.world.nearby_entity_types()
        return True

    async def execute_next(self, item_name: str, quantity: int = 1) -> StepResult:
        goal = self.tree.ensure(item_name)
        self.active_goal = goal

        try:
            step = goal.next_step(self._snapshot(), quantity)
        except RecipeCycleError as exc:
            logger.warning("invalid item goal %s: %s", item_name, exc)
            return StepResult(StepStatus.INVALID_GOAL, item_name, note=str(exc))
        if step is None:
            logger.info("invalid item goal %s", item_name)
            return StepResult(StepStatus.INVALID_GOAL, item_name, note="no actionable step")

        target, amount = step.node, step.quantity

        if not self._reachable(target):
            target.fail_count += 1
            if target.name in self.backoff:
                self.backoff.discard(target.name)
                logger.info("%s unreachable again; moving away %d blocks", target.source, self.move_away_distance)
                await self.agent.scope.run(lambda: self.agent.skills.move_away(self.move_away_distance))
                return StepResult(StepStatus.MOVED_AWAY, item_name, target.name, amount, note=f"{target.source} not nearby")
            self.backoff.add(target.name)
            logger.info("%s not nearby; backing off before re-plan", target.source)
            await asyncio.sleep(self.backoff_delay_s)
            return StepResult(
                StepStatus.UNREACHABLE, item_name, target.name, amount, replan=True, note=f"{target.source} not nearby"
            )

        if not self.agent.is_idle():
            return StepResult(StepStatus.BUSY, item_name, target.name, amount)

        before = self.inventory_count(target.name)
        await self.agent.scope.run(lambda: target.execute(self.agent, amount))
        after = self.inventory_count(target.name)

        if after > before:
            logger.info("obtained %s (%d -> %d) for goal %s", target.name, before, after, item_name)
            return StepResult(StepStatus.OK, item_name, target.name, amount)
        logger.info("failed to obtain %s for goal %s (fails=%d)", target.name, item_name, target.fail_count)
        return StepResult(StepStatus.NO_PROGRESS, item_name, target.name, amount)

    def progress(self, item_name: str, quantity: int = 1) -> GoalProgress:
        """Read-only depth / failure / next-step summary for a goal."""
        node = self.tree.ensure(item_name)
        snapshot = self._snapshot()
        try:
            step = node.next_step(snapshot, quantity)
            return GoalProgress(
                goal=item_name,
                quantity=quantity,
                depth=node.depth(snapshot, quantity),
                fails=node.fails(snapshot, quantity),
                next_item=step.node.name if step else None,
                next_quantity=step.quantity if step else 0,
            )
        except RecipeCycleError as exc:
            return GoalProgress(item_name, quantity, 0, node.fail_count, None, 0, note=str(exc))


@dataclass(frozen=True)
class GoalReport:
    item: str
    quantity: int
    completed: bool
    steps: int
    successes: int
    last: Optional[StepResult] = None


async def pursue_goal(
    manager: GoalManager,
    item_name: str,
    quantity: int = 1,
    *,
    poll_interval_s: float = 0.25,
    max_steps: int = 0,
    stop_on_invalid: bool = True,
    on_step: Optional[Callable[[StepResult], None]] = None,
) -> GoalReport:
    """Call `execute_next` until the inventory holds the goal quantity.

    The manager never gives up on its own; this loop stops on completion, after
    `max_steps` calls (0 means unlimited), on an invalid goal when
    `stop_on_invalid` is set, or when the task is cancelled.
    """
    steps = 0
    successes = 0
    last: Optional[StepResult] = None
    while True:
        if manager.inventory_count(item_name) >= quantity:
            logger.info("goal %s x%d complete after %d steps", item_name, quantity, steps)
            return GoalReport(item_name, quantity, True, steps, successes, last)
        if max_steps and steps >= max_steps:
            logger.info("goal %s x%d stopped after %d steps", item_name, quantity, steps)
            return GoalReport(item_name, quantity, False, steps, successes, last)
        last = await manager.execute_next(item_name, quantity)
        steps += 1
        if last:
            successes += 1
        if on_step is not None:
            on_step(last)
        if stop_on_invalid and last.status is StepStatus.INVALID_GOAL:
            return GoalReport(item_name, quantity, False, steps, successes, last)
        await asyncio.sleep(poll_interval_s)
