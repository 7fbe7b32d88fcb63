from __future__ import annotations

"""Goal tree: lazily expanded item dependencies for "obtain N of X" goals.

Purpose: Keep one GoalNode per item name in an arena (GoalTree), expand each
node's recipe once on demand, and answer readiness, depth, failure and
next-step questions against an inventory snapshot.

How: Children are stored as RecipeEdge(name, quantity) and resolved through the
tree, so an item reached from several parents is one shared node. Recursive
traversals thread the path of names visited so far; a name already on the path
is a recipe cycle and is handled per CyclePolicy.

"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple

from .skill_graph import ItemClassifier, ItemKind

if TYPE_CHECKING:
    from .connector import AgentFacade


logger = logging.getLogger("craftgoal.planner")


Path = Tuple[str, ...]


class CyclePolicy(str, Enum):
    REJECT = "reject"  # raise RecipeCycleError
    IGNORE = "ignore"  # a revisit adds no depth, no fails, no next step


class RecipeCycleError(ValueError):
    def __init__(self, path: Path) -> None:
        self.path = tuple(path)
        super().__init__("recipe cycle: " + " -> ".join(self.path))


@dataclass(frozen=True)
class RecipeEdge:
    name: str
    quantity: int


@dataclass(frozen=True)
class Snapshot:
    """Inventory counts plus the item treated as always pending.

    The pending item never reports done, so the top-level goal keeps being
    re-evaluated even once its quantity is nominally met.
    """

    inventory: Mapping[str, int]
    pending: Optional[str] = None

    def count(self, name: str) -> int:
        return int(self.inventory.get(name, 0))

    def satisfied(self, name: str, quantity: int) -> bool:
        return self.count(name) >= quantity


@dataclass(frozen=True)
class NextStep:
    node: "GoalNode"
    quantity: int


class GoalNode:
    def __init__(self, tree: "GoalTree", name: str) -> None:
        self._tree = tree
        self.name = name
        classification = tree.classifier.classify(name)
        self.kind: ItemKind = classification.kind
        self.source: str = classification.source
        self.fail_count = 0
        self._children: Optional[List[RecipeEdge]] = None

    def __repr__(self) -> str:
        return f"GoalNode({self.name!r}, kind={self.kind.value}, fails={self.fail_count})"

    def children(self) -> List[RecipeEdge]:
        if self._children is None:
            self._children = self._expand()
            for edge in self._children:
                self._tree.ensure(edge.name)
        return self._children

    def _expand(self) -> List[RecipeEdge]:
        classifier = self._tree.classifier
        if self.kind is ItemKind.BLOCK or self.kind is ItemKind.HUNT:
            return []
        if self.kind is ItemKind.SMELT:
            precursor = classifier.smelting_precursor(self.name)
            return [RecipeEdge(precursor, 1)] if precursor else []
        if self.kind is ItemKind.CRAFT:
            recipe = classifier.recipe_for(self.name) or {}
            return [RecipeEdge(item, int(count)) for item, count in recipe.items()]
        raise ValueError(f"unhandled item kind: {self.kind!r}")

    def child_nodes(self) -> List[Tuple["GoalNode", int]]:
        return [(self._tree.ensure(edge.name), edge.quantity) for edge in self.children()]

    def is_ready(self, snapshot: Snapshot, quantity: int = 1) -> bool:
        """Whether every ingredient is already in the inventory.

        One level only: children are not produced or checked recursively.
        """
        if self.kind is ItemKind.BLOCK or self.kind is ItemKind.HUNT:
            return True
        return all(snapshot.satisfied(edge.name, edge.quantity) for edge in self.children())

    def is_done(self, snapshot: Snapshot, quantity: int = 1) -> bool:
        if snapshot.pending == self.name:
            return False
        return snapshot.satisfied(self.name, quantity)

    def depth(self, snapshot: Snapshot, quantity: int = 1, _path: Path = ()) -> int:
        if self.is_done(snapshot, quantity):
            return 0
        path = self._tree.descend(_path, self.name)
        if path is None:
            return 0
        deepest = max((child.depth(snapshot, qty, path) for child, qty in self.child_nodes()), default=0)
        return deepest + 1

    def fails(self, snapshot: Snapshot, quantity: int = 1, _path: Path = ()) -> int:
        if self.is_done(snapshot, quantity):
            return 0
        path = self._tree.descend(_path, self.name)
        if path is None:
            return 0
        return self.fail_count + sum(child.fails(snapshot, qty, path) for child, qty in self.child_nodes())

    def next_step(self, snapshot: Snapshot, quantity: int = 1, _path: Path = ()) -> Optional[NextStep]:
        """Depth-first, left-to-right search for the first ready unmet node."""
        if self.is_done(snapshot, quantity):
            return None
        if self.is_ready(snapshot, quantity):
            return NextStep(self, quantity)
        path = self._tree.descend(_path, self.name)
        if path is None:
            return None
        for child, qty in self.child_nodes():
            found = child.next_step(snapshot, qty, path)
            if found is not None:
                return found
        return None

    async def execute(self, agent: "AgentFacade", quantity: int = 1) -> bool:
        """Run this node's action once; True when the inventory count grew.

        A node that is not ready, or an action that leaves the count unchanged,
        adds one to `fail_count`.
        """
        inventory = agent.world.inventory_counts()
        if not self.is_ready(Snapshot(inventory), quantity):
            self.fail_count += 1
            logger.debug("%s not ready; fails=%d", self.name, self.fail_count)
            return False

        before = int(inventory.get(self.name, 0))
        skills = agent.skills
        if self.kind is ItemKind.BLOCK:
            await skills.collect_block(self.source, quantity, exclude=agent.world.reserved_positions())
        elif self.kind is ItemKind.SMELT:
            precursor = self.children()[0].name
            # Never smelt more than is on hand
            await skills.smelt_item(precursor, min(quantity, int(inventory.get(precursor, 0))))
        elif self.kind is ItemKind.HUNT:
            for _ in range(quantity):
                hit = await skills.attack_nearest(self.source)
                if not hit or agent.scope.interrupted:
                    break
        elif self.kind is ItemKind.CRAFT:
            await skills.craft_recipe(self.name, quantity)
        else:
            raise ValueError(f"unhandled item kind: {self.kind!r}")

        after = int(agent.world.inventory_counts().get(self.name, 0))
        if after <= before:
            self.fail_count += 1
            logger.debug("%s made no progress (%d -> %d); fails=%d", self.name, before, after, self.fail_count)
            return False
        return True


class GoalTree:
    """Arena of goal nodes keyed by item name."""

    def __init__(self, classifier: ItemClassifier, cycle_policy: CyclePolicy = CyclePolicy.REJECT) -> None:
        self.classifier = classifier
        self.cycle_policy = CyclePolicy(cycle_policy)
        self._nodes: Dict[str, GoalNode] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, name: str) -> Optional[GoalNode]:
        return self._nodes.get(name)

    def ensure(self, name: str) -> GoalNode:
        node = self._nodes.get(name)
        if node is None:
            node = GoalNode(self, name)
            self._nodes[name] = node
        return node

    def clear(self) -> None:
        self._nodes.clear()

    def descend(self, path: Path, name: str) -> Optional[Path]:
        """Extend a traversal path, or handle a revisit per the cycle policy."""
        if name in path:
            if self.cycle_policy is CyclePolicy.REJECT:
                raise RecipeCycleError(path + (name,))
            logger.debug("ignoring recipe cycle at %s", " -> ".join(path + (name,)))
            return None
        return path + (name,)
