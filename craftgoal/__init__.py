"""craftgoal: item-goal planner backend.

Purpose: Resolve "obtain N of item X" goals into one bounded action at a time
through a lazily expanded goal tree, and host the WebSocket server that drives
it for connected client agents.

"""

__all__ = [
    "__version__",
]

__version__ = "0.1.0"
