from __future__ import annotations

"""Action dispatcher: skill primitives as action_request messages.

Purpose: Implement the planner's skill primitives for a connected client mod.
Each primitive sends one minified action_request and waits for the matching
terminal progress_update (or a timeout). Also provides the cancellable
execution scope and the agent facade the goal manager drives.

Engineering notes: Keep JSON lean (minified); one in-flight action per agent;
the client reports telemetry before the terminal progress_update so inventory
reads after an action see its result.

"""

import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple

from websockets.asyncio.server import ServerConnection

from .schemas import ActionRequest
from .state_service import PlayerWorld


logger = logging.getLogger("craftgoal.dispatcher")


TERMINAL_STATUSES = {"ok", "fail", "skipped", "cancelled"}


class RemoteSkills:
    def __init__(
        self,
        websocket: ServerConnection,
        *,
        timeout_s: float = 60.0,
        spacing_s: float = 0.0,
    ) -> None:
        self.websocket = websocket
        self.timeout_s = timeout_s
        self.spacing_s = spacing_s
        self._pending: Dict[str, asyncio.Future] = {}

    async def _request(self, op: str, **fields: Any) -> bool:
        action_id = str(uuid.uuid4())
        msg: ActionRequest = {
            "type": "action_request",
            "action_id": action_id,
            "mode": "mod_native",
            "op": op,
            **fields,
        }
        fut = asyncio.get_running_loop().create_future()
        self._pending[action_id] = fut
        try:
            await self.websocket.send(json.dumps(msg, separators=(",", ":")))
            status = await asyncio.wait_for(fut, timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.warning("action %s (%s) timed out after %.1fs", action_id, op, self.timeout_s)
            return False
        finally:
            self._pending.pop(action_id, None)
        if self.spacing_s > 0:
            await asyncio.sleep(self.spacing_s)
        return status == "ok"

    def resolve(self, msg: Dict[str, Any]) -> bool:
        """Complete the waiting primitive for a progress_update; True if matched."""
        action_id = str(msg.get("action_id"))
        status = str(msg.get("status", ""))
        fut = self._pending.get(action_id)
        if fut is None or status not in TERMINAL_STATUSES:
            return False
        if not fut.done():
            fut.set_result(status)
        return True

    def cancel_pending(self) -> None:
        for fut in self._pending.values():
            if not fut.done():
                fut.set_result("cancelled")

    async def collect_block(self, source: str, quantity: int, exclude: Iterable[Tuple[int, int, int]] = ()) -> bool:
        return await self._request("collect_block", block=source, count=int(quantity), exclude=[list(p) for p in exclude])

    async def smelt_item(self, source: str, quantity: int) -> bool:
        return await self._request("smelt", item=source, count=int(quantity))

    async def attack_nearest(self, source: str) -> bool:
        return await self._request("attack", entity=source)

    async def craft_recipe(self, name: str, quantity: int) -> bool:
        return await self._request("craft", recipe=name, count=int(quantity))

    async def move_away(self, distance: int) -> bool:
        return await self._request("move_away", distance=int(distance))

    async def stop(self) -> None:
        msg: ActionRequest = {"type": "action_request", "action_id": str(uuid.uuid4()), "mode": "mod_native", "op": "stop"}
        await self.websocket.send(json.dumps(msg, separators=(",", ":")))


class ActionScope:
    """Run one action at a time; `interrupt()` cancels it cooperatively."""

    def __init__(self, on_interrupt: Optional[Callable[[], Awaitable[None]]] = None) -> None:
        self.interrupted = False
        self._on_interrupt = on_interrupt
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, action: Callable[[], Awaitable[Any]]) -> bool:
        """Run `action`; False when it was interrupted or raised.

        Cancelling the caller propagates even after `interrupt()`: only the
        action's own cancellation is absorbed here.
        """
        self.interrupted = False
        task = asyncio.ensure_future(action())
        self._task = task
        try:
            # A cancelled caller surfaces here, the action's own cancellation below
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            self._task = None
        if task.cancelled():
            logger.info("action interrupted")
            return False
        exc = task.exception()
        if exc is not None:
            logger.error("action failed", exc_info=exc)
            return False
        return not self.interrupted

    async def interrupt(self) -> None:
        self.interrupted = True
        if self._on_interrupt is not None:
            await self._on_interrupt()
        if self._task is not None and not self._task.done():
            self._task.cancel()


class RemoteAgent:
    """Agent facade for one connected player."""

    def __init__(self, world: PlayerWorld, skills: RemoteSkills, scope: Optional[ActionScope] = None) -> None:
        self.world = world
        self.skills = skills
        self.scope = scope or ActionScope(on_interrupt=skills.stop)

    def is_idle(self) -> bool:
        return not self.scope.running
