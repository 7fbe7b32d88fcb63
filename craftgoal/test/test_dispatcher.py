from __future__ import annotations

import asyncio
import json
import unittest
from typing import Any, Dict, List

from craftgoal.dispatcher import ActionScope, RemoteAgent, RemoteSkills
from craftgoal.state_service import PlayerWorld, StateService


class DummyWS:
    def __init__(self) -> None:
        self.sent: List[str] = []

    async def send(self, text: str) -> None:
        self.sent.append(text)


async def _wait_sent(ws: DummyWS, n: int = 1) -> Dict[str, Any]:
    while len(ws.sent) < n:
        await asyncio.sleep(0)
    return json.loads(ws.sent[n - 1])


class TestRemoteSkills(unittest.TestCase):
    def test_collect_block_round_trip(self) -> None:
        async def scenario():
            ws = DummyWS()
            skills = RemoteSkills(ws)  # type: ignore[arg-type]
            task = asyncio.ensure_future(skills.collect_block("oak_log", 3, exclude=[(1, 2, 3)]))
            msg = await _wait_sent(ws)
            self.assertFalse(skills.resolve({"action_id": msg["action_id"], "status": "running"}))
            self.assertTrue(skills.resolve({"action_id": msg["action_id"], "status": "ok"}))
            return msg, await task, ws.sent[0]

        msg, ok, raw = asyncio.run(scenario())
        self.assertTrue(ok)
        self.assertNotIn(" ", raw)
        self.assertEqual(
            {k: msg[k] for k in ("type", "mode", "op", "block", "count", "exclude")},
            {"type": "action_request", "mode": "mod_native", "op": "collect_block",
             "block": "oak_log", "count": 3, "exclude": [[1, 2, 3]]},
        )

    def test_fail_status_is_false(self) -> None:
        async def scenario():
            ws = DummyWS()
            skills = RemoteSkills(ws)  # type: ignore[arg-type]
            task = asyncio.ensure_future(skills.craft_recipe("stick", 4))
            msg = await _wait_sent(ws)
            skills.resolve({"action_id": msg["action_id"], "status": "fail"})
            return msg, await task

        msg, ok = asyncio.run(scenario())
        self.assertFalse(ok)
        self.assertEqual((msg["op"], msg["recipe"], msg["count"]), ("craft", "stick", 4))

    def test_unknown_action_id_not_matched(self) -> None:
        skills = RemoteSkills(DummyWS())  # type: ignore[arg-type]
        self.assertFalse(skills.resolve({"action_id": "nope", "status": "ok"}))

    def test_timeout_returns_false(self) -> None:
        ws = DummyWS()
        skills = RemoteSkills(ws, timeout_s=0.01)  # type: ignore[arg-type]
        with self.assertLogs("craftgoal.dispatcher", level="WARNING"):
            ok = asyncio.run(skills.move_away(8))
        self.assertFalse(ok)
        self.assertEqual(json.loads(ws.sent[0])["distance"], 8)
        self.assertEqual(skills._pending, {})

    def test_cancel_pending_releases_waiter(self) -> None:
        async def scenario():
            ws = DummyWS()
            skills = RemoteSkills(ws)  # type: ignore[arg-type]
            task = asyncio.ensure_future(skills.attack_nearest("cow"))
            await _wait_sent(ws)
            skills.cancel_pending()
            return await task

        self.assertFalse(asyncio.run(scenario()))


class TestActionScope(unittest.TestCase):
    def test_interrupt_cancels_running_action(self) -> None:
        calls = []

        async def hook() -> None:
            calls.append("stop")

        async def scenario():
            scope = ActionScope(on_interrupt=hook)
            task = asyncio.ensure_future(scope.run(lambda: asyncio.sleep(10)))
            await asyncio.sleep(0)
            self.assertTrue(scope.running)
            await scope.interrupt()
            result = await task
            return scope, result

        scope, result = asyncio.run(scenario())
        self.assertFalse(result)
        self.assertTrue(scope.interrupted)
        self.assertFalse(scope.running)
        self.assertEqual(calls, ["stop"])

    def test_failed_action_is_logged_and_false(self) -> None:
        async def boom() -> None:
            raise RuntimeError("boom")

        with self.assertLogs("craftgoal.dispatcher", level="ERROR"):
            self.assertFalse(asyncio.run(ActionScope().run(boom)))

    def test_caller_cancelled_after_interrupt_propagates(self) -> None:
        async def scenario():
            scope = ActionScope()
            action_started = asyncio.Event()

            async def long_action() -> None:
                action_started.set()
                await asyncio.sleep(10)

            async def goal_loop() -> None:
                while True:
                    await scope.run(long_action)

            goal = asyncio.ensure_future(goal_loop())
            await action_started.wait()
            await scope.interrupt()
            goal.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await asyncio.wait_for(goal, timeout=1)
            return scope

        scope = asyncio.run(scenario())
        self.assertFalse(scope.running)

    def test_cancelled_caller_cancels_action(self) -> None:
        async def scenario():
            scope = ActionScope()
            action = asyncio.Event()

            async def long_action() -> None:
                action.set()
                await asyncio.sleep(10)

            caller = asyncio.ensure_future(scope.run(long_action))
            await action.wait()
            inner = scope._task
            caller.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await caller
            assert inner is not None
            await asyncio.wait({inner})
            return inner

        inner = asyncio.run(scenario())
        self.assertTrue(inner.cancelled())

    def test_next_run_clears_interrupt(self) -> None:
        async def scenario():
            scope = ActionScope()
            await scope.interrupt()
            return await scope.run(lambda: asyncio.sleep(0))

        self.assertTrue(asyncio.run(scenario()))


class TestRemoteAgent(unittest.TestCase):
    def test_idle_follows_scope(self) -> None:
        async def scenario():
            ws = DummyWS()
            agent = RemoteAgent(PlayerWorld(StateService(), "p1"), RemoteSkills(ws))  # type: ignore[arg-type]
            self.assertTrue(agent.is_idle())
            task = asyncio.ensure_future(agent.scope.run(lambda: asyncio.sleep(10)))
            await asyncio.sleep(0)
            self.assertFalse(agent.is_idle())
            await agent.scope.interrupt()
            await task
            self.assertTrue(agent.is_idle())
            return ws.sent

        sent = asyncio.run(scenario())
        self.assertEqual(json.loads(sent[-1])["op"], "stop")


if __name__ == "__main__":
    unittest.main()
