from __future__ import annotations

import asyncio
import json
import unittest
from typing import Any, Dict

import websockets
from websockets.asyncio.client import connect
from websockets.asyncio.server import serve

from craftgoal.config import Settings
from craftgoal.server import BackendServer
from craftgoal.skill_graph import ItemClassifier


def _settings() -> Settings:
    return Settings(
        host="127.0.0.1",
        port=0,
        log_level="INFO",
        password="pw",
        feedback_prefix="[goal] ",
        default_action_spacing_ms=0,
        action_timeout_ms=2000,
        backoff_delay_ms=0,
        move_away_distance=8,
        goal_poll_interval_ms=0,
        max_goal_steps=20,
        cycle_policy="reject",
        item_catalog_path="unused.json",
    )


def _classifier() -> ItemClassifier:
    return ItemClassifier.from_catalog({
        "blocks": {"logs": "oak_log"},
        "recipes": {"planks": [{"logs": 1}]},
    })


async def send_json(ws, obj: Dict[str, Any]) -> None:
    await ws.send(json.dumps(obj, separators=(",", ":")))


async def recv_json(ws, timeout: float = 3.0) -> Dict[str, Any]:
    return json.loads(await asyncio.wait_for(ws.recv(), timeout=timeout))


class TestBackendServer(unittest.TestCase):
    def _run(self, client) -> Any:
        backend = BackendServer(_settings(), _classifier())

        async def scenario():
            async with serve(backend._handle_client, "127.0.0.1", 0) as server:
                port = server.sockets[0].getsockname()[1]
                async with connect(f"ws://127.0.0.1:{port}") as ws:
                    return await client(ws)

        return asyncio.run(scenario())

    def test_get_planks_round_trip(self) -> None:
        async def client(ws):
            await send_json(ws, {"type": "handshake", "player_uuid": "p1", "player_name": "Steve", "password": "pw"})
            inventory: Dict[str, int] = {}

            async def telemetry() -> None:
                await send_json(ws, {"type": "telemetry_update", "ts": "t", "state": {
                    "inventory": [{"id": f"minecraft:{k}", "count": v} for k, v in inventory.items()],
                    "nearby_blocks": ["minecraft:oak_log"],
                }})

            await telemetry()
            await send_json(ws, {"type": "command", "request_id": "r1", "text": "!get planks 1"})
            ops, replies = [], []
            while True:
                msg = await recv_json(ws)
                if msg["type"] == "chat_send":
                    replies.append(msg["text"])
                    if "Goal complete" in msg["text"] or "Goal stopped" in msg["text"]:
                        return ops, replies
                    continue
                if msg["type"] == "action_request":
                    ops.append(msg["op"])
                    if msg["op"] == "collect_block":
                        inventory["logs"] = inventory.get("logs", 0) + msg["count"]
                    elif msg["op"] == "craft":
                        inventory.pop("logs", None)
                        inventory["planks"] = inventory.get("planks", 0) + msg["count"]
                    await telemetry()
                    await send_json(ws, {"type": "progress_update", "action_id": msg["action_id"], "status": "ok"})

        ops, replies = self._run(client)
        self.assertEqual(ops, ["collect_block", "craft"])
        self.assertEqual(replies[0], "[goal] Goal: planks x1")
        self.assertTrue(replies[-1].startswith("[goal] Goal complete: planks x1"))

    def test_stop_during_action_sends_nothing_further(self) -> None:
        async def client(ws):
            await send_json(ws, {"type": "handshake", "player_uuid": "p1", "password": "pw"})
            await send_json(ws, {"type": "telemetry_update", "ts": "t", "state": {"nearby_blocks": ["oak_log"]}})
            await send_json(ws, {"type": "command", "request_id": "r1", "text": "!get planks 1"})
            ops = []
            while not ops:
                msg = await recv_json(ws)
                if msg["type"] == "action_request":
                    ops.append(msg["op"])
            await send_json(ws, {"type": "command", "request_id": "r2", "text": "!stop"})
            replies = []
            while "[goal] Stopped." not in replies:
                msg = await recv_json(ws)
                if msg["type"] == "action_request":
                    ops.append(msg["op"])
                elif msg["type"] == "chat_send":
                    replies.append(msg["text"])
            try:
                late = await recv_json(ws, timeout=0.3)
            except asyncio.TimeoutError:
                late = None
            return ops, late

        ops, late = self._run(client)
        self.assertEqual(ops, ["collect_block", "stop"])
        self.assertIsNone(late)

    def test_new_goal_replaces_running_one(self) -> None:
        async def client(ws):
            await send_json(ws, {"type": "handshake", "player_uuid": "p1", "password": "pw"})
            await send_json(ws, {"type": "telemetry_update", "ts": "t", "state": {"nearby_blocks": ["oak_log"]}})
            await send_json(ws, {"type": "command", "request_id": "r1", "text": "!get planks 1"})
            requests = []
            while not requests:
                msg = await recv_json(ws)
                if msg["type"] == "action_request":
                    requests.append(msg)
            await send_json(ws, {"type": "command", "request_id": "r2", "text": "!get logs 2"})
            while len(requests) < 3:
                msg = await recv_json(ws)
                if msg["type"] == "action_request":
                    requests.append(msg)
            return [(m["op"], m.get("count")) for m in requests]

        self.assertEqual(self._run(client), [("collect_block", 1), ("stop", None), ("collect_block", 2)])

    def test_status_and_ping(self) -> None:
        async def client(ws):
            await send_json(ws, {"type": "handshake", "player_uuid": "p1", "password": "pw"})
            await send_json(ws, {"type": "ping"})
            pong = await recv_json(ws)
            await send_json(ws, {"type": "command", "request_id": "r2", "text": "!status planks 2"})
            status = await recv_json(ws)
            await send_json(ws, {"type": "command", "request_id": "r3", "text": "!stop"})
            stop = await recv_json(ws)
            return pong, status, stop

        pong, status, stop = self._run(client)
        self.assertEqual(pong, {"type": "pong"})
        self.assertEqual(status["request_id"], "r2")
        self.assertEqual(status["text"], "[goal] planks x2: depth=2 fails=0 next=logs x1")
        self.assertEqual(stop["text"], "[goal] No goal running.")

    def test_state_request_returns_selected_keys(self) -> None:
        async def client(ws):
            await send_json(ws, {"type": "handshake", "player_uuid": "p1", "player_name": "Alex", "password": "pw"})
            await send_json(ws, {"type": "telemetry_update", "ts": "t", "state": {"dim": "minecraft:overworld"}})
            await send_json(ws, {"type": "state_request", "request_id": "s1", "selector": ["username", "dim"]})
            return await recv_json(ws)

        resp = self._run(client)
        self.assertEqual(resp["type"], "state_response")
        self.assertEqual(resp["state"], {"username": "Alex", "dim": "minecraft:overworld"})

    def test_bad_password_closes_connection(self) -> None:
        async def client(ws):
            await send_json(ws, {"type": "handshake", "player_uuid": "p1", "password": "nope"})
            try:
                await recv_json(ws)
            except websockets.ConnectionClosed as exc:
                return exc.rcvd.code if exc.rcvd is not None else None
            return None

        self.assertEqual(self._run(client), 1008)


if __name__ == "__main__":
    unittest.main()
