from __future__ import annotations

"""craftgoal backend server.

Purpose: WebSocket gateway that accepts client connections, parses chat commands
into intents, and drives one item goal per agent through the goal manager.

How: One connection per agent; each session owns a RemoteAgent (telemetry world
view + action dispatcher) and a GoalManager. `!get` starts a background goal
task that calls execute_next until the goal is met; the receive loop keeps
feeding telemetry and progress updates to it.

Engineering notes: Validate inputs defensively; keep handlers small; structured
logging with request and player ids; avoid blocking the event loop.

"""

import asyncio
import json
import logging
import signal
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import websockets
from websockets.asyncio.server import ServerConnection, serve

from .config import Settings, configure_logging, load_settings
from .dispatcher import RemoteAgent, RemoteSkills
from .goal_manager import GoalManager, GoalReport, StepResult, pursue_goal
from .intents import parse_command_text
from .planner import CyclePolicy
from .schemas import ChatSend, StateResponse
from .skill_graph import ItemClassifier
from .state_service import PlayerWorld, StateService


logger = logging.getLogger("craftgoal.server")


HELP_TEXT = (
    "Available commands:\n"
    "!help - Show this help\n"
    "!who - List online agents (uuid and username)\n"
    "!get <item> [count] - Pursue an item goal until the inventory holds count\n"
    "!status [<item> [count]] - Show depth, failures and next step of a goal\n"
    "!stop - Stop the current goal and interrupt the running action\n"
    "!reset - Stop and forget all goal state for this agent\n"
)


@dataclass
class Session:
    player_uuid: Optional[str]
    websocket: ServerConnection
    agent: Optional[RemoteAgent] = None
    manager: Optional[GoalManager] = None
    goal_task: Optional[asyncio.Task] = None
    goal: Optional[Dict[str, Any]] = None


class BackendServer:
    def __init__(self, settings: Optional[Settings] = None, classifier: Optional[ItemClassifier] = None) -> None:
        self.settings = settings or load_settings()
        self.classifier = classifier or self._load_classifier()
        self.sessions: Dict[ServerConnection, Session] = {}
        self._shutdown_event = asyncio.Event()
        self.state = StateService()

    def _load_classifier(self) -> ItemClassifier:
        path = Path(self.settings.item_catalog_path)
        if path.exists():
            return ItemClassifier.from_file(path)
        logger.warning("item catalog %s not found; using built-in catalog", path)
        return ItemClassifier.default()

    def _player_label(self, player_id: Optional[str]) -> str:
        pid = player_id or "unknown"
        ps = self.state.get_player_state(pid)
        uname = ps.get("state", {}).get("username") if ps else None
        if isinstance(uname, str) and uname:
            return f"{pid} ({uname})"
        return pid

    async def start(self) -> None:
        configure_logging(self.settings.log_level)
        host = self.settings.host
        port = self.settings.port

        logger.info("listening on %s:%s", host, port)

        async with serve(self._handle_client, host, port):
            await self._shutdown_event.wait()

    async def stop(self) -> None:
        self._shutdown_event.set()

    def _attach_agent(self, session: Session) -> None:
        settings = self.settings
        skills = RemoteSkills(
            session.websocket,
            timeout_s=settings.action_timeout_ms / 1000.0,
            spacing_s=max(settings.default_action_spacing_ms / 1000.0, 0.0),
        )
        world = PlayerWorld(self.state, session.player_uuid or "unknown")
        session.agent = RemoteAgent(world, skills)
        session.manager = GoalManager(
            self.classifier,
            session.agent,
            backoff_delay_s=settings.backoff_delay_ms / 1000.0,
            move_away_distance=settings.move_away_distance,
            cycle_policy=CyclePolicy(settings.cycle_policy),
        )

    async def _handle_client(self, websocket: ServerConnection) -> None:
        session = Session(player_uuid=None, websocket=websocket)
        self.sessions[websocket] = session
        client = f"{websocket.remote_address}"
        logger.info("client connected: %s", client)
        try:
            async for raw in websocket:
                try:
                    msg = json.loads(raw)
                except ValueError:
                    logger.warning("invalid JSON from %s", client)
                    continue
                if not isinstance(msg, dict):
                    logger.warning("non-object message from %s", client)
                    continue

                mtype = msg.get("type")
                if mtype == "handshake":
                    pid = msg.get("player_uuid")
                    provided_pw = msg.get("password")
                    pname = msg.get("player_name")
                    # Validate password strictly
                    if not isinstance(provided_pw, str) or provided_pw != self.settings.password:
                        logger.info("handshake rejected for %s: auth_failed", pid)
                        await websocket.close(code=1008, reason="auth_failed")
                        return
                    session.player_uuid = pid if isinstance(pid, str) and pid else "unknown"
                    if isinstance(pname, str) and pname:
                        self.state.update_telemetry(session.player_uuid, "", {"username": pname})
                    self._attach_agent(session)
                    logger.info("handshake from %s", self._player_label(session.player_uuid))
                    continue

                if session.manager is None:
                    logger.warning("%s from %s before handshake ignored", mtype, client)
                    continue

                if mtype == "command":
                    await self._on_command(session, msg)
                    continue

                if mtype == "telemetry_update":
                    self._on_telemetry(session, msg)
                    continue

                if mtype == "progress_update":
                    self._on_progress(session, msg)
                    continue

                if mtype == "state_request":
                    await self._on_state_request(session, msg)
                    continue

                if mtype == "ping":
                    await self._send_json(websocket, {"type": "pong"})
                    continue

                logger.debug("unhandled message type: %s", mtype)

        except websockets.ConnectionClosedError:
            logger.info("client disconnected: %s", client)
        finally:
            await self._cancel_goal(session)
            if session.manager is not None:
                session.manager.reset()
            self.sessions.pop(websocket, None)
            if session.player_uuid:
                self.state.forget(session.player_uuid)

    async def _reply(self, session: Session, request_id: str, text: str) -> None:
        msg: ChatSend = {
            "type": "chat_send",
            "request_id": request_id,
            "player_uuid": session.player_uuid or "unknown",
            "text": f"{self.settings.feedback_prefix}{text}",
        }
        await self._send_json(session.websocket, dict(msg))

    async def _on_command(self, session: Session, msg: dict) -> None:
        text: str = str(msg.get("text", ""))
        request_id: str = msg.get("request_id") or str(uuid.uuid4())
        player_id = session.player_uuid or "unknown"
        logger.info("command from %s: %s", self._player_label(player_id), text)

        intent = parse_command_text(text)
        if intent is None:
            await self._reply(session, request_id, f"Unrecognized command: {text}")
            return

        itype = intent.get("type")
        if itype == "help":
            await self._reply(session, request_id, HELP_TEXT)
            return

        if itype == "usage":
            await self._reply(session, request_id, "Usage: !get <item> [count]")
            return

        if itype == "who":
            players = [self._player_label(s.player_uuid) for s in self.sessions.values() if s.player_uuid]
            await self._reply(session, request_id, "Online agents:\n" + ("\n".join(players) if players else "<none>"))
            return

        if itype == "item_goal":
            await self._start_goal(session, request_id, str(intent["item"]), int(intent["count"]))  # type: ignore[arg-type]
            return

        if itype == "status":
            await self._on_status(session, request_id, intent)
            return

        if itype == "stop":
            stopped = await self._cancel_goal(session)
            await self._reply(session, request_id, "Stopped." if stopped else "No goal running.")
            return

        if itype == "reset":
            await self._cancel_goal(session)
            session.manager.reset()  # type: ignore[union-attr]
            session.goal = None
            await self._reply(session, request_id, "Goal state cleared.")
            return

        await self._reply(session, request_id, f"Unrecognized command: {text}")

    async def _start_goal(self, session: Session, request_id: str, item: str, count: int) -> None:
        await self._cancel_goal(session)
        session.goal = {"item": item, "count": count, "request_id": request_id}
        await self._reply(session, request_id, f"Goal: {item} x{count}")
        session.goal_task = asyncio.create_task(self._run_goal(session, request_id, item, count))

    async def _run_goal(self, session: Session, request_id: str, item: str, count: int) -> None:
        manager = session.manager
        assert manager is not None
        player = self._player_label(session.player_uuid)

        def _on_step(result: StepResult) -> None:
            logger.info(
                "goal %s x%d for %s: %s %s %s",
                item,
                count,
                player,
                result.status.value,
                result.item or "-",
                result.note,
            )

        try:
            report: GoalReport = await pursue_goal(
                manager,
                item,
                count,
                poll_interval_s=self.settings.goal_poll_interval_ms / 1000.0,
                max_steps=self.settings.max_goal_steps,
                on_step=_on_step,
            )
        except asyncio.CancelledError:
            logger.info("goal %s x%d for %s cancelled", item, count, player)
            raise
        except Exception:
            logger.exception("goal %s x%d for %s failed", item, count, player)
            await self._reply(session, request_id, f"Goal {item} x{count} failed (see server log).")
            return

        if report.completed:
            text = f"Goal complete: {item} x{count} ({report.steps} steps)"
        elif report.last is not None and report.last.note:
            text = f"Goal stopped: {item} x{count} after {report.steps} steps ({report.last.note})"
        else:
            text = f"Goal stopped: {item} x{count} after {report.steps} steps"
        await self._reply(session, request_id, text)

    async def _cancel_goal(self, session: Session) -> bool:
        task = session.goal_task
        session.goal_task = None
        if task is None or task.done():
            return False
        if session.agent is not None:
            try:
                await session.agent.scope.interrupt()
            except websockets.ConnectionClosed:
                logger.debug("connection closed while interrupting %s", self._player_label(session.player_uuid))
            session.agent.skills.cancel_pending()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def _on_status(self, session: Session, request_id: str, intent: Dict[str, Any]) -> None:
        manager = session.manager
        assert manager is not None
        item = intent.get("item")
        count = int(intent.get("count", 1))
        if item is None:
            if session.goal is None:
                await self._reply(session, request_id, "No goal set.")
                return
            item, count = session.goal["item"], int(session.goal["count"])
        progress = manager.progress(str(item), count)
        if progress.note:
            await self._reply(session, request_id, f"{item} x{count}: {progress.note}")
            return
        nxt = f"{progress.next_item} x{progress.next_quantity}" if progress.next_item else "none"
        await self._reply(
            session,
            request_id,
            f"{item} x{count}: depth={progress.depth} fails={progress.fails} next={nxt}",
        )

    def _on_telemetry(self, session: Session, msg: dict) -> None:
        player_id = session.player_uuid or "unknown"
        state = msg.get("state", {})
        if not isinstance(state, dict):
            logger.debug("invalid telemetry_update from %s ignored", player_id)
            return
        logger.debug("telemetry_update from %s: %s", player_id, state)
        self.state.update_telemetry(player_id, str(msg.get("ts", "")), state)

    async def _on_state_request(self, session: Session, msg: dict) -> None:
        req_id: str = msg.get("request_id", str(uuid.uuid4()))
        target_player: str = msg.get("player_uuid") or (session.player_uuid or "unknown")
        selector = msg.get("selector")
        player_state = self.state.get_player_state(target_player)
        payload = {}
        if player_state is not None:
            payload = self.state.select_state(player_state, selector)
        resp: StateResponse = {
            "type": "state_response",
            "request_id": req_id,
            "player_uuid": target_player,
            "state": payload,
        }
        await self._send_json(session.websocket, dict(resp))

    def _on_progress(self, session: Session, msg: dict) -> None:
        aid = str(msg.get("action_id"))
        logger.info(
            "progress_update from %s: action_id=%s status=%s note=%s",
            self._player_label(session.player_uuid),
            aid,
            msg.get("status"),
            msg.get("note"),
        )
        assert session.agent is not None
        if not session.agent.skills.resolve(msg):
            logger.debug("progress_update %s matched no waiting action", aid)

    async def _send_json(self, websocket: ServerConnection, obj: dict) -> None:
        await websocket.send(json.dumps(obj, separators=(",", ":")))


def main() -> None:
    server = BackendServer()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _signal_handler() -> None:
        logger.info("shutdown requested")
        loop.create_task(server.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Signals not supported on some platforms (e.g., Windows)
            pass

    try:
        loop.run_until_complete(server.start())
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()


if __name__ == "__main__":
    main()
