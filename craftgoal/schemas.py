from __future__ import annotations

"""Typed schema definitions for backend/client messages.

Purpose: Provide precise TypedDicts for message contracts to aid static checks
and keep the protocol explicit.

Ordering: the client sends the telemetry_update reflecting an action's result
before that action's terminal progress_update.

"""

from typing import Any, Dict, List, Literal, Optional, Tuple, TypedDict


MessageType = Literal[
    "handshake",
    "command",
    "action_request",
    "progress_update",
    "telemetry_update",
    "state_request",
    "state_response",
    "chat_send",
    "ping",
    "pong",
]


ActionOp = Literal["collect_block", "smelt", "attack", "craft", "move_away", "stop"]


class Handshake(TypedDict, total=False):
    type: Literal["handshake"]
    player_uuid: str
    player_name: Optional[str]
    password: str
    client_version: Optional[str]


class Command(TypedDict):
    type: Literal["command"]
    request_id: str
    text: str


class ActionRequest(TypedDict, total=False):
    type: Literal["action_request"]
    action_id: str
    mode: Literal["mod_native"]
    op: ActionOp
    block: Optional[str]
    item: Optional[str]
    entity: Optional[str]
    recipe: Optional[str]
    count: Optional[int]
    distance: Optional[int]
    exclude: Optional[List[Tuple[int, int, int]]]


class ProgressUpdate(TypedDict, total=False):
    type: Literal["progress_update"]
    action_id: str
    status: Literal["ok", "fail", "skipped", "cancelled", "running"]
    note: Optional[str]


class InventorySlot(TypedDict):
    id: str
    count: int


class TelemetryState(TypedDict, total=False):
    username: str
    pos: Tuple[float, float, float]
    dim: str
    health: int
    hunger: int
    inventory: List[InventorySlot]
    nearby_blocks: List[str]
    nearby_entities: List[str]
    reserved_positions: List[Tuple[int, int, int]]


class TelemetryUpdate(TypedDict):
    type: Literal["telemetry_update"]
    ts: str
    state: TelemetryState


class StateRequest(TypedDict):
    type: Literal["state_request"]
    request_id: str
    player_uuid: str
    selector: List[str]


class StateResponse(TypedDict):
    type: Literal["state_response"]
    request_id: str
    player_uuid: str
    state: Dict[str, Any]


class ChatSend(TypedDict):
    type: Literal["chat_send"]
    request_id: str
    player_uuid: str
    text: str
