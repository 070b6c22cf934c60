"""FastAPI relay for networked games: room CRUD plus a websocket channel
that relays host/guest messages and broadcasts presence."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .content import TOPICS
from .rooms import (
    CODE_COLLISION,
    CREATE_FAILED,
    ROOM_FINISHED,
    ROOM_FULL,
    ROOM_NOT_FOUND,
    ROOM_PLAYING,
    ROOM_WAITING,
    Room,
    RoomError,
    RoomRegistry,
)
from .state import GUEST, HOST

logger = logging.getLogger(__name__)

app = FastAPI(title="Crossfire", description="Room relay for two-player crossword trivia")

REGISTRY = RoomRegistry()
ROOM_LOCK = asyncio.Lock()

ERROR_STATUS: Dict[str, int] = {
    ROOM_NOT_FOUND: 404,
    ROOM_FULL: 409,
    CREATE_FAILED: 400,
    CODE_COLLISION: 503,
}


@dataclass
class SocketRoom:
    """Websockets currently attached to one room."""

    room_id: str
    host: Optional[WebSocket] = field(default=None, repr=False)
    guest: Optional[WebSocket] = field(default=None, repr=False)

    def other(self, websocket: WebSocket) -> Optional[WebSocket]:
        if websocket is self.host:
            return self.guest
        if websocket is self.guest:
            return self.host
        return None

    def users(self) -> List[str]:
        present = []
        if self.host is not None:
            present.append(HOST)
        if self.guest is not None:
            present.append(GUEST)
        return present

    def sockets(self) -> List[WebSocket]:
        return [ws for ws in (self.host, self.guest) if ws is not None]


SOCKETS: Dict[str, SocketRoom] = {}


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    host_name: str = Field(alias="hostName", min_length=1, max_length=40)
    topics: List[str] = Field(default_factory=list)
    language: Optional[str] = None

    @field_validator("topics")
    @classmethod
    def ensure_known_topics(cls, value: List[str]) -> List[str]:
        unknown = [t for t in value if t not in TOPICS]
        if unknown:
            raise ValueError(
                f"Unknown topics {', '.join(unknown)}. Choose from {', '.join(TOPICS)}."
            )
        return value


class JoinRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    guest_name: str = Field(alias="guestName", min_length=1, max_length=40)


def _room_error(exc: RoomError) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS.get(exc.code, 400), detail=exc.code)


def _resolve_join_base_url(request: Request) -> str:
    """Determine the best base URL for shareable room links."""

    origin = request.headers.get("origin")
    if origin:
        return origin.rstrip("/")

    forwarded_host = request.headers.get("x-forwarded-host")
    if forwarded_host:
        scheme = request.headers.get("x-forwarded-proto") or request.url.scheme
        return f"{scheme}://{forwarded_host}".rstrip("/")

    return str(request.base_url).rstrip("/")


@app.post("/api/room")
async def create_room(payload: CreateRoomRequest, request: Request) -> Dict[str, Any]:
    async with ROOM_LOCK:
        try:
            room = REGISTRY.create(payload.host_name, payload.topics, payload.language)
        except RoomError as exc:
            raise _room_error(exc) from exc
        # Stale registry rooms take their idle sockets with them
        for room_id in [r for r in SOCKETS if REGISTRY.get(r) is None]:
            if not SOCKETS[room_id].sockets():
                SOCKETS.pop(room_id, None)

    body = room.to_dict()
    body["joinUrl"] = f"{_resolve_join_base_url(request)}/?room={room.code}"
    return body


@app.get("/api/room/{code}")
async def inspect_room(code: str) -> Dict[str, Any]:
    async with ROOM_LOCK:
        room = REGISTRY.by_code(code)
    if room is None:
        raise HTTPException(status_code=404, detail=ROOM_NOT_FOUND)
    body = room.to_dict()
    body["available"] = room.guest_name is None
    return body


@app.post("/api/room/{code}/join")
async def join_room(code: str, payload: JoinRoomRequest) -> Dict[str, Any]:
    async with ROOM_LOCK:
        try:
            room = REGISTRY.join(code, payload.guest_name)
        except RoomError as exc:
            raise _room_error(exc) from exc
    return room.to_dict()


@app.delete("/api/room/{room_id}", status_code=204)
async def leave_room(room_id: str) -> None:
    async with ROOM_LOCK:
        REGISTRY.leave(room_id)


async def _send(websocket: WebSocket, message: Dict[str, Any]) -> None:
    try:
        await websocket.send_json(message)
    except RuntimeError:
        # Socket already closed on the other side
        pass


async def _broadcast_presence(socket_room: SocketRoom) -> None:
    message = {"type": "presence", "users": socket_room.users()}
    for websocket in socket_room.sockets():
        await _send(websocket, message)


def _track_status(room: Optional[Room], message: Any) -> None:
    if room is None or not isinstance(message, dict) or message.get("type") != "sync":
        return
    state = message.get("state")
    if not isinstance(state, dict):
        return
    status = state.get("status")
    if status in (ROOM_WAITING, ROOM_PLAYING, ROOM_FINISHED) and status != room.status:
        REGISTRY.set_status(room.id, status, state.get("puzzleId"))


@app.websocket("/ws/room/{room_id}")
async def room_channel(websocket: WebSocket, room_id: str) -> None:
    await websocket.accept()

    async with ROOM_LOCK:
        role: Optional[str] = None
        socket_room: Optional[SocketRoom] = None
        if REGISTRY.get(room_id) is not None:
            socket_room = SOCKETS.setdefault(room_id, SocketRoom(room_id=room_id))
            if socket_room.host is None:
                socket_room.host = websocket
                role = HOST
            elif socket_room.guest is None:
                socket_room.guest = websocket
                role = GUEST

    if socket_room is None:
        await websocket.send_json({"type": "error", "message": ROOM_NOT_FOUND})
        await websocket.close()
        return
    if role is None:
        await websocket.send_json({"type": "error", "message": ROOM_FULL})
        await websocket.close()
        return

    logger.info("Peer attached", extra={"room_id": room_id, "role": role})
    await websocket.send_json({"type": "role", "role": role})
    await _broadcast_presence(socket_room)

    try:
        while True:
            message = await websocket.receive_json()
            async with ROOM_LOCK:
                target = socket_room.other(websocket)
                _track_status(REGISTRY.get(room_id), message)
            if target is not None:
                await _send(target, message)
    except WebSocketDisconnect:
        pass
    finally:
        async with ROOM_LOCK:
            if socket_room.host is websocket:
                socket_room.host = None
            if socket_room.guest is websocket:
                socket_room.guest = None
            if not socket_room.sockets():
                SOCKETS.pop(room_id, None)
        logger.info("Peer detached", extra={"room_id": room_id, "role": role})
        await _broadcast_presence(socket_room)
