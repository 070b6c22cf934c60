"""Room lifecycle for networked games: create, join by code, leave."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence
import logging
import random
import time
import uuid

from .config import Settings, settings as default_settings
from .content import TOPICS

logger = logging.getLogger(__name__)

# No I/O/0/1, they read alike.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

ROOM_WAITING = "waiting"
ROOM_PLAYING = "playing"
ROOM_FINISHED = "finished"

CREATE_FAILED = "create_failed"
CODE_COLLISION = "code_collision"
ROOM_NOT_FOUND = "room_not_found"
ROOM_FULL = "room_full"


class RoomError(Exception):
    """Room operation failure carrying one of the error ``code`` constants."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


@dataclass
class Room:
    id: str
    code: str
    host_name: str
    topics: List[str] = field(default_factory=list)
    language: str = "en"
    guest_name: Optional[str] = None
    puzzle_id: Optional[int] = None
    status: str = ROOM_WAITING
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "code": self.code,
            "hostName": self.host_name,
            "guestName": self.guest_name,
            "topics": list(self.topics),
            "language": self.language,
            "puzzleId": self.puzzle_id,
            "status": self.status,
        }


def generate_room_code(length: int, rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(length))


class RoomRegistry:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        code_factory: Optional[Callable[[], str]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or default_settings
        self._code_factory = code_factory or (
            lambda: generate_room_code(self.settings.room_code_length)
        )
        self._clock = clock
        self._rooms: Dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def create(
        self, host_name: str, topics: Sequence[str] = (), language: Optional[str] = None
    ) -> Room:
        host_name = host_name.strip()
        unknown = [t for t in topics if t not in TOPICS]
        if not host_name or unknown:
            raise RoomError(
                CREATE_FAILED,
                "Host name is required" if not host_name else f"Unknown topics {unknown}",
            )
        self.cleanup()
        taken = {room.code for room in self._rooms.values()}
        for _ in range(self.settings.room_create_attempts):
            code = self._code_factory()
            if code in taken:
                continue
            room = Room(
                id=uuid.uuid4().hex,
                code=code,
                host_name=host_name,
                topics=list(topics),
                language=language or self.settings.default_language,
                created_at=self._clock(),
            )
            self._rooms[room.id] = room
            logger.info("Room created", extra={"room_id": room.id, "code": code})
            return room
        raise RoomError(CODE_COLLISION, "Could not allocate a free room code")

    def join(self, code: str, guest_name: str) -> Room:
        room = self.by_code(code)
        if room is None:
            raise RoomError(ROOM_NOT_FOUND, f"No room with code {code!r}")
        if room.guest_name is not None or room.status != ROOM_WAITING:
            raise RoomError(ROOM_FULL, f"Room {room.code} is full")
        room.guest_name = guest_name.strip() or "Guest"
        logger.info("Guest joined room", extra={"room_id": room.id, "code": room.code})
        return room

    def leave(self, room_id: str) -> None:
        if self._rooms.pop(room_id, None) is not None:
            logger.info("Room closed", extra={"room_id": room_id})

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def by_code(self, code: str) -> Optional[Room]:
        normalized = code.strip().upper()
        for room in self._rooms.values():
            if room.code == normalized:
                return room
        return None

    def set_status(
        self, room_id: str, status: str, puzzle_id: Optional[int] = None
    ) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomError(ROOM_NOT_FOUND, f"No room {room_id!r}")
        room.status = status
        if puzzle_id is not None:
            room.puzzle_id = puzzle_id
        return room

    def cleanup(self) -> int:
        """Drop rooms older than the configured TTL; returns how many went."""
        cutoff = self._clock() - self.settings.room_ttl_seconds
        stale = [room_id for room_id, room in self._rooms.items() if room.created_at < cutoff]
        for room_id in stale:
            self._rooms.pop(room_id, None)
        if stale:
            logger.info("Removed stale rooms", extra={"count": len(stale)})
        return len(stale)
