"""Snapshot/restore of an in-progress game so a reload can pick it back up.

Only a ``playing`` game is ever stored; any other status removes the file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional
import logging

from pydantic import ValidationError

from .config import settings
from .content import ContentError, ContentSource
from .machine import GameMachine
from .protocol import StateSync
from .state import PLAYING, GameState

logger = logging.getLogger(__name__)


class StoredSession(StateSync):
    mode: str = "solo"
    topics: List[str] = []
    language: str = "en"
    used_question_ids: List[str] = []
    elapsed: float = 0.0
    room_id: Optional[str] = None
    room_code: Optional[str] = None
    player_role: Optional[str] = None

    @classmethod
    def capture(cls, state: GameState, now: float) -> "StoredSession":
        snapshot = StateSync.from_state(state)
        return cls(
            **dict(snapshot),
            mode=state.mode,
            topics=list(state.topics),
            language=state.language,
            used_question_ids=sorted(state.used_question_ids),
            elapsed=(now - state.started_at) if state.started_at is not None else 0.0,
            room_id=state.room_id,
            room_code=state.room_code,
            player_role=state.player_role,
        )

    def to_state(self, content: ContentSource, now: float) -> Optional[GameState]:
        if self.puzzle_id is None:
            return None
        try:
            puzzle = content.puzzle_by_id(self.puzzle_id, self.language)
        except ContentError:
            puzzle = None
        if puzzle is None:
            return None
        state = GameState(
            mode=self.mode,
            topics=list(self.topics),
            language=self.language,
            used_question_ids=set(self.used_question_ids),
            started_at=now - self.elapsed,
            room_id=self.room_id,
            room_code=self.room_code,
            player_role=self.player_role,
        )
        return self.apply_to(state, puzzle)


class SessionStore:
    def __init__(self, content: ContentSource, path: Optional[Path] = None) -> None:
        self.content = content
        self.path = Path(path or settings.session_file)

    def save(self, state: GameState, now: float) -> None:
        if state.status != PLAYING or state.puzzle is None:
            self.clear()
            return
        record = StoredSession.capture(state, now)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(record.model_dump_json(by_alias=True), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            logger.warning("Could not store session snapshot: %s", exc)

    def load(self, now: float) -> Optional[GameState]:
        """Return the stored game if it was still being played, else None."""
        if not self.path.exists():
            return None
        try:
            record = StoredSession.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Discarding unreadable session snapshot: %s", exc)
            self.clear()
            return None
        if record.status != PLAYING:
            self.clear()
            return None
        state = record.to_state(self.content, now)
        if state is None:
            logger.warning("Stored session references an unknown puzzle", extra={"puzzle_id": record.puzzle_id})
            self.clear()
        return state

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def attach(self, machine: GameMachine) -> Callable[[], None]:
        """Save after every mutation of ``machine``'s state."""
        return machine.subscribe(lambda state: self.save(state, machine.scheduler.now()))
