"""Host and guest ends of the networked game.

The host owns a :class:`~crossfire.machine.GameMachine`, applies the guest's
moves to it and pushes a full snapshot after every change. The guest owns
nothing but a shadow :class:`~crossfire.state.GameState` that each snapshot
replaces wholesale.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence
import logging

from pydantic import ValidationError

from .bus import Channel
from .config import Settings, settings as default_settings
from .content import ContentSource
from .machine import GameMachine
from .protocol import (
    CellInput,
    HintRequest,
    MoveMessage,
    PresenceMessage,
    SelectWord,
    StateSync,
    SubmitAnswer,
    SubmitWord,
    SyncMessage,
    SyncRequestMessage,
    Timeout,
    encode,
    move_message,
    parse_message,
    sync_message,
)
from .puzzle import (
    Position,
    Puzzle,
    cell_key,
    is_fully_filled,
    next_cell,
    prefilled_letter,
    previous_cell,
    word_cells,
)
from .state import (
    GUEST,
    GUEST_INDEX,
    HOST,
    HOST_INDEX,
    ONLINE,
    PLAYING,
    TYPING,
    WAITING,
    GameState,
)

logger = logging.getLogger(__name__)

PresenceListener = Callable[[bool], None]


class _Peer:
    role: str = ""
    opponent_role: str = ""

    def __init__(self, channel: Channel) -> None:
        self.channel = channel
        self.opponent_connected = False
        self._presence_listeners: List[PresenceListener] = []
        channel.subscribe(self._on_raw)
        channel.track(self.role)

    def on_presence(self, listener: PresenceListener) -> None:
        self._presence_listeners.append(listener)

    def _on_raw(self, raw) -> None:
        try:
            message = parse_message(raw)
        except ValidationError as exc:
            logger.warning(
                "Dropping malformed message",
                extra={"role": self.role, "errors": exc.error_count()},
            )
            return
        if isinstance(message, PresenceMessage):
            self._on_presence(message.users)
        else:
            self._on_message(message)

    def _on_message(self, message) -> None:
        raise NotImplementedError

    def _on_presence(self, users: Sequence[str]) -> None:
        present = self.opponent_role in users
        if present == self.opponent_connected:
            return
        self.opponent_connected = present
        logger.info(
            "Opponent %s", "connected" if present else "disconnected",
            extra={"role": self.role},
        )
        if present:
            self._on_opponent_joined()
        for listener in list(self._presence_listeners):
            listener(present)

    def _on_opponent_joined(self) -> None:
        pass


class HostPeer(_Peer):
    role = HOST
    opponent_role = GUEST

    def __init__(
        self,
        machine: GameMachine,
        channel: Channel,
        room_id: Optional[str] = None,
        room_code: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.machine = machine
        self.settings = settings or default_settings
        machine.state.player_role = HOST
        machine.state.mode = ONLINE
        machine.state.room_id = room_id
        machine.state.room_code = room_code
        self._unsubscribe = machine.subscribe(self._on_state)
        super().__init__(channel)

    def launch(
        self,
        player_names: Sequence[str] = ("", ""),
        topics: Optional[Sequence[str]] = None,
        language: Optional[str] = None,
        puzzle: Optional[Puzzle] = None,
        countdown: Optional[float] = None,
    ) -> GameState:
        """Start a new game. The ``playing`` snapshot leaves before the local
        countdown begins so both sides count down together."""
        if countdown is None:
            countdown = self.settings.countdown_seconds
        return self.machine.start_game(
            puzzle=puzzle,
            topics=topics,
            language=language,
            player_names=player_names,
            mode=ONLINE,
            role=HOST,
            countdown=countdown,
        )

    def act(self, move) -> bool:
        return self.machine.dispatch(move, HOST_INDEX)

    def publish_sync(self) -> None:
        state = self.machine.state
        if state.status == WAITING or state.puzzle is None:
            return
        self.channel.publish(sync_message(state))

    def close(self) -> None:
        self._unsubscribe()
        self.channel.close()

    def _on_state(self, state: GameState) -> None:
        self.publish_sync()

    def _on_message(self, message) -> None:
        if isinstance(message, MoveMessage):
            self.machine.dispatch(message.move, GUEST_INDEX)
        elif isinstance(message, SyncRequestMessage):
            self.publish_sync()
        else:
            logger.warning("Host ignores %s message", message.type)

    def _on_opponent_joined(self) -> None:
        self.publish_sync()


Listener = Callable[[GameState], None]


class GuestPeer(_Peer):
    role = GUEST
    opponent_role = HOST

    def __init__(
        self,
        channel: Channel,
        content: ContentSource,
        language: Optional[str] = None,
        room_id: Optional[str] = None,
        room_code: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.content = content
        self.settings = settings or default_settings
        self.state = GameState(
            mode=ONLINE,
            player_role=GUEST,
            language=language or self.settings.default_language,
            room_id=room_id,
            room_code=room_code,
        )
        self.caret: Optional[Position] = None
        self._listeners: List[Listener] = []
        super().__init__(channel)
        self.request_sync()

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def request_sync(self) -> None:
        self.channel.publish(encode(SyncRequestMessage()))

    def reconnect(self) -> None:
        self.channel.reconnect()
        self.request_sync()

    def close(self) -> None:
        self.channel.close()

    # ---- inbound ----

    def _on_message(self, message) -> None:
        if isinstance(message, SyncMessage):
            self.apply_sync(message.state)
        else:
            logger.warning("Guest ignores %s message", message.type)

    def apply_sync(self, snapshot: StateSync) -> bool:
        """Replace the shadow state with ``snapshot``; loads the referenced
        puzzle first when it is not the one already loaded."""
        state = self.state
        puzzle = state.puzzle
        if snapshot.puzzle_id is not None and (puzzle is None or puzzle.id != snapshot.puzzle_id):
            puzzle = self.content.puzzle_by_id(snapshot.puzzle_id, state.language)
            if puzzle is None:
                logger.error(
                    "Sync references an unknown puzzle",
                    extra={"puzzle_id": snapshot.puzzle_id, "language": state.language},
                )
                return False
            self.caret = None
        previous_word = state.selected_word_id
        previous_filled = self._filled_count()
        snapshot.apply_to(state, puzzle)
        # Keep the local caret while typing; take the host's when the word
        # changes or the host cleared cells (rejected submission).
        if (
            state.selected_word_id is None
            or state.selected_word_id != previous_word
            or self._filled_count() < previous_filled
        ):
            self.caret = state.selected_cell
        for listener in list(self._listeners):
            listener(state)
        return True

    def _filled_count(self) -> int:
        word = self.state.selected_word
        if word is None:
            return 0
        return sum(1 for r, c in word_cells(word) if self.state.cell_inputs.get(cell_key(r, c)))

    # ---- outbound intents ----

    @property
    def is_my_turn(self) -> bool:
        return self.state.status == PLAYING and self.state.current_turn == GUEST_INDEX

    def send(self, move) -> bool:
        if not self.is_my_turn:
            logger.debug("Not sending %s outside our turn", move.kind)
            return False
        self.channel.publish(move_message(move))
        return True

    def _locked(self, row: int, col: int) -> bool:
        state = self.state
        if prefilled_letter(state.puzzle.grid, row, col):
            return True
        return cell_key(row, col) in state.locked_cells()

    def select_word(self, word_id: Optional[int]) -> bool:
        word = self.state.puzzle.word(word_id) if self.state.puzzle else None
        if word_id is not None and word is None:
            return False
        if not self.send(SelectWord(word_id=word_id)):
            return False
        self.caret = word.anchor if word else None
        return True

    def type_letter(self, letter: str) -> bool:
        state = self.state
        word = state.selected_word
        if state.turn_phase != TYPING or word is None or self.caret is None:
            return False
        if len(letter) != 1 or not letter.isalpha():
            return False
        cell = self.caret
        while cell is not None and self._locked(*cell):
            cell = next_cell(word, cell)
        if cell is None:
            return False
        if not self.send(CellInput(cell_key=cell_key(*cell), letter=letter)):
            return False
        self.caret = next_cell(word, cell) or cell
        return True

    def backspace(self) -> bool:
        state = self.state
        word = state.selected_word
        cell = self.caret
        if state.turn_phase != TYPING or word is None or cell is None:
            return False
        if not (state.cell_inputs.get(cell_key(*cell)) and not self._locked(*cell)):
            cell = previous_cell(word, cell)
            while cell is not None and self._locked(*cell):
                cell = previous_cell(word, cell)
            if cell is None:
                return False
        if not self.send(CellInput(cell_key=cell_key(*cell), letter="")):
            return False
        self.caret = cell
        return True

    def submit_word(self) -> bool:
        state = self.state
        word = state.selected_word
        if word is None or not is_fully_filled(word, state.cell_inputs, state.puzzle.grid):
            return False
        return self.send(SubmitWord(word_id=word.id))

    def submit_answer(self, answer: str, used_hint: bool = False) -> bool:
        return self.send(
            SubmitAnswer(answer=answer, used_hint=used_hint or self.state.trivia_hint_used)
        )

    def request_hint(self) -> bool:
        return self.send(HintRequest())

    def timeout(self) -> bool:
        return self.send(Timeout())
