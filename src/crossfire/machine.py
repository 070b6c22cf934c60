"""Turn/phase state machine: the only code that mutates canonical game state.

A ``GameMachine`` runs on the authoritative peer (the sole peer in solo and
local play, the host online). Every player action, local or received from
the guest, goes through :meth:`GameMachine.dispatch` with the acting player's
index, so a move has the same effect whatever its origin.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence
import logging
import random

from .config import Settings, settings as default_settings
from .content import MULTIPLE_CHOICE, ContentSource
from .protocol import (
    CellInput,
    HintRequest,
    Move,
    SelectWord,
    SubmitAnswer,
    SubmitWord,
    Timeout,
)
from .puzzle import (
    Puzzle,
    Word,
    build_word_input,
    canonical_letters,
    cell_key,
    hint_cell,
    is_fully_filled,
    letter_at,
    next_cell,
    parse_cell_key,
    prefilled_letter,
    previous_cell,
    word_cells,
)
from .scheduler import Countdown, Handle, Scheduler
from .scoring import PLAYING as STILL_PLAYING
from .scoring import calculate_score, check_victory, validate_answer, validate_word
from .state import (
    FEEDBACK,
    FINISHED,
    GUEST,
    LOCAL,
    PLAYING,
    QUESTION,
    SELECTING,
    TYPING,
    WAITING,
    GameState,
    LastFeedback,
    Player,
    WordCompletion,
)

logger = logging.getLogger(__name__)

Listener = Callable[[GameState], None]


class MoveRejected(ValueError):
    """A move that does not fit the current turn, phase or balance."""


class GameMachine:
    def __init__(
        self,
        content: ContentSource,
        scheduler: Scheduler,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.content = content
        self.scheduler = scheduler
        self.settings = settings or default_settings
        self.rng = rng or random.Random()
        self.state = GameState()
        self._listeners: List[Listener] = []
        self._turn_timer = Countdown(scheduler, self._on_turn_tick, self._on_turn_expired)
        self._trivia_timer = Countdown(
            scheduler, self._on_trivia_tick, self._on_trivia_expired
        )
        self._pending: Optional[Handle] = None

    # ---- listeners ----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)

    # ---- lifecycle ----

    def start_game(
        self,
        puzzle: Optional[Puzzle] = None,
        topics: Optional[Sequence[str]] = None,
        language: Optional[str] = None,
        player_names: Sequence[str] = ("", ""),
        mode: str = LOCAL,
        role: Optional[str] = None,
        countdown: float = 0.0,
    ) -> GameState:
        """Begin a fresh game and notify listeners right away; the turn timer
        starts only after ``countdown`` seconds."""

        self._cancel_all()
        previous = self.state
        language = language or previous.language or self.settings.default_language
        puzzle = puzzle or self.content.random_puzzle(language)
        players = [
            Player(
                id=old.id,
                name=name or old.name,
                score=0,
                ready=old.ready,
            )
            for old, name in zip(previous.players, [*player_names, "", ""])
        ]
        self.state = GameState(
            status=PLAYING,
            mode=mode,
            current_turn=0,
            players=players,
            turn_phase=SELECTING,
            turn_time_remaining=self.settings.turn_timer,
            trivia_time_remaining=self.settings.trivia_timer,
            puzzle=puzzle,
            topics=list(topics) if topics else puzzle.topics,
            language=language,
            started_at=self.scheduler.now(),
            room_id=previous.room_id,
            room_code=previous.room_code,
            player_role=role if role is not None else previous.player_role,
        )
        logger.info(
            "Game started",
            extra={"puzzle_id": puzzle.id, "mode": mode, "language": language},
        )
        self._notify()
        if countdown > 0:
            self._pending = self.scheduler.call_later(countdown, self._resume_timers)
        else:
            self._resume_timers()
        return self.state

    def restore(self, state: GameState) -> GameState:
        """Adopt a persisted state and resume the timer of its phase."""
        self._cancel_all()
        self.state = state
        if state.status == PLAYING:
            if state.turn_phase == FEEDBACK:
                self._schedule_feedback_end()
            else:
                self._resume_timers()
        self._notify()
        return self.state

    def exit(self) -> None:
        self._cancel_all()
        previous = self.state
        self.state = GameState(
            players=[Player(id=p.id, name=p.name) for p in previous.players],
            language=previous.language,
        )
        self._notify()

    def set_ready(self, index: int, ready: bool = True) -> bool:
        """Flag a player as ready in the lobby. Carried into the next game
        and synced as ``isReady``."""
        if not 0 <= index < len(self.state.players):
            return False
        self.state.players[index].ready = ready
        logger.debug("Player ready changed", extra={"player": index, "ready": ready})
        self._notify()
        return True

    # ---- reducer ----

    def dispatch(self, move: Move, actor: int) -> bool:
        """Apply ``move`` for player ``actor``. Returns False (and leaves the
        state untouched) when the move is rejected."""
        try:
            self._check_actor(actor)
            if isinstance(move, SelectWord):
                changed = self._select_word(move.word_id)
            elif isinstance(move, CellInput):
                changed = self._cell_input(move.cell_key, move.letter)
            elif isinstance(move, SubmitWord):
                self._submit_word(move.word_id, actor)
                changed = True
            elif isinstance(move, SubmitAnswer):
                self._submit_answer(move.answer, move.used_hint, actor)
                changed = True
            elif isinstance(move, HintRequest):
                self._hint(actor)
                changed = True
            elif isinstance(move, Timeout):
                self._timeout(actor)
                changed = True
            else:
                raise TypeError(f"Unknown move type {type(move).__name__}")
        except MoveRejected as exc:
            logger.info(
                "Move rejected: %s",
                exc,
                extra={"actor": actor, "move": type(move).__name__},
            )
            return False
        if changed:
            self._notify()
        return True

    def _check_actor(self, actor: int) -> None:
        state = self.state
        if state.player_role == GUEST:
            raise MoveRejected("A guest never mutates canonical state")
        if state.status != PLAYING:
            raise MoveRejected(f"Game is {state.status}")
        if actor != state.current_turn:
            raise MoveRejected(f"Not player {actor}'s turn")

    def _require_phase(self, *phases: str) -> None:
        if self.state.turn_phase not in phases:
            raise MoveRejected(f"Not allowed during {self.state.turn_phase}")

    def _require_selected(self) -> Word:
        word = self.state.selected_word
        if word is None:
            raise MoveRejected("No word selected")
        return word

    def _is_locked(self, row: int, col: int) -> bool:
        state = self.state
        if prefilled_letter(state.puzzle.grid, row, col):
            return True
        return cell_key(row, col) in state.locked_cells()

    # ---- transitions ----

    def _select_word(self, word_id: Optional[int]) -> bool:
        self._require_phase(SELECTING, TYPING)
        state = self.state
        if word_id is None:
            if state.selected_word_id is None:
                return False
            state.selected_word_id = None
            state.selected_cell = None
            state.turn_phase = SELECTING
            return True
        if word_id == state.selected_word_id:
            return False
        word = state.puzzle.word(word_id)
        if word is None:
            raise MoveRejected(f"Unknown word {word_id}")
        if word_id in state.completed_word_ids:
            raise MoveRejected(f"Word {word_id} already completed")
        state.selected_word_id = word_id
        state.selected_cell = word.anchor
        state.turn_phase = TYPING
        return True

    def _cell_input(self, key: str, letter: str) -> bool:
        self._require_phase(TYPING)
        word = self._require_selected()
        try:
            position = parse_cell_key(key)
        except ValueError as exc:
            raise MoveRejected(str(exc)) from exc
        if position not in word_cells(word):
            raise MoveRejected(f"Cell {key} is not part of word {word.id}")
        if self._is_locked(*position):
            raise MoveRejected(f"Cell {key} is locked")

        state = self.state
        letter = letter.upper()
        if letter:
            state.cell_inputs[key] = letter
            state.selected_cell = next_cell(word, position) or position
        else:
            state.cell_inputs.pop(key, None)
            state.selected_cell = position
        return True

    def _submit_word(self, word_id: int, actor: int) -> None:
        self._require_phase(TYPING)
        state = self.state
        word = self._require_selected()
        if word.id != word_id:
            raise MoveRejected(f"Word {word_id} is not the selected word")
        if word_id in state.completed_word_ids:
            raise MoveRejected(f"Word {word_id} already completed")
        grid = state.puzzle.grid
        if not is_fully_filled(word, state.cell_inputs, grid):
            raise MoveRejected(f"Word {word_id} is not fully filled")

        if not validate_word(word, build_word_input(word, state.cell_inputs, grid)):
            self._clear_wrong_cells(word)
            return

        state.completed_word_ids.append(word.id)
        state.cell_inputs.update(canonical_letters(word))
        state.game_stats.words_completed[actor] += 1
        self._turn_timer.stop()

        question = self.content.random_question(
            [word.topic], state.language, state.used_question_ids
        ) or self.content.random_question(
            state.topics, state.language, state.used_question_ids
        )
        if question is None:
            logger.info("No question left, scoring without trivia", extra={"word_id": word.id})
            points = calculate_score(word, False)
            self._award(actor, word, LastFeedback(is_correct=False, points=points))
            return

        state.used_question_ids.add(question.id)
        state.current_question = question
        state.question_options = None
        state.trivia_hint_used = False
        state.trivia_time_remaining = self.settings.trivia_timer
        state.turn_phase = QUESTION
        self._trivia_timer.start(self.settings.trivia_timer)

    def _clear_wrong_cells(self, word: Word) -> None:
        state = self.state
        first: Optional[tuple] = None
        for r, c in word_cells(word):
            if self._is_locked(r, c):
                continue
            key = cell_key(r, c)
            if state.cell_inputs.get(key) != letter_at(word, r, c):
                state.cell_inputs.pop(key, None)
                if first is None:
                    first = (r, c)
        state.selected_cell = first or word.anchor

    def _submit_answer(self, answer: str, used_hint: bool, actor: int) -> None:
        self._require_phase(QUESTION)
        state = self.state
        question = state.current_question
        word = self._require_selected()
        if question is None:
            raise MoveRejected("No question pending")

        hinted = used_hint or state.trivia_hint_used
        is_correct = validate_answer(question, answer)
        points = calculate_score(word, is_correct, used_hint=hinted)
        if is_correct:
            state.game_stats.correct_answers[actor] += 1
        self._trivia_timer.stop()
        self._award(
            actor,
            word,
            LastFeedback(
                is_correct=is_correct,
                points=points,
                correct_answer=None if is_correct else question.answer,
            ),
        )

    def _award(self, actor: int, word: Word, feedback: LastFeedback) -> None:
        state = self.state
        state.players[actor].score += feedback.points
        state.last_feedback = feedback
        state.word_completions.append(
            WordCompletion(word_id=word.id, player_index=actor, points=feedback.points)
        )
        state.turn_phase = FEEDBACK
        self._schedule_feedback_end()

    def _hint(self, actor: int) -> None:
        self._require_phase(TYPING, QUESTION)
        state = self.state
        player = state.current_player

        if state.turn_phase == TYPING:
            cost = self.settings.hint_letter_cost
            if player.score < cost:
                raise MoveRejected("Not enough points for a letter hint")
            word = self._require_selected()
            hint = hint_cell(word, state.cell_inputs, state.puzzle.grid, self.rng)
            if hint is None:
                raise MoveRejected("Every cell is already correct")
            row, col, letter = hint
            state.cell_inputs[cell_key(row, col)] = letter
            player.score -= cost
            return

        question = state.current_question
        cost = self.settings.trivia_hint_cost
        if question is None or question.kind == MULTIPLE_CHOICE:
            raise MoveRejected("Options hint only applies to open questions")
        if state.trivia_hint_used:
            raise MoveRejected("Options already revealed")
        if player.score < cost:
            raise MoveRejected("Not enough points for an options hint")
        state.question_options = self.content.options_for_question(question, state.language)
        state.trivia_hint_used = True
        player.score -= cost

    def _timeout(self, actor: int) -> None:
        self._require_phase(SELECTING, TYPING, QUESTION)
        if self.state.turn_phase == QUESTION:
            self._expire_question(actor)
        else:
            self._switch_turn()

    def _expire_question(self, actor: int) -> None:
        state = self.state
        word = self._require_selected()
        self._trivia_timer.stop()
        question = state.current_question
        self._award(
            actor,
            word,
            LastFeedback(
                is_correct=False,
                points=calculate_score(word, False),
                correct_answer=question.answer if question else None,
            ),
        )

    def _switch_turn(self) -> None:
        state = self.state
        self._cancel_all()
        state.current_turn = 1 - state.current_turn
        state.reset_attempt()
        state.turn_phase = SELECTING
        state.turn_time_remaining = self.settings.turn_timer
        self._turn_timer.start(self.settings.turn_timer)

    def complete_feedback(self) -> None:
        """End the feedback display: finish the game or pass the turn."""
        state = self.state
        if state.status != PLAYING or state.turn_phase != FEEDBACK:
            return
        result = check_victory(
            state.scores,
            len(state.completed_word_ids),
            len(state.puzzle.words),
            self.settings.victory_points,
        )
        if result != STILL_PLAYING:
            self._cancel_all()
            if state.started_at is not None:
                state.game_stats.total_time_played = int(
                    self.scheduler.now() - state.started_at
                )
            state.status = FINISHED
            logger.info("Game finished", extra={"result": result, "scores": state.scores})
        else:
            self._switch_turn()
        self._notify()

    # ---- timers ----

    def _resume_timers(self) -> None:
        self._pending = None
        state = self.state
        if state.status != PLAYING:
            return
        if state.turn_phase in (SELECTING, TYPING):
            self._turn_timer.start(state.turn_time_remaining or self.settings.turn_timer)
        elif state.turn_phase == QUESTION:
            self._trivia_timer.start(
                state.trivia_time_remaining or self.settings.trivia_timer
            )

    def _schedule_feedback_end(self) -> None:
        feedback = self.state.last_feedback
        duration = (
            self.settings.feedback_correct_duration
            if feedback and feedback.is_correct
            else self.settings.feedback_incorrect_duration
        )
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self.scheduler.call_later(duration, self.complete_feedback)

    def _cancel_all(self) -> None:
        self._turn_timer.stop()
        self._trivia_timer.stop()
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _on_turn_tick(self, remaining: int) -> None:
        self.state.turn_time_remaining = remaining
        self._notify()

    def _on_turn_expired(self) -> None:
        state = self.state
        if state.status != PLAYING or state.turn_phase not in (SELECTING, TYPING):
            return
        logger.info("Turn timed out", extra={"player": state.current_turn})
        state.turn_time_remaining = 0
        self._switch_turn()
        self._notify()

    def _on_trivia_tick(self, remaining: int) -> None:
        self.state.trivia_time_remaining = remaining
        self._notify()

    def _on_trivia_expired(self) -> None:
        state = self.state
        if state.status != PLAYING or state.turn_phase != QUESTION:
            return
        state.trivia_time_remaining = 0
        self._expire_question(state.current_turn)
        self._notify()

    # ---- local intents ----

    def select_word(self, actor: int, word_id: Optional[int]) -> bool:
        return self.dispatch(SelectWord(word_id=word_id), actor)

    def type_letter(self, actor: int, letter: str) -> bool:
        """Write ``letter`` at the caret, stepping over locked cells."""
        state = self.state
        word = state.selected_word
        if state.turn_phase != TYPING or word is None or state.selected_cell is None:
            return False
        cell = state.selected_cell
        while cell is not None and self._is_locked(*cell):
            cell = next_cell(word, cell)
        if cell is None:
            return False
        return self.dispatch(CellInput(cell_key=cell_key(*cell), letter=letter), actor)

    def backspace(self, actor: int) -> bool:
        """Clear the caret cell, or step back and clear the previous one."""
        state = self.state
        word = state.selected_word
        cell = state.selected_cell
        if state.turn_phase != TYPING or word is None or cell is None:
            return False
        if state.cell_inputs.get(cell_key(*cell)) and not self._is_locked(*cell):
            return self.dispatch(CellInput(cell_key=cell_key(*cell), letter=""), actor)
        prev = previous_cell(word, cell)
        while prev is not None and self._is_locked(*prev):
            prev = previous_cell(word, prev)
        if prev is None:
            return False
        return self.dispatch(CellInput(cell_key=cell_key(*prev), letter=""), actor)

    def submit_word(self, actor: int) -> Optional[bool]:
        """Submit the selected word. True if it was right, False if it was
        wrong, None if nothing could be submitted."""
        word = self.state.selected_word
        if word is None:
            return None
        if not self.dispatch(SubmitWord(word_id=word.id), actor):
            return None
        return word.id in self.state.completed_word_ids

    def request_hint(self, actor: int) -> bool:
        return self.dispatch(HintRequest(), actor)

    def submit_answer(self, actor: int, answer: str, used_hint: bool = False) -> bool:
        return self.dispatch(SubmitAnswer(answer=answer, used_hint=used_hint), actor)

    def timeout(self, actor: int) -> bool:
        return self.dispatch(Timeout(), actor)

    @property
    def is_finished(self) -> bool:
        return self.state.status == FINISHED

    @property
    def is_waiting(self) -> bool:
        return self.state.status == WAITING
