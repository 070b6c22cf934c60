"""Solo-mode opponent: stateless policy functions plus the driver that plays
them through the state machine with human-looking delays."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence
import logging
import random

from .config import Settings, settings as default_settings
from .content import MULTIPLE_CHOICE, Question
from .machine import GameMachine
from .protocol import CellInput, HintRequest, SelectWord, SubmitAnswer, SubmitWord
from .puzzle import Word, cell_key, letter_at, word_cells
from .scheduler import Handle, Scheduler
from .state import BOT_INDEX, PLAYING, QUESTION, SELECTING, GameState
from .state import TYPING as TURN_TYPING

logger = logging.getLogger(__name__)


# ---------- Policy ----------


def choose_word(available: Sequence[Word], rng: Optional[random.Random] = None) -> Word:
    if not available:
        raise ValueError("No words left to choose from")
    return (rng or random).choice(list(available))


def think_delay(low: float, high: float, rng: Optional[random.Random] = None) -> float:
    return (rng or random).uniform(low, high)


@dataclass(frozen=True)
class BotAnswer:
    answer: str
    is_correct: bool


def answer_question(
    question: Question,
    accuracy: float,
    used_hint: bool = False,
    rng: Optional[random.Random] = None,
) -> BotAnswer:
    """Right with probability ``accuracy``; always right once options were
    revealed. A wrong multiple-choice answer is a random wrong option."""
    rng = rng or random
    if used_hint or rng.random() < accuracy:
        return BotAnswer(answer=question.answer, is_correct=True)
    if question.kind == MULTIPLE_CHOICE and question.options:
        wrong = [o for o in question.options if o.lower() != question.answer.lower()]
        if wrong:
            return BotAnswer(answer=rng.choice(wrong), is_correct=False)
    return BotAnswer(answer="", is_correct=False)


def should_use_hint(
    score: int, cost: int, probability: float, rng: Optional[random.Random] = None
) -> bool:
    if score < cost:
        return False
    return (rng or random).random() < probability


# ---------- Driver ----------

IDLE = "idle"
THINKING = "thinking"
TYPING = "typing"
SUBMITTING = "submitting"
ANSWERING = "answering"


class BotDriver:
    """Plays the bot's turns: idle -> thinking -> typing(i) -> submitting,
    and idle -> answering once a question is up.

    Exactly one callback is pending at any time; :meth:`cancel` drops it, and
    the driver cancels itself whenever the turn leaves the bot.
    """

    def __init__(
        self,
        machine: GameMachine,
        scheduler: Scheduler,
        player_index: int = BOT_INDEX,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.machine = machine
        self.scheduler = scheduler
        self.player_index = player_index
        self.settings = settings or default_settings
        self.rng = rng or random.Random()
        self.phase = IDLE
        self.word: Optional[Word] = None
        self.letter_index = 0
        self.used_hint = False
        self.last_answer: Optional[BotAnswer] = None
        self._handle: Optional[Handle] = None
        self._unsubscribe = machine.subscribe(self._on_change)

    def close(self) -> None:
        self.cancel()
        self._unsubscribe()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.phase = IDLE
        self.word = None
        self.letter_index = 0

    def _schedule(self, delay: float, callback) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self.scheduler.call_later(delay, callback)

    def _act(self, move) -> bool:
        return self.machine.dispatch(move, self.player_index)

    # ---- reacting to state ----

    def _on_change(self, state: GameState) -> None:
        if state.status != PLAYING or state.current_turn != self.player_index:
            if self.phase != IDLE:
                self.cancel()
            return
        if state.turn_phase == SELECTING and self.phase not in (IDLE, THINKING):
            # Attempt was reset under us (deselect, restore)
            self.cancel()
        if state.turn_phase == SELECTING and self.phase == IDLE:
            self._start_thinking(state)
        elif state.turn_phase == QUESTION and self.phase != ANSWERING:
            self._start_answering(state)
        elif state.turn_phase == TURN_TYPING and self.phase == IDLE:
            word = state.selected_word
            if word is not None:
                self._resume_typing(word)

    def _start_thinking(self, state: GameState) -> None:
        if not state.available_words():
            return
        self.phase = THINKING
        self._schedule(
            think_delay(self.settings.bot_think_min, self.settings.bot_think_max, self.rng),
            self._pick_word,
        )

    def _pick_word(self) -> None:
        self._handle = None
        available = self.machine.state.available_words()
        if not available:
            self.phase = IDLE
            return
        self.word = choose_word(available, self.rng)
        self.letter_index = 0
        self.phase = TYPING
        logger.debug("Bot picked a word", extra={"word_id": self.word.id})
        if not self._act(SelectWord(word_id=self.word.id)):
            self.cancel()
            return
        self._schedule(self.settings.bot_letter_delay, self._type_next)

    def _resume_typing(self, word: Word) -> None:
        # Restored mid-word: retype from the first cell, correct letters stay
        self.word = word
        self.letter_index = 0
        self.phase = TYPING
        logger.debug("Bot resumed typing", extra={"word_id": word.id})
        self._schedule(self.settings.bot_letter_delay, self._type_next)

    def _type_next(self) -> None:
        self._handle = None
        word = self.word
        if word is None:
            return
        cells = word_cells(word)
        state = self.machine.state
        locked = state.locked_cells()
        while self.letter_index < len(cells):
            row, col = cells[self.letter_index]
            self.letter_index += 1
            key = cell_key(row, col)
            if key in locked or state.puzzle.grid.prefilled.get((row, col)):
                continue
            if not self._act(CellInput(cell_key=key, letter=letter_at(word, row, col))):
                self.cancel()
                return
            break
        if self.letter_index < len(cells):
            self._schedule(self.settings.bot_letter_delay, self._type_next)
        else:
            self.phase = SUBMITTING
            self._schedule(self.settings.bot_submit_pause, self._submit)

    def _submit(self) -> None:
        self._handle = None
        word = self.word
        self.phase = IDLE
        self.word = None
        if word is not None:
            self._act(SubmitWord(word_id=word.id))

    def _start_answering(self, state: GameState) -> None:
        self.phase = ANSWERING
        self.used_hint = False
        self.last_answer = None
        self._schedule(
            think_delay(self.settings.bot_think_min, self.settings.bot_think_max, self.rng),
            self._consider_question,
        )

    def _consider_question(self) -> None:
        self._handle = None
        state = self.machine.state
        question = state.current_question
        if question is None:
            return
        score = state.players[self.player_index].score
        if question.kind != MULTIPLE_CHOICE and should_use_hint(
            score,
            self.settings.trivia_hint_cost,
            self.settings.bot_hint_probability,
            self.rng,
        ):
            self.used_hint = self._act(HintRequest())
        if self.used_hint:
            self._schedule(self.settings.bot_hint_pause, self._reveal_answer)
        else:
            self._reveal_answer()

    def _reveal_answer(self) -> None:
        self._handle = None
        question = self.machine.state.current_question
        if question is None:
            return
        self.last_answer = answer_question(
            question, self.settings.bot_accuracy, self.used_hint, self.rng
        )
        self._schedule(self.settings.bot_reveal_pause, self._answer)

    def _answer(self) -> None:
        self._handle = None
        answer = self.last_answer
        self.phase = IDLE
        if answer is not None:
            self._act(SubmitAnswer(answer=answer.answer, used_hint=self.used_hint))

    @property
    def thinking(self) -> bool:
        return self.phase != IDLE