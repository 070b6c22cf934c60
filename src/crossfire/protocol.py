"""Wire messages exchanged between the host and guest peers.

Guest -> host: one ``move`` message per user intent. Host -> guest: a full
``sync`` snapshot after every mutation. Either side may receive ``presence``
updates from the bus; guests send ``sync-request`` when they (re)connect.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from .content import Question
from .puzzle import Puzzle
from .state import (
    GameState,
    GameStats,
    LastFeedback,
    Player,
    WordCompletion,
)


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# ---------- Moves (guest -> host) ----------


class SelectWord(WireModel):
    kind: Literal["select-word"] = "select-word"
    # None deselects
    word_id: Optional[int] = None


class CellInput(WireModel):
    kind: Literal["cell-input"] = "cell-input"
    cell_key: str
    letter: str = Field(default="", max_length=1)

    @field_validator("letter")
    @classmethod
    def ensure_letter(cls, value: str) -> str:
        if value and not value.isalpha():
            raise ValueError("Cell input must be a single letter or empty")
        return value.upper()


class SubmitWord(WireModel):
    kind: Literal["submit-word"] = "submit-word"
    word_id: int


class SubmitAnswer(WireModel):
    kind: Literal["submit-answer"] = "submit-answer"
    answer: str = ""
    used_hint: bool = False


class HintRequest(WireModel):
    kind: Literal["hint"] = "hint"


class Timeout(WireModel):
    kind: Literal["timeout"] = "timeout"


Move = Annotated[
    Union[SelectWord, CellInput, SubmitWord, SubmitAnswer, HintRequest, Timeout],
    Field(discriminator="kind"),
]


# ---------- State snapshot (host -> guest) ----------


class PlayerModel(WireModel):
    id: str
    name: str = ""
    score: int = 0
    is_ready: bool = False


class QuestionModel(WireModel):
    id: str
    prompt: str
    kind: Literal["open", "multiple-choice"]
    answer: str
    topic: str = ""
    difficulty: str = "medium"
    options: Optional[List[str]] = None

    @classmethod
    def from_question(cls, q: Question) -> "QuestionModel":
        return cls(
            id=q.id,
            prompt=q.prompt,
            kind=q.kind,
            answer=q.answer,
            topic=q.topic,
            difficulty=q.difficulty,
            options=list(q.options) if q.options else None,
        )

    def to_question(self) -> Question:
        return Question(
            id=self.id,
            prompt=self.prompt,
            kind=self.kind,
            answer=self.answer,
            topic=self.topic,
            difficulty=self.difficulty,
            options=tuple(self.options) if self.options else None,
        )


class FeedbackModel(WireModel):
    is_correct: bool
    points: int
    correct_answer: Optional[str] = None


class StatsModel(WireModel):
    words_completed: List[int] = Field(default_factory=lambda: [0, 0])
    correct_answers: List[int] = Field(default_factory=lambda: [0, 0])
    total_time_played: int = 0


class CompletionModel(WireModel):
    word_id: int
    player_index: int
    points: int


class StateSync(WireModel):
    current_turn: Literal[0, 1] = 0
    players: List[PlayerModel]
    completed_word_ids: List[int] = Field(default_factory=list)
    turn_phase: Literal["selecting", "typing", "question", "feedback"] = "selecting"
    current_question: Optional[QuestionModel] = None
    question_options: Optional[List[str]] = None
    trivia_hint_used: bool = False
    last_feedback: Optional[FeedbackModel] = None
    selected_word_id: Optional[int] = None
    selected_cell: Optional[Tuple[int, int]] = None
    cell_inputs: Dict[str, str] = Field(default_factory=dict)
    status: Literal["waiting", "playing", "finished"] = "waiting"
    game_stats: StatsModel = Field(default_factory=StatsModel)
    word_completions: List[CompletionModel] = Field(default_factory=list)
    puzzle_id: Optional[int] = None
    turn_time_remaining: int = 0
    trivia_time_remaining: int = 0

    @classmethod
    def from_state(cls, state: GameState) -> "StateSync":
        feedback = state.last_feedback
        return cls(
            current_turn=state.current_turn,
            players=[
                PlayerModel(id=p.id, name=p.name, score=p.score, is_ready=p.ready)
                for p in state.players
            ],
            completed_word_ids=list(state.completed_word_ids),
            turn_phase=state.turn_phase,
            current_question=(
                QuestionModel.from_question(state.current_question)
                if state.current_question
                else None
            ),
            question_options=(
                list(state.question_options) if state.question_options else None
            ),
            trivia_hint_used=state.trivia_hint_used,
            last_feedback=(
                FeedbackModel(
                    is_correct=feedback.is_correct,
                    points=feedback.points,
                    correct_answer=feedback.correct_answer,
                )
                if feedback
                else None
            ),
            selected_word_id=state.selected_word_id,
            selected_cell=state.selected_cell,
            cell_inputs=dict(state.cell_inputs),
            status=state.status,
            game_stats=StatsModel(
                words_completed=list(state.game_stats.words_completed),
                correct_answers=list(state.game_stats.correct_answers),
                total_time_played=state.game_stats.total_time_played,
            ),
            word_completions=[
                CompletionModel(
                    word_id=c.word_id, player_index=c.player_index, points=c.points
                )
                for c in state.word_completions
            ],
            puzzle_id=state.puzzle.id if state.puzzle else None,
            turn_time_remaining=state.turn_time_remaining,
            trivia_time_remaining=state.trivia_time_remaining,
        )

    def apply_to(self, state: GameState, puzzle: Optional[Puzzle] = None) -> GameState:
        """Overwrite every synced field of ``state`` (full replace, no merge)."""
        if puzzle is not None:
            state.puzzle = puzzle
        state.current_turn = self.current_turn
        state.players = [
            Player(id=p.id, name=p.name, score=p.score, ready=p.is_ready)
            for p in self.players
        ]
        state.completed_word_ids = list(self.completed_word_ids)
        state.turn_phase = self.turn_phase
        state.current_question = (
            self.current_question.to_question() if self.current_question else None
        )
        state.question_options = (
            list(self.question_options) if self.question_options else None
        )
        state.trivia_hint_used = self.trivia_hint_used
        state.last_feedback = (
            LastFeedback(
                is_correct=self.last_feedback.is_correct,
                points=self.last_feedback.points,
                correct_answer=self.last_feedback.correct_answer,
            )
            if self.last_feedback
            else None
        )
        state.selected_word_id = self.selected_word_id
        state.selected_cell = tuple(self.selected_cell) if self.selected_cell else None
        state.cell_inputs = dict(self.cell_inputs)
        state.status = self.status
        state.game_stats = GameStats(
            words_completed=list(self.game_stats.words_completed),
            correct_answers=list(self.game_stats.correct_answers),
            total_time_played=self.game_stats.total_time_played,
        )
        state.word_completions = [
            WordCompletion(word_id=c.word_id, player_index=c.player_index, points=c.points)
            for c in self.word_completions
        ]
        state.turn_time_remaining = self.turn_time_remaining
        state.trivia_time_remaining = self.trivia_time_remaining
        return state


# ---------- Envelopes ----------


class MoveMessage(WireModel):
    type: Literal["move"] = "move"
    move: Move


class SyncMessage(WireModel):
    type: Literal["sync"] = "sync"
    state: StateSync


class SyncRequestMessage(WireModel):
    type: Literal["sync-request"] = "sync-request"


class PresenceMessage(WireModel):
    type: Literal["presence"] = "presence"
    users: List[str] = Field(default_factory=list)


Message = Annotated[
    Union[MoveMessage, SyncMessage, SyncRequestMessage, PresenceMessage],
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[Any] = TypeAdapter(Message)
_MOVE_ADAPTER: TypeAdapter[Any] = TypeAdapter(Move)


def parse_message(raw: Any):
    """Validate an inbound payload; raises ``pydantic.ValidationError``."""
    return _MESSAGE_ADAPTER.validate_python(raw)


def parse_move(raw: Any):
    return _MOVE_ADAPTER.validate_python(raw)


def encode(message: BaseModel) -> Dict[str, Any]:
    return message.model_dump(mode="json", by_alias=True)


def move_message(move: BaseModel) -> Dict[str, Any]:
    return encode(MoveMessage(move=move))


def sync_message(state: GameState) -> Dict[str, Any]:
    return encode(SyncMessage(state=StateSync.from_state(state)))
