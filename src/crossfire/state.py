"""The single mutable game aggregate and its small value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .content import Question
from .puzzle import Position, Puzzle, canonical_letters

# status
WAITING = "waiting"
PLAYING = "playing"
FINISHED = "finished"

# turn_phase
SELECTING = "selecting"
TYPING = "typing"
QUESTION = "question"
FEEDBACK = "feedback"

# mode
SOLO = "solo"
LOCAL = "local"
ONLINE = "online"

# player_role
HOST = "host"
GUEST = "guest"

HOST_INDEX = 0
GUEST_INDEX = 1
BOT_INDEX = 1


@dataclass
class Player:
    id: str
    name: str = ""
    score: int = 0
    ready: bool = False


@dataclass
class GameStats:
    words_completed: List[int] = field(default_factory=lambda: [0, 0])
    correct_answers: List[int] = field(default_factory=lambda: [0, 0])
    total_time_played: int = 0


@dataclass
class LastFeedback:
    is_correct: bool
    points: int
    correct_answer: Optional[str] = None


@dataclass
class WordCompletion:
    word_id: int
    player_index: int
    points: int


def _default_players() -> List[Player]:
    return [Player(id="1"), Player(id="2")]


@dataclass
class GameState:
    status: str = WAITING
    mode: str = SOLO
    current_turn: int = 0
    players: List[Player] = field(default_factory=_default_players)
    completed_word_ids: List[int] = field(default_factory=list)
    turn_phase: str = SELECTING

    # In-progress attempt
    selected_word_id: Optional[int] = None
    selected_cell: Optional[Position] = None
    cell_inputs: Dict[str, str] = field(default_factory=dict)
    current_question: Optional[Question] = None
    question_options: Optional[List[str]] = None
    trivia_hint_used: bool = False
    last_feedback: Optional[LastFeedback] = None

    used_question_ids: Set[str] = field(default_factory=set)
    game_stats: GameStats = field(default_factory=GameStats)
    word_completions: List[WordCompletion] = field(default_factory=list)

    turn_time_remaining: int = 0
    trivia_time_remaining: int = 0

    puzzle: Optional[Puzzle] = None
    topics: List[str] = field(default_factory=list)
    language: str = "en"
    started_at: Optional[float] = None

    # Networked mode only
    room_id: Optional[str] = None
    room_code: Optional[str] = None
    player_role: Optional[str] = None

    # ---- derived ----

    @property
    def current_player(self) -> Player:
        return self.players[self.current_turn]

    @property
    def selected_word(self):
        return self.puzzle.word(self.selected_word_id) if self.puzzle else None

    @property
    def scores(self) -> List[int]:
        return [p.score for p in self.players]

    def available_words(self):
        if self.puzzle is None:
            return []
        return [w for w in self.puzzle.words if w.id not in self.completed_word_ids]

    def locked_cells(self) -> Dict[str, str]:
        """Canonical letters of every completed word, keyed by cell."""
        locked: Dict[str, str] = {}
        if self.puzzle is None:
            return locked
        for word_id in self.completed_word_ids:
            word = self.puzzle.word(word_id)
            if word is not None:
                locked.update(canonical_letters(word))
        return locked

    def reset_attempt(self) -> None:
        """Clear in-progress attempt state, keeping completed-word letters."""
        self.selected_word_id = None
        self.selected_cell = None
        self.cell_inputs = self.locked_cells()
        self.current_question = None
        self.question_options = None
        self.trivia_hint_used = False
        self.last_feedback = None
