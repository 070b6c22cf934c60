"""Crossword grid model and pure queries over it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple
import random

Position = Tuple[int, int]  # (row, col)
Direction = str  # "across" or "down"

ACROSS = "across"
DOWN = "down"
DIRECTIONS: Tuple[str, ...] = (ACROSS, DOWN)


class PuzzleError(ValueError):
    """Raised when puzzle data breaks the grid invariants."""


def cell_key(row: int, col: int) -> str:
    return f"{row}-{col}"


def parse_cell_key(key: str) -> Position:
    try:
        row, col = key.split("-")
        return int(row), int(col)
    except ValueError as exc:
        raise ValueError(f"Malformed cell key {key!r}") from exc


# ---------- Data ----------


@dataclass(frozen=True)
class Word:
    id: int
    answer: str
    clue: str
    topic: str
    direction: Direction
    row: int
    col: int

    @property
    def anchor(self) -> Position:
        return (self.row, self.col)


@dataclass(frozen=True)
class Grid:
    rows: int
    cols: int
    blocked: FrozenSet[Position] = frozenset()
    # Letters are stored uppercase
    prefilled: Mapping[Position, str] = field(default_factory=dict)

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols


@dataclass(frozen=True)
class Puzzle:
    id: int
    title: str
    grid: Grid
    words: Tuple[Word, ...]

    def word(self, word_id: Optional[int]) -> Optional[Word]:
        if word_id is None:
            return None
        for w in self.words:
            if w.id == word_id:
                return w
        return None

    @property
    def topics(self) -> List[str]:
        seen: List[str] = []
        for w in self.words:
            if w.topic not in seen:
                seen.append(w.topic)
        return seen

    def validate(self) -> "Puzzle":
        """Check every word stays on the grid, off blocked cells, and agrees
        with prefilled letters. Returns ``self`` so loaders can chain it."""

        ids = set()
        for w in self.words:
            if w.id in ids:
                raise PuzzleError(f"Duplicate word id {w.id} in puzzle {self.id}")
            ids.add(w.id)
            if w.direction not in DIRECTIONS:
                raise PuzzleError(f"Word {w.id} has unknown direction {w.direction!r}")
            if not w.answer:
                raise PuzzleError(f"Word {w.id} has an empty answer")
            for index, (r, c) in enumerate(word_cells(w)):
                if not self.grid.in_bounds(r, c):
                    raise PuzzleError(f"Word {w.id} leaves the grid at {(r, c)}")
                if is_blocked(self.grid, r, c):
                    raise PuzzleError(f"Word {w.id} crosses blocked cell {(r, c)}")
                fixed = self.grid.prefilled.get((r, c))
                if fixed is not None and fixed != w.answer[index].upper():
                    raise PuzzleError(
                        f"Prefilled {fixed!r} at {(r, c)} disagrees with word {w.id}"
                    )
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Puzzle":
        grid_data = data["grid"]
        grid = Grid(
            rows=int(grid_data["rows"]),
            cols=int(grid_data["cols"]),
            blocked=frozenset(
                (int(r), int(c)) for r, c in grid_data.get("blocked", [])
            ),
            prefilled={
                (int(p["row"]), int(p["col"])): str(p["letter"]).upper()
                for p in grid_data.get("prefilled", [])
            },
        )
        words = tuple(
            Word(
                id=int(w["id"]),
                answer=str(w["answer"]),
                clue=str(w.get("clue", "")),
                topic=str(w.get("topic", "")),
                direction=str(w["direction"]),
                row=int(w["row"]),
                col=int(w["col"]),
            )
            for w in data["words"]
        )
        return cls(id=int(data["id"]), title=str(data.get("title", "")), grid=grid, words=words)


# ---------- Queries ----------


def word_cells(word: Word) -> List[Position]:
    """Cells of ``word`` in reading order, derived from anchor and direction."""
    if word.direction == ACROSS:
        return [(word.row, word.col + i) for i in range(len(word.answer))]
    return [(word.row + i, word.col) for i in range(len(word.answer))]


def is_blocked(grid: Grid, row: int, col: int) -> bool:
    return (row, col) in grid.blocked


def prefilled_letter(grid: Grid, row: int, col: int) -> Optional[str]:
    return grid.prefilled.get((row, col))


def is_cell_in_word(word: Word, row: int, col: int) -> bool:
    return (row, col) in word_cells(word)


def words_at(puzzle: Puzzle, row: int, col: int) -> List[Word]:
    return [w for w in puzzle.words if is_cell_in_word(w, row, col)]


def next_cell(word: Word, current: Position) -> Optional[Position]:
    cells = word_cells(word)
    if current not in cells:
        return None
    idx = cells.index(current)
    return cells[idx + 1] if idx < len(cells) - 1 else None


def previous_cell(word: Word, current: Position) -> Optional[Position]:
    cells = word_cells(word)
    if current not in cells:
        return None
    idx = cells.index(current)
    return cells[idx - 1] if idx > 0 else None


def letter_at(word: Word, row: int, col: int) -> Optional[str]:
    cells = word_cells(word)
    if (row, col) not in cells:
        return None
    return word.answer[cells.index((row, col))].upper()


def is_fully_filled(word: Word, cell_inputs: Mapping[str, str], grid: Grid) -> bool:
    for r, c in word_cells(word):
        if prefilled_letter(grid, r, c):
            continue
        if not cell_inputs.get(cell_key(r, c)):
            return False
    return True


def build_word_input(word: Word, cell_inputs: Mapping[str, str], grid: Grid) -> str:
    letters: List[str] = []
    for r, c in word_cells(word):
        fixed = prefilled_letter(grid, r, c)
        letters.append(fixed if fixed else cell_inputs.get(cell_key(r, c), ""))
    return "".join(letters)


def hint_cell(
    word: Word,
    cell_inputs: Mapping[str, str],
    grid: Grid,
    rng: Optional[random.Random] = None,
) -> Optional[Tuple[int, int, str]]:
    """Pick a random non-prefilled cell of ``word`` that is not yet correct.

    Returns ``(row, col, letter)`` with the correct uppercase letter, or None
    when every cell already holds the right letter.
    """
    rng = rng or random
    candidates: List[Tuple[int, int, str]] = []
    for index, (r, c) in enumerate(word_cells(word)):
        if prefilled_letter(grid, r, c):
            continue
        correct = word.answer[index].upper()
        if cell_inputs.get(cell_key(r, c)) != correct:
            candidates.append((r, c, correct))
    if not candidates:
        return None
    return rng.choice(candidates)


def canonical_letters(word: Word) -> Dict[str, str]:
    """Cell key -> canonical uppercase letter for every cell of ``word``."""
    return {
        cell_key(r, c): word.answer[i].upper()
        for i, (r, c) in enumerate(word_cells(word))
    }
