"""Puzzle and trivia question source backed by the packaged JSON files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import json
import logging
import random

from .config import settings
from .puzzle import Puzzle

logger = logging.getLogger(__name__)

TOPICS: Tuple[str, ...] = (
    "history",
    "language",
    "science",
    "philosophy",
    "art",
    "geography",
)

OPEN = "open"
MULTIPLE_CHOICE = "multiple-choice"


class ContentError(LookupError):
    """Raised when a language's data files are missing or unreadable."""


@dataclass(frozen=True)
class Question:
    id: str
    prompt: str
    kind: str  # "open" or "multiple-choice"
    answer: str
    topic: str
    difficulty: str = "medium"
    options: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object], topic: Optional[str] = None) -> "Question":
        options = data.get("options")
        return cls(
            id=str(data["id"]),
            prompt=str(data["question"]),
            kind=str(data.get("type", OPEN)),
            answer=str(data["answer"]),
            topic=str(data.get("category", topic or "")),
            difficulty=str(data.get("difficulty", "medium")),
            options=tuple(str(o) for o in options) if options else None,
        )


class ContentSource:
    """Given constraints, return a pseudo-random unused puzzle or question."""

    def __init__(
        self, data_dir: Optional[Path] = None, rng: Optional[random.Random] = None
    ) -> None:
        self.data_dir = Path(data_dir or settings.data_dir)
        self.rng = rng or random.Random()
        self._puzzles: Dict[str, List[Puzzle]] = {}
        self._questions: Dict[str, Dict[str, List[Question]]] = {}
        self._last_puzzle_id: Dict[str, Optional[int]] = {}

    # ---- loading ----

    def _read(self, name: str) -> object:
        path = self.data_dir / name
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError as exc:
            raise ContentError(f"No content file {path}") from exc
        except json.JSONDecodeError as exc:
            raise ContentError(f"Content file {path} is not valid JSON") from exc

    def puzzles(self, language: str) -> List[Puzzle]:
        if language not in self._puzzles:
            raw = self._read(f"puzzles_{language}.json")
            self._puzzles[language] = [Puzzle.from_dict(p).validate() for p in raw]
            logger.debug(
                "Loaded puzzles", extra={"language": language, "count": len(raw)}
            )
        return self._puzzles[language]

    def questions(self, language: str) -> Dict[str, List[Question]]:
        if language not in self._questions:
            raw = self._read(f"questions_{language}.json")
            self._questions[language] = {
                topic: [Question.from_dict(q, topic) for q in items]
                for topic, items in raw.items()
            }
        return self._questions[language]

    # ---- queries ----

    def random_puzzle(self, language: str) -> Puzzle:
        """Random puzzle, different from the previous pick when possible."""
        puzzles = self.puzzles(language)
        if not puzzles:
            raise ContentError(f"No puzzles for language {language!r}")
        last = self._last_puzzle_id.get(language)
        pool = [p for p in puzzles if p.id != last] or puzzles
        choice = self.rng.choice(pool)
        self._last_puzzle_id[language] = choice.id
        return choice

    def puzzle_by_id(self, puzzle_id: int, language: str) -> Optional[Puzzle]:
        for p in self.puzzles(language):
            if p.id == puzzle_id:
                return p
        return None

    def random_question(
        self, topics: Iterable[str], language: str, used_ids: Iterable[str] = ()
    ) -> Optional[Question]:
        used = set(used_ids)
        data = self.questions(language)
        pool: List[Question] = []
        for topic in dict.fromkeys(topics):
            pool.extend(q for q in data.get(topic, []) if q.id not in used)
        if not pool:
            return None
        return self.rng.choice(pool)

    def question_by_id(self, question_id: str, language: str) -> Optional[Question]:
        for items in self.questions(language).values():
            for q in items:
                if q.id == question_id:
                    return q
        return None

    def options_for_question(self, question: Question, language: str) -> List[str]:
        """Four shuffled choices: the answer plus three distractor answers,
        taken from the same topic first and topped up from the others."""

        if question.options:
            options = list(question.options)
            self.rng.shuffle(options)
            return options

        data = self.questions(language)
        correct = question.answer.strip().lower()
        seen = {correct}

        def candidates(items: Iterable[Question]) -> List[str]:
            out: List[str] = []
            for q in items:
                key = q.answer.strip().lower()
                if key in seen or "," in q.answer:
                    continue
                seen.add(key)
                out.append(q.answer)
            return out

        same_topic = candidates(data.get(question.topic, []))
        self.rng.shuffle(same_topic)
        distractors = same_topic[:3]
        if len(distractors) < 3:
            others = candidates(
                q for topic, items in data.items() if topic != question.topic for q in items
            )
            self.rng.shuffle(others)
            distractors.extend(others[: 3 - len(distractors)])

        options = [question.answer, *distractors]
        self.rng.shuffle(options)
        return options
