"""Shared fixtures: a manual clock and a tiny on-disk content pack."""

from __future__ import annotations

import heapq
import json
import random

import pytest

from crossfire.config import Settings
from crossfire.content import ContentSource
from crossfire.machine import GameMachine
from crossfire.scheduler import Handle


class ManualScheduler:
    """Scheduler double: time only moves when a test calls :meth:`advance`."""

    def __init__(self) -> None:
        self.time = 0.0
        self._queue = []
        self._seq = 0

    def now(self) -> float:
        return self.time

    def call_later(self, delay, callback, *args) -> Handle:
        handle = Handle()
        heapq.heappush(
            self._queue, (self.time + max(0.0, delay), self._seq, handle, callback, args)
        )
        self._seq += 1
        return handle

    def advance(self, seconds: float = 0.0) -> None:
        target = self.time + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle, callback, args = heapq.heappop(self._queue)
            self.time = when
            if handle.cancelled:
                continue
            handle.cancelled = True
            callback(*args)
        self.time = target


PUZZLES = [
    {
        "id": 1,
        "title": "Cat",
        "grid": {"rows": 1, "cols": 3},
        "words": [
            {"id": 1, "answer": "CAT", "clue": "Feline", "topic": "science", "direction": "across", "row": 0, "col": 0}
        ],
    },
    {
        "id": 2,
        "title": "Farm",
        "grid": {"rows": 3, "cols": 3, "blocked": [[1, 1], [1, 2], [2, 1], [2, 2]]},
        "words": [
            {"id": 1, "answer": "CAT", "clue": "Feline", "topic": "science", "direction": "across", "row": 0, "col": 0},
            {"id": 2, "answer": "COW", "clue": "Gives milk", "topic": "art", "direction": "down", "row": 0, "col": 0},
        ],
    },
    {
        "id": 3,
        "title": "Prefilled",
        "grid": {"rows": 1, "cols": 4, "prefilled": [{"row": 0, "col": 1, "letter": "o"}]},
        "words": [
            {"id": 1, "answer": "DOGS", "clue": "Barkers", "topic": "science", "direction": "across", "row": 0, "col": 0}
        ],
    },
]

QUESTIONS = {
    "science": [
        {"id": "sci-1", "question": "What does a cat say?", "type": "open", "answer": "Meow", "category": "science"},
        {"id": "sci-2", "question": "Red planet?", "type": "multiple-choice", "answer": "Mars", "category": "science", "options": ["Venus", "Mars", "Jupiter", "Saturn"]},
    ],
    "history": [
        {"id": "his-1", "question": "First Roman emperor?", "type": "open", "answer": "Augustus", "category": "history"},
        {"id": "his-2", "question": "Triple Entente?", "type": "open", "answer": "France, Russia, United Kingdom", "category": "history"},
    ],
    "art": [],
    "geography": [
        {"id": "geo-1", "question": "Capital of Italy?", "type": "open", "answer": "Rome", "category": "geography"},
        {"id": "geo-2", "question": "Longest river?", "type": "open", "answer": "Nile", "category": "geography"},
    ],
}


@pytest.fixture
def data_dir(tmp_path):
    directory = tmp_path / "data"
    directory.mkdir()
    (directory / "puzzles_en.json").write_text(json.dumps(PUZZLES), encoding="utf-8")
    (directory / "questions_en.json").write_text(json.dumps(QUESTIONS), encoding="utf-8")
    return directory


@pytest.fixture
def settings(tmp_path, data_dir):
    return Settings(
        turn_timer=30,
        trivia_timer=20,
        countdown_seconds=0,
        data_dir=data_dir,
        session_file=tmp_path / "session.json",
    )


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def content(data_dir):
    return ContentSource(data_dir, rng=random.Random(7))


@pytest.fixture
def machine(content, scheduler, settings):
    return GameMachine(content, scheduler, settings, rng=random.Random(3))


@pytest.fixture
def cat_puzzle(content):
    return content.puzzle_by_id(1, "en")


@pytest.fixture
def farm_puzzle(content):
    return content.puzzle_by_id(2, "en")
