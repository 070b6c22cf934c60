"""Tests for the on-disk session snapshot."""

import json

from crossfire.persistence import SessionStore, StoredSession
from crossfire.protocol import StateSync
from crossfire.state import PLAYING, SOLO


def _dump(state):
    return StateSync.from_state(state).model_dump()


def test_store_follows_the_machine(machine, content, cat_puzzle, settings):
    store = SessionStore(content, settings.session_file)
    store.attach(machine)

    machine.start_game(puzzle=cat_puzzle, topics=["science"], mode=SOLO)
    machine.select_word(0, 1)
    machine.type_letter(0, "C")
    assert settings.session_file.exists()

    raw = json.loads(settings.session_file.read_text(encoding="utf-8"))
    assert raw["status"] == PLAYING
    assert raw["cellInputs"] == {"0-0": "C"}
    assert raw["mode"] == SOLO

    machine.exit()
    assert not settings.session_file.exists()


def test_load_restores_a_playing_game(machine, content, cat_puzzle, settings, scheduler):
    store = SessionStore(content, settings.session_file)
    store.attach(machine)
    machine.start_game(puzzle=cat_puzzle, topics=["science"], mode=SOLO)
    machine.select_word(0, 1)
    for letter in "CAT":
        machine.type_letter(0, letter)
    machine.submit_word(0)
    scheduler.advance(5)

    restored = store.load(scheduler.now())
    assert restored is not None
    assert _dump(restored) == _dump(machine.state)
    assert restored.used_question_ids == machine.state.used_question_ids
    assert restored.topics == ["science"]
    assert restored.mode == SOLO
    assert restored.puzzle.id == cat_puzzle.id
    assert restored.started_at == machine.state.started_at


def test_finished_or_foreign_snapshots_are_ignored(content, settings, machine, cat_puzzle):
    store = SessionStore(content, settings.session_file)
    machine.start_game(puzzle=cat_puzzle)

    record = StoredSession.capture(machine.state, 0.0)
    record.status = "finished"
    settings.session_file.write_text(record.model_dump_json(by_alias=True), encoding="utf-8")
    assert store.load(0.0) is None
    assert not settings.session_file.exists()

    record.status = "playing"
    record.puzzle_id = 404
    settings.session_file.write_text(record.model_dump_json(by_alias=True), encoding="utf-8")
    assert store.load(0.0) is None
    assert not settings.session_file.exists()


def test_corrupt_snapshot_is_discarded(content, settings):
    settings.session_file.write_text("{not json", encoding="utf-8")
    store = SessionStore(content, settings.session_file)
    assert store.load(0.0) is None
    assert not settings.session_file.exists()
    # Clearing twice is fine
    store.clear()
