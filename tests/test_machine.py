"""Tests for the turn/phase state machine."""

from crossfire.protocol import (
    CellInput,
    HintRequest,
    SelectWord,
    StateSync,
    SubmitAnswer,
    SubmitWord,
    Timeout,
)
from crossfire.scoring import base_score
from crossfire.state import (
    FEEDBACK,
    FINISHED,
    GUEST,
    PLAYING,
    QUESTION,
    SELECTING,
    SOLO,
    TYPING,
)


def _snapshot(machine):
    return StateSync.from_state(machine.state).model_dump()


def _fill(machine, actor, letters):
    for letter in letters:
        assert machine.type_letter(actor, letter)


def test_start_game_resets_scores_and_keeps_names(machine, cat_puzzle):
    state = machine.start_game(puzzle=cat_puzzle, player_names=("Ana", "Ben"), mode=SOLO)
    assert state.status == PLAYING
    assert state.turn_phase == SELECTING
    assert [p.name for p in state.players] == ["Ana", "Ben"]
    assert state.scores == [0, 0]
    assert state.topics == ["science"]
    assert state.turn_time_remaining == 30


def test_solo_word_completion_opens_question(machine, cat_puzzle):
    machine.start_game(puzzle=cat_puzzle, topics=["science"], mode=SOLO)
    assert machine.select_word(0, 1)
    assert machine.state.turn_phase == TYPING
    _fill(machine, 0, "cat")

    assert machine.submit_word(0) is True
    state = machine.state
    assert state.completed_word_ids == [1]
    assert state.cell_inputs == {"0-0": "C", "0-1": "A", "0-2": "T"}
    assert state.turn_phase == QUESTION
    assert state.current_question.topic == "science"
    assert state.current_question.id in state.used_question_ids
    assert state.game_stats.words_completed == [1, 0]


def test_solo_word_completion_without_questions_scores_base(machine, cat_puzzle):
    machine.start_game(puzzle=cat_puzzle, topics=["science"], mode=SOLO)
    machine.state.used_question_ids.update({"sci-1", "sci-2"})
    machine.select_word(0, 1)
    _fill(machine, 0, "CAT")

    assert machine.submit_word(0) is True
    state = machine.state
    assert state.turn_phase == FEEDBACK
    assert state.last_feedback.is_correct is False
    assert state.last_feedback.points == base_score("CAT")
    assert state.players[0].score == base_score("CAT")


def test_wrong_word_clears_only_wrong_cells(machine, cat_puzzle):
    machine.start_game(puzzle=cat_puzzle)
    machine.select_word(0, 1)
    _fill(machine, 0, "CUT")

    assert machine.submit_word(0) is False
    state = machine.state
    assert state.completed_word_ids == []
    assert state.turn_phase == TYPING
    assert state.cell_inputs == {"0-0": "C", "0-2": "T"}
    assert state.selected_cell == (0, 1)


def test_correct_answer_then_feedback_ends_game(machine, cat_puzzle, scheduler):
    machine.start_game(puzzle=cat_puzzle, topics=["science"])
    machine.select_word(0, 1)
    _fill(machine, 0, "CAT")
    machine.submit_word(0)

    assert machine.submit_answer(0, machine.state.current_question.answer)
    state = machine.state
    assert state.turn_phase == FEEDBACK
    assert state.last_feedback.is_correct
    assert state.players[0].score == 2 * base_score("CAT")
    assert state.game_stats.correct_answers == [1, 0]

    scheduler.advance(4)
    assert machine.is_finished
    assert state.status == FINISHED
    assert state.word_completions[0].player_index == 0


def test_wrong_answer_reveals_correct_one(machine, cat_puzzle):
    machine.start_game(puzzle=cat_puzzle, topics=["science"])
    machine.state.used_question_ids.add("sci-2")
    machine.select_word(0, 1)
    _fill(machine, 0, "CAT")
    machine.submit_word(0)

    assert machine.submit_answer(0, "Woof")
    feedback = machine.state.last_feedback
    assert not feedback.is_correct
    assert feedback.correct_answer == "Meow"
    assert feedback.points == base_score("CAT")


def test_feedback_passes_turn_when_words_remain(machine, farm_puzzle, scheduler):
    machine.start_game(puzzle=farm_puzzle, topics=["science"])
    machine.select_word(0, 1)
    _fill(machine, 0, "CAT")
    machine.submit_word(0)
    machine.submit_answer(0, "")

    scheduler.advance(4)
    state = machine.state
    assert state.status == PLAYING
    assert state.current_turn == 1
    assert state.turn_phase == SELECTING
    # Completed letters stay on the board
    assert state.cell_inputs == {"0-0": "C", "0-1": "A", "0-2": "T"}


def test_letter_hint_costs_exactly_its_price(machine, cat_puzzle, settings):
    machine.start_game(puzzle=cat_puzzle)
    machine.state.players[0].score = settings.hint_letter_cost
    machine.select_word(0, 1)
    machine.type_letter(0, "X")

    assert machine.request_hint(0)
    state = machine.state
    assert state.players[0].score == 0
    correct = [k for k, v in state.cell_inputs.items() if v == {"0-0": "C", "0-1": "A", "0-2": "T"}[k]]
    assert len(correct) == 1


def test_hint_below_cost_changes_nothing(machine, cat_puzzle, settings):
    machine.start_game(puzzle=cat_puzzle)
    machine.state.players[0].score = settings.hint_letter_cost - 1
    machine.select_word(0, 1)
    before = _snapshot(machine)

    assert not machine.request_hint(0)
    assert _snapshot(machine) == before


def test_options_hint_for_open_question(machine, cat_puzzle, settings):
    machine.start_game(puzzle=cat_puzzle, topics=["science"])
    machine.state.used_question_ids.add("sci-2")
    machine.state.players[0].score = settings.trivia_hint_cost
    machine.select_word(0, 1)
    _fill(machine, 0, "CAT")
    machine.submit_word(0)

    assert machine.request_hint(0)
    state = machine.state
    assert state.trivia_hint_used
    assert len(state.question_options) == 4
    assert "Meow" in state.question_options
    assert state.players[0].score == 0
    # Only once per question
    assert not machine.request_hint(0)

    machine.submit_answer(0, "meow")
    assert state.last_feedback.points == (3 * base_score("CAT")) // 2


def test_options_hint_rejected_for_multiple_choice(machine, cat_puzzle):
    machine.start_game(puzzle=cat_puzzle, topics=["science"])
    machine.state.used_question_ids.add("sci-1")
    machine.state.players[0].score = 50
    machine.select_word(0, 1)
    _fill(machine, 0, "CAT")
    machine.submit_word(0)

    assert machine.state.current_question.id == "sci-2"
    assert not machine.request_hint(0)
    assert machine.state.players[0].score == 50


def test_turn_timeout_cascade(machine, farm_puzzle, scheduler, settings):
    machine.start_game(puzzle=farm_puzzle)
    machine.select_word(0, 2)
    machine.type_letter(0, "C")

    scheduler.advance(settings.turn_timer)
    state = machine.state
    assert state.current_turn == 1
    assert state.turn_phase == SELECTING
    assert state.selected_word_id is None
    assert state.cell_inputs == {}
    assert state.turn_time_remaining == settings.turn_timer


def test_timeout_move_during_question_scores_wrong(machine, cat_puzzle):
    machine.start_game(puzzle=cat_puzzle, topics=["science"])
    machine.select_word(0, 1)
    _fill(machine, 0, "CAT")
    machine.submit_word(0)

    assert machine.timeout(0)
    assert machine.state.turn_phase == FEEDBACK
    assert machine.state.last_feedback.is_correct is False


def test_trivia_timer_expiry(machine, cat_puzzle, scheduler, settings):
    machine.start_game(puzzle=cat_puzzle, topics=["science"])
    machine.select_word(0, 1)
    _fill(machine, 0, "CAT")
    machine.submit_word(0)

    scheduler.advance(settings.trivia_timer - 1)
    assert machine.state.trivia_time_remaining == 1
    scheduler.advance(1)
    assert machine.state.turn_phase == FEEDBACK
    assert machine.state.players[0].score == base_score("CAT")


def test_rejected_moves_leave_state_untouched(machine, farm_puzzle):
    machine.start_game(puzzle=farm_puzzle)
    before = _snapshot(machine)

    assert not machine.dispatch(SelectWord(word_id=1), 1)  # wrong turn
    assert not machine.dispatch(SelectWord(word_id=99), 0)  # unknown word
    assert not machine.dispatch(CellInput(cell_key="0-0", letter="C"), 0)  # nothing selected
    assert not machine.dispatch(SubmitAnswer(answer="x"), 0)  # no question
    assert not machine.dispatch(HintRequest(), 0)  # selecting phase
    assert _snapshot(machine) == before

    machine.select_word(0, 1)
    before = _snapshot(machine)
    assert not machine.dispatch(CellInput(cell_key="2-0", letter="W"), 0)  # other word
    assert not machine.dispatch(CellInput(cell_key="bad", letter="W"), 0)
    assert not machine.dispatch(SubmitWord(word_id=1), 0)  # not filled
    assert not machine.dispatch(SubmitWord(word_id=2), 0)  # not selected
    assert _snapshot(machine) == before


def test_duplicate_moves_are_harmless(machine, farm_puzzle):
    machine.start_game(puzzle=farm_puzzle)
    assert machine.dispatch(SelectWord(word_id=1), 0)
    after_first = _snapshot(machine)
    assert machine.dispatch(SelectWord(word_id=1), 0)
    assert _snapshot(machine) == after_first

    machine.dispatch(CellInput(cell_key="0-1", letter="a"), 0)
    after_input = _snapshot(machine)
    machine.dispatch(CellInput(cell_key="0-1", letter="a"), 0)
    assert _snapshot(machine) == after_input


def test_completed_cells_are_locked(machine, farm_puzzle, scheduler):
    machine.start_game(puzzle=farm_puzzle, topics=["science"])
    machine.select_word(0, 1)
    _fill(machine, 0, "CAT")
    machine.submit_word(0)
    machine.submit_answer(0, "")
    scheduler.advance(4)

    machine.select_word(1, 2)
    assert not machine.dispatch(CellInput(cell_key="0-0", letter="X"), 1)
    # Typing steps over the locked C
    _fill(machine, 1, "OW")
    assert machine.state.cell_inputs["1-0"] == "O"
    assert machine.state.cell_inputs["2-0"] == "W"
    assert machine.submit_word(1) is True


def test_backspace_steps_back(machine, cat_puzzle):
    machine.start_game(puzzle=cat_puzzle)
    machine.select_word(0, 1)
    _fill(machine, 0, "CA")
    assert machine.state.selected_cell == (0, 2)

    assert machine.backspace(0)
    assert machine.state.cell_inputs == {"0-0": "C"}
    assert machine.state.selected_cell == (0, 1)


def test_guest_role_machine_rejects_everything(machine, cat_puzzle):
    machine.start_game(puzzle=cat_puzzle)
    machine.state.player_role = GUEST
    assert not machine.dispatch(SelectWord(word_id=1), 0)
    assert not machine.dispatch(Timeout(), 0)


def test_exit_returns_to_waiting(machine, cat_puzzle, scheduler):
    machine.start_game(puzzle=cat_puzzle, player_names=("Ana", "Ben"))
    machine.exit()
    assert machine.is_waiting
    assert machine.state.players[0].name == "Ana"
    scheduler.advance(60)
    assert machine.is_waiting


def test_ready_flags_are_synced_and_kept_into_the_game(machine, cat_puzzle):
    seen = []
    machine.subscribe(lambda state: seen.append([p.ready for p in state.players]))
    assert machine.set_ready(1)
    assert not machine.set_ready(2)
    assert seen == [[False, True]]
    assert [p["is_ready"] for p in _snapshot(machine)["players"]] == [False, True]

    machine.set_ready(1, False)
    machine.set_ready(0)
    machine.start_game(puzzle=cat_puzzle)
    assert [p.ready for p in machine.state.players] == [True, False]


def test_countdown_delays_turn_timer(machine, cat_puzzle, scheduler):
    machine.start_game(puzzle=cat_puzzle, countdown=3)
    scheduler.advance(3)
    assert machine.state.turn_time_remaining == 30
    scheduler.advance(1)
    assert machine.state.turn_time_remaining == 29


def test_listeners_see_every_change(machine, cat_puzzle):
    seen = []
    unsubscribe = machine.subscribe(lambda state: seen.append(state.turn_phase))
    machine.start_game(puzzle=cat_puzzle)
    machine.select_word(0, 1)
    unsubscribe()
    machine.select_word(0, None)
    assert seen == [SELECTING, TYPING]
