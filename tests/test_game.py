"""Unit tests for line detection and the round engine."""

import random

import pytest

from bingosim.game import (
    ALL_LINES,
    AlreadyStartedError,
    CellOccupiedError,
    CellState,
    EngineConfig,
    GameEngine,
    InvalidBoardError,
    LineDetector,
    LineType,
    NoMovesAvailableError,
    NotStartedError,
    OutOfRangeError,
    Phase,
    WrongPhaseError,
    choose_random_cell,
    create_empty_board,
    empty_cells,
)


class FixedRng:
    """RNG stub returning a fixed index and recording the range it was asked for."""

    def __init__(self, index=0):
        self.index = index
        self.calls = []

    def randrange(self, n):
        self.calls.append(n)
        return self.index


def _record_events(engine):
    log = []
    for name in ("gameStateChanged", "moveCompleted", "gameError", "roundCompleted", "gameCompleted"):
        engine.subscribe(name, lambda payload, name=name: log.append((name, payload)))
    return log


def _check_invariants(engine):
    state = engine.snapshot()
    empty = len(empty_cells(state.board))
    assert len(state.player_moves) + len(state.computer_moves) + empty == 25
    expected = {line.key for line in LineDetector().get_all_completed_lines(state.board)}
    assert {line.key for line in state.completed_lines} == expected
    assert len(state.completed_lines) == len(expected)
    if state.phase is Phase.PLAYER_TURN:
        assert len(state.player_moves) == len(state.computer_moves) == state.current_round - 1
    elif state.phase is Phase.COMPUTER_INPUT:
        assert len(state.player_moves) == state.current_round
        assert len(state.computer_moves) == state.current_round - 1
    return state


# ---------- LineDetector ----------


def test_enumerate_lines_order():
    lines = LineDetector().enumerate_lines()
    assert len(lines) == 12
    assert [line.type for line in lines[:5]] == [LineType.HORIZONTAL] * 5
    assert [line.type for line in lines[5:10]] == [LineType.VERTICAL] * 5
    assert [line.index for line in lines[:5]] == [0, 1, 2, 3, 4]
    assert lines[0].cells == ((0, 0), (0, 1), (0, 2), (0, 3), (0, 4))
    assert lines[7].cells == ((0, 2), (1, 2), (2, 2), (3, 2), (4, 2))
    assert lines[10].type is LineType.DIAGONAL_MAIN
    assert lines[10].cells == ((0, 0), (1, 1), (2, 2), (3, 3), (4, 4))
    assert lines[11].type is LineType.DIAGONAL_ANTI
    assert lines[11].cells == ((0, 4), (1, 3), (2, 2), (3, 1), (4, 0))


def test_completed_lines_ignore_color():
    board = create_empty_board()
    for col in range(5):
        board[2][col] = CellState.PLAYER if col % 2 else CellState.COMPUTER
    for i in range(5):
        board[i][i] = CellState.COMPUTER
    detector = LineDetector()
    completed = detector.get_all_completed_lines(board)
    assert [line.key for line in completed] == [("horizontal", 2), ("diagonal-main", 0)]
    assert detector.count_completed_lines(board) == 2
    assert detector.is_line_complete(board, ALL_LINES[2])
    assert not detector.is_line_complete(board, ALL_LINES[0])


def test_full_board_has_twelve_lines():
    board = [[CellState.PLAYER] * 5 for _ in range(5)]
    assert LineDetector().count_completed_lines(board) == 12


@pytest.mark.parametrize(
    "board",
    [
        [[0] * 5 for _ in range(4)],
        [[0] * 4 for _ in range(5)],
        [[0] * 5 for _ in range(4)] + [[0, 0, 3, 0, 0]],
        [[0] * 5 for _ in range(4)] + [[[], 0, 0, 0, 0]],
        [[0] * 5 for _ in range(4)] + [[0, 0, {}, 0, 0]],
        [[0] * 5 for _ in range(4)] + [[0, 0, 1.0, 0, 0]],
        [[0] * 5 for _ in range(4)] + [[True, 0, 0, 0, 0]],
        "not a board",
    ],
)
def test_invalid_board_rejected(board):
    with pytest.raises(InvalidBoardError):
        LineDetector().count_completed_lines(board)


# ---------- GameEngine ----------


def test_fresh_start():
    engine = GameEngine()
    assert engine.snapshot().phase is Phase.WAITING_START
    engine.start_game()
    state = engine.snapshot()
    assert state.phase is Phase.PLAYER_TURN
    assert state.current_round == 1
    assert state.completed_lines == []
    assert state.game_started and not state.game_ended
    assert all(cell == CellState.EMPTY for row in state.board for cell in row)


def test_complete_a_row_cooperatively():
    engine = GameEngine()
    engine.start_game()
    for col in range(4):
        engine.apply_player_move(0, col)
        engine.apply_computer_move(1, col)
        _check_invariants(engine)

    result = engine.apply_player_move(0, 4)
    assert [line.key for line in result.new_lines] == [("horizontal", 0)]
    assert [line.key for line in result.state.completed_lines] == [("horizontal", 0)]

    result = engine.apply_computer_move(1, 4)
    assert [line.key for line in result.new_lines] == [("horizontal", 1)]
    keys = [line.key for line in result.state.completed_lines]
    assert keys == [("horizontal", 0), ("horizontal", 1)]
    assert len(keys) == len(set(keys))


def test_rejected_move_leaves_state_untouched():
    engine = GameEngine()
    engine.start_game()
    engine.apply_player_move(2, 2)
    engine.apply_computer_move(0, 0)
    before = engine.snapshot()

    with pytest.raises(WrongPhaseError):
        engine.apply_computer_move(1, 1)
    with pytest.raises(CellOccupiedError):
        engine.apply_player_move(2, 2)
    with pytest.raises(OutOfRangeError):
        engine.apply_player_move(5, 0)
    with pytest.raises(OutOfRangeError):
        engine.apply_player_move(0, -1)
    with pytest.raises(OutOfRangeError):
        engine.apply_player_move(True, False)
    with pytest.raises(OutOfRangeError):
        engine.apply_player_move(1.5, 0)

    assert engine.snapshot() == before
    # Still usable after rejections.
    engine.apply_player_move(1, 1)
    assert engine.snapshot().phase is Phase.COMPUTER_INPUT


def test_game_ends_after_eight_rounds():
    engine = GameEngine()
    engine.start_game()
    previous = 0
    for _ in range(8):
        row, col = engine.get_remaining_moves()[0]
        engine.apply_player_move(row, col)
        state = _check_invariants(engine)
        assert len(state.completed_lines) >= previous
        row, col = engine.get_remaining_moves()[0]
        engine.apply_computer_move(row, col)
        state = _check_invariants(engine)
        assert len(state.completed_lines) >= previous
        previous = len(state.completed_lines)

    state = engine.snapshot()
    assert state.phase is Phase.GAME_OVER
    assert state.game_ended
    assert state.current_round == 9
    # Rows 0-2 are full after 16 row-major marks.
    assert [line.key for line in state.completed_lines] == [
        ("horizontal", 0),
        ("horizontal", 1),
        ("horizontal", 2),
    ]
    with pytest.raises(WrongPhaseError):
        engine.apply_player_move(4, 4)
    with pytest.raises(WrongPhaseError):
        engine.random_computer_move()


def test_moves_before_start_are_rejected():
    engine = GameEngine()
    errors = []
    engine.subscribe("gameError", errors.append)
    with pytest.raises(NotStartedError):
        engine.apply_player_move(0, 0)
    with pytest.raises(NotStartedError):
        engine.random_computer_move()
    assert [e["kind"] for e in errors] == ["NotStarted", "NotStarted"]


def test_start_twice_requires_reset():
    engine = GameEngine()
    engine.start_game()
    engine.apply_player_move(0, 0)
    with pytest.raises(AlreadyStartedError):
        engine.start_game()
    assert len(engine.snapshot().player_moves) == 1

    engine.reset()
    state = engine.snapshot()
    assert state.phase is Phase.WAITING_START
    assert state.player_moves == [] and not state.game_started
    engine.start_game()
    assert engine.snapshot().phase is Phase.PLAYER_TURN


def test_random_computer_move_uses_injected_rng():
    assert choose_random_cell(create_empty_board(), FixedRng(0)) == (0, 0)

    rng = FixedRng(0)
    engine = GameEngine(rng=rng)
    engine.start_game()
    engine.apply_player_move(0, 0)
    assert engine.random_computer_move() == (0, 1)
    assert rng.calls == [24]

    rng.index = 21
    engine.apply_player_move(2, 2)
    assert engine.random_computer_move() == (4, 4)
    assert engine.snapshot().board[4][4] == CellState.COMPUTER


def test_random_computer_move_only_picks_empty_cells():
    engine = GameEngine(rng=random.Random(1234))
    engine.start_game()
    for _ in range(8):
        row, col = engine.get_remaining_moves()[-1]
        engine.apply_player_move(row, col)
        before = engine.snapshot().board
        r, c = engine.random_computer_move()
        assert before[r][c] == CellState.EMPTY
        _check_invariants(engine)
    assert engine.snapshot().game_ended


def test_choose_random_cell_on_full_board():
    board = [[CellState.COMPUTER] * 5 for _ in range(5)]
    with pytest.raises(NoMovesAvailableError):
        choose_random_cell(board, FixedRng(0))


def test_event_order_per_move():
    engine = GameEngine(rng=FixedRng(0))
    log = _record_events(engine)
    engine.start_game()
    assert log == [("gameStateChanged", {"phase": "player-turn", "round": 1, "completedLines": 0})]

    log.clear()
    engine.apply_player_move(3, 3)
    assert [name for name, _ in log] == ["moveCompleted", "gameStateChanged"]
    assert log[0][1] == {"actor": "PLAYER", "position": (3, 3), "isValid": True}
    assert log[1][1]["phase"] == "computer-input"

    log.clear()
    engine.random_computer_move()
    names = [name for name, _ in log]
    assert names == ["moveCompleted", "gameStateChanged", "roundCompleted"]
    assert log[0][1]["actor"] == "COMPUTER"
    assert log[2][1] == {"round": 1, "totalLines": 0}


def test_rejected_move_emits_error_event():
    engine = GameEngine()
    log = _record_events(engine)
    engine.start_game()
    engine.apply_player_move(0, 0)
    engine.apply_computer_move(1, 1)
    log.clear()

    with pytest.raises(CellOccupiedError):
        engine.apply_player_move(1, 1)
    assert [name for name, _ in log] == ["moveCompleted", "gameError"]
    assert log[0][1]["isValid"] is False
    assert log[1][1]["kind"] == "CellOccupied"
    assert log[1][1]["message"]


def test_game_completed_event_fires_once():
    engine = GameEngine(EngineConfig(max_rounds=2))
    completed = []
    engine.subscribe("gameCompleted", completed.append)
    engine.start_game()
    for _ in range(2):
        engine.apply_player_move(*engine.get_remaining_moves()[0])
        engine.apply_computer_move(*engine.get_remaining_moves()[0])
    assert len(completed) == 1
    assert completed[0]["isGameComplete"] is True
    assert completed[0]["currentRound"] == 3
    assert engine.snapshot().phase is Phase.GAME_OVER


def test_unsubscribe_stops_delivery():
    engine = GameEngine()
    seen = []
    engine.subscribe("gameStateChanged", seen.append)
    engine.unsubscribe("gameStateChanged", seen.append)
    engine.start_game()
    assert seen == []
    with pytest.raises(ValueError):
        engine.subscribe("nope", seen.append)


def test_snapshot_is_a_defensive_copy():
    engine = GameEngine()
    engine.start_game()
    engine.apply_player_move(0, 0)
    snap = engine.snapshot()
    snap.board[4][4] = CellState.COMPUTER
    snap.player_moves.clear()
    fresh = engine.snapshot()
    assert fresh.board[4][4] == CellState.EMPTY
    assert len(fresh.player_moves) == 1


def test_subscriber_cannot_mutate_engine_payloads():
    engine = GameEngine()

    def meddle(payload):
        payload["phase"] = "game-over"

    engine.subscribe("gameStateChanged", meddle)
    engine.start_game()
    assert engine.snapshot().phase is Phase.PLAYER_TURN


def test_auto_computer_move_completes_round():
    engine = GameEngine(EngineConfig(auto_computer_move=True), rng=FixedRng(0))
    engine.start_game()
    engine.apply_player_move(2, 2)
    state = engine.snapshot()
    assert state.phase is Phase.PLAYER_TURN
    assert state.current_round == 2
    assert state.computer_moves[0].row == 0 and state.computer_moves[0].col == 0


def test_engine_config_rejects_other_board_sizes():
    with pytest.raises(ValueError):
        EngineConfig(board_size=6)
    with pytest.raises(ValueError):
        EngineConfig(max_rounds=0)


def test_stats_progress_and_simulation():
    engine = GameEngine()
    engine.start_game()
    assert engine.get_game_progress() == 0
    assert engine.can_player_move() and not engine.can_input_computer_move()

    for col in range(4):
        engine.apply_player_move(0, col)
        engine.apply_computer_move(4, col)
    assert engine.get_game_progress() == 50

    preview = engine.simulate_move(0, 4)
    assert [line.key for line in preview["newLines"]] == [("horizontal", 0)]
    assert preview["totalLines"] == 1
    assert engine.snapshot().board[0][4] == CellState.EMPTY
    assert engine.simulate_move(0, 0) is None
    assert engine.simulate_move(7, 7) is None
    assert engine.simulate_move(1.5, 4) is None
    assert engine.simulate_move(False, 4) is None

    stats = engine.get_game_stats()
    assert stats["currentRound"] == 5
    assert stats["totalRounds"] == 8
    assert stats["totalLines"] == 0
    assert stats["remainingMoves"] == 17
    assert stats["gamePhase"] == "player-turn"
    assert len(stats["playerMoves"]) == 4


def test_state_to_dict_is_json_ready():
    engine = GameEngine()
    engine.start_game()
    engine.apply_player_move(1, 2)
    payload = engine.snapshot().to_dict()
    assert payload["phase"] == "computer-input"
    assert payload["board"][1][2] == 1
    assert payload["playerMoves"] == [{"row": 1, "col": 2, "round": 1, "actor": "PLAYER"}]
