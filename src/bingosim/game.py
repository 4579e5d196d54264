"""Core rules for the cooperative 5x5 Bingo simulator: lines, state, and the round engine."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger("bingosim.game")

BOARD_SIZE = 5
MAX_ROUNDS = 8
CENTER = BOARD_SIZE // 2

Board = List[List[int]]
Position = Tuple[int, int]


class CellState(IntEnum):
    EMPTY = 0
    PLAYER = 1
    COMPUTER = 2


class Phase(str, Enum):
    WAITING_START = "waiting-start"
    PLAYER_TURN = "player-turn"
    COMPUTER_INPUT = "computer-input"
    GAME_OVER = "game-over"


class LineType(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    DIAGONAL_MAIN = "diagonal-main"
    DIAGONAL_ANTI = "diagonal-anti"


_CELL_VALUES = frozenset(int(state) for state in CellState)


# ---------- Errors ----------


class GameError(ValueError):
    """Base class for every rejected operation; ``kind`` names the failure."""

    kind = "GameError"


class OutOfRangeError(GameError):
    kind = "OutOfRange"


class CellOccupiedError(GameError):
    kind = "CellOccupied"


class WrongPhaseError(GameError):
    kind = "WrongPhase"


class AlreadyStartedError(GameError):
    kind = "AlreadyStarted"


class NotStartedError(GameError):
    kind = "NotStarted"


class NoMovesAvailableError(GameError):
    kind = "NoMovesAvailable"


class InvalidBoardError(GameError):
    kind = "InvalidBoard"


# ---------- Board helpers ----------


def create_empty_board() -> Board:
    return [[CellState.EMPTY] * BOARD_SIZE for _ in range(BOARD_SIZE)]


def copy_board(board: Sequence[Sequence[int]]) -> Board:
    return [list(row) for row in board]


def _is_index(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def in_bounds(row: int, col: int) -> bool:
    """True when both coordinates are plain ints on the board."""
    if not (_is_index(row) and _is_index(col)):
        return False
    return 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE


def validate_board(board: Sequence[Sequence[int]]) -> None:
    """Raise InvalidBoardError unless ``board`` is 5x5 with values in {0, 1, 2}."""
    if not isinstance(board, (list, tuple)) or len(board) != BOARD_SIZE:
        raise InvalidBoardError(f"Board must have {BOARD_SIZE} rows")
    for r, row in enumerate(board):
        if not isinstance(row, (list, tuple)) or len(row) != BOARD_SIZE:
            raise InvalidBoardError(f"Row {r} must have {BOARD_SIZE} cells")
        for c, cell in enumerate(row):
            if not _is_index(cell) or cell not in _CELL_VALUES:
                raise InvalidBoardError(f"Invalid cell value {cell!r} at ({r}, {c})")


def empty_cells(board: Sequence[Sequence[int]]) -> List[Position]:
    """Empty positions in row-major order."""
    return [
        (r, c)
        for r in range(BOARD_SIZE)
        for c in range(BOARD_SIZE)
        if board[r][c] == CellState.EMPTY
    ]


def choose_random_cell(
    board: Sequence[Sequence[int]], rng: Optional[random.Random] = None
) -> Position:
    """Pick an empty cell uniformly at random; raise if the board is full."""
    moves = empty_cells(board)
    if not moves:
        raise NoMovesAvailableError("No empty cells remain")
    rng = rng or random
    return moves[rng.randrange(len(moves))]


# ---------- Lines ----------


@dataclass(frozen=True)
class Line:
    type: LineType
    index: int
    cells: Tuple[Position, ...]

    @property
    def key(self) -> Tuple[str, int]:
        return (self.type.value, self.index)

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.type.value,
            "index": self.index,
            "cells": [list(cell) for cell in self.cells],
        }


def _build_lines() -> Tuple[Line, ...]:
    lines: List[Line] = []
    for r in range(BOARD_SIZE):
        lines.append(
            Line(LineType.HORIZONTAL, r, tuple((r, c) for c in range(BOARD_SIZE)))
        )
    for c in range(BOARD_SIZE):
        lines.append(
            Line(LineType.VERTICAL, c, tuple((r, c) for r in range(BOARD_SIZE)))
        )
    lines.append(
        Line(LineType.DIAGONAL_MAIN, 0, tuple((i, i) for i in range(BOARD_SIZE)))
    )
    lines.append(
        Line(
            LineType.DIAGONAL_ANTI,
            0,
            tuple((i, BOARD_SIZE - 1 - i) for i in range(BOARD_SIZE)),
        )
    )
    return tuple(lines)


# Rows 0..4, columns 0..4, main diagonal, anti diagonal.
ALL_LINES: Tuple[Line, ...] = _build_lines()


class LineDetector:
    """Stateless detection of completed lines; marks of either color count."""

    def enumerate_lines(self) -> List[Line]:
        return list(ALL_LINES)

    def is_line_complete(self, board: Sequence[Sequence[int]], line: Line) -> bool:
        validate_board(board)
        return self._complete(board, line)

    def get_all_completed_lines(self, board: Sequence[Sequence[int]]) -> List[Line]:
        validate_board(board)
        return [line for line in ALL_LINES if self._complete(board, line)]

    def count_completed_lines(self, board: Sequence[Sequence[int]]) -> int:
        return len(self.get_all_completed_lines(board))

    @staticmethod
    def _complete(board: Sequence[Sequence[int]], line: Line) -> bool:
        return all(board[r][c] != CellState.EMPTY for r, c in line.cells)


# ---------- State ----------


@dataclass(frozen=True)
class Move:
    row: int
    col: int
    round: int
    actor: CellState

    def to_dict(self) -> Dict[str, object]:
        return {
            "row": self.row,
            "col": self.col,
            "round": self.round,
            "actor": self.actor.name,
        }


@dataclass
class GameState:
    board: Board = field(default_factory=create_empty_board)
    current_round: int = 1
    max_rounds: int = MAX_ROUNDS
    phase: Phase = Phase.WAITING_START
    player_moves: List[Move] = field(default_factory=list)
    computer_moves: List[Move] = field(default_factory=list)
    completed_lines: List[Line] = field(default_factory=list)
    game_started: bool = False
    game_ended: bool = False

    def copy(self) -> "GameState":
        # Moves and lines are frozen, so shallow list copies are enough.
        return GameState(
            board=copy_board(self.board),
            current_round=self.current_round,
            max_rounds=self.max_rounds,
            phase=self.phase,
            player_moves=list(self.player_moves),
            computer_moves=list(self.computer_moves),
            completed_lines=list(self.completed_lines),
            game_started=self.game_started,
            game_ended=self.game_ended,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "board": [[int(cell) for cell in row] for row in self.board],
            "currentRound": self.current_round,
            "maxRounds": self.max_rounds,
            "phase": self.phase.value,
            "playerMoves": [m.to_dict() for m in self.player_moves],
            "computerMoves": [m.to_dict() for m in self.computer_moves],
            "completedLines": [line.to_dict() for line in self.completed_lines],
            "gameStarted": self.game_started,
            "gameEnded": self.game_ended,
        }


@dataclass
class MoveResult:
    state: GameState
    new_lines: List[Line]


@dataclass(frozen=True)
class EngineConfig:
    max_rounds: int = MAX_ROUNDS
    board_size: int = BOARD_SIZE
    auto_computer_move: bool = False

    def __post_init__(self) -> None:
        if self.board_size != BOARD_SIZE:
            raise ValueError(f"Only {BOARD_SIZE}x{BOARD_SIZE} boards are supported")
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        # Each round places two marks.
        if self.max_rounds * 2 > BOARD_SIZE * BOARD_SIZE:
            raise ValueError("max_rounds does not fit on the board")


# ---------- Engine ----------

EVENT_NAMES: Tuple[str, ...] = (
    "gameStateChanged",
    "moveCompleted",
    "gameError",
    "roundCompleted",
    "gameCompleted",
)

Listener = Callable[[Dict[str, object]], None]


class GameEngine:
    """Round-driving state machine: one player move then one computer move per round.

    The engine owns its ``GameState`` and is the only thing that mutates it.
    Observers subscribe by event name and receive freshly built payload dicts.
    Rejected operations raise a ``GameError`` subclass, emit ``gameError`` and
    leave the state untouched.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        rng: Optional[random.Random] = None,
        detector: Optional[LineDetector] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.rng = rng or random.Random()
        self.detector = detector or LineDetector()
        self._state = GameState(max_rounds=self.config.max_rounds)
        self._listeners: Dict[str, List[Listener]] = {name: [] for name in EVENT_NAMES}

    # ---- observers ----

    def subscribe(self, event: str, callback: Listener) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown event {event!r}")
        self._listeners[event].append(callback)

    def unsubscribe(self, event: str, callback: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: str, payload: Dict[str, object]) -> None:
        for callback in list(self._listeners[event]):
            callback(dict(payload))

    def _emit_state_changed(self) -> None:
        state = self._state
        self._emit(
            "gameStateChanged",
            {
                "phase": state.phase.value,
                "round": state.current_round,
                "completedLines": len(state.completed_lines),
            },
        )

    def _reject(self, error: GameError) -> GameError:
        logger.warning("Rejected operation (%s): %s", error.kind, error)
        self._emit("gameError", {"kind": error.kind, "message": str(error)})
        return error

    # ---- lifecycle ----

    def start_game(self) -> GameState:
        if self._state.phase is not Phase.WAITING_START:
            raise self._reject(
                AlreadyStartedError("Game already started; reset before starting again")
            )
        self._state = GameState(
            max_rounds=self.config.max_rounds,
            phase=Phase.PLAYER_TURN,
            game_started=True,
        )
        logger.info("Game started (%d rounds)", self.config.max_rounds)
        self._emit_state_changed()
        return self.snapshot()

    def reset(self) -> None:
        self._state = GameState(max_rounds=self.config.max_rounds)
        logger.info("Game reset")
        self._emit_state_changed()

    def snapshot(self) -> GameState:
        return self._state.copy()

    # ---- moves ----

    def apply_player_move(self, row: int, col: int) -> MoveResult:
        result = self._apply_move(CellState.PLAYER, row, col)
        if self.config.auto_computer_move and not self._state.game_ended:
            self.random_computer_move()
        return result

    def apply_computer_move(self, row: int, col: int) -> MoveResult:
        return self._apply_move(CellState.COMPUTER, row, col)

    def random_computer_move(self) -> Position:
        """Apply a uniformly random computer move and return its position."""
        self._check_phase(CellState.COMPUTER)
        try:
            row, col = choose_random_cell(self._state.board, self.rng)
        except NoMovesAvailableError as exc:
            raise self._reject(exc) from None
        self._apply_move(CellState.COMPUTER, row, col)
        return row, col

    def _check_phase(self, actor: CellState) -> None:
        phase = self._state.phase
        if phase is Phase.WAITING_START:
            raise self._reject(NotStartedError("Game has not started"))
        expected = Phase.PLAYER_TURN if actor is CellState.PLAYER else Phase.COMPUTER_INPUT
        if phase is not expected:
            who = "player" if actor is CellState.PLAYER else "computer"
            raise self._reject(
                WrongPhaseError(f"Cannot apply a {who} move during {phase.value}")
            )

    def _validate_cell(self, actor: CellState, row: int, col: int) -> None:
        error: Optional[GameError] = None
        if not in_bounds(row, col):
            error = OutOfRangeError(f"Position ({row}, {col}) is outside the board")
        elif self._state.board[row][col] != CellState.EMPTY:
            error = CellOccupiedError(f"Cell ({row}, {col}) is already marked")
        if error is not None:
            self._emit(
                "moveCompleted",
                {"actor": actor.name, "position": (row, col), "isValid": False},
            )
            raise self._reject(error)

    def _apply_move(self, actor: CellState, row: int, col: int) -> MoveResult:
        self._check_phase(actor)
        self._validate_cell(actor, row, col)

        state = self._state
        state.board[row][col] = actor
        move = Move(row=row, col=col, round=state.current_round, actor=actor)
        if actor is CellState.PLAYER:
            state.player_moves.append(move)
        else:
            state.computer_moves.append(move)
        new_lines = self._update_completed_lines()
        logger.debug("%s marked (%d, %d) in round %d", actor.name, row, col, move.round)

        finished_round: Optional[int] = None
        if actor is CellState.PLAYER:
            state.phase = Phase.COMPUTER_INPUT
        else:
            finished_round = state.current_round
            state.current_round += 1
            if state.current_round > state.max_rounds:
                state.phase = Phase.GAME_OVER
                state.game_ended = True
            else:
                state.phase = Phase.PLAYER_TURN

        self._emit(
            "moveCompleted",
            {"actor": actor.name, "position": (row, col), "isValid": True},
        )
        self._emit_state_changed()
        if finished_round is not None:
            self._emit(
                "roundCompleted",
                {"round": finished_round, "totalLines": len(state.completed_lines)},
            )
        if state.game_ended:
            stats = self.get_game_stats()
            logger.info("Game over: %d completed lines", stats["totalLines"])
            self._emit("gameCompleted", stats)
        return MoveResult(state=self.snapshot(), new_lines=new_lines)

    def _update_completed_lines(self) -> List[Line]:
        state = self._state
        before = {line.key for line in state.completed_lines}
        completed = self.detector.get_all_completed_lines(state.board)
        new_lines = [line for line in completed if line.key not in before]
        state.completed_lines = completed
        if new_lines:
            logger.info(
                "Completed %d new line(s); %d total", len(new_lines), len(completed)
            )
        return new_lines

    # ---- queries ----

    def can_player_move(self) -> bool:
        return self._state.phase is Phase.PLAYER_TURN

    def can_input_computer_move(self) -> bool:
        return self._state.phase is Phase.COMPUTER_INPUT

    def get_remaining_moves(self) -> List[Position]:
        return empty_cells(self._state.board)

    def get_game_progress(self) -> int:
        """Percentage of rounds finished, 0..100."""
        done = min(self._state.current_round - 1, self._state.max_rounds)
        return round(done / self._state.max_rounds * 100)

    def get_game_stats(self) -> Dict[str, object]:
        state = self._state
        return {
            "currentRound": state.current_round,
            "totalRounds": state.max_rounds,
            "totalLines": len(state.completed_lines),
            "completedLines": [line.to_dict() for line in state.completed_lines],
            "playerMoves": [m.to_dict() for m in state.player_moves],
            "computerMoves": [m.to_dict() for m in state.computer_moves],
            "gamePhase": state.phase.value,
            "isGameComplete": state.game_ended,
            "remainingMoves": len(self.get_remaining_moves()),
        }

    def simulate_move(
        self, row: int, col: int, actor: CellState = CellState.PLAYER
    ) -> Optional[Dict[str, object]]:
        """Preview a move without touching the game; None if the cell is not playable."""
        board = self._state.board
        if not in_bounds(row, col) or board[row][col] != CellState.EMPTY:
            return None
        test_board = copy_board(board)
        test_board[row][col] = actor
        lines = self.detector.get_all_completed_lines(test_board)
        before = {line.key for line in self._state.completed_lines}
        return {
            "board": test_board,
            "newLines": [line for line in lines if line.key not in before],
            "totalLines": len(lines),
        }
