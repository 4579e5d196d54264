"""Move suggestion engine: standard and enhanced cooperative heuristics with LRU caching."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Hashable, List, Optional, Sequence, Tuple, TypeVar

from .game import (
    ALL_LINES,
    BOARD_SIZE,
    CENTER,
    CellState,
    Line,
    NoMovesAvailableError,
    Position,
    empty_cells,
    in_bounds,
    validate_board,
)

logger = logging.getLogger("bingosim.ai")

# Scoring weights. Required ordering:
# COMPLETE_LINE > NEAR_COMPLETE >= MULTI_LINE > INTERSECTION_BONUS
#   > CENTER_BONUS > POTENTIAL > COOPERATIVE > 0
COMPLETE_LINE = 100.0
NEAR_COMPLETE = 40.0
MULTI_LINE = 30.0
INTERSECTION_BONUS = 12.0
CENTER_BONUS = 8.0
POTENTIAL = 4.0
COOPERATIVE = 1.0

# Each mark already on a line multiplies its cooperative pull.
COOPERATIVE_GROWTH = 8

VALUE_CACHE_SIZE = 512
LINE_CACHE_SIZE = 256
BOARD_CACHE_SIZE = 128
BATCH_SIZE = 5

CONFIDENCE_LEVELS = ("very-high", "high", "medium", "low")
STRATEGIES = ("standard", "enhanced")

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """Bounded map that evicts the least recently used key; get and set both refresh."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._data: "OrderedDict[K, V]" = OrderedDict()

    def get(self, key: K) -> Optional[V]:
        if key not in self._data:
            return None
        self._data.move_to_end(key)
        return self._data[key]

    def set(self, key: K, value: V) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        elif len(self._data) >= self.capacity:
            self._data.popitem(last=False)
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


def board_fingerprint(board: Sequence[Sequence[int]]) -> int:
    """Base-3 encoding of the 25 cells; unique per board and below 2**40."""
    fp = 0
    for row in board:
        for cell in row:
            fp = fp * 3 + cell
    return fp


def cache_key(fingerprint: int, row: int, col: int) -> int:
    return fingerprint * (BOARD_SIZE * BOARD_SIZE) + row * BOARD_SIZE + col


# Line indices through each cell, precomputed once.
_CELL_LINES: Dict[Position, Tuple[int, ...]] = {
    (r, c): tuple(i for i, line in enumerate(ALL_LINES) if (r, c) in line.cells)
    for r in range(BOARD_SIZE)
    for c in range(BOARD_SIZE)
}


def line_fill_counts(board: Sequence[Sequence[int]]) -> Tuple[int, ...]:
    """Non-empty cell count of each of the 12 lines, in line order."""
    return tuple(
        sum(1 for r, c in line.cells if board[r][c] != CellState.EMPTY)
        for line in ALL_LINES
    )


@dataclass(frozen=True)
class ScoredMove:
    row: int
    col: int
    value: float

    def to_dict(self) -> Dict[str, object]:
        return {"row": self.row, "col": self.col, "value": self.value}


@dataclass(frozen=True)
class Suggestion:
    row: int
    col: int
    value: float
    confidence: str
    alternatives: List[ScoredMove] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "row": self.row,
            "col": self.col,
            "value": self.value,
            "confidence": self.confidence,
            "alternatives": [alt.to_dict() for alt in self.alternatives],
        }


class ProbabilityCalculator:
    """Standard heuristic for the human's next mark.

    For every line through the candidate cell the score adds a completion
    award, a cooperative term that grows with the marks already on the line
    (either color), and a potential term proportional to how full the line
    is after the move. The center cell gets a small bonus.
    """

    name = "standard"

    def __init__(self, value_cache_size: int = VALUE_CACHE_SIZE) -> None:
        self._value_cache: LRUCache[int, float] = LRUCache(value_cache_size)
        self.cache_hits = 0
        self.cache_misses = 0
        self._timings: "deque[float]" = deque(maxlen=100)

    # ---- scoring ----

    def calculate_move_value(
        self, board: Sequence[Sequence[int]], row: int, col: int
    ) -> float:
        validate_board(board)
        if not in_bounds(row, col) or board[row][col] != CellState.EMPTY:
            return -1

        start = time.perf_counter()
        fp = board_fingerprint(board)
        key = cache_key(fp, row, col)
        cached = self._value_cache.get(key)
        if cached is not None:
            self.cache_hits += 1
            return cached
        self.cache_misses += 1

        value = self._score(board, row, col, fp)
        self._value_cache.set(key, value)
        self._timings.append((time.perf_counter() - start) * 1000.0)
        return value

    def _score(
        self, board: Sequence[Sequence[int]], row: int, col: int, fp: int
    ) -> float:
        counts = line_fill_counts(board)
        total = sum(self._line_value(counts[i]) for i in _CELL_LINES[(row, col)])
        if (row, col) == (CENTER, CENTER):
            total += CENTER_BONUS
        return total

    @staticmethod
    def _line_value(others: int) -> float:
        """Terms 1-3 for one line; ``others`` counts marks on the other four cells."""
        value = 0.0
        if others == BOARD_SIZE - 1:
            value += COMPLETE_LINE
        if others:
            value += COOPERATIVE * COOPERATIVE_GROWTH**others
        value += POTENTIAL * (others + 1) / 4
        return value

    # ---- suggestions ----

    def simulate_all_possible_moves(
        self, board: Sequence[Sequence[int]]
    ) -> List[ScoredMove]:
        """Score every empty cell, best first; ties go to the lower row, then column."""
        validate_board(board)
        moves = [
            ScoredMove(r, c, self.calculate_move_value(board, r, c))
            for r, c in empty_cells(board)
        ]
        moves.sort(key=lambda m: (-m.value, m.row, m.col))
        return moves

    def get_best_suggestion(self, board: Sequence[Sequence[int]]) -> Suggestion:
        moves = self.simulate_all_possible_moves(board)
        if not moves:
            raise NoMovesAvailableError("No empty cells to suggest")
        best = moves[0]
        suggestion = Suggestion(
            row=best.row,
            col=best.col,
            value=best.value,
            confidence=self.calculate_confidence(moves),
            alternatives=moves[1:4],
        )
        logger.debug(
            "%s suggestion (%d, %d) value=%.2f confidence=%s",
            self.name,
            suggestion.row,
            suggestion.col,
            suggestion.value,
            suggestion.confidence,
        )
        return suggestion

    @staticmethod
    def calculate_confidence(moves: Sequence[ScoredMove]) -> str:
        if len(moves) < 2:
            return "high"
        margin = moves[0].value - moves[1].value
        if margin >= 2 * COMPLETE_LINE:
            return "very-high"
        if margin >= COMPLETE_LINE:
            return "high"
        if margin >= CENTER_BONUS:
            return "medium"
        return "low"

    # ---- cache & metrics ----

    def clear_caches(self) -> None:
        self._value_cache.clear()

    def cache_sizes(self) -> Dict[str, int]:
        return {"valueCache": len(self._value_cache)}

    def get_performance_metrics(self) -> Dict[str, object]:
        total = self.cache_hits + self.cache_misses
        hit_rate = self.cache_hits / total * 100 if total else 0.0
        avg = sum(self._timings) / len(self._timings) if self._timings else 0.0
        return {
            "cacheHitRate": round(hit_rate, 2),
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "averageCalculationTime": round(avg, 4),
            "cacheSize": self.cache_sizes(),
        }

    def reset_performance_metrics(self) -> None:
        self.cache_hits = 0
        self.cache_misses = 0
        self._timings.clear()


class EnhancedProbabilityCalculator(ProbabilityCalculator):
    """Standard scoring plus intersection, near-completion and multi-line bonuses.

    Lines, per-cell line membership and intersection cells are precomputed.
    Three LRU caches back the hot path: final values keyed by (cell, board
    fingerprint), per-line scores keyed by (board fingerprint, line index)
    so cells on the same line share them, and whole-board line fill counts
    keyed by fingerprint. ``cache_hits``/``cache_misses`` count value-cache
    lookups; ``line_cache_hits``/``line_cache_misses`` count per-line ones.
    """

    name = "enhanced"

    def __init__(
        self,
        value_cache_size: int = VALUE_CACHE_SIZE,
        line_cache_size: int = LINE_CACHE_SIZE,
        board_cache_size: int = BOARD_CACHE_SIZE,
    ) -> None:
        super().__init__(value_cache_size)
        self._line_cache: LRUCache[int, float] = LRUCache(line_cache_size)
        self.line_cache_hits = 0
        self.line_cache_misses = 0
        self._board_cache: LRUCache[int, Tuple[int, ...]] = LRUCache(board_cache_size)
        self._lines: Tuple[Line, ...] = ALL_LINES
        self._intersections: List[Tuple[int, int, int]] = [
            (r, c, len(indices))
            for (r, c), indices in sorted(_CELL_LINES.items())
            if len(indices) > 2
        ]

    def get_intersection_points(self) -> List[Tuple[int, int, int]]:
        """Cells on at least one diagonal, as (row, col, line_count)."""
        return list(self._intersections)

    def _analyze_board(self, board: Sequence[Sequence[int]], fp: int) -> Tuple[int, ...]:
        counts = self._board_cache.get(fp)
        if counts is None:
            counts = line_fill_counts(board)
            self._board_cache.set(fp, counts)
        return counts

    def _line_score(self, board: Sequence[Sequence[int]], fp: int, index: int) -> float:
        key = fp * len(self._lines) + index
        value = self._line_cache.get(key)
        if value is not None:
            self.line_cache_hits += 1
            return value
        self.line_cache_misses += 1
        filled = self._analyze_board(board, fp)[index]
        value = self._line_value(filled) + self._near_value(filled + 1)
        self._line_cache.set(key, value)
        return value

    @staticmethod
    def _near_value(filled: int) -> float:
        if filled == BOARD_SIZE - 1:
            return NEAR_COMPLETE
        if filled == BOARD_SIZE - 2:
            return 0.6 * NEAR_COMPLETE
        return 0.0

    def _score(
        self, board: Sequence[Sequence[int]], row: int, col: int, fp: int
    ) -> float:
        indices = _CELL_LINES[(row, col)]
        total = sum(self._line_score(board, fp, i) for i in indices)
        total += INTERSECTION_BONUS * len(indices)

        counts = self._analyze_board(board, fp)
        # After the move every line through the cell has a mark; count the open ones.
        open_lines = sum(1 for i in indices if counts[i] + 1 < BOARD_SIZE)
        if open_lines >= 2:
            total += MULTI_LINE * (open_lines - 1)

        if (row, col) == (CENTER, CENTER):
            total += CENTER_BONUS
        return total

    def calculate_mixed_line_value(
        self, board: Sequence[Sequence[int]], row: int, col: int
    ) -> float:
        """Cooperative value of partly filled lines through a cell; computer marks weigh 1.5x."""
        validate_board(board)
        if not in_bounds(row, col):
            return 0.0
        value = 0.0
        for i in _CELL_LINES[(row, col)]:
            cells = [board[r][c] for r, c in self._lines[i].cells]
            filled = sum(1 for v in cells if v != CellState.EMPTY)
            if not filled or filled == BOARD_SIZE:
                continue
            bonus = 1.5 if CellState.COMPUTER in cells else 1.0
            if filled == BOARD_SIZE - 1:
                value += COOPERATIVE * 2 * bonus
            elif filled >= 2:
                value += COOPERATIVE * bonus
            else:
                value += COOPERATIVE * 0.5 * bonus
        return value

    async def batch_calculate_move_values(
        self,
        board: Sequence[Sequence[int]],
        moves: Sequence[Position],
        on_done: Optional[Callable[[List[ScoredMove]], None]] = None,
        batch_size: int = BATCH_SIZE,
    ) -> List[ScoredMove]:
        """Score ``moves`` in slices, yielding to the event loop between slices.

        Results keep the input order and are delivered once, both as the
        return value and through ``on_done``.
        """
        results: List[ScoredMove] = []
        for start in range(0, len(moves), batch_size):
            if start:
                await asyncio.sleep(0)
            for row, col in moves[start : start + batch_size]:
                results.append(
                    ScoredMove(row, col, self.calculate_move_value(board, row, col))
                )
        if on_done is not None:
            on_done(results)
        return results

    def clear_caches(self) -> None:
        super().clear_caches()
        self._line_cache.clear()
        self._board_cache.clear()

    def cache_sizes(self) -> Dict[str, int]:
        return {
            "valueCache": len(self._value_cache),
            "lineCache": len(self._line_cache),
            "boardAnalysisCache": len(self._board_cache),
        }

    def get_performance_metrics(self) -> Dict[str, object]:
        metrics = super().get_performance_metrics()
        metrics["lineCacheHits"] = self.line_cache_hits
        metrics["lineCacheMisses"] = self.line_cache_misses
        return metrics

    def reset_performance_metrics(self) -> None:
        super().reset_performance_metrics()
        self.line_cache_hits = 0
        self.line_cache_misses = 0


@dataclass
class SuggestionAPI:
    """Strategy selector over the two calculators; each keeps its own caches."""

    strategy: str = "standard"
    _calculators: Dict[str, ProbabilityCalculator] = field(
        default_factory=dict, repr=False
    )

    def __post_init__(self) -> None:
        self.set_strategy(self.strategy)

    def set_strategy(self, strategy: str) -> None:
        if strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown strategy {strategy!r}. Choose one of {', '.join(STRATEGIES)}."
            )
        if strategy not in self._calculators:
            self._calculators[strategy] = (
                EnhancedProbabilityCalculator()
                if strategy == "enhanced"
                else ProbabilityCalculator()
            )
        self.strategy = strategy

    @property
    def calculator(self) -> ProbabilityCalculator:
        return self._calculators[self.strategy]

    def best_move(self, board: Sequence[Sequence[int]]) -> Suggestion:
        return self.calculator.get_best_suggestion(board)
