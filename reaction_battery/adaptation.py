from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum

from .cognitive_core import ResponseOutcome, clamp_int, round_half_up

logger = logging.getLogger(__name__)

SPAN_START = 3
SPAN_MIN = 2
SPAN_MAX = 7


def adjust_span(current: int, correct: bool, *, min_len: int = SPAN_MIN, max_len: int = SPAN_MAX) -> int:
    return clamp_int(int(current) + (1 if correct else -1), min_len, max_len)


class SpanController:
    """Sequence length +1 after a correct trial, -1 after an incorrect one."""

    def __init__(self, *, start: int = SPAN_START, min_len: int = SPAN_MIN, max_len: int = SPAN_MAX) -> None:
        if min_len < 1:
            raise ValueError("min_len must be >= 1")
        if not (min_len <= start <= max_len):
            raise ValueError("start must be within [min_len, max_len]")
        self._start = int(start)
        self._min = int(min_len)
        self._max = int(max_len)
        self._length = self._start
        self._history: list[int] = [self._start]

    @property
    def length(self) -> int:
        return self._length

    @property
    def max_len(self) -> int:
        return self._max

    def history(self) -> tuple[int, ...]:
        return tuple(self._history)

    def update(self, correct: bool) -> int:
        self._length = adjust_span(self._length, correct, min_len=self._min, max_len=self._max)
        self._history.append(self._length)
        return self._length

    def reset(self) -> None:
        self._length = self._start
        self._history.append(self._length)


class RateScope(str, Enum):
    WINDOWED = "windowed"
    CUMULATIVE = "cumulative"


class WindowAction(str, Enum):
    TIGHTEN = "tighten"
    LOOSEN = "loosen"
    HOLD = "hold"


@dataclass(frozen=True, slots=True)
class WindowAdjustment:
    previous_ms: int
    window_ms: int
    action: WindowAction
    recent_avg_ms: float
    miss_rate: float
    error_rate: float
    observations: int


class ReactionWindowController:
    """Go/no-go reaction window tuned from recent performance.

    Every ``every``-th observation the window is recomputed. It tightens only
    when miss and error rates are both under ``tighten_below`` and recent hits
    are faster than the window; it loosens when either rate is above
    ``loosen_above``. Between the two thresholds it holds.
    """

    def __init__(
        self,
        *,
        initial_ms: int = 800,
        floor_ms: int = 400,
        ceiling_ms: int = 1200,
        every: int = 10,
        recent: int = 10,
        tighten_below: float = 0.05,
        loosen_above: float = 0.15,
        tighten_factor: float = 0.9,
        loosen_factor: float = 1.1,
        rate_scope: RateScope = RateScope.WINDOWED,
    ) -> None:
        if not (0 < floor_ms <= initial_ms <= ceiling_ms):
            raise ValueError("expected 0 < floor_ms <= initial_ms <= ceiling_ms")
        if every <= 0 or recent <= 0:
            raise ValueError("every and recent must be > 0")
        if not (0.0 <= tighten_below <= loosen_above <= 1.0):
            raise ValueError("expected 0 <= tighten_below <= loosen_above <= 1")
        if not (0.0 < tighten_factor <= 1.0 <= loosen_factor):
            raise ValueError("expected tighten_factor <= 1 <= loosen_factor")

        self._floor = int(floor_ms)
        self._ceiling = int(ceiling_ms)
        self._every = int(every)
        self._tighten_below = float(tighten_below)
        self._loosen_above = float(loosen_above)
        self._tighten_factor = float(tighten_factor)
        self._loosen_factor = float(loosen_factor)
        self._scope = RateScope(rate_scope)

        self._window = int(initial_ms)
        self._history: list[int] = [self._window]
        self._hit_rts: deque[int] = deque(maxlen=int(recent))
        self._recent: deque[ResponseOutcome] = deque(maxlen=int(recent))
        self._observed = 0
        self._misses = 0
        self._errors = 0

    @property
    def window_ms(self) -> int:
        return self._window

    def history(self) -> tuple[int, ...]:
        return tuple(self._history)

    def observe(self, outcome: ResponseOutcome, reaction_ms: int | None = None) -> WindowAdjustment | None:
        """Record one scored observation; returns the adjustment when one is due."""

        if outcome is ResponseOutcome.CORRECT_REJECTION:
            return None
        self._observed += 1
        self._recent.append(outcome)
        if outcome is ResponseOutcome.HIT and reaction_ms is not None:
            self._hit_rts.append(int(reaction_ms))
        elif outcome is ResponseOutcome.MISS:
            self._misses += 1
        elif outcome is ResponseOutcome.ERROR:
            self._errors += 1

        if self._observed % self._every != 0:
            return None
        return self._recompute()

    def _rates(self) -> tuple[float, float]:
        if self._scope is RateScope.CUMULATIVE:
            n = max(1, self._observed)
            return self._misses / n, self._errors / n
        n = max(1, len(self._recent))
        misses = sum(1 for o in self._recent if o is ResponseOutcome.MISS)
        errors = sum(1 for o in self._recent if o is ResponseOutcome.ERROR)
        return misses / n, errors / n

    def _recompute(self) -> WindowAdjustment:
        previous = self._window
        avg = sum(self._hit_rts) / len(self._hit_rts) if self._hit_rts else float(previous)
        miss_rate, error_rate = self._rates()

        if miss_rate < self._tighten_below and error_rate < self._tighten_below and avg < previous:
            self._window = max(self._floor, round_half_up(avg * self._tighten_factor))
            action = WindowAction.TIGHTEN
        elif miss_rate > self._loosen_above or error_rate > self._loosen_above:
            self._window = min(self._ceiling, round_half_up(previous * self._loosen_factor))
            action = WindowAction.LOOSEN
        else:
            action = WindowAction.HOLD

        self._history.append(self._window)
        logger.debug(
            "reaction window %s: %d -> %d ms (avg=%.1f miss=%.2f err=%.2f)",
            action.value,
            previous,
            self._window,
            avg,
            miss_rate,
            error_rate,
        )
        return WindowAdjustment(
            previous_ms=previous,
            window_ms=self._window,
            action=action,
            recent_avg_ms=avg,
            miss_rate=miss_rate,
            error_rate=error_rate,
            observations=self._observed,
        )
