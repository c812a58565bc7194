"""Response classification for the three trial kinds.

Matchers are pure with respect to time: the engine passes in the onset and
response timestamps (monotonic seconds) and the live cell layout.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

from .cognitive_core import ResponseOutcome, round_half_up
from .events import ResponseEvent
from .stimuli import GridGeometry


class CellLayout(Protocol):
    """Live on-screen geometry of the grid, as rendered at click time."""

    def cell_center(self, cell: int) -> tuple[float, float]:
        ...


@dataclass(frozen=True, slots=True)
class GridLayout:
    """Uniform pixel layout: ``origin`` is the top-left of cell 0."""

    geometry: GridGeometry
    origin_x: float
    origin_y: float
    cell_px: float
    gap_px: float = 4.0

    def cell_center(self, cell: int) -> tuple[float, float]:
        r, c = self.geometry.row_col(cell)
        pitch = self.cell_px + self.gap_px
        return (
            self.origin_x + c * pitch + self.cell_px / 2.0,
            self.origin_y + r * pitch + self.cell_px / 2.0,
        )

    def cell_at(self, x: float, y: float) -> int | None:
        pitch = self.cell_px + self.gap_px
        col = int(math.floor((x - self.origin_x) / pitch))
        row = int(math.floor((y - self.origin_y) / pitch))
        if not (0 <= row < self.geometry.size and 0 <= col < self.geometry.size):
            return None
        # Clicks in the gutter between cells do not select anything.
        if (x - self.origin_x) - col * pitch > self.cell_px or (y - self.origin_y) - row * pitch > self.cell_px:
            return None
        return self.geometry.cell_at(row, col)


def reaction_time_ms(onset_s: float, response_s: float) -> int:
    return max(0, round_half_up((response_s - onset_s) * 1000.0))


def spatial_error_px(layout: CellLayout | None, cell: int, response: ResponseEvent) -> int | None:
    """Distance from the pointer to ``cell``'s center, or None without pointer/layout."""

    if layout is None or not response.has_pointer:
        return None
    assert response.x is not None and response.y is not None
    cx, cy = layout.cell_center(cell)
    return round_half_up(math.hypot(cx - response.x, cy - response.y))


@dataclass(frozen=True, slots=True)
class SequenceStep:
    position: int
    expected: int
    clicked: int
    correct: bool
    complete: bool


class SequenceMatcher:
    """Ordered reproduction of a presented sequence; one wrong cell ends the trial."""

    def __init__(self, expected: tuple[int, ...]) -> None:
        if not expected:
            raise ValueError("expected sequence must not be empty")
        self._expected = tuple(expected)
        self._position = 0
        self._failed = False

    @property
    def position(self) -> int:
        return self._position

    @property
    def finished(self) -> bool:
        return self._failed or self._position >= len(self._expected)

    def match(self, cell: int) -> SequenceStep | None:
        """Consume one response. Returns None once the trial is already decided."""

        if self.finished:
            return None
        pos = self._position
        expected = self._expected[pos]
        correct = int(cell) == expected
        if correct:
            self._position += 1
        else:
            self._failed = True
        return SequenceStep(
            position=pos,
            expected=expected,
            clicked=int(cell),
            correct=correct,
            complete=correct and self._position >= len(self._expected),
        )


@dataclass(frozen=True, slots=True)
class GoNoGoResult:
    outcome: ResponseOutcome
    reason: str | None
    reaction_ms: int
    on_target: bool

    @property
    def ends_trial(self) -> bool:
        # A click on another cell leaves the stimulus up.
        return self.on_target


def classify_go_no_go(
    *,
    target_cell: int,
    is_go: bool,
    onset_s: float,
    window_ms: int,
    response: ResponseEvent,
) -> GoNoGoResult:
    elapsed_ms = (response.at_s - onset_s) * 1000.0
    rt = reaction_time_ms(onset_s, response.at_s)
    if int(response.cell) != int(target_cell):
        return GoNoGoResult(outcome=ResponseOutcome.ERROR, reason="empty", reaction_ms=rt, on_target=False)
    if not is_go:
        return GoNoGoResult(outcome=ResponseOutcome.ERROR, reason="no-go", reaction_ms=rt, on_target=True)
    if elapsed_ms > window_ms:
        return GoNoGoResult(outcome=ResponseOutcome.ERROR, reason="late", reaction_ms=rt, on_target=True)
    return GoNoGoResult(outcome=ResponseOutcome.HIT, reason=None, reaction_ms=rt, on_target=True)


def classify_expiry(*, is_go: bool) -> ResponseOutcome:
    return ResponseOutcome.MISS if is_go else ResponseOutcome.CORRECT_REJECTION


@dataclass(frozen=True, slots=True)
class TargetClick:
    cell: int
    outcome: ResponseOutcome | None  # None: repeat click on an already-taken target
    remaining: int

    @property
    def complete(self) -> bool:
        return self.remaining == 0


class TargetSetMatcher:
    """Unordered set of targets; each must be clicked once."""

    def __init__(self, targets: tuple[int, ...]) -> None:
        self._targets = frozenset(int(c) for c in targets)
        self._taken: set[int] = set()

    @property
    def taken(self) -> frozenset[int]:
        return frozenset(self._taken)

    @property
    def remaining(self) -> int:
        return len(self._targets) - len(self._taken)

    def match(self, cell: int) -> TargetClick:
        cell = int(cell)
        if cell not in self._targets:
            return TargetClick(cell=cell, outcome=ResponseOutcome.ERROR, remaining=self.remaining)
        if cell in self._taken:
            return TargetClick(cell=cell, outcome=None, remaining=self.remaining)
        self._taken.add(cell)
        return TargetClick(cell=cell, outcome=ResponseOutcome.HIT, remaining=self.remaining)
