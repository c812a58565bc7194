from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from .cognitive_core import SeededRng

GO_COLOR = "green"
NO_GO_COLOR = "red"


class InsufficientSpaceError(ValueError):
    """A trial asked for more distinct cells than its region holds."""


class Region(str, Enum):
    ALL = "all"
    CENTRAL = "central"
    PERIPHERAL = "peripheral"
    EDGES = "edges"


@dataclass(frozen=True, slots=True)
class GridGeometry:
    """Square grid of cells numbered row-major from 0."""

    size: int = 10
    center_start: int = 3
    center_end: int = 6  # inclusive

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError("size must be > 0")
        if not (0 <= self.center_start <= self.center_end < self.size):
            raise ValueError("central block must lie inside the grid")

    @property
    def cell_count(self) -> int:
        return self.size * self.size

    def row_col(self, cell: int) -> tuple[int, int]:
        return divmod(int(cell), self.size)

    def cell_at(self, row: int, col: int) -> int:
        return int(row) * self.size + int(col)

    def contains(self, cell: int) -> bool:
        return 0 <= int(cell) < self.cell_count

    def is_central(self, cell: int) -> bool:
        r, c = self.row_col(cell)
        lo, hi = self.center_start, self.center_end
        return lo <= r <= hi and lo <= c <= hi

    def quadrant(self, cell: int) -> str:
        """A top-left, B top-right, C bottom-left, D bottom-right."""

        r, c = self.row_col(cell)
        half = self.size // 2
        return "ABCD"[(2 if r >= half else 0) + (1 if c >= half else 0)]

    def cells(self, region: Region) -> tuple[int, ...]:
        return region_cells(self, Region(region))


@lru_cache(maxsize=None)
def region_cells(geometry: GridGeometry, region: Region) -> tuple[int, ...]:
    """Cells of ``region``; a pure function of the geometry, computed once."""

    out: list[int] = []
    last_col = geometry.size - 1
    for cell in range(geometry.cell_count):
        if region is Region.ALL:
            keep = True
        elif region is Region.CENTRAL:
            keep = geometry.is_central(cell)
        elif region is Region.PERIPHERAL:
            keep = not geometry.is_central(cell)
        else:
            keep = geometry.row_col(cell)[1] in (0, last_col)
        if keep:
            out.append(cell)
    return tuple(out)


@dataclass(frozen=True, slots=True)
class SingleStimulus:
    cell: int
    color: str

    @property
    def is_go(self) -> bool:
        return self.color == GO_COLOR


class StimulusGenerator:
    """Deterministic source of trial content for a grid."""

    def __init__(
        self,
        rng: SeededRng,
        *,
        geometry: GridGeometry | None = None,
        go_probability: float = 0.6,
        near_probability: float = 0.5,
        near_offset: int = 2,
    ) -> None:
        if not (0.0 <= go_probability <= 1.0):
            raise ValueError("go_probability must be in [0.0, 1.0]")
        if not (0.0 <= near_probability <= 1.0):
            raise ValueError("near_probability must be in [0.0, 1.0]")
        if near_offset < 0:
            raise ValueError("near_offset must be >= 0")
        self._rng = rng
        self._geometry = geometry or GridGeometry()
        self._go_probability = float(go_probability)
        self._near_probability = float(near_probability)
        self._near_offset = int(near_offset)

    @property
    def geometry(self) -> GridGeometry:
        return self._geometry

    def generate_sequence(self, length: int, region: Region) -> tuple[int, ...]:
        """Ordered sequence of distinct cells drawn from ``region``."""

        available = self._geometry.cells(region)
        if length < 1:
            raise ValueError("length must be >= 1")
        if length > len(available):
            raise InsufficientSpaceError(
                f"sequence length {length} exceeds the {len(available)} cells of region {Region(region).value!r}"
            )

        used: set[int] = set()
        seq: list[int] = []
        while len(seq) < length:
            cell = self._rng.choice(available)
            if cell not in used:
                used.add(cell)
                seq.append(cell)
        return tuple(seq)

    def generate_set(self, count: int, region: Region) -> tuple[int, ...]:
        # Target sets have no order; they share the distinct-cell rule.
        return self.generate_sequence(count, region)

    def generate_single(self, region: Region, avoid_near: int | None = None) -> SingleStimulus:
        """One randomly placed stimulus, optionally biased towards ``avoid_near``'s neighbourhood.

        ``avoid_near`` is the previously shown cell: it is never repeated while the
        region has any other cell, and with ``near_probability`` the new cell is
        drawn within ``near_offset`` rows and columns of it.
        """

        available = self._geometry.cells(region)
        if not available:
            raise InsufficientSpaceError(f"region {Region(region).value!r} has no cells")

        color = GO_COLOR if self._rng.chance(self._go_probability) else NO_GO_COLOR

        pool: tuple[int, ...] | list[int] = available
        if avoid_near is not None:
            fresh = [c for c in available if c != avoid_near]
            if fresh:
                pool = fresh
            if self._rng.chance(self._near_probability):
                pr, pc = self._geometry.row_col(avoid_near)
                near = [
                    c
                    for c in pool
                    if abs(self._geometry.row_col(c)[0] - pr) <= self._near_offset
                    and abs(self._geometry.row_col(c)[1] - pc) <= self._near_offset
                ]
                if near:
                    pool = near

        return SingleStimulus(cell=self._rng.choice(pool), color=color)
