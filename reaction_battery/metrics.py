from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .cognitive_core import TrialOutcome


class StatsFrozenError(RuntimeError):
    """Mutation attempted after the session's report was built."""


@dataclass(frozen=True, slots=True)
class TrialRecord:
    index: int
    block: str
    difficulty: int
    outcome: TrialOutcome

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "block": self.block,
            "difficulty": self.difficulty,
            "ok": self.outcome is TrialOutcome.CORRECT,
        }


@dataclass(slots=True)
class RunningStats:
    """Per-block counters. Only MetricsAggregator writes to these."""

    positions: int
    best_difficulty: int = 0
    hits: int = 0
    errors: int = 0
    misses: int = 0
    correct_rejections: int = 0
    reaction_times_ms: list[int] = field(default_factory=list)
    spatial_errors_px: list[int] = field(default_factory=list)
    position_correct: list[int] = field(default_factory=list)
    position_total: list[int] = field(default_factory=list)
    trials: list[TrialRecord] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.position_correct = [0] * self.positions
        self.position_total = [0] * self.positions

    @property
    def total_attempts(self) -> int:
        return self.hits + self.errors + self.misses


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    """Read-only copy of one block's counters."""

    block: str
    best_difficulty: int
    hits: int
    errors: int
    misses: int
    correct_rejections: int
    reaction_times_ms: tuple[int, ...]
    spatial_errors_px: tuple[int, ...]
    position_correct: tuple[int, ...]
    position_total: tuple[int, ...]
    trials: tuple[TrialRecord, ...]

    @property
    def total_attempts(self) -> int:
        return self.hits + self.errors + self.misses


class MetricsAggregator:
    """Owns the RunningStats of every block of one session."""

    def __init__(self, blocks: Iterable[str], *, positions: int = 0) -> None:
        self._blocks = tuple(blocks)
        if not self._blocks:
            raise ValueError("at least one block is required")
        self._positions = int(positions)
        self._stats: dict[str, RunningStats] = {}
        self._log: list[dict[str, Any]] = []
        self._frozen = False
        self.reset()

    @property
    def blocks(self) -> tuple[str, ...]:
        return self._blocks

    @property
    def frozen(self) -> bool:
        return self._frozen

    def reset(self) -> None:
        self._stats = {b: RunningStats(positions=self._positions) for b in self._blocks}
        self._log = []
        self._frozen = False

    def freeze(self) -> None:
        self._frozen = True

    def record_hit(
        self,
        block: str,
        *,
        reaction_ms: int | None,
        spatial_error_px: int | None = None,
        position: int | None = None,
    ) -> None:
        st = self._writable(block)
        st.hits += 1
        if reaction_ms is not None:
            st.reaction_times_ms.append(int(reaction_ms))
        if spatial_error_px is not None:
            st.spatial_errors_px.append(int(spatial_error_px))
        if position is not None:
            self._count_position(st, position, correct=True)

    def record_error(self, block: str, *, position: int | None = None) -> None:
        st = self._writable(block)
        st.errors += 1
        if position is not None:
            self._count_position(st, position, correct=False)

    def record_miss(self, block: str) -> None:
        self._writable(block).misses += 1

    def record_correct_rejection(self, block: str) -> None:
        self._writable(block).correct_rejections += 1

    def record_trial(self, record: TrialRecord) -> None:
        st = self._writable(record.block)
        st.trials.append(record)
        if record.outcome is TrialOutcome.CORRECT:
            st.best_difficulty = max(st.best_difficulty, int(record.difficulty))

    def log(self, entry: dict[str, Any]) -> None:
        self._check_writable()
        self._log.append(dict(entry))

    def snapshot(self, block: str) -> StatsSnapshot:
        st = self._stats[block]
        return StatsSnapshot(
            block=block,
            best_difficulty=st.best_difficulty,
            hits=st.hits,
            errors=st.errors,
            misses=st.misses,
            correct_rejections=st.correct_rejections,
            reaction_times_ms=tuple(st.reaction_times_ms),
            spatial_errors_px=tuple(st.spatial_errors_px),
            position_correct=tuple(st.position_correct),
            position_total=tuple(st.position_total),
            trials=tuple(st.trials),
        )

    def snapshots(self) -> tuple[StatsSnapshot, ...]:
        return tuple(self.snapshot(b) for b in self._blocks)

    def trial_log(self) -> tuple[dict[str, Any], ...]:
        return tuple(dict(e) for e in self._log)

    def totals(self) -> tuple[int, int, int]:
        """(hits, errors, misses) across every block."""

        hits = sum(s.hits for s in self._stats.values())
        errors = sum(s.errors for s in self._stats.values())
        misses = sum(s.misses for s in self._stats.values())
        return hits, errors, misses

    def _count_position(self, st: RunningStats, position: int, *, correct: bool) -> None:
        if not (0 <= position < st.positions):
            raise IndexError(f"serial position {position} outside 0..{st.positions - 1}")
        st.position_total[position] += 1
        if correct:
            st.position_correct[position] += 1

    def _writable(self, block: str) -> RunningStats:
        self._check_writable()
        try:
            return self._stats[block]
        except KeyError:
            raise KeyError(f"unknown block {block!r}") from None

    def _check_writable(self) -> None:
        if self._frozen:
            raise StatsFrozenError("session stats are frozen")
