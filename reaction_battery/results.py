from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from .cognitive_core import best_ms, mean_ms, round_half_up
from .metrics import StatsSnapshot

Number = int | float


@dataclass(frozen=True, slots=True)
class Report:
    """Session report handed to the host's ``emit_score``.

    Built once per session from frozen stats; metrics and details are read-only
    views so nothing downstream can revise them.
    """

    task_id: str
    session_id: str
    duration_ms: int
    metrics: Mapping[str, Number]
    details: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))
        object.__setattr__(self, "details", _freeze(self.details))

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "sessionId": self.session_id,
            "durationMs": int(self.duration_ms),
            "metrics": dict(self.metrics),
            "details": _thaw(self.details),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


def accuracy_pct(hits: int, errors: int, misses: int = 0) -> int:
    attempts = hits + errors + misses
    if attempts == 0:
        return 100
    return round_half_up(hits / attempts * 100.0)


def completion_time_sec(duration_ms: int) -> float:
    # Two decimals.
    return round_half_up(duration_ms / 10.0) / 100.0


def merge_snapshots(block: str, snaps: Sequence[StatsSnapshot]) -> StatsSnapshot:
    """Sum several blocks into one, concatenating their lists in block order."""

    positions = max((len(s.position_total) for s in snaps), default=0)

    def pos_sum(attr: str) -> tuple[int, ...]:
        out = [0] * positions
        for s in snaps:
            for i, v in enumerate(getattr(s, attr)):
                out[i] += v
        return tuple(out)

    return StatsSnapshot(
        block=block,
        best_difficulty=max((s.best_difficulty for s in snaps), default=0),
        hits=sum(s.hits for s in snaps),
        errors=sum(s.errors for s in snaps),
        misses=sum(s.misses for s in snaps),
        correct_rejections=sum(s.correct_rejections for s in snaps),
        reaction_times_ms=tuple(v for s in snaps for v in s.reaction_times_ms),
        spatial_errors_px=tuple(v for s in snaps for v in s.spatial_errors_px),
        position_correct=pos_sum("position_correct"),
        position_total=pos_sum("position_total"),
        trials=tuple(t for s in snaps for t in s.trials),
    )


BLOCK_METRICS: dict[str, Callable[[StatsSnapshot], Number]] = {
    "hits": lambda s: s.hits,
    "errors": lambda s: s.errors,
    "misses": lambda s: s.misses,
    "accuracyPct": lambda s: accuracy_pct(s.hits, s.errors, s.misses),
    "reactionTimeAvgMs": lambda s: mean_ms(s.reaction_times_ms),
    "reactionTimeBestMs": lambda s: best_ms(s.reaction_times_ms),
    "reactionsCount": lambda s: len(s.reaction_times_ms),
    "spanMax": lambda s: s.best_difficulty,
}


def stm_index(snaps: Sequence[StatsSnapshot], *, max_len: int) -> int:
    """Short-term-memory index: 60% normalized span, 40% mean accuracy, 0..100."""

    if not snaps or max_len <= 0:
        return 0
    span_score = sum(s.best_difficulty for s in snaps) / (len(snaps) * max_len)
    accs = [(s.hits / s.total_attempts) if s.total_attempts else 0.0 for s in snaps]
    acc_score = sum(accs) / len(accs)
    return round_half_up((0.6 * span_score + 0.4 * acc_score) * 100.0)


CompositeFn = Callable[[Sequence[StatsSnapshot]], Mapping[str, Number]]


class ReportBuilder:
    """Turns stats snapshots into a Report, emitting only the configured metric names.

    With ``per_block`` each block metric is emitted as ``{name}_{block}``;
    otherwise all blocks are merged first.
    """

    def __init__(
        self,
        *,
        task_id: str,
        metric_names: Sequence[str],
        per_block: bool = False,
        include_completion_time: bool = True,
        composite: CompositeFn | None = None,
    ) -> None:
        unknown = [n for n in metric_names if n not in BLOCK_METRICS]
        if unknown:
            raise ValueError(f"unknown metric name(s): {', '.join(unknown)}")
        self._task_id = str(task_id)
        self._names = tuple(metric_names)
        self._per_block = bool(per_block)
        self._include_completion_time = bool(include_completion_time)
        self._composite = composite

    def metrics(self, snaps: Sequence[StatsSnapshot], *, duration_ms: int) -> dict[str, Number]:
        out: dict[str, Number] = {}
        if self._include_completion_time:
            out["completionTimeSec"] = completion_time_sec(duration_ms)
        if self._per_block:
            for snap in snaps:
                for name in self._names:
                    out[f"{name}_{snap.block}"] = BLOCK_METRICS[name](snap)
        else:
            merged = merge_snapshots("all", snaps)
            for name in self._names:
                out[name] = BLOCK_METRICS[name](merged)
        if self._composite is not None:
            out.update(self._composite(snaps))
        return out

    def build(
        self,
        *,
        session_id: str,
        duration_ms: int,
        snaps: Sequence[StatsSnapshot],
        details: Mapping[str, Any],
    ) -> Report:
        return Report(
            task_id=self._task_id,
            session_id=str(session_id),
            duration_ms=max(0, int(duration_ms)),
            metrics=self.metrics(snaps, duration_ms=duration_ms),
            details=details,
        )


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value
