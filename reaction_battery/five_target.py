from __future__ import annotations

import logging
from typing import Any

from .clock import Clock
from .cognitive_core import LitCell, ResponseOutcome, TrialOutcome
from .config import FiveTargetConfig
from .events import EventKind, ResponseEvent
from .matching import TargetSetMatcher, reaction_time_ms, spatial_error_px
from .metrics import TrialRecord
from .results import ReportBuilder
from .sinks import EventSink, ScoreSink
from .stimuli import StimulusGenerator
from .trial_engine import TrialEngine
from .trials import TargetSetTrial

logger = logging.getLogger(__name__)

FIVE_TARGET_METRICS = ("reactionTimeAvgMs", "reactionTimeBestMs", "hits", "errors", "accuracyPct")

BLOCK = "sets"


class FiveTargetTask(TrialEngine):
    """Sets of same-colored targets; every target must be clicked, in any order.

    Reaction time is measured from the set onset, so later clicks in a set are
    slower by construction.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        seed: int,
        config: FiveTargetConfig | None = None,
        session_id: str | None = None,
        emit_event: EventSink | None = None,
        emit_score: ScoreSink | None = None,
    ) -> None:
        cfg = config or FiveTargetConfig()
        super().__init__(
            task_id=cfg.task_id,
            blocks=(BLOCK,),
            clock=clock,
            seed=seed,
            report_builder=ReportBuilder(task_id=cfg.task_id, metric_names=FIVE_TARGET_METRICS),
            session_id=session_id,
            emit_event=emit_event,
            emit_score=emit_score,
        )
        self.title = cfg.title
        self._cfg = cfg
        self._gen = StimulusGenerator(self._rng, geometry=cfg.geometry)

        self._sets_done = 0
        self._current: TargetSetTrial | None = None
        self._matcher: TargetSetMatcher | None = None
        self._set_onset_s: float | None = None

    @property
    def config(self) -> FiveTargetConfig:
        return self._cfg

    @property
    def current_trial(self) -> TargetSetTrial | None:
        return self._current

    @property
    def sets_done(self) -> int:
        return self._sets_done

    def _reset_task(self) -> None:
        self._sets_done = 0
        self._current = None
        self._matcher = None
        self._set_onset_s = None

    def _lead_in_ms(self) -> float:
        return self._cfg.lead_in_ms

    def _start_data(self) -> dict[str, Any]:
        return {"mode": "FIVE", "totalSets": self._cfg.total_sets}

    def _next_trial(self) -> None:
        cells = self._gen.generate_set(self._cfg.targets_per_set, self._cfg.region)
        color = self._cfg.colors[self._sets_done % len(self._cfg.colors)]
        self._current = TargetSetTrial(index=self._sets_done, block=BLOCK, cells=cells, color=color)
        self._matcher = TargetSetMatcher(cells)
        self._set_onset_s = None
        self._machine.present_set(cells, onset_delay_ms=0, on_onset=self._on_set_shown)

    def _on_set_shown(self) -> None:
        assert self._current is not None
        self._set_onset_s = self._clock.now()
        logger.debug("set %d shown: %s", self._current.index + 1, self._current.cells)
        self._emit(
            EventKind.SET_START,
            {"set": self._current.index + 1, "color": self._current.color, "indices": list(self._current.cells)},
        )

    def _on_response(self, response: ResponseEvent) -> None:
        assert self._current is not None and self._matcher is not None and self._set_onset_s is not None
        click = self._matcher.match(response.cell)
        if click.outcome is None:
            return
        if click.outcome is ResponseOutcome.ERROR:
            self._aggregator.record_error(BLOCK)
            self._emit(EventKind.ERROR_EMPTY, {"idx": click.cell})
            return

        rt = reaction_time_ms(self._set_onset_s, response.at_s)
        distance = spatial_error_px(self._layout, click.cell, response)
        self._aggregator.record_hit(BLOCK, reaction_ms=rt, spatial_error_px=distance)
        self._emit(
            EventKind.HIT,
            {"idx": click.cell, "color": self._current.color, "reactionMs": rt, "distancePx": distance},
        )
        if not click.complete or not self._running:
            return

        self._aggregator.record_trial(
            TrialRecord(
                index=self._current.index,
                block=BLOCK,
                difficulty=self._current.difficulty,
                outcome=TrialOutcome.CORRECT,
            )
        )
        self._sets_done += 1
        if self._sets_done >= self._cfg.total_sets:
            self._complete()
            return
        self._schedule_next(self._cfg.inter_set_ms)

    def _details(self) -> dict[str, Any]:
        snap = self._aggregator.snapshot(BLOCK)
        return {
            "reactionTimeListMs": list(snap.reaction_times_ms),
            "distanceErrorPxList": list(snap.spatial_errors_px),
            "totalSets": self._sets_done,
        }

    def _progress(self) -> tuple[str | None, int, int]:
        number = self._sets_done + (1 if self._running else 0)
        return None, min(number, self._cfg.total_sets), self._cfg.total_sets

    def _lit_cells(self) -> tuple[LitCell, ...]:
        if self._current is None or self._matcher is None:
            return ()
        taken = self._matcher.taken
        return tuple(
            LitCell(cell=c, color=self._current.color) for c in self._machine.lit_cells if c not in taken
        )

    def _prompt(self) -> str:
        return super()._prompt() or "Click every lit square."

    def _difficulty_label(self) -> str:
        if self._matcher is None:
            return ""
        return f"{self._matcher.remaining} left"


def build_five_target_task(
    *,
    clock: Clock,
    seed: int,
    session_id: str | None = None,
    emit_event: EventSink | None = None,
    emit_score: ScoreSink | None = None,
    **overrides: Any,
) -> FiveTargetTask:
    return FiveTargetTask(
        clock=clock,
        seed=seed,
        config=FiveTargetConfig(**overrides),
        session_id=session_id,
        emit_event=emit_event,
        emit_score=emit_score,
    )
