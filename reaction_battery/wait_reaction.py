"""Central cue, peripheral target.

A colored cue fills the central block, and after a fixed delay the same color
appears on one peripheral cell. The target stays up until the player clicks;
the first click decides the trial.
"""

from __future__ import annotations

import logging
from typing import Any

from .clock import Clock
from .cognitive_core import LitCell, Phase, TrialOutcome
from .config import WaitReactionConfig
from .events import EventKind, ResponseEvent
from .matching import reaction_time_ms, spatial_error_px
from .metrics import TrialRecord
from .results import ReportBuilder
from .sinks import EventSink, ScoreSink
from .stimuli import StimulusGenerator
from .trial_engine import TrialEngine
from .trials import CuedTargetTrial

logger = logging.getLogger(__name__)

WAIT_METRICS = ("hits", "errors", "accuracyPct", "reactionTimeAvgMs", "reactionTimeBestMs")

BLOCK = "wait"
QUADRANTS = ("A", "B", "C", "D")


class WaitReactionTask(TrialEngine):
    def __init__(
        self,
        *,
        clock: Clock,
        seed: int,
        config: WaitReactionConfig | None = None,
        session_id: str | None = None,
        emit_event: EventSink | None = None,
        emit_score: ScoreSink | None = None,
    ) -> None:
        cfg = config or WaitReactionConfig()
        super().__init__(
            task_id=cfg.task_id,
            blocks=(BLOCK,),
            clock=clock,
            seed=seed,
            report_builder=ReportBuilder(task_id=cfg.task_id, metric_names=WAIT_METRICS),
            session_id=session_id,
            emit_event=emit_event,
            emit_score=emit_score,
        )
        self.title = cfg.title
        self._cfg = cfg
        self._gen = StimulusGenerator(self._rng, geometry=cfg.geometry)
        self._cue_cells = cfg.geometry.cells(cfg.cue_region)

        self._done = 0
        self._current: CuedTargetTrial | None = None
        self._onset_s: float | None = None
        self._by_quadrant: dict[str, dict[str, int]] = {}

    @property
    def config(self) -> WaitReactionConfig:
        return self._cfg

    @property
    def current_trial(self) -> CuedTargetTrial | None:
        return self._current

    @property
    def trials_done(self) -> int:
        return self._done

    def _reset_task(self) -> None:
        self._done = 0
        self._current = None
        self._onset_s = None
        self._by_quadrant = {q: {"hits": 0, "errors": 0} for q in QUADRANTS}

    def _lead_in_ms(self) -> float:
        return self._cfg.lead_in_ms

    def _start_data(self) -> dict[str, Any]:
        return {"totalTrials": self._cfg.total_trials}

    def _next_trial(self) -> None:
        cell = self._gen.generate_sequence(1, self._cfg.target_region)[0]
        self._current = CuedTargetTrial(
            index=self._done,
            block=BLOCK,
            cell=cell,
            color=self._rng.choice(self._cfg.cue_colors),
            quadrant=self._cfg.geometry.quadrant(cell),
            cue_delay_ms=self._cfg.cue_delay_ms,
        )
        self._onset_s = None
        self._machine.present_single(cell, onset_delay_ms=self._cfg.cue_delay_ms, on_onset=self._on_target_shown)
        self._emit(EventKind.CENTRAL_STIM, {"color": self._current.color})

    def _on_target_shown(self) -> None:
        trial = self._current
        assert trial is not None
        self._onset_s = self._clock.now()
        logger.debug("trial %d: target %d in %s", trial.index + 1, trial.cell, trial.quadrant)
        self._emit(EventKind.PERIPH_STIM, {"quadrant": trial.quadrant, "idx": trial.cell, "color": trial.color})

    def _on_response(self, response: ResponseEvent) -> None:
        trial = self._current
        assert trial is not None and self._onset_s is not None
        rt = reaction_time_ms(self._onset_s, response.at_s)
        clicked_quadrant = self._cfg.geometry.quadrant(response.cell)
        ok = response.cell == trial.cell

        if ok:
            distance = spatial_error_px(self._layout, trial.cell, response)
            self._aggregator.record_hit(BLOCK, reaction_ms=rt, spatial_error_px=distance)
            self._by_quadrant[trial.quadrant]["hits"] += 1
            self._emit(
                EventKind.HIT,
                {"quadrant": clicked_quadrant, "idx": response.cell, "reactionMs": rt, "distancePx": distance},
            )
        else:
            self._aggregator.record_error(BLOCK)
            self._by_quadrant[trial.quadrant]["errors"] += 1
            self._emit(
                EventKind.ERROR,
                {
                    "quadrant": clicked_quadrant,
                    "idx": response.cell,
                    "expectedQuadrant": trial.quadrant,
                    "expectedIdx": trial.cell,
                    "reactionMs": rt,
                },
            )
        if not self._running:
            return

        self._aggregator.record_trial(
            TrialRecord(
                index=trial.index,
                block=BLOCK,
                difficulty=trial.difficulty,
                outcome=TrialOutcome.CORRECT if ok else TrialOutcome.INCORRECT,
            )
        )
        self._done += 1
        if self._done >= self._cfg.total_trials:
            self._complete()
            return
        self._schedule_next(self._cfg.inter_trial_ms)

    def _details(self) -> dict[str, Any]:
        snap = self._aggregator.snapshot(BLOCK)
        return {
            "trials": self._done,
            "reactionTimeListMs": list(snap.reaction_times_ms),
            "distanceErrorPxList": list(snap.spatial_errors_px),
            "perQuadrant": {q: dict(v) for q, v in self._by_quadrant.items()},
        }

    def _progress(self) -> tuple[str | None, int, int]:
        number = self._done + (1 if self._running else 0)
        return None, min(number, self._cfg.total_trials), self._cfg.total_trials

    def _lit_cells(self) -> tuple[LitCell, ...]:
        trial = self._current
        if trial is None or self.phase not in (Phase.PRESENT, Phase.RESPOND):
            return ()
        cue = tuple(LitCell(cell=c, color=trial.color) for c in self._cue_cells if c != trial.cell)
        return cue + tuple(LitCell(cell=c, color=trial.color) for c in self._machine.lit_cells)

    def _prompt(self) -> str:
        return super()._prompt() or "Wait for the color to appear outside the center, then click it."


def build_wait_reaction_task(
    *,
    clock: Clock,
    seed: int,
    session_id: str | None = None,
    emit_event: EventSink | None = None,
    emit_score: ScoreSink | None = None,
    **overrides: Any,
) -> WaitReactionTask:
    return WaitReactionTask(
        clock=clock,
        seed=seed,
        config=WaitReactionConfig(**overrides),
        session_id=session_id,
        emit_event=emit_event,
        emit_score=emit_score,
    )
