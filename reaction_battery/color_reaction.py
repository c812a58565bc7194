"""Go/no-go color discrimination on the grid.

One stimulus at a time: green means click it inside the reaction window, red
means leave it alone. The window adapts to recent performance.
"""

from __future__ import annotations

import logging
from typing import Any

from .adaptation import ReactionWindowController
from .clock import Clock
from .cognitive_core import LitCell, ResponseOutcome, TrialOutcome
from .config import ColorReactionConfig, edge_color_reaction_config
from .events import EventKind, ResponseEvent
from .matching import classify_expiry, classify_go_no_go, spatial_error_px
from .metrics import TrialRecord
from .results import ReportBuilder
from .sinks import EventSink, ScoreSink
from .stimuli import StimulusGenerator
from .trial_engine import TrialEngine
from .trials import SingleStimulusTrial

logger = logging.getLogger(__name__)

GO_NO_GO_METRICS = (
    "reactionTimeAvgMs",
    "reactionTimeBestMs",
    "reactionsCount",
    "errors",
    "misses",
    "hits",
    "accuracyPct",
)


class GoNoGoTask(TrialEngine):
    def __init__(
        self,
        *,
        clock: Clock,
        seed: int,
        config: ColorReactionConfig | None = None,
        session_id: str | None = None,
        emit_event: EventSink | None = None,
        emit_score: ScoreSink | None = None,
    ) -> None:
        cfg = config or ColorReactionConfig()
        super().__init__(
            task_id=cfg.task_id,
            blocks=(cfg.region.value,),
            clock=clock,
            seed=seed,
            report_builder=ReportBuilder(task_id=cfg.task_id, metric_names=GO_NO_GO_METRICS),
            session_id=session_id,
            emit_event=emit_event,
            emit_score=emit_score,
        )
        self.title = cfg.title
        self._cfg = cfg
        self._block = cfg.region.value
        self._gen = StimulusGenerator(
            self._rng,
            geometry=cfg.geometry,
            go_probability=cfg.go_probability,
            near_probability=cfg.near_probability,
            near_offset=cfg.near_offset,
        )
        self._controller = self._new_controller()

        self._shown = 0
        self._last_cell: int | None = None
        self._current: SingleStimulusTrial | None = None
        self._onset_s: float | None = None

    @property
    def config(self) -> ColorReactionConfig:
        return self._cfg

    @property
    def current_trial(self) -> SingleStimulusTrial | None:
        return self._current

    @property
    def reaction_window_ms(self) -> int:
        return self._controller.window_ms

    @property
    def shown(self) -> int:
        return self._shown

    def window_history(self) -> tuple[int, ...]:
        return self._controller.history()

    def _new_controller(self) -> ReactionWindowController:
        cfg = self._cfg
        return ReactionWindowController(
            initial_ms=cfg.initial_window_ms,
            floor_ms=cfg.window_floor_ms,
            ceiling_ms=cfg.window_ceiling_ms,
            every=cfg.adapt_every,
            recent=cfg.recent_count,
            rate_scope=cfg.rate_scope,
        )

    def _reset_task(self) -> None:
        self._controller = self._new_controller()
        self._shown = 0
        self._last_cell = None
        self._current = None
        self._onset_s = None

    def _jitter_ms(self) -> int:
        return self._rng.randint(self._cfg.spawn_jitter_min_ms, self._cfg.spawn_jitter_max_ms)

    def _lead_in_ms(self) -> float:
        return self._jitter_ms()

    def _next_trial(self) -> None:
        stim = self._gen.generate_single(self._cfg.region, avoid_near=self._last_cell)
        self._last_cell = stim.cell
        self._current = SingleStimulusTrial(
            index=self._shown,
            block=self._block,
            reaction_window_ms=self._controller.window_ms,
            cell=stim.cell,
            color=stim.color,
            display_ms=self._rng.randint(self._cfg.display_min_ms, self._cfg.display_max_ms),
            onset_delay_ms=self._cfg.onset_delay_ms,
        )
        self._onset_s = None
        self._machine.present_single(
            stim.cell,
            onset_delay_ms=self._current.onset_delay_ms,
            on_onset=self._on_onset,
        )

    def _on_onset(self) -> None:
        trial = self._current
        assert trial is not None
        self._shown += 1
        self._onset_s = self._clock.now()
        logger.debug("stimulus %d: cell %d %s for %d ms", self._shown, trial.cell, trial.color, trial.display_ms)
        self._emit(
            EventKind.STIMULUS,
            {"n": self._shown, "idx": trial.cell, "color": trial.color, "displayMs": trial.display_ms},
        )
        if not self._running:
            return
        self._machine.arm_expiry(trial.display_ms, self._on_expired)

    def _on_expired(self) -> None:
        trial = self._current
        assert trial is not None
        outcome = classify_expiry(is_go=trial.is_go)
        if outcome is ResponseOutcome.MISS:
            self._aggregator.record_miss(self._block)
            self._emit(EventKind.MISS, {"idx": trial.cell, "color": trial.color})
        else:
            self._aggregator.record_correct_rejection(self._block)
        if self._observe(outcome):
            self._close_trial(outcome is ResponseOutcome.CORRECT_REJECTION)

    def _on_response(self, response: ResponseEvent) -> None:
        trial = self._current
        assert trial is not None and self._onset_s is not None
        result = classify_go_no_go(
            target_cell=trial.cell,
            is_go=trial.is_go,
            onset_s=self._onset_s,
            window_ms=trial.reaction_window_ms,
            response=response,
        )

        if not result.on_target:
            self._aggregator.record_error(self._block)
            self._emit(EventKind.ERROR_EMPTY, {"idx": response.cell})
            self._observe(ResponseOutcome.ERROR)
            return

        self._machine.disarm_expiry()
        distance = spatial_error_px(self._layout, trial.cell, response)
        if result.outcome is ResponseOutcome.HIT:
            self._aggregator.record_hit(self._block, reaction_ms=result.reaction_ms, spatial_error_px=distance)
            self._emit(
                EventKind.HIT,
                {"idx": trial.cell, "color": trial.color, "reactionMs": result.reaction_ms, "distancePx": distance},
            )
            observed = self._observe(ResponseOutcome.HIT, result.reaction_ms)
        else:
            self._aggregator.record_error(self._block)
            self._emit(
                EventKind.ERROR,
                {
                    "idx": trial.cell,
                    "color": trial.color,
                    "reason": result.reason,
                    "reactionMs": result.reaction_ms,
                    "distancePx": distance,
                },
            )
            observed = self._observe(ResponseOutcome.ERROR)
        if observed:
            self._close_trial(result.outcome is ResponseOutcome.HIT)

    def _observe(self, outcome: ResponseOutcome, reaction_ms: int | None = None) -> bool:
        """Feed the window controller. False when the session ended meanwhile."""

        if not self._running:
            return False
        adjustment = self._controller.observe(outcome, reaction_ms)
        if adjustment is not None:
            self._emit(
                EventKind.ADAPT,
                {"reactionWindowMs": adjustment.window_ms, "action": adjustment.action.value},
            )
        return self._running

    def _close_trial(self, ok: bool) -> None:
        trial = self._current
        assert trial is not None
        self._aggregator.record_trial(
            TrialRecord(
                index=trial.index,
                block=self._block,
                difficulty=trial.reaction_window_ms,
                outcome=TrialOutcome.CORRECT if ok else TrialOutcome.INCORRECT,
            )
        )
        if self._shown >= self._cfg.total_stimuli:
            self._complete()
            return
        self._schedule_next(self._jitter_ms())

    def _details(self) -> dict[str, Any]:
        snap = self._aggregator.snapshot(self._block)
        return {
            "reactionTimeListMs": list(snap.reaction_times_ms),
            "distanceErrorPxList": list(snap.spatial_errors_px),
            "reactionWindowHistoryMs": list(self._controller.history()),
            "totalStimuli": self._shown,
            "correctRejections": snap.correct_rejections,
        }

    def _start_data(self) -> dict[str, Any]:
        return {"totalStimuli": self._cfg.total_stimuli, "region": self._block}

    def _progress(self) -> tuple[str | None, int, int]:
        return None, self._shown, self._cfg.total_stimuli

    def _lit_cells(self) -> tuple[LitCell, ...]:
        if self._current is None:
            return ()
        return tuple(LitCell(cell=c, color=self._current.color) for c in self._machine.lit_cells)

    def _prompt(self) -> str:
        return super()._prompt() or "Click green squares. Leave red ones alone."

    def _difficulty_label(self) -> str:
        return f"window {self._controller.window_ms} ms"


def build_color_reaction_task(
    *,
    clock: Clock,
    seed: int,
    session_id: str | None = None,
    emit_event: EventSink | None = None,
    emit_score: ScoreSink | None = None,
    **overrides: Any,
) -> GoNoGoTask:
    return GoNoGoTask(
        clock=clock,
        seed=seed,
        config=ColorReactionConfig(**overrides),
        session_id=session_id,
        emit_event=emit_event,
        emit_score=emit_score,
    )


def build_edge_color_reaction_task(
    *,
    clock: Clock,
    seed: int,
    session_id: str | None = None,
    emit_event: EventSink | None = None,
    emit_score: ScoreSink | None = None,
    **overrides: Any,
) -> GoNoGoTask:
    return GoNoGoTask(
        clock=clock,
        seed=seed,
        config=edge_color_reaction_config(**overrides),
        session_id=session_id,
        emit_event=emit_event,
        emit_score=emit_score,
    )
