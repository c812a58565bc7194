from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .adaptation import SpanController
from .clock import Clock
from .cognitive_core import LitCell, TrialOutcome
from .config import SpanTaskConfig, span_blocks_config
from .events import EventKind, ResponseEvent
from .matching import SequenceMatcher, reaction_time_ms
from .metrics import StatsSnapshot, TrialRecord
from .results import ReportBuilder, stm_index
from .sinks import EventSink, ScoreSink
from .stimuli import StimulusGenerator
from .trial_engine import TrialEngine
from .trials import SequenceTrial

logger = logging.getLogger(__name__)

SPAN_METRICS = ("spanMax", "accuracyPct", "errors", "reactionTimeAvgMs", "reactionTimeBestMs")

_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_PALETTE = ("#F87171", "#34D399", "#60A5FA", "#FBBF24", "#A78BFA", "#F472B6")
_SHAPES = ("square", "circle", "diamond", "triangle")
LIT_COLOR = "#F87171"


def symbol_for(modality: str, cell: int) -> LitCell:
    """How a lit cell looks in a given modality block."""

    n = int(cell)
    if modality == "digits":
        return LitCell(cell=n, color="#FFFFFF", label=str(n % 10))
    if modality == "letters":
        return LitCell(cell=n, color="#FFFFFF", label=_LETTERS[n % len(_LETTERS)])
    if modality == "colors":
        return LitCell(cell=n, color=_PALETTE[n % len(_PALETTE)])
    if modality == "shapes":
        return LitCell(cell=n, color="#FFFFFF", label=_SHAPES[n % len(_SHAPES)])
    return LitCell(cell=n, color=LIT_COLOR)


class SpanTask(TrialEngine):
    """Sequence-span recall in fixed-size blocks.

    Each trial lights ``length`` distinct cells one at a time; the player then
    clicks them back in order. The length adapts +1/-1 per trial and restarts
    at ``start_len`` in every block.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        seed: int,
        config: SpanTaskConfig | None = None,
        session_id: str | None = None,
        emit_event: EventSink | None = None,
        emit_score: ScoreSink | None = None,
    ) -> None:
        cfg = config or SpanTaskConfig()
        composite = None
        if cfg.with_stm_index:

            def composite(snaps: Sequence[StatsSnapshot]) -> dict[str, int]:
                return {"STM_Index": stm_index(snaps, max_len=cfg.max_len)}

        super().__init__(
            task_id=cfg.task_id,
            blocks=cfg.blocks,
            clock=clock,
            seed=seed,
            report_builder=ReportBuilder(
                task_id=cfg.task_id,
                metric_names=SPAN_METRICS,
                per_block=True,
                include_completion_time=False,
                composite=composite,
            ),
            positions=cfg.max_len,
            session_id=session_id,
            emit_event=emit_event,
            emit_score=emit_score,
        )
        self.title = cfg.title
        self._cfg = cfg
        self._gen = StimulusGenerator(self._rng, geometry=cfg.geometry)
        self._controller = SpanController(start=cfg.start_len, min_len=cfg.min_len, max_len=cfg.max_len)

        self._block_idx = 0
        self._trial_idx = 0
        self._trial_count = 0
        self._current: SequenceTrial | None = None
        self._matcher: SequenceMatcher | None = None
        self._last_click_s: float | None = None

    @property
    def config(self) -> SpanTaskConfig:
        return self._cfg

    @property
    def current_trial(self) -> SequenceTrial | None:
        return self._current

    @property
    def sequence_length(self) -> int:
        return self._controller.length

    @property
    def block(self) -> str:
        return self._cfg.blocks[self._block_idx]

    def length_history(self) -> tuple[int, ...]:
        return self._controller.history()

    def _reset_task(self) -> None:
        self._controller = SpanController(
            start=self._cfg.start_len, min_len=self._cfg.min_len, max_len=self._cfg.max_len
        )
        self._block_idx = 0
        self._trial_idx = 0
        self._trial_count = 0
        self._current = None
        self._matcher = None
        self._last_click_s = None

    def _lead_in_ms(self) -> float:
        return self._cfg.lead_in_ms

    def _start_data(self) -> dict[str, Any]:
        return {"blocks": list(self._cfg.blocks), "seqsPerBlock": self._cfg.seqs_per_block}

    def _next_trial(self) -> None:
        region = self._cfg.regions[self._block_idx]
        length = self._controller.length
        cells = self._gen.generate_sequence(length, region)
        self._current = SequenceTrial(
            index=self._trial_count,
            block=self.block,
            length=length,
            cells=cells,
            on_ms=self._cfg.on_ms,
            gap_ms=self._cfg.gap_ms,
        )
        self._trial_count += 1
        self._matcher = SequenceMatcher(cells)
        self._last_click_s = None
        logger.debug("trial %d (%s): length %d", self._current.index, self.block, length)
        self._machine.present_sequence(
            cells,
            on_ms=self._cfg.on_ms,
            gap_ms=self._cfg.gap_ms,
            on_respond=self._on_presented,
        )

    def _on_presented(self) -> None:
        assert self._current is not None
        self._last_click_s = self._machine.respond_started_s
        self._emit(
            EventKind.SEQ_PRESENTED,
            {"mode": self.block, "len": self._current.length, "trial": self._trial_idx + 1},
        )

    def _on_response(self, response: ResponseEvent) -> None:
        assert self._current is not None and self._matcher is not None
        step = self._matcher.match(response.cell)
        if step is None:
            return

        # Latency is measured from the previous click (or the respond onset).
        since = self._last_click_s if self._last_click_s is not None else response.at_s
        rt = reaction_time_ms(since, response.at_s)
        self._last_click_s = response.at_s

        block = self.block
        self._aggregator.log(
            {
                "ts": response.wall_ms,
                "mode": block,
                "trial": self._trial_idx + 1,
                "pos": step.position,
                "expected": step.expected,
                "clicked": step.clicked,
                "correct": step.correct,
                "rt": rt,
            }
        )

        if step.correct:
            self._aggregator.record_hit(block, reaction_ms=rt if rt > 0 else None, position=step.position)
            self._emit(EventKind.HIT, {"mode": block, "pos": step.position, "cell": step.clicked, "reactionMs": rt})
            if step.complete and self._running:
                self._finish_trial(True)
        else:
            self._aggregator.record_error(block, position=step.position)
            self._emit(
                EventKind.ERROR,
                {"mode": block, "pos": step.position, "cell": step.clicked, "expected": step.expected},
            )
            if self._running:
                self._finish_trial(False)

    def _finish_trial(self, ok: bool) -> None:
        assert self._current is not None
        self._aggregator.record_trial(
            TrialRecord(
                index=self._current.index,
                block=self._current.block,
                difficulty=self._current.length,
                outcome=TrialOutcome.CORRECT if ok else TrialOutcome.INCORRECT,
            )
        )
        next_len = self._controller.update(ok)
        self._emit(EventKind.ADAPT, {"mode": self.block, "ok": ok, "sequenceLength": next_len})
        if not self._running:
            return

        if self._trial_idx + 1 < self._cfg.seqs_per_block:
            self._trial_idx += 1
            self._schedule_next(self._cfg.inter_trial_ms)
            return

        self._emit(EventKind.BLOCK_END, {"mode": self.block, "trials": self._cfg.seqs_per_block})
        if not self._running:
            return
        if self._block_idx + 1 >= len(self._cfg.blocks):
            self._complete()
            return

        self._block_idx += 1
        self._trial_idx = 0
        self._controller.reset()
        self._schedule_next(self._cfg.inter_block_ms)

    def _details(self) -> dict[str, Any]:
        per_block: dict[str, Any] = {}
        for snap in self._aggregator.snapshots():
            per_block[snap.block] = {
                "spanMax": snap.best_difficulty,
                "hits": snap.hits,
                "total": snap.total_attempts,
                "errors": snap.errors,
                "rtList": list(snap.reaction_times_ms),
                "serialPosition": {
                    "correct": list(snap.position_correct),
                    "total": list(snap.position_total),
                },
                "trials": [{"len": t.difficulty, "ok": t.outcome is TrialOutcome.CORRECT} for t in snap.trials],
            }
        return {
            "perBlock": per_block,
            "lengthHistory": list(self._controller.history()),
            "trialLog": list(self._aggregator.trial_log()),
        }

    def _progress(self) -> tuple[str | None, int, int]:
        return self.block, self._trial_idx + 1, self._cfg.seqs_per_block

    def _lit_cells(self) -> tuple[LitCell, ...]:
        return tuple(symbol_for(self.block, c) for c in self._machine.lit_cells)

    def _prompt(self) -> str:
        base = super()._prompt()
        if base:
            return base
        return {
            "between": "Get ready",
            "present": "Watch the sequence",
            "respond": "Click the cells in the same order",
        }.get(self.phase.value, "")

    def _difficulty_label(self) -> str:
        return f"length {self._controller.length}"


def build_central_peripheral_span_task(
    *,
    clock: Clock,
    seed: int,
    session_id: str | None = None,
    emit_event: EventSink | None = None,
    emit_score: ScoreSink | None = None,
    **overrides: Any,
) -> SpanTask:
    return SpanTask(
        clock=clock,
        seed=seed,
        config=SpanTaskConfig(**overrides),
        session_id=session_id,
        emit_event=emit_event,
        emit_score=emit_score,
    )


def build_span_blocks_task(
    *,
    clock: Clock,
    seed: int,
    session_id: str | None = None,
    emit_event: EventSink | None = None,
    emit_score: ScoreSink | None = None,
    **overrides: Any,
) -> SpanTask:
    return SpanTask(
        clock=clock,
        seed=seed,
        config=span_blocks_config(**overrides),
        session_id=session_id,
        emit_event=emit_event,
        emit_score=emit_score,
    )
