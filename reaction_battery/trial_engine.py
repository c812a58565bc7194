"""Shared lifecycle for every timed grid task.

A task engine is headless: it owns a scheduler, a presentation state machine
and a metrics aggregator, and it is driven by the host calling ``update()``
every frame and ``submit_response()`` on clicks. Subclasses supply trial
generation, response handling and the report layout.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .clock import Clock
from .cognitive_core import EngineSnapshot, LitCell, Phase, SeededRng
from .events import EngineEvent, EventKind, PresentationEvent, ResponseEvent
from .matching import CellLayout
from .metrics import MetricsAggregator, StatsSnapshot
from .presentation import PresentationStateMachine
from .results import Report, ReportBuilder
from .scheduler import Scheduler
from .sinks import EventSink, ScoreSink
from .stimuli import InsufficientSpaceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Session:
    session_id: str
    task_id: str
    started_wall_ms: int
    started_at_s: float


class TrialEngine:
    title = "Task"

    def __init__(
        self,
        *,
        task_id: str,
        blocks: tuple[str, ...],
        clock: Clock,
        seed: int,
        report_builder: ReportBuilder,
        positions: int = 0,
        session_id: str | None = None,
        emit_event: EventSink | None = None,
        emit_score: ScoreSink | None = None,
    ) -> None:
        self._task_id = str(task_id)
        self._clock = clock
        self._seed = int(seed)
        self._rng = SeededRng(self._seed)
        self._scheduler = Scheduler(clock)
        self._machine = PresentationStateMachine(scheduler=self._scheduler, clock=clock)
        self._aggregator = MetricsAggregator(blocks, positions=positions)
        self._report_builder = report_builder

        self._requested_session_id = session_id
        self._emit_event = emit_event
        self._emit_score = emit_score

        self._session: Session | None = None
        self._running = False
        self._ended_wall_ms: int | None = None
        self._abort_reason: str | None = None
        self._report: Report | None = None
        self._layout: CellLayout | None = None

    @property
    def task_id(self) -> str:
        return self._task_id

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def phase(self) -> Phase:
        return self._machine.phase

    @property
    def running(self) -> bool:
        return self._running

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def report(self) -> Report | None:
        """The report emitted at the end of the last session, if any."""
        return self._report

    def set_layout(self, layout: CellLayout | None) -> None:
        """Live cell geometry used for spatial error; the view refreshes it on render."""
        self._layout = layout

    def presentation_events(self) -> tuple[PresentationEvent, ...]:
        return self._machine.events()

    def stats(self) -> tuple[StatsSnapshot, ...]:
        return self._aggregator.snapshots()

    def pending_timers(self) -> int:
        return self._scheduler.pending_count()

    def start(self) -> None:
        if self._running:
            return
        self._scheduler.cancel_all()
        self._machine.halt()
        self._aggregator.reset()
        self._report = None
        self._ended_wall_ms = None
        self._abort_reason = None
        self._reset_task()

        session_id = self._requested_session_id or uuid.uuid4().hex
        self._session = Session(
            session_id=session_id,
            task_id=self._task_id,
            started_wall_ms=self._clock.wall_ms(),
            started_at_s=self._clock.now(),
        )
        self._running = True
        logger.info("session %s started (%s, seed=%d)", session_id, self._task_id, self._seed)
        self._emit(EventKind.START, {"sessionId": session_id, "taskId": self._task_id, **self._start_data()})
        if not self._running:
            return
        self._machine.begin(self._lead_in_ms(), self._guarded(self._next_trial))

    def stop(self) -> Report | None:
        """Cancel everything outstanding and emit the report built from what was accumulated."""

        if not self._running:
            return self._report
        logger.warning("session %s stopped during %s", self._session_id(), self.phase.value)
        return self._finish(forced=True)

    def update(self) -> None:
        if not self._running:
            return
        self._scheduler.run_due()

    def submit_response(self, cell: int, x: float | None = None, y: float | None = None) -> bool:
        """Deliver one click. Returns False when the engine is not accepting responses."""

        if not self._running or self._machine.phase is not Phase.RESPOND:
            return False
        response = ResponseEvent(
            cell=int(cell),
            at_s=self._clock.now(),
            wall_ms=self._clock.wall_ms(),
            x=None if x is None else float(x),
            y=None if y is None else float(y),
        )
        self._guarded(lambda: self._on_response(response))()
        return True

    def build_report(self) -> Report:
        """Pure read of the current counters."""

        session = self._session
        if session is None:
            session_id, duration_ms = self._requested_session_id or "", 0
        else:
            end = self._ended_wall_ms if self._ended_wall_ms is not None else self._clock.wall_ms()
            session_id, duration_ms = session.session_id, end - session.started_wall_ms
        details = self._details()
        if self._abort_reason is not None:
            details["abortReason"] = self._abort_reason
        return self._report_builder.build(
            session_id=session_id,
            duration_ms=duration_ms,
            snaps=self._aggregator.snapshots(),
            details=details,
        )

    def snapshot(self) -> EngineSnapshot:
        hits, errors, misses = self._aggregator.totals()
        block, number, total = self._progress()
        return EngineSnapshot(
            title=self.title,
            task_id=self._task_id,
            phase=self.phase,
            running=self._running,
            prompt=self._prompt(),
            block=block,
            trial_number=number,
            trials_total=total,
            lit_cells=self._lit_cells(),
            hits=hits,
            errors=errors,
            misses=misses,
            difficulty_label=self._difficulty_label(),
        )

    # Subclass hooks.

    def _reset_task(self) -> None:
        raise NotImplementedError

    def _lead_in_ms(self) -> float:
        return 0.0

    def _next_trial(self) -> None:
        raise NotImplementedError

    def _on_response(self, response: ResponseEvent) -> None:
        raise NotImplementedError

    def _details(self) -> dict[str, Any]:
        return {}

    def _start_data(self) -> dict[str, Any]:
        return {}

    def _end_data(self, report: Report) -> dict[str, Any]:
        return dict(report.metrics)

    def _progress(self) -> tuple[str | None, int, int]:
        return None, 0, 0

    def _lit_cells(self) -> tuple[LitCell, ...]:
        return ()

    def _prompt(self) -> str:
        if self._running:
            return ""
        if self._report is not None:
            return "Finished. Press Enter to run again, Esc to leave."
        return "Press Enter to start."

    def _difficulty_label(self) -> str:
        return ""

    # Helpers for subclasses.

    def _emit(self, kind: EventKind, data: dict[str, Any] | None = None) -> None:
        """Hand an event to the host.

        The host may call ``stop()`` from inside its callback, so callers check
        ``self._running`` before touching session state again.
        """
        if self._emit_event is None:
            return
        self._emit_event(EngineEvent(type=kind, ts=self._clock.wall_ms(), data=data or {}))

    def _schedule_next(self, delay_ms: float) -> None:
        self._machine.wait_between(delay_ms, self._guarded(self._next_trial))

    def _complete(self) -> None:
        if not self._running:
            return
        logger.info("session %s completed", self._session_id())
        self._finish(forced=False)

    def _finish(self, *, forced: bool) -> Report:
        self._machine.halt()
        self._scheduler.cancel_all()
        self._running = False
        self._ended_wall_ms = self._clock.wall_ms()
        self._aggregator.freeze()

        report = self.build_report()
        self._report = report
        self._emit(EventKind.END, {**self._end_data(report), "forced": forced})
        if self._emit_score is not None:
            self._emit_score(report)
        return report

    def _guarded(self, step: Callable[[], None]) -> Callable[[], None]:
        """Wrap a step so a generation error aborts the session before propagating."""

        def run() -> None:
            try:
                step()
            except InsufficientSpaceError as exc:
                logger.error("session %s aborted: %s", self._session_id(), exc)
                self._abort_reason = str(exc)
                if self._running:
                    self._finish(forced=True)
                raise

        return run

    def _session_id(self) -> str:
        return "-" if self._session is None else self._session.session_id
