from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Sequence

from .clock import Clock
from .cognitive_core import Phase
from .events import PresentationEvent, PresentationEventType
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class PresentationStateMachine:
    """idle -> between -> present -> respond -> between -> ... -> idle.

    Every transition after ``begin()`` is driven by a scheduler callback or by the
    engine reacting to a response. The machine owns each handle it schedules, so
    ``halt()`` cancels the current trial's timers as a unit. Once halted, calls
    that would schedule something are ignored until the next ``begin()``.
    """

    def __init__(self, *, scheduler: Scheduler, clock: Clock) -> None:
        self._scheduler = scheduler
        self._clock = clock

        self._phase = Phase.IDLE
        self._tokens = itertools.count(1)
        self._handles: dict[int, TimerHandle] = {}
        self._expiry: int | None = None
        self._lit: tuple[int, ...] = ()
        self._respond_started_s: float | None = None
        self._events: list[PresentationEvent] = []

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def lit_cells(self) -> tuple[int, ...]:
        return self._lit

    @property
    def respond_started_s(self) -> float | None:
        return self._respond_started_s

    def events(self) -> tuple[PresentationEvent, ...]:
        return tuple(self._events)

    def pending_count(self) -> int:
        return len(self._handles)

    def begin(self, lead_in_ms: float, callback: Callable[[], None]) -> None:
        if self._phase is not Phase.IDLE:
            raise RuntimeError(f"cannot begin from phase {self._phase.value!r}")
        self._events.clear()
        self._set_phase(Phase.BETWEEN)
        self._after(lead_in_ms, callback)

    def present_sequence(
        self,
        cells: Sequence[int],
        *,
        on_ms: float,
        gap_ms: float,
        on_respond: Callable[[], None],
    ) -> None:
        """Light ``cells`` one at a time, then open the respond phase."""

        if self._halted("present_sequence"):
            return
        self._require(Phase.BETWEEN)
        self._set_phase(Phase.PRESENT)
        t = 0.0
        for cell in cells:
            self._after(t, lambda c=cell: self._onset((c,)))
            t += on_ms
            self._after(t, self._offset)
            t += gap_ms
        self._after(t, lambda: self._open_respond(on_respond))

    def present_single(
        self,
        cell: int,
        *,
        onset_delay_ms: float,
        on_onset: Callable[[], None],
    ) -> None:
        self.present_set((cell,), onset_delay_ms=onset_delay_ms, on_onset=on_onset)

    def present_set(
        self,
        cells: Sequence[int],
        *,
        onset_delay_ms: float,
        on_onset: Callable[[], None],
    ) -> None:
        """Light all ``cells`` together; responses are accepted from the onset on."""

        if self._halted("present_set"):
            return
        self._require(Phase.BETWEEN)
        self._set_phase(Phase.PRESENT)
        group = tuple(cells)

        def fire() -> None:
            self._onset(group)
            self._open_respond(on_onset)

        self._after(onset_delay_ms, fire)

    def arm_expiry(self, delay_ms: float, callback: Callable[[], None]) -> None:
        if self._halted("arm_expiry"):
            return
        self.disarm_expiry()
        self._expiry = self._after(delay_ms, self._expire(callback))

    def disarm_expiry(self) -> None:
        if self._expiry is not None:
            self._cancel(self._expiry)
            self._expiry = None

    def wait_between(self, delay_ms: float, callback: Callable[[], None]) -> None:
        """Close the current trial and schedule the next step after ``delay_ms``."""

        if self._halted("wait_between"):
            return
        self.disarm_expiry()
        if self._lit:
            self._offset()
        self._respond_started_s = None
        self._set_phase(Phase.BETWEEN)
        self._after(delay_ms, callback)

    def halt(self) -> None:
        """Cancel every owned timer and return to idle. Safe from any phase."""

        for handle in list(self._handles.values()):
            self._scheduler.cancel(handle)
        self._handles.clear()
        self._expiry = None
        if self._lit:
            self._offset()
        self._respond_started_s = None
        if self._phase is not Phase.IDLE:
            self._set_phase(Phase.IDLE)

    def _after(self, delay_ms: float, fn: Callable[[], None]) -> int:
        token = next(self._tokens)

        def fire() -> None:
            self._handles.pop(token, None)
            fn()

        self._handles[token] = self._scheduler.schedule_after(delay_ms, fire)
        return token

    def _cancel(self, token: int) -> None:
        handle = self._handles.pop(token, None)
        if handle is not None:
            self._scheduler.cancel(handle)

    def _expire(self, callback: Callable[[], None]) -> Callable[[], None]:
        def fire() -> None:
            self._expiry = None
            callback()

        return fire

    def _halted(self, what: str) -> bool:
        if self._phase is Phase.IDLE:
            logger.debug("%s ignored: machine is idle", what)
            return True
        return False

    def _require(self, phase: Phase) -> None:
        if self._phase is not phase:
            raise RuntimeError(f"expected phase {phase.value!r}, machine is in {self._phase.value!r}")

    def _onset(self, cells: tuple[int, ...]) -> None:
        self._lit = cells
        now = self._clock.now()
        for cell in cells:
            self._events.append(
                PresentationEvent(type=PresentationEventType.ONSET, at_s=now, phase=self._phase, cell=cell)
            )

    def _offset(self) -> None:
        now = self._clock.now()
        for cell in self._lit:
            self._events.append(
                PresentationEvent(type=PresentationEventType.OFFSET, at_s=now, phase=self._phase, cell=cell)
            )
        self._lit = ()

    def _open_respond(self, callback: Callable[[], None]) -> None:
        self._set_phase(Phase.RESPOND)
        self._respond_started_s = self._clock.now()
        callback()

    def _set_phase(self, phase: Phase) -> None:
        logger.debug("phase %s -> %s", self._phase.value, phase.value)
        self._phase = phase
        self._events.append(
            PresentationEvent(type=PresentationEventType.PHASE_CHANGE, at_s=self._clock.now(), phase=phase)
        )
