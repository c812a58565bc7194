from __future__ import annotations

import heapq
import itertools
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass

from .clock import Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TimerHandle:
    id: int
    due_s: float


class Scheduler:
    """Delayed callbacks on an injected clock.

    Nothing fires on its own: the host polls ``run_due()`` (once per frame via
    ``engine.update()``). Callbacks fire ordered by due time, FIFO for equal
    due times. A callback that schedules another already-due callback gets it
    fired in the same pass.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self._queue: list[tuple[float, int]] = []
        self._callbacks: dict[int, Callable[[], None]] = {}

    def schedule_after(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        delay_ms = float(delay_ms)
        if not math.isfinite(delay_ms) or delay_ms < 0.0:
            raise ValueError(f"delay_ms must be a finite value >= 0, got {delay_ms!r}")

        handle = TimerHandle(id=next(self._ids), due_s=self._clock.now() + delay_ms / 1000.0)
        self._callbacks[handle.id] = callback
        # The id doubles as the FIFO tie-breaker: ids only ever increase.
        heapq.heappush(self._queue, (handle.due_s, handle.id))
        return handle

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is None:
            return
        self._callbacks.pop(handle.id, None)

    def cancel_all(self) -> None:
        if self._callbacks:
            logger.debug("cancelling %d pending timer(s)", len(self._callbacks))
        self._callbacks.clear()
        self._queue.clear()

    def pending_count(self) -> int:
        return len(self._callbacks)

    def is_pending(self, handle: TimerHandle) -> bool:
        return handle.id in self._callbacks

    def run_due(self) -> int:
        """Fire every callback whose due time has been reached. Returns the count fired."""

        fired = 0
        while self._queue:
            due_s, handle_id = self._queue[0]
            if due_s > self._clock.now():
                break
            heapq.heappop(self._queue)
            callback = self._callbacks.pop(handle_id, None)
            if callback is None:
                # Cancelled.
                continue
            fired += 1
            callback()
        return fired
