from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Time source for the engines.

    Core logic depends on this interface rather than calling real time directly.
    ``now()`` drives scheduling and reaction-time measurement; ``wall_ms()``
    only stamps outgoing events and reports.
    """

    def now(self) -> float:
        """Return monotonic seconds."""

    def wall_ms(self) -> int:
        """Return wall-clock epoch milliseconds."""


class RealClock:
    """Production clock backed by time.perf_counter() and time.time()."""

    def now(self) -> float:
        return time.perf_counter()

    def wall_ms(self) -> int:
        return int(time.time() * 1000.0)
