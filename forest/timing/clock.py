"""
Clock abstraction — monotonic time for elapsed-time math, wall time for stamps.

Elapsed time is always measured with a monotonic source so that timezone,
DST or manual clock changes cannot shorten or stretch a session. Wall-clock
datetimes are only used to stamp records (start/end) for the calendar-based
statistics.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Monotonic seconds. Never regresses."""
        ...


WallClock = Callable[[], datetime]


def local_now() -> datetime:
    """Current local time as an aware datetime."""
    return datetime.now().astimezone()


class MonotonicClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """
    Controllable clock for tests and simulations.

    Usage:
        clock = ManualClock()
        clock.advance(60)
        clock.now()   # 60.0
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards; use set() to simulate a regression")
        self._now += seconds
        return self._now

    def set(self, value: float) -> None:
        self._now = float(value)


def elapsed_since(clock: Clock, anchor: float) -> float:
    """Seconds since *anchor*; a regressed clock counts as zero elapsed."""
    return max(0.0, clock.now() - anchor)
