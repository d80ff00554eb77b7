"""
Host Lifecycle — suspend/resume signals from the host process.

The pair is one-shot: only one suspend interval is tracked at a time. A second
suspend before the resume, or a resume with no suspend, is a usage error and
is ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..timing.clock import WallClock, local_now
from .engine import FocusSessionEngine

logger = logging.getLogger(__name__)


def _aware(ts: datetime) -> datetime:
    # naive timestamps are taken as local time
    return ts if ts.tzinfo is not None else ts.astimezone()


class HostLifecycle:

    def __init__(self, engine: FocusSessionEngine, wall_clock: WallClock = local_now):
        self._engine = engine
        self._wall_clock = wall_clock
        self._suspended_at: Optional[datetime] = None

    @property
    def in_background(self) -> bool:
        return self._suspended_at is not None

    def time_in_background(self) -> Optional[float]:
        if self._suspended_at is None:
            return None
        return max(0.0, (_aware(self._wall_clock()) - self._suspended_at).total_seconds())

    def on_suspend(self, timestamp: Optional[datetime] = None) -> bool:
        if self._suspended_at is not None:
            logger.warning("Suspend received while already suspended; ignored")
            return False
        self._suspended_at = _aware(timestamp or self._wall_clock())
        self._engine.note_suspend()
        logger.debug("Host suspended at %s", self._suspended_at.isoformat())
        return True

    def on_resume(self, timestamp: Optional[datetime] = None) -> Optional[float]:
        """Returns the wall-clock gap handed to the engine, or None if ignored."""
        if self._suspended_at is None:
            logger.warning("Resume received without a matching suspend; ignored")
            return None
        resumed_at = _aware(timestamp or self._wall_clock())
        gap = max(0.0, (resumed_at - self._suspended_at).total_seconds())
        self._suspended_at = None
        logger.debug("Host resumed after %.1fs", gap)
        self._engine.sync_background(gap)
        return gap
