"""
Elapsed-Time Reconciler — authoritative active-time bookkeeping for one session.

Active time is never accumulated tick by tick. It is always recomputed as

    active = active_at_anchor + (clock.now() - anchor)

so a host that was suspended for an arbitrary gap only needs a single
catch-up computation on resume, not one synthetic tick per missed second.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..timing.clock import Clock

logger = logging.getLogger(__name__)


class ElapsedTimeReconciler:

    def __init__(self, clock: Clock, session_length: float):
        self._clock = clock
        self.session_length = float(session_length)
        self._anchor: Optional[float] = None        # start of the current active period
        self._active_at_anchor: float = 0.0
        self._pause_anchor: Optional[float] = None
        self._suspended_at: Optional[float] = None
        self._observed: float = 0.0                 # high-water mark, survives clock regressions

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._anchor is not None

    @property
    def suspended(self) -> bool:
        return self._suspended_at is not None

    def active_duration(self) -> float:
        if self._anchor is None:
            return self._active_at_anchor
        value = self._clamp(self._active_at_anchor + self._delta(self._anchor))
        self._observed = max(self._observed, value)
        return self._observed

    # ------------------------------------------------------------------
    # Active / paused periods
    # ------------------------------------------------------------------

    def begin(self) -> None:
        self._anchor = self._clock.now()
        self._active_at_anchor = 0.0
        self._observed = 0.0
        self._pause_anchor = None

    def pause(self) -> float:
        """Fold the running period into the frozen total and start a pause."""
        self._active_at_anchor = self.active_duration()
        self._anchor = None
        self._pause_anchor = self._clock.now()
        return self._active_at_anchor

    def resume(self) -> float:
        """Close the pause; returns its length in seconds."""
        paused = self._delta(self._pause_anchor) if self._pause_anchor is not None else 0.0
        self._pause_anchor = None
        self._anchor = self._clock.now()
        return paused

    def stop(self) -> float:
        """Freeze for good (terminal state)."""
        self._active_at_anchor = self.active_duration()
        self._anchor = None
        self._pause_anchor = None
        return self._active_at_anchor

    # ------------------------------------------------------------------
    # Suspension catch-up
    #
    # The suspend mark belongs to the host, not to a session: begin() and
    # stop() leave it alone. A session started mid-suspension is measured
    # against the original mark, so the part of the gap that preceded it
    # counts as already observed and is never credited.
    # ------------------------------------------------------------------

    def mark_suspended(self) -> bool:
        if self._suspended_at is not None:
            logger.warning("Suspend signalled twice without a resume; keeping the first snapshot")
            return False
        self._suspended_at = self._clock.now()
        return True

    def catch_up(self, reported_elapsed: float) -> float:
        """
        Apply a host-reported suspension gap in one step.

        Whatever part of the gap the monotonic clock already observed since
        mark_suspended() is not credited twice. Returns the seconds credited.
        While a pause is open the credit belongs to the pause, and the caller
        adds it to the paused total.
        """
        if reported_elapsed < 0:
            logger.debug("Negative background delta %.3fs treated as zero", reported_elapsed)
            reported_elapsed = 0.0
        measured = self._delta(self._suspended_at) if self._suspended_at is not None else 0.0
        self._suspended_at = None
        credit = max(0.0, reported_elapsed - measured)

        if self._anchor is not None:
            self._active_at_anchor = self._clamp(self.active_duration() + credit)
            self._anchor = self._clock.now()
        return credit

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _delta(self, since: float) -> float:
        delta = self._clock.now() - since
        if delta < 0:
            logger.debug("Clock regression of %.3fs ignored", -delta)
            return 0.0
        return delta

    def _clamp(self, value: float) -> float:
        return min(self.session_length, max(0.0, value))
