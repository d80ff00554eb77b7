"""
Progress stage mapper — fractional progress to discrete growth stages.

With the default of 5 stages a session shows 6 visual states (0..5); stage 5
is reached exactly when the full session length has been focused.
"""

from __future__ import annotations

import math

STAGE_COUNT = 5


def progress(active_duration: float, session_length: float) -> float:
    if session_length <= 0:
        return 1.0
    return min(1.0, max(0.0, active_duration / session_length))


def stage_for(active_duration: float, session_length: float, stage_count: int = STAGE_COUNT) -> int:
    if session_length <= 0:
        return stage_count
    clamped = min(float(session_length), max(0.0, active_duration))
    # multiply before dividing so exact stage boundaries stay exact
    stage = math.floor(clamped * stage_count / session_length)
    return min(stage_count, max(0, stage))


def remaining_for(active_duration: float, session_length: float) -> float:
    return min(float(session_length), max(0.0, session_length - active_duration))


def format_clock(seconds: float) -> str:
    """MM:SS, rounding partial seconds up so 0:00 only shows when time is out."""
    whole = max(0, math.ceil(seconds))
    return f"{whole // 60:02d}:{whole % 60:02d}"
