"""
Statistics Engine — aggregate figures derived from the full session history.

Stateless: compute_stats() is re-run over the whole collection on every call,
so there is no cache to go stale. Calendar days are local days of a session's
end_time; "today" is re-evaluated per call, so day rollover needs no handling.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Set

from ..session.state import FocusSession, SessionState


@dataclass(frozen=True)
class StatsSnapshot:
    total_count: int            # completed sessions ("trees")
    total_active_time: float    # seconds, completed sessions only
    todays_count: int
    current_streak: int         # consecutive days with >= 1 completed session
    longest_streak: int
    completion_rate: float      # completed / (completed + abandoned), 0..1
    abandoned_count: int = 0
    total_sessions: int = 0     # every recorded session, in progress included
    todays_active_time: float = 0.0

    @property
    def total_focus_hours(self) -> float:
        return self.total_active_time / 3600.0

    @property
    def average_sessions_per_day(self) -> float:
        if self.current_streak <= 0:
            return 0.0
        return self.total_count / self.current_streak

    @property
    def formatted_total_focus_time(self) -> str:
        hours = int(self.total_active_time) // 3600
        minutes = (int(self.total_active_time) % 3600) // 60
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"


def local_day(ts: datetime) -> date:
    """Calendar day of *ts* in local time (naive datetimes are already local)."""
    if ts.tzinfo is None:
        return ts.date()
    return ts.astimezone().date()


def current_streak(days: Set[date], today: date) -> int:
    """
    Walk back from today while each day has a completed session. An empty
    today does not break the streak; the count then ends at yesterday.
    """
    check = today if today in days else today - timedelta(days=1)
    streak = 0
    while check in days:
        streak += 1
        check -= timedelta(days=1)
    return streak


def longest_streak(days: Iterable[date]) -> int:
    """Longest run of consecutive calendar days in a single forward pass."""
    best = 0
    run = 0
    last: Optional[date] = None
    for day in sorted(set(days)):
        if last is not None and (day - last).days == 1:
            run += 1
        else:
            run = 1
        best = max(best, run)
        last = day
    return best


def compute_stats(sessions: Iterable[FocusSession], today: Optional[date] = None) -> StatsSnapshot:
    if today is None:
        today = date.today()

    sessions = list(sessions)
    completed: List[FocusSession] = [
        s for s in sessions if s.state is SessionState.COMPLETED and s.end_time is not None
    ]
    abandoned_count = sum(1 for s in sessions if s.state is SessionState.ABANDONED)

    total_count = len(completed)
    completed_days = [local_day(s.end_time) for s in completed]  # type: ignore[arg-type]
    todays = [s for s, d in zip(completed, completed_days) if d == today]

    attempts = total_count + abandoned_count
    return StatsSnapshot(
        total_count=total_count,
        total_active_time=sum(s.active_duration for s in completed),
        todays_count=len(todays),
        current_streak=current_streak(set(completed_days), today),
        longest_streak=longest_streak(completed_days),
        completion_rate=total_count / attempts if attempts else 0.0,
        abandoned_count=abandoned_count,
        total_sessions=len(sessions),
        todays_active_time=sum(s.active_duration for s in todays),
    )
