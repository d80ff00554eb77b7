"""
Pydantic schemas for the FastAPI local API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..session.engine import EngineStatus
from ..session.state import FocusSession
from ..stats.snapshot import StatsSnapshot

# ── Sessions ───────────────────────────────────────────────────────────────

class SessionOut(BaseModel):
    id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    state: str = Field(..., description="idle | active | paused | completed | abandoned")
    active_duration: float = Field(..., ge=0.0)
    paused_duration: float = Field(..., ge=0.0)

    @classmethod
    def from_session(cls, s: FocusSession) -> "SessionOut":
        return cls(
            id=s.id,
            start_time=s.start_time,
            end_time=s.end_time,
            state=s.state.value,
            active_duration=s.active_duration,
            paused_duration=s.paused_duration,
        )


class SessionStatusOut(BaseModel):
    state: str
    session: Optional[SessionOut] = None
    remaining_seconds: float = Field(..., ge=0.0)
    formatted_remaining: str
    stage: int = Field(..., ge=0)
    progress: float = Field(..., ge=0.0, le=1.0)
    can_pause: bool
    can_resume: bool
    pending_writes: int

    @classmethod
    def from_status(cls, st: EngineStatus) -> "SessionStatusOut":
        return cls(
            state=st.state.value,
            session=SessionOut.from_session(st.session) if st.session else None,
            remaining_seconds=st.remaining_seconds,
            formatted_remaining=st.formatted_remaining,
            stage=st.stage,
            progress=st.progress,
            can_pause=st.can_pause,
            can_resume=st.can_resume,
            pending_writes=st.pending_writes,
        )


# ── Host lifecycle ─────────────────────────────────────────────────────────

class LifecycleSignalIn(BaseModel):
    timestamp: Optional[datetime] = Field(
        default=None, description="When the host suspended/resumed (default: now)"
    )


class LifecycleOut(BaseModel):
    in_background: bool
    accepted: bool
    background_seconds: Optional[float] = None
    status: SessionStatusOut


# ── Statistics ─────────────────────────────────────────────────────────────

class StatsOut(BaseModel):
    total_count: int
    total_active_time: float
    todays_count: int
    current_streak: int
    longest_streak: int
    completion_rate: float = Field(..., ge=0.0, le=1.0)
    abandoned_count: int
    total_sessions: int
    todays_active_time: float
    total_focus_hours: float
    average_sessions_per_day: float
    formatted_total_focus_time: str

    @classmethod
    def from_snapshot(cls, snap: StatsSnapshot) -> "StatsOut":
        return cls(
            total_count=snap.total_count,
            total_active_time=snap.total_active_time,
            todays_count=snap.todays_count,
            current_streak=snap.current_streak,
            longest_streak=snap.longest_streak,
            completion_rate=snap.completion_rate,
            abandoned_count=snap.abandoned_count,
            total_sessions=snap.total_sessions,
            todays_active_time=snap.todays_active_time,
            total_focus_hours=snap.total_focus_hours,
            average_sessions_per_day=snap.average_sessions_per_day,
            formatted_total_focus_time=snap.formatted_total_focus_time,
        )
