"""
/history and /stats — recorded sessions and the statistics derived from them.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ...api.schemas import SessionOut, StatsOut
from ...session.state import SessionState
from ...stats.snapshot import compute_stats

router = APIRouter(tags=["history"])


def _get_store(request: Request):
    return request.app.state.store


@router.get("/history", response_model=List[SessionOut])
def get_history(
    state: Optional[str] = Query(
        default=None, description="Filter by state (active|paused|completed|abandoned)"
    ),
    limit: int = Query(default=200, ge=1, le=5000),
    store=Depends(_get_store),
):
    """Recorded sessions, newest first."""
    try:
        wanted = SessionState(state) if state else None
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown state: {state}")
    sessions = store.query(state=wanted, limit=limit)
    return [SessionOut.from_session(s) for s in sessions]


@router.get("/stats", response_model=StatsOut)
def get_stats(store=Depends(_get_store)):
    """Aggregate statistics, recomputed from the full history on every call."""
    return StatsOut.from_snapshot(compute_stats(store.query_all()))
