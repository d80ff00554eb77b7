"""
/session — control the focus session: start, pause, resume, abandon.

The mutating endpoints are coroutines so they run on the event loop alongside
the ticker; the loop is the single context that mutates the engine.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ...api.schemas import SessionStatusOut

router = APIRouter(prefix="/session", tags=["session"])


def _get_engine(request: Request):
    return request.app.state.engine


@router.get("", response_model=SessionStatusOut)
async def get_session(engine=Depends(_get_engine)):
    """Current session status, reconciled against the clock."""
    engine.tick()
    return SessionStatusOut.from_status(engine.status())


@router.post("/start", response_model=SessionStatusOut)
async def start_session(engine=Depends(_get_engine)):
    """Start a session; returns the running one unchanged if it exists."""
    engine.start()
    return SessionStatusOut.from_status(engine.status())


@router.post("/pause", response_model=SessionStatusOut)
async def pause_session(engine=Depends(_get_engine)):
    engine.pause()
    return SessionStatusOut.from_status(engine.status())


@router.post("/resume", response_model=SessionStatusOut)
async def resume_session(engine=Depends(_get_engine)):
    engine.resume()
    return SessionStatusOut.from_status(engine.status())


@router.post("/abandon", response_model=SessionStatusOut)
async def abandon_session(engine=Depends(_get_engine)):
    engine.abandon()
    return SessionStatusOut.from_status(engine.status())


@router.post("/tick", response_model=SessionStatusOut)
async def tick_session(engine=Depends(_get_engine)):
    """Manual reconcile for hosts that drive their own timer."""
    engine.tick()
    return SessionStatusOut.from_status(engine.status())


@router.post("/flush", response_model=SessionStatusOut)
async def flush_pending(engine=Depends(_get_engine)):
    """Retry record writes that failed earlier."""
    engine.flush_pending()
    return SessionStatusOut.from_status(engine.status())
