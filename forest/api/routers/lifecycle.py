"""
/lifecycle — host suspend/resume signals driving the background catch-up.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request

from ...api.schemas import LifecycleOut, LifecycleSignalIn, SessionStatusOut

router = APIRouter(prefix="/lifecycle", tags=["lifecycle"])


def _get_lifecycle(request: Request):
    return request.app.state.lifecycle


def _get_engine(request: Request):
    return request.app.state.engine


@router.post("/suspend", response_model=LifecycleOut)
async def suspend(
    signal: Optional[LifecycleSignalIn] = None,
    lifecycle=Depends(_get_lifecycle),
    engine=Depends(_get_engine),
):
    accepted = lifecycle.on_suspend(signal.timestamp if signal else None)
    return LifecycleOut(
        in_background=lifecycle.in_background,
        accepted=accepted,
        status=SessionStatusOut.from_status(engine.status()),
    )


@router.post("/resume", response_model=LifecycleOut)
async def resume(
    signal: Optional[LifecycleSignalIn] = None,
    lifecycle=Depends(_get_lifecycle),
    engine=Depends(_get_engine),
):
    gap = lifecycle.on_resume(signal.timestamp if signal else None)
    return LifecycleOut(
        in_background=lifecycle.in_background,
        accepted=gap is not None,
        background_seconds=gap,
        status=SessionStatusOut.from_status(engine.status()),
    )
