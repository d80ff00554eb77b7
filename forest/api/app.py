"""
FastAPI application — local Forest Focus API.
Runs on http://127.0.0.1:8766 by default.

Per-app state (store, engine, ticker, lifecycle) lives on app.state so that
each call to create_app() produces a fully independent instance with no shared
module-level globals. Collaborators can be injected for tests.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..actions.notifications import DesktopNotificationScheduler, NotificationScheduler
from ..config import Config, config as default_config
from ..session.engine import FocusSessionEngine, PersistenceError
from ..session.lifecycle import HostLifecycle
from ..session.ticker import SessionTicker, bind_ticker
from ..storage.session_store import SqliteSessionStore
from ..timing.clock import Clock
from .schemas import SessionOut, SessionStatusOut

logger = logging.getLogger(__name__)


def create_app(
    cfg: Optional[Config] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[NotificationScheduler] = None,
    store=None,
) -> FastAPI:
    cfg = cfg or default_config

    # ------------------------------------------------------------------
    # Lifespan: initialises and tears down all per-app state
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.store = store if store is not None else SqliteSessionStore(cfg.db_path)
        app.state.notifier = notifier or DesktopNotificationScheduler(
            enabled=cfg.notifications_enabled
        )
        engine = FocusSessionEngine(
            app.state.store,
            app.state.notifier,
            clock=clock,
            session_length=cfg.session_length_s,
            stage_count=cfg.stage_count,
        )
        app.state.engine = engine
        app.state.lifecycle = HostLifecycle(engine)
        app.state.ticker = SessionTicker(engine, interval_s=cfg.tick_interval_ms / 1000.0)
        bind_ticker(engine, app.state.ticker)

        try:
            engine.recover(app.state.store.query_all())
        except PersistenceError as e:
            logger.warning("Could not record recovered session: %s", e)

        yield

        app.state.ticker.stop()
        if engine.pending_writes:
            try:
                engine.flush_pending()
            except PersistenceError as e:
                logger.error("%d session write(s) not saved at shutdown: %s", engine.pending_writes, e)
        app.state.notifier.cancel_all()

    app = FastAPI(
        title="Forest Focus",
        description="Local focus-timer engine: sessions, background catch-up and streak statistics",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = cfg

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "null"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .routers import history, lifecycle, session

    app.include_router(session.router)
    app.include_router(lifecycle.router)
    app.include_router(history.router)

    @app.exception_handler(PersistenceError)
    async def persistence_failed(request: Request, exc: PersistenceError):
        # the transition itself happened; report it alongside the failure
        engine = request.app.state.engine
        return JSONResponse(
            status_code=503,
            content={
                "detail": str(exc),
                "operation": exc.operation,
                "session": SessionOut.from_session(exc.session).model_dump(mode="json"),
                "status": SessionStatusOut.from_status(engine.status()).model_dump(mode="json"),
            },
        )

    @app.get("/health")
    def health(request: Request):
        engine = getattr(request.app.state, "engine", None)
        return {
            "status": "ok",
            "version": "0.1.0",
            "session_state": engine.state.value if engine else "unknown",
            "session_length_s": cfg.session_length_s,
        }

    return app


app = create_app()
