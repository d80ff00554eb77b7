"""
Session Ticker — periodic asyncio task that reconciles the active session.

The ticker only runs while the session is active; bind_ticker() wires it to
the engine so that pausing, abandoning or completing the session cancels the
periodic callback. Writes the engine queued after a store failure are
retried on every cycle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .engine import FocusSessionEngine, PersistenceError
from .state import FocusSession, SessionState

logger = logging.getLogger(__name__)


class SessionTicker:

    def __init__(self, engine: FocusSessionEngine, interval_s: float = 1.0):
        self._engine = engine
        self.interval_s = interval_s
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking on the running event loop (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:    # no running loop
            current = None
        # when called from inside the tick itself the loop below exits on its own
        if task is not current:
            task.cancel()

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self.interval_s)
            if self._engine.pending_writes:
                try:
                    self._engine.flush_pending()
                except PersistenceError as e:
                    logger.debug("Queued writes still failing: %s", e)
            try:
                self._engine.tick()
            except PersistenceError as e:
                logger.warning("Tick could not persist completion: %s", e)
            except Exception:
                logger.exception("Tick failed")


def bind_ticker(engine: FocusSessionEngine, ticker: SessionTicker) -> None:
    """Run the ticker exactly while the engine's session is active."""

    def _on_transition(session: FocusSession, state: SessionState) -> None:
        if state is SessionState.ACTIVE:
            ticker.start()
        else:
            ticker.stop()

    engine.register_listener(_on_transition)
