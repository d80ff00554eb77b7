"""
Focus Session Engine — the session state machine.

Owns at most one non-terminal session at a time and drives it through

    idle -> active -> {paused <-> active} -> {completed | abandoned}

Every collaborator (record store, notification scheduler, clocks) is injected
so tests can substitute deterministic fakes:

    engine = FocusSessionEngine(store, notifier, clock=ManualClock())
    engine.start()
    clock.advance(1500)
    engine.tick()          # -> completed

Mutating operations are serialized with a re-entrant lock. Invalid transitions
are silently ignored and return the current session unchanged. A failed
record write never rolls back the in-memory transition: the record is queued
for flush_pending() and PersistenceError is raised to the caller.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..actions.notifications import NotificationScheduler
from ..config import config
from ..storage.session_store import SessionStore
from ..timing.clock import Clock, MonotonicClock, WallClock, local_now
from .reconciler import ElapsedTimeReconciler
from .stages import STAGE_COUNT, format_clock, progress as progress_fraction, remaining_for, stage_for
from .state import FocusSession, SessionState

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[FocusSession], SessionState], None]


class PersistenceError(Exception):
    """A record write failed; the in-memory transition was kept."""

    def __init__(self, session: FocusSession, operation: str, cause: BaseException):
        super().__init__(f"Could not {operation} session {session.id}: {cause}")
        self.session = session
        self.operation = operation
        self.cause = cause


@dataclass
class EngineStatus:
    state: SessionState
    session: Optional[FocusSession]
    remaining_seconds: float
    stage: int
    progress: float
    formatted_remaining: str
    can_pause: bool
    can_resume: bool
    pending_writes: int


class FocusSessionEngine:

    def __init__(
        self,
        store: SessionStore,
        notifier: NotificationScheduler,
        clock: Optional[Clock] = None,
        wall_clock: WallClock = local_now,
        session_length: Optional[float] = None,
        stage_count: int = STAGE_COUNT,
    ):
        self._store = store
        self._notifier = notifier
        self._wall_clock = wall_clock
        if session_length is None:
            session_length = config.session_length_s
        self.session_length = float(session_length)
        self.stage_count = stage_count
        self._reconciler = ElapsedTimeReconciler(clock or MonotonicClock(), self.session_length)

        self._lock = threading.RLock()
        self._current: Optional[FocusSession] = None
        self._remaining = self.session_length
        self._stage = 0
        self._pending: Dict[str, Tuple[str, FocusSession]] = {}
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Exposed state
    # ------------------------------------------------------------------

    @property
    def current(self) -> Optional[FocusSession]:
        return self._current

    @property
    def state(self) -> SessionState:
        return self._current.state if self._current else SessionState.IDLE

    @property
    def remaining_seconds(self) -> float:
        return self._remaining

    @property
    def stage(self) -> int:
        return self._stage

    @property
    def progress(self) -> float:
        return progress_fraction(self.session_length - self._remaining, self.session_length)

    @property
    def formatted_remaining(self) -> str:
        return format_clock(self._remaining)

    @property
    def can_pause(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def can_resume(self) -> bool:
        return self.state is SessionState.PAUSED

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    def status(self) -> EngineStatus:
        with self._lock:
            return EngineStatus(
                state=self.state,
                session=self._current,
                remaining_seconds=self._remaining,
                stage=self._stage,
                progress=self.progress,
                formatted_remaining=self.formatted_remaining,
                can_pause=self.can_pause,
                can_resume=self.can_resume,
                pending_writes=self.pending_writes,
            )

    def register_listener(self, fn: Listener) -> None:
        """Register a callback(session, state) called after every applied transition."""
        self._listeners.append(fn)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> FocusSession:
        with self._lock:
            current = self._current
            if current is not None and not current.is_terminal:
                logger.debug("start() ignored: session %s is %s", current.id, current.state.value)
                return current

            if self._pending:
                try:
                    self.flush_pending()
                except PersistenceError as e:
                    logger.warning("Starting with %d unsaved write(s): %s", len(self._pending), e)

            now = self._wall_clock()
            session = FocusSession(start_time=now, created_at=now, state=SessionState.ACTIVE)
            self._current = session
            self._reconciler.begin()
            self._remaining = self.session_length
            self._stage = 0
            logger.info("Session %s started (%.0fs)", session.id, self.session_length)

            self._schedule_notification(session)
            self._emit(session)
            self._write(session, "insert")
            return session

    def pause(self) -> Optional[FocusSession]:
        with self._lock:
            session = self._current
            if session is None or session.state is not SessionState.ACTIVE:
                logger.debug("pause() ignored in state %s", self.state.value)
                return session

            session.active_duration = self._reconciler.active_duration()
            if session.active_duration >= self.session_length:
                # time ran out before the pause request arrived
                self._complete(session)
                return session

            session.active_duration = self._reconciler.pause()
            session.transition_to(SessionState.PAUSED)
            self._refresh(session)
            logger.info("Session %s paused at %.1fs", session.id, session.active_duration)

            self._emit(session)
            self._write(session, "update")
            return session

    def resume(self) -> Optional[FocusSession]:
        with self._lock:
            session = self._current
            if session is None or session.state is not SessionState.PAUSED:
                logger.debug("resume() ignored in state %s", self.state.value)
                return session

            session.paused_duration += self._reconciler.resume()
            session.transition_to(SessionState.ACTIVE)
            self._refresh(session)
            logger.info("Session %s resumed", session.id)

            self._emit(session)
            self._write(session, "update")
            return session

    def abandon(self) -> Optional[FocusSession]:
        with self._lock:
            session = self._current
            if session is None or session.is_terminal:
                logger.debug("abandon() ignored in state %s", self.state.value)
                return session

            if session.state is SessionState.PAUSED:
                session.paused_duration += self._reconciler.resume()
            session.active_duration = self._reconciler.stop()
            session.transition_to(SessionState.ABANDONED, self._wall_clock())
            # an abandoned session grows nothing: back to the initial display
            self._remaining = self.session_length
            self._stage = 0
            logger.info("Session %s abandoned after %.1fs", session.id, session.active_duration)

            self._cancel_notification(session)
            self._emit(session)
            self._write(session, "update")
            return session

    def tick(self) -> Optional[FocusSession]:
        """Recompute active time; completes the session once it is exhausted."""
        with self._lock:
            session = self._current
            if session is None or session.state is not SessionState.ACTIVE:
                return session

            session.active_duration = self._reconciler.active_duration()
            if session.active_duration >= self.session_length:
                self._complete(session)
            else:
                self._refresh(session)
            return session

    # ------------------------------------------------------------------
    # Background catch-up
    # ------------------------------------------------------------------

    def note_suspend(self) -> None:
        """
        The host is about to suspend: snapshot the monotonic clock. Recorded
        even while idle so a session started before the resume is not credited
        with the part of the gap that preceded it.
        """
        with self._lock:
            self._reconciler.mark_suspended()

    def sync_background(self, elapsed_seconds: float) -> Optional[FocusSession]:
        """
        Single catch-up after the host resumes from suspension, given the
        wall-clock seconds the host was away. Completes immediately when the
        gap exhausted the session.
        """
        with self._lock:
            session = self._current
            credit = self._reconciler.catch_up(elapsed_seconds)
            if session is None or session.is_terminal:
                return session

            logger.info("Background sync for %s: reported %.1fs, credited %.1fs",
                        session.id, elapsed_seconds, credit)
            if session.state is SessionState.PAUSED:
                session.paused_duration += credit
                return session
            return self.tick()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def flush_pending(self) -> int:
        """
        Retry every queued write. Each entry is attempted even when an earlier
        one fails; the last failure is raised afterwards. Returns the number
        still pending, which is 0 when nothing was raised.
        """
        failure: Optional[PersistenceError] = None
        with self._lock:
            for operation, session in list(self._pending.values()):
                try:
                    self._write(session, operation)
                except PersistenceError as e:
                    failure = e
            remaining = len(self._pending)
        if failure is not None:
            raise failure
        return remaining

    def recover(self, sessions: Iterable[FocusSession]) -> List[FocusSession]:
        """
        Close out sessions a previous process left active or paused. Their
        monotonic anchors are gone, so they are recorded as abandoned.
        """
        recovered: List[FocusSession] = []
        failure: Optional[PersistenceError] = None
        with self._lock:
            for session in sessions:
                if session.is_terminal:
                    continue
                if self._current is not None and session.id == self._current.id:
                    continue
                session.transition_to(SessionState.ABANDONED, self._wall_clock())
                self._cancel_notification(session)
                recovered.append(session)
                logger.warning("Recovered stale session %s as abandoned", session.id)
                try:
                    self._write(session, "update")
                except PersistenceError as e:
                    failure = e
        if failure is not None:
            raise failure
        return recovered

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _complete(self, session: FocusSession) -> None:
        self._reconciler.stop()
        session.active_duration = self.session_length
        session.transition_to(SessionState.COMPLETED, self._wall_clock())
        self._remaining = 0.0
        self._stage = self.stage_count
        logger.info("Session %s completed", session.id)

        self._cancel_notification(session)
        self._emit(session)
        self._write(session, "update")

    def _refresh(self, session: FocusSession) -> None:
        self._remaining = remaining_for(session.active_duration, self.session_length)
        self._stage = stage_for(session.active_duration, self.session_length, self.stage_count)

    def _write(self, session: FocusSession, operation: str) -> None:
        queued = self._pending.get(session.id)
        if queued is not None and queued[0] == "insert":
            operation = "insert"    # the row was never created
        try:
            if operation == "insert":
                self._store.insert(session)
            else:
                self._store.update(session)
        except Exception as e:
            self._pending[session.id] = (operation, session)
            logger.warning("Persisting session %s failed (%s); queued for retry", session.id, e)
            raise PersistenceError(session, operation, e) from e
        self._pending.pop(session.id, None)

    def _schedule_notification(self, session: FocusSession) -> None:
        try:
            self._notifier.schedule(session.id, self.session_length)
        except Exception as e:
            logger.warning("Could not schedule notification for %s: %s", session.id, e)

    def _cancel_notification(self, session: FocusSession) -> None:
        try:
            self._notifier.cancel(session.id)
        except Exception as e:
            logger.warning("Could not cancel notification for %s: %s", session.id, e)

    def _emit(self, session: FocusSession) -> None:
        for listener in self._listeners:
            try:
                listener(session, session.state)
            except Exception:
                logger.exception("Session listener failed")
