"""
Session Store — SQLite-backed history of focus sessions.

This module is the only place where SessionState is converted to and from its
storage string. Every write commits immediately, so a terminal record is
durable as soon as update() returns.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol

from ..session.state import FocusSession, SessionState


class SessionStore(Protocol):
    def insert(self, session: FocusSession) -> None: ...

    def update(self, session: FocusSession) -> None: ...

    def query_all(self) -> List[FocusSession]: ...


_COLUMNS = "id, start_time, end_time, state, active_duration, paused_duration, created_at"


class SqliteSessionStore:
    """Thread-safe SQLite session store (one connection per call)."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._init_db()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def insert(self, session: FocusSession) -> None:
        with self._conn() as conn:
            conn.execute(
                f"INSERT INTO sessions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                _to_row(session),
            )

    def update(self, session: FocusSession) -> None:
        row = _to_row(session)
        with self._conn() as conn:
            cur = conn.execute(
                """
                UPDATE sessions
                   SET start_time = ?, end_time = ?, state = ?,
                       active_duration = ?, paused_duration = ?, created_at = ?
                 WHERE id = ?
                """,
                (*row[1:], row[0]),
            )
            if cur.rowcount == 0:
                raise KeyError(session.id)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def query_all(self) -> List[FocusSession]:
        return self.query()

    def query(
        self,
        state: Optional[SessionState] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[FocusSession]:
        """Sessions newest first, optionally filtered by state and start time."""
        clauses = []
        params: list = []

        if state is not None:
            clauses.append("state = ?")
            params.append(SessionState(state).value)
        if since is not None:
            clauses.append("start_time >= ?")
            params.append(since.isoformat())

        where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
        tail = ""
        if limit is not None:
            tail = "LIMIT ?"
            params.append(limit)

        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM sessions {where} ORDER BY start_time DESC {tail}",
                params,
            ).fetchall()
        return [_from_row(row) for row in rows]

    def get(self, session_id: str) -> Optional[FocusSession]:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
        return _from_row(row) if row else None

    def count(self) -> int:
        with self._conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id               TEXT PRIMARY KEY,
                    start_time       TEXT NOT NULL,
                    end_time         TEXT,
                    state            TEXT NOT NULL,
                    active_duration  REAL NOT NULL DEFAULT 0.0,
                    paused_duration  REAL NOT NULL DEFAULT 0.0,
                    created_at       TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_state ON sessions(state)")

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()


class InMemorySessionStore:
    """Dict-backed store with the same contract; copies on the way in and out."""

    def __init__(self):
        self._rows: Dict[str, tuple] = {}

    def insert(self, session: FocusSession) -> None:
        if session.id in self._rows:
            raise sqlite3.IntegrityError(f"duplicate session id {session.id}")
        self._rows[session.id] = _to_row(session)

    def update(self, session: FocusSession) -> None:
        if session.id not in self._rows:
            raise KeyError(session.id)
        self._rows[session.id] = _to_row(session)

    def query_all(self) -> List[FocusSession]:
        return self.query()

    def query(
        self,
        state: Optional[SessionState] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[FocusSession]:
        sessions = [_from_row(row) for row in self._rows.values()]
        if state is not None:
            sessions = [s for s in sessions if s.state is SessionState(state)]
        if since is not None:
            sessions = [s for s in sessions if s.start_time >= since]
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        return sessions[:limit] if limit is not None else sessions

    def get(self, session_id: str) -> Optional[FocusSession]:
        row = self._rows.get(session_id)
        return _from_row(row) if row else None

    def count(self) -> int:
        return len(self._rows)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_row(session: FocusSession) -> tuple:
    return (
        session.id,
        session.start_time.isoformat(),
        session.end_time.isoformat() if session.end_time else None,
        session.state.value,
        float(session.active_duration),
        float(session.paused_duration),
        session.created_at.isoformat(),
    )


def _from_row(row) -> FocusSession:
    sid, start, end, state, active, paused, created = row
    return FocusSession(
        id=sid,
        start_time=datetime.fromisoformat(start),
        end_time=datetime.fromisoformat(end) if end else None,
        state=SessionState(state),      # unknown strings raise ValueError
        active_duration=active,
        paused_duration=paused,
        created_at=datetime.fromisoformat(created),
    )
