"""
Shared pytest fixtures and configuration.
"""

from datetime import datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from forest.api.app import create_app
from forest.config import Config
from forest.session.engine import FocusSessionEngine
from forest.storage.session_store import SqliteSessionStore
from forest.timing.clock import ManualClock


class RecordingNotifier:
    """Notification scheduler fake: remembers what is pending."""

    def __init__(self):
        self.scheduled = {}
        self.cancelled = []

    def schedule(self, identifier, fire_after_s):
        self.scheduled[identifier] = fire_after_s

    def cancel(self, identifier):
        self.cancelled.append(identifier)
        self.scheduled.pop(identifier, None)

    def cancel_all(self):
        self.scheduled.clear()


class FlakyStore(SqliteSessionStore):
    """SQLite store whose writes can be switched to fail."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.failing = False
        self.fail_ids = set()

    def _check(self, session):
        if self.failing or session.id in self.fail_ids:
            raise OSError("disk unavailable")

    def insert(self, session):
        self._check(session)
        super().insert(session)

    def update(self, session):
        self._check(session)
        super().update(session)


class FixedWallClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now=None):
        self.now = now or datetime(2025, 3, 14, 9, 0).astimezone()

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return ManualClock(start=1000.0)


@pytest.fixture
def store(tmp_path):
    return FlakyStore(tmp_path / "sessions.db")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def wall():
    return FixedWallClock()


@pytest.fixture
def engine(store, notifier, clock, wall):
    return FocusSessionEngine(store, notifier, clock=clock, wall_clock=wall, session_length=1500)


@pytest.fixture
def cfg(tmp_path):
    return Config(data_dir=tmp_path / "data", tick_interval_ms=20)


@pytest.fixture
def app(cfg, clock, notifier):
    """A fresh app per test with a manual clock and recording notifier."""
    return create_app(cfg=cfg, clock=clock, notifier=notifier)


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP client wired directly to the ASGI app (no server needed)."""
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
