"""
History Seeder — writes a realistic synthetic session history so the /stats
endpoint has something to show without weeks of real focusing.

Usage:
    python scripts/seed_history.py                 # 30 days into data/sessions.db
    python scripts/seed_history.py --days 90
    python scripts/seed_history.py --dry-run       # print stats, write nothing
"""

from __future__ import annotations

import argparse
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from forest.config import config  # noqa: E402
from forest.session.state import FocusSession, SessionState  # noqa: E402
from forest.stats.snapshot import compute_stats  # noqa: E402
from forest.storage.session_store import InMemorySessionStore, SqliteSessionStore  # noqa: E402


def _session(day: datetime, hour: int, completed: bool) -> FocusSession:
    length = config.session_length_s
    start = day.replace(hour=hour, minute=random.randint(0, 30), second=0, microsecond=0)
    paused = float(random.choice([0, 0, 0, 60, 180]))
    if completed:
        active = float(length)
        state = SessionState.COMPLETED
    else:
        active = float(random.randint(60, length - 60))
        state = SessionState.ABANDONED
    return FocusSession(
        start_time=start,
        end_time=start + timedelta(seconds=active + paused),
        state=state,
        active_duration=active,
        paused_duration=paused,
        created_at=start,
    )


def generate(days: int, now: datetime | None = None, rest_day_chance: float = 0.15):
    """Yield sessions for the last *days* days, today included."""
    now = now or datetime.now().astimezone()
    for offset in range(days - 1, -1, -1):
        day = now - timedelta(days=offset)
        if offset > 0 and random.random() < rest_day_chance:
            continue
        for hour in sorted(random.sample(range(8, 20), random.randint(1, 4))):
            session = _session(day, hour, completed=random.random() < 0.85)
            if session.end_time > now:
                continue
            yield session


def seed(store, days: int = 30) -> int:
    written = 0
    for session in generate(days):
        store.insert(session)
        written += 1
    return written


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a demo focus history")
    parser.add_argument("--days", type=int, default=30)
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--dry-run", action="store_true", help="Use an in-memory store")
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    if args.dry_run:
        store = InMemorySessionStore()
    else:
        store = SqliteSessionStore(config.db_path)

    written = seed(store, days=args.days)
    stats = compute_stats(store.query_all())
    print(f"Wrote {written} sessions")
    print(f"  trees: {stats.total_count}   abandoned: {stats.abandoned_count}")
    print(f"  focus: {stats.formatted_total_focus_time}   completion: {stats.completion_rate:.0%}")
    print(f"  streak: {stats.current_streak} (longest {stats.longest_streak})")


if __name__ == "__main__":
    main()
