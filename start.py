"""
Convenience launcher — starts the Forest Focus engine and (optionally) seeds
a demo history first.

Usage:
    python start.py             # engine only
    python start.py --seed 30   # write 30 days of demo sessions, then start
"""

from __future__ import annotations

import argparse
import logging
import subprocess
import sys


def start_engine() -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-m", "forest.main"],
        stdout=sys.stdout,
        stderr=sys.stderr,
    )


def seed_history(days: int) -> int:
    """Write a synthetic history into the configured session store."""
    from forest.config import config
    from forest.storage.session_store import SqliteSessionStore
    from scripts.seed_history import seed

    return seed(SqliteSessionStore(config.db_path), days=days)


def main() -> None:
    parser = argparse.ArgumentParser(description="Start the Forest Focus engine")
    parser.add_argument("--seed", type=int, default=0, metavar="DAYS",
                        help="Seed DAYS of demo sessions before starting")
    args = parser.parse_args()

    from forest.config import config

    logging.basicConfig(level=config.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.seed:
        written = seed_history(args.seed)
        print(f"Seeded {written} demo sessions.")

    print("Starting Forest Focus engine…")
    engine_proc = start_engine()

    print(f"\nEngine → http://{config.api_host}:{config.api_port}")
    print("Press Ctrl+C to stop.\n")

    try:
        engine_proc.wait()
    except KeyboardInterrupt:
        print("\nShutting down…")
        engine_proc.terminate()
        engine_proc.wait()


if __name__ == "__main__":
    main()
