"""
Central configuration for the Forest Focus engine.
All values can be overridden via environment variables or a local config.json.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

_ROOT = Path(__file__).parent.parent
_CONFIG_FILE = _ROOT / "config.json"


def _coerce(default, raw):
    # bool("false") is True, so booleans need their own parsing
    if isinstance(default, bool):
        if isinstance(raw, str):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        return bool(raw)
    return type(default)(raw)


@dataclass
class Config:
    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8766

    # Session
    session_length_s: int = 1500             # 25 min focus interval
    stage_count: int = 5                     # growth stages 0..stage_count
    tick_interval_ms: int = 1000             # how often the active session is reconciled

    # Storage
    data_dir: Path = field(default_factory=lambda: _ROOT / "data")
    sessions_db: str = "sessions.db"

    # Notifications
    notifications_enabled: bool = True

    # Logging
    log_level: str = "info"

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.sessions_db

    @classmethod
    def load(cls, config_file: Path = _CONFIG_FILE) -> "Config":
        cfg = cls()
        if config_file.exists():
            overrides = json.loads(config_file.read_text())
            for k, v in overrides.items():
                if hasattr(cfg, k):
                    setattr(cfg, k, _coerce(getattr(cfg, k), v))
        # environment variable overrides (FOREST_*)
        for k in cfg.__dataclass_fields__:  # type: ignore[attr-defined]
            env_key = f"FOREST_{k.upper()}"
            if env_key in os.environ:
                setattr(cfg, k, _coerce(getattr(cfg, k), os.environ[env_key]))
        cfg.data_dir = Path(cfg.data_dir)
        cfg.data_dir.mkdir(parents=True, exist_ok=True)
        return cfg


# Module-level singleton
config = Config.load()
