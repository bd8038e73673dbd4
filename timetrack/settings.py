"""Engine settings with JSON persistence.

Settings are stored at:
    $TIMETRACK_HOME/settings.json   (default ~/.timetrack/settings.json)

Usage::

    settings = load_settings()
    settings.sweep_interval_seconds = 30
    save_settings(settings)

Per-user timer preferences (interrupt interval, grace period, Pomodoro,
budget warnings) are not stored here; they live in the ``user_settings``
table, see :mod:`timetrack.timer.user_settings`.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path

LOGGER = logging.getLogger(__name__)

APP_HOME = Path(os.environ.get("TIMETRACK_HOME", Path.home() / ".timetrack"))
SETTINGS_PATH = APP_HOME / "settings.json"


@dataclass
class Settings:
    """Process-wide engine configuration."""

    # ── storage ───────────────────────────────────────────────────────
    database_url: str = f"sqlite:///{APP_HOME / 'timetrack.db'}"
    echo_sql: bool = False

    # ── job runner ────────────────────────────────────────────────────
    job_poll_interval_ms: int = 1000
    sweep_interval_seconds: int = 60
    nudge_interval_seconds: int = 5 * 60
    max_job_attempts: int = 5
    job_retry_seconds: int = 30

    # ── logging ───────────────────────────────────────────────────────
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Load settings from disk, falling back to defaults."""
    try:
        if SETTINGS_PATH.exists():
            data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
            # Only use keys that exist in the dataclass
            valid_keys = {f.name for f in fields(Settings)}
            filtered = {k: v for k, v in data.items() if k in valid_keys}
            return Settings(**filtered)
    except (OSError, ValueError, TypeError):
        LOGGER.warning("Ignoring unreadable settings file %s", SETTINGS_PATH)
    return Settings()


def save_settings(settings: Settings) -> None:
    """Write settings to disk as JSON."""
    APP_HOME.mkdir(parents=True, exist_ok=True)
    SETTINGS_PATH.write_text(
        json.dumps(asdict(settings), indent=2) + "\n",
        encoding="utf-8",
    )
