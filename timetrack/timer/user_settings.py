"""Per-user timer preferences.

The settings form is owned elsewhere; the engine only reads these values.
``update_user_settings`` exists for that owner and for tests, and applies
the same range checks the form does.
"""

from __future__ import annotations

from ..database.db import get_session
from ..database.models import UserSettings
from ..errors import ValidationError

# (min, max) per numeric field; interval allows 5 s (0.0833 min) for debugging
_RANGES: dict[str, tuple[float, float]] = {
    "interrupt_interval": (0.0833, 480),
    "grace_period": (5, 300),
    "pomodoro_work_minutes": (1, 120),
    "pomodoro_break_minutes": (1, 60),
    "budget_warning_threshold_hours": (0, 10_000),
    "budget_warning_threshold_amount": (0, 10_000_000),
}

_FLAGS = ("interrupt_enabled", "pomodoro_enabled", "budget_warning_enabled")


def default_settings(user_id: str) -> UserSettings:
    """Transient settings row carrying the column defaults."""
    return UserSettings(
        user_id=user_id,
        interrupt_enabled=True,
        interrupt_interval=60.0,
        grace_period=5,
        pomodoro_enabled=False,
        pomodoro_work_minutes=25.0,
        pomodoro_break_minutes=5.0,
        budget_warning_enabled=True,
        budget_warning_threshold_hours=1.0,
        budget_warning_threshold_amount=50.0,
    )


def settings_for(db, user_id: str) -> UserSettings:
    """Stored settings for *user_id*, or the defaults if none were saved."""
    settings = db.get(UserSettings, user_id)
    return settings if settings is not None else default_settings(user_id)


def validate_user_settings(changes: dict) -> None:
    for name, value in changes.items():
        if name in _FLAGS:
            if not isinstance(value, bool):
                raise ValidationError(f"{name} must be true or false")
            continue
        if name not in _RANGES:
            raise ValidationError(f"Unknown setting {name!r}")
        if value is None and name.startswith("budget_warning_threshold"):
            continue
        low, high = _RANGES[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{name} must be a number")
        if not low <= value <= high:
            raise ValidationError(f"{name} must be between {low} and {high}")


def update_user_settings(user_id: str, **changes) -> UserSettings:
    validate_user_settings(changes)
    with get_session() as db:
        settings = db.get(UserSettings, user_id)
        if settings is None:
            settings = default_settings(user_id)
            db.add(settings)
        for name, value in changes.items():
            setattr(settings, name, value)
        return settings
