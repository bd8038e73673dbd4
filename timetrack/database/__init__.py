"""Database package."""

from .db import configure_engine, get_session, init_db
from .models import (
    EntrySource,
    BudgetType,
    RunningTimer,
    TimeEntry,
    UserSettings,
    PomodoroProgress,
    ScheduledJob,
    Project,
    Membership,
    context_key,
)
from .modes import PomodoroMode, PomodoroPhase, StandardMode, TimerMode

__all__ = [
    "configure_engine",
    "get_session",
    "init_db",
    "EntrySource",
    "BudgetType",
    "RunningTimer",
    "TimeEntry",
    "UserSettings",
    "PomodoroProgress",
    "ScheduledJob",
    "Project",
    "Membership",
    "context_key",
    "PomodoroMode",
    "PomodoroPhase",
    "StandardMode",
    "TimerMode",
]
