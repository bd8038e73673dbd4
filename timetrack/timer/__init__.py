"""Timer package."""

from .budget import BudgetAlertMonitor, budget_summary
from .context import MembershipResolver
from .interrupts import CHECK_JOB, GRACE_JOB, STALE_HEARTBEAT, InterruptScheduler
from .pomodoro import TRANSITION_JOB, PomodoroController
from .session import SessionManager
from .sweep import LONG_RUNNING, NUDGE_RESEND, LivenessSweep
from .user_settings import settings_for, update_user_settings

__all__ = [
    "BudgetAlertMonitor",
    "budget_summary",
    "MembershipResolver",
    "CHECK_JOB",
    "GRACE_JOB",
    "STALE_HEARTBEAT",
    "InterruptScheduler",
    "TRANSITION_JOB",
    "PomodoroController",
    "SessionManager",
    "LONG_RUNNING",
    "NUDGE_RESEND",
    "LivenessSweep",
    "settings_for",
    "update_user_settings",
]
