"""Budget alert monitor.

Runs on every heartbeat.  Consumption of a project is the recorded time of
all its closed entries plus the in-flight time of the current session,
priced at the project's hourly rate.  Depending on ``budget_type`` the
remaining budget is measured in hours or in money:

- remaining <= 0          overrun alert, at most once per 60 minutes
- remaining <= threshold  warning alert, when the warning type changed
                          or the last warning is older than 30 minutes

Break timers are never billable and are ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..alerts import ALERT_BUDGET_WARNING, ALERT_OVERRUN, AlertDispatcher
from ..clock import elapsed_seconds
from ..database.models import BudgetType, Project, RunningTimer
from .store import project_seconds
from .user_settings import settings_for

LOGGER = logging.getLogger(__name__)

BUDGET_OVERRUN_RESEND = timedelta(minutes=60)
BUDGET_WARNING_RESEND = timedelta(minutes=30)


def _billable_running_seconds(timer: RunningTimer | None, now: datetime) -> int:
    if timer is None or timer.is_break_timer:
        return 0
    return elapsed_seconds(timer.started_at, now)


def remaining_budget(
    db, project: Project, now: datetime, timer: RunningTimer | None = None,
) -> tuple[int, float, Optional[float]]:
    """``(total_seconds, total_amount, remaining)`` for *project*.

    ``remaining`` is in seconds for hour budgets, in money for amount
    budgets, and ``None`` when the project has no budget.
    """
    total_seconds = project_seconds(db, project.id) + _billable_running_seconds(timer, now)
    total_amount = total_seconds / 3600 * (project.hourly_rate or 0.0)

    remaining: Optional[float] = None
    if project.budget_type == BudgetType.HOURS.value and project.budget_hours:
        remaining = project.budget_hours * 3600 - total_seconds
    elif project.budget_type == BudgetType.AMOUNT.value and project.budget_amount:
        remaining = project.budget_amount - total_amount
    return total_seconds, total_amount, remaining


def budget_summary(
    db, project: Project, now: datetime, timer: RunningTimer | None = None,
) -> dict:
    """Display totals for the running-timer query."""
    total_seconds, total_amount, remaining = remaining_budget(db, project, now, timer)
    total_hours = total_seconds / 3600

    formatted = "N/A"
    if remaining is not None and project.budget_type == BudgetType.HOURS.value:
        formatted = f"{max(0.0, remaining) / 3600:.1f} hours"
    elif remaining is not None:
        formatted = f"${max(0.0, remaining):.2f}"

    return {
        "total_seconds": total_seconds,
        "total_hours": total_hours,
        "total_hours_formatted": f"{total_hours:.1f}h",
        "total_amount": total_amount,
        "budget_remaining": max(0.0, remaining) if remaining is not None else 0.0,
        "budget_remaining_formatted": formatted,
        "over_budget": remaining is not None and remaining <= 0,
    }



def _workspace_mismatch(timer: RunningTimer, project: Project) -> bool:
    if project.is_personal:
        return timer.workspace_id is not None or project.owner_id != timer.user_id
    return project.workspace_id != timer.workspace_id

class BudgetAlertMonitor:
    """Throttled budget warning and overrun alerts for a running timer."""

    def __init__(self, alerts: AlertDispatcher) -> None:
        self._alerts = alerts

    def check(self, db, timer: RunningTimer, now: datetime) -> str:
        """Evaluate *timer*'s project budget; returns what was done."""
        if timer.is_legacy or timer.is_break_timer:
            return "not_billable"
        project = timer.project
        if _workspace_mismatch(timer, project):
            LOGGER.warning("Timer %s does not match workspace of project %s", timer.id, project.id)
            return "workspace_mismatch"

        _, _, remaining = remaining_budget(db, project, now, timer)
        if remaining is None:
            return "no_budget"

        if remaining <= 0:
            return self._overrun(db, timer, project, now)

        settings = settings_for(db, timer.user_id)
        if not settings.budget_warning_enabled:
            return "within_budget"

        warning_type = None
        body = ""
        if project.budget_type == BudgetType.HOURS.value:
            threshold = settings.budget_warning_threshold_hours
            if threshold and remaining / 3600 <= threshold:
                warning_type = BudgetType.HOURS.value
                body = f"{project.name} has less than {threshold:g} hours remaining."
        else:
            threshold = settings.budget_warning_threshold_amount
            if threshold and remaining <= threshold:
                warning_type = BudgetType.AMOUNT.value
                body = f"{project.name} has less than ${threshold:.2f} remaining."

        if warning_type is None:
            return "within_budget"
        return self._warning(db, timer, project, warning_type, body, now)

    def _overrun(self, db, timer: RunningTimer, project: Project, now: datetime) -> str:
        last = timer.overrun_alert_sent_at
        if last is not None and now - last <= BUDGET_OVERRUN_RESEND:
            return "overrun_throttled"

        if project.budget_type == BudgetType.HOURS.value:
            body = f"You've exceeded the {project.budget_hours:g}h time budget for {project.name}."
        else:
            body = f"You've exceeded the ${project.budget_amount:.2f} budget for {project.name}."
        self._alerts.queue(
            db, timer.user_id, "Budget exceeded", body, ALERT_OVERRUN,
            {"project_id": project.id, "workspace_id": timer.workspace_id},
        )
        timer.overrun_alert_sent_at = now
        return "overrun_sent"

    def _warning(
        self, db, timer: RunningTimer, project: Project, warning_type: str, body: str,
        now: datetime,
    ) -> str:
        last = timer.budget_warning_sent_at
        same_type = timer.budget_warning_type == warning_type
        if same_type and last is not None and now - last <= BUDGET_WARNING_RESEND:
            return "warning_throttled"

        self._alerts.queue(
            db, timer.user_id, "Budget warning", body, ALERT_BUDGET_WARNING,
            {
                "project_id": project.id,
                "workspace_id": timer.workspace_id,
                "warning_type": warning_type,
            },
        )
        timer.budget_warning_sent_at = now
        timer.budget_warning_type = warning_type
        return "warning_sent"
