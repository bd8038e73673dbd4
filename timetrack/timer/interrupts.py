"""Interrupt scheduler: "are you still working?" prompts.

Lifecycle of one interrupt cycle::

    RUNNING --check--> AWAITING_ACK --ack(continue)--> RUNNING
                            |
                            +--ack(stop) / grace timeout--> IDLE

Every handler here is entered from a durable callback that may arrive
late, twice, or after the user already acted.  Each one re-reads the
timer and compares the timestamp it captured when it was scheduled
(``due_at``, ``interrupt_at``) against the row; on mismatch it is a
superseded callback and does nothing.  Only the most recent interrupt's
grace callback may stop a timer.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..alerts import ALERT_BREAK_REMINDER, ALERT_INTERRUPT, AlertDispatcher
from ..clock import Clock, minutes, utcnow
from ..database.db import get_session
from ..database.models import EntrySource, RunningTimer, UserSettings
from ..database.modes import StandardMode
from ..scheduling.scheduler import JobScheduler
from .context import MembershipResolver, context_probes, require_user
from .store import close_timer, find_timer, probe_timer
from .user_settings import settings_for

LOGGER = logging.getLogger(__name__)

# No heartbeat for this long means the client is gone.  Shared by the
# interrupt check and the liveness sweep.
STALE_HEARTBEAT = timedelta(minutes=5)

CHECK_JOB = "interrupts.check"
GRACE_JOB = "interrupts.auto_stop_if_no_ack"


def is_heartbeat_stale(timer: RunningTimer, now: datetime) -> bool:
    return now - timer.last_heartbeat_at > STALE_HEARTBEAT


def _project_name(timer: RunningTimer) -> str:
    return timer.project.name if timer.project is not None else "this project"


class InterruptScheduler:
    """Schedules, prompts, acknowledges and times out interrupts."""

    def __init__(
        self,
        scheduler: JobScheduler,
        alerts: AlertDispatcher,
        resolver: MembershipResolver | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._scheduler = scheduler
        self._alerts = alerts
        self._resolver = resolver or MembershipResolver()
        self._clock = clock

    # ── scheduling helpers ───────────────────────────────────────────

    @staticmethod
    def next_interrupt_at(settings: UserSettings, now: datetime) -> Optional[datetime]:
        if not settings.interrupt_enabled:
            return None
        return now + minutes(settings.interrupt_interval)

    def schedule_check(self, db, timer: RunningTimer) -> Optional[int]:
        """Queue the interrupt check for ``timer.next_interrupt_at``."""
        if timer.next_interrupt_at is None:
            return None
        return self._scheduler.schedule_at(
            db,
            timer.next_interrupt_at,
            CHECK_JOB,
            workspace_id=timer.workspace_id,
            user_id=timer.user_id,
            due_at=timer.next_interrupt_at,
        )

    def prompt(
        self, db, timer: RunningTimer, settings: UserSettings, now: datetime,
    ) -> datetime:
        """Mark *timer* as awaiting an ack, alert the user, and queue the
        grace-period auto-stop.  Returns the grace deadline."""
        timer.awaiting_interrupt_ack = True
        timer.interrupt_shown_at = now

        self._alerts.queue(
            db,
            timer.user_id,
            "Timer interruption",
            f"Are you still working on {_project_name(timer)}?",
            ALERT_INTERRUPT,
            {
                "timer_id": timer.id,
                "project_id": timer.project_id,
                "workspace_id": timer.workspace_id,
            },
        )

        grace_at = now + timedelta(seconds=settings.grace_period)
        self._scheduler.schedule_at(
            db,
            grace_at,
            GRACE_JOB,
            workspace_id=timer.workspace_id,
            user_id=timer.user_id,
            interrupt_at=now,
        )
        LOGGER.info("Interrupt shown for timer %s, grace until %s", timer.id, grace_at)
        return grace_at

    # ── scheduled callbacks ──────────────────────────────────────────

    def check(
        self,
        workspace_id: str | None,
        user_id: str,
        due_at: datetime | None = None,
    ) -> dict:
        """Interrupt check, normally fired at ``next_interrupt_at``."""
        result = {"action": "no_timer", "grace_job_time": None}
        now = self._clock()
        with get_session() as db:
            timer = find_timer(db, user_id, workspace_id)
            if timer is None:
                return result
            if timer.is_legacy:
                result["action"] = "legacy_timer"
                return result
            if due_at is not None and timer.next_interrupt_at != due_at:
                result["action"] = "stale_job"
                return result
            if timer.awaiting_interrupt_ack:
                result["action"] = "skipped"
                return result

            if is_heartbeat_stale(timer, now):
                LOGGER.info("Timer %s has no recent heartbeat; auto-stopping", timer.id)
                close_timer(db, timer, EntrySource.AUTO_STOP, now)
                result["action"] = "auto_stopped"
                return result

            settings = settings_for(db, user_id)
            result["grace_job_time"] = self.prompt(db, timer, settings, now)
            result["action"] = "prompted"
            return result

    def auto_stop_if_no_ack(
        self,
        workspace_id: str | None,
        user_id: str,
        interrupt_at: datetime,
    ) -> dict:
        """Grace-period deadline of the interrupt shown at *interrupt_at*."""
        now = self._clock()
        with get_session() as db:
            timer = find_timer(db, user_id, workspace_id)
            if timer is None:
                return {"action": "stale_job", "stopped_entry_id": None}
            if timer.is_legacy:
                return {"action": "legacy_timer", "stopped_entry_id": None}
            if not timer.awaiting_interrupt_ack or timer.interrupt_shown_at != interrupt_at:
                return {"action": "already_acked", "stopped_entry_id": None}

            entry = close_timer(db, timer, EntrySource.AUTO_STOP, now)
            LOGGER.info("Auto-stopped timer for user %s after unanswered interrupt", user_id)
            return {
                "action": "auto_stopped",
                "stopped_entry_id": entry.id if entry is not None else None,
            }

    # ── caller-facing operations ─────────────────────────────────────

    def request_interrupt(self, user_id: str | None) -> dict:
        """Client-initiated prompt for the caller's running timer."""
        user_id = require_user(user_id)
        now = self._clock()
        with get_session() as db:
            workspace_id = self._resolver.resolve(db, user_id)
            timer = probe_timer(db, user_id, context_probes(workspace_id))
            # Pomodoro timers are paced by their own phase transitions.
            if timer is None or timer.pomodoro_enabled:
                return {"should_show_interrupt": False, "grace_job_time": None}
            if timer.awaiting_interrupt_ack:
                return {"should_show_interrupt": True, "grace_job_time": None}
            settings = settings_for(db, user_id)
            grace_at = self.prompt(db, timer, settings, now)
            return {"should_show_interrupt": True, "grace_job_time": grace_at}

    def ack_interrupt(self, user_id: str | None, continue_: bool) -> dict:
        """Answer the pending interrupt: keep working or stop.

        Returns ``action="already_acked"`` when nothing is awaiting an
        answer, e.g. the grace-period auto-stop won the race.
        """
        user_id = require_user(user_id)
        now = self._clock()
        with get_session() as db:
            workspace_id = self._resolver.resolve(db, user_id)
            timer = probe_timer(
                db, user_id, context_probes(workspace_id),
                predicate=lambda t: bool(t.awaiting_interrupt_ack),
            )
            if timer is None:
                return {"success": False, "action": "already_acked", "next_interrupt_at": None}

            if continue_:
                settings = settings_for(db, user_id)
                timer.awaiting_interrupt_ack = False
                timer.interrupt_shown_at = None
                next_at = None
                if not timer.pomodoro_enabled:
                    next_at = self.next_interrupt_at(settings, now)
                    timer.apply_mode(StandardMode(next_interrupt_at=next_at))
                    db.flush()
                    self.schedule_check(db, timer)
                return {"success": True, "action": "continued", "next_interrupt_at": next_at}

            project_name = _project_name(timer)
            metadata = {"project_id": timer.project_id, "workspace_id": timer.workspace_id}
            close_timer(db, timer, EntrySource.TIMER, now)
            self._alerts.queue(
                db,
                user_id,
                "Break time",
                f"Take a short break before jumping back into {project_name}.",
                ALERT_BREAK_REMINDER,
                metadata,
            )
        return {"success": True, "action": "stopped", "next_interrupt_at": None}
