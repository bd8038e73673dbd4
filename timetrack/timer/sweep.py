"""Liveness sweep and long-running nudges.

``sweep`` repairs drift the scheduled callbacks may have missed:

1. no heartbeat for ``STALE_HEARTBEAT``   -> auto-stop (break timers too)
2. awaiting an ack past the grace period  -> auto-stop
3. ``next_interrupt_at`` already passed    -> prompt now

``nudge`` reminds users whose timer has been running for more than
``LONG_RUNNING``, at most once per ``NUDGE_RESEND``.  It changes no state
apart from the nudge stamp.

Legacy rows are skipped.  A timer that fails is logged and rolled back
to its savepoint so the rest of the pass still runs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..alerts import ALERT_NUDGE, AlertDispatcher
from ..clock import Clock, elapsed_seconds, utcnow
from ..database.db import get_session
from ..database.models import EntrySource, RunningTimer
from .interrupts import InterruptScheduler, is_heartbeat_stale
from .store import all_timers, close_timer
from .user_settings import settings_for

LOGGER = logging.getLogger(__name__)

LONG_RUNNING = timedelta(minutes=90)
NUDGE_RESEND = timedelta(minutes=30)


def _duration_label(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    mins = rest // 60
    return f"{hours}h {mins}m" if hours else f"{mins}m"


class LivenessSweep:
    """Periodic reconciliation over every running timer."""

    def __init__(
        self,
        interrupts: InterruptScheduler,
        alerts: AlertDispatcher,
        clock: Clock = utcnow,
    ) -> None:
        self._interrupts = interrupts
        self._alerts = alerts
        self._clock = clock

    def sweep(self) -> dict:
        counts = {"checked": 0, "stale_stopped": 0, "auto_stopped": 0, "interrupts_triggered": 0}
        now = self._clock()
        with get_session() as db:
            for timer in all_timers(db):
                if timer.is_legacy:
                    continue
                counts["checked"] += 1
                timer_id = timer.id
                try:
                    with db.begin_nested():
                        outcome = self._reconcile(db, timer, now)
                except Exception:
                    LOGGER.exception("Sweep failed for timer %s", timer_id)
                    continue
                if outcome is not None:
                    counts[outcome] += 1

        if counts["stale_stopped"] or counts["auto_stopped"] or counts["interrupts_triggered"]:
            LOGGER.info("Sweep: %s", counts)
        return counts

    def _reconcile(self, db, timer: RunningTimer, now: datetime) -> str | None:
        if is_heartbeat_stale(timer, now):
            LOGGER.info("Sweep: stopping timer %s (last heartbeat %s)", timer.id, timer.last_heartbeat_at)
            close_timer(db, timer, EntrySource.AUTO_STOP, now)
            return "stale_stopped"

        if timer.is_break_timer:
            return None

        settings = settings_for(db, timer.user_id)
        if timer.awaiting_interrupt_ack:
            shown = timer.interrupt_shown_at
            if shown is not None and now - shown > timedelta(seconds=settings.grace_period):
                LOGGER.info("Sweep: grace period over for timer %s", timer.id)
                close_timer(db, timer, EntrySource.AUTO_STOP, now)
                return "auto_stopped"
            return None

        if timer.next_interrupt_at is not None and timer.next_interrupt_at <= now:
            self._interrupts.prompt(db, timer, settings, now)
            return "interrupts_triggered"
        return None

    def nudge(self) -> dict:
        counts = {"checked": 0, "nudged": 0}
        now = self._clock()
        with get_session() as db:
            for timer in all_timers(db):
                if timer.is_legacy or timer.awaiting_interrupt_ack or timer.is_break_timer:
                    continue
                counts["checked"] += 1

                if now - timer.started_at <= LONG_RUNNING:
                    continue
                last = timer.last_nudge_sent_at
                if last is not None and now - last < NUDGE_RESEND:
                    continue

                elapsed = elapsed_seconds(timer.started_at, now)
                self._alerts.queue(
                    db,
                    timer.user_id,
                    "Timer still running",
                    f"You've been tracking {timer.project.name} for "
                    f"{_duration_label(elapsed)}. Need to adjust?",
                    ALERT_NUDGE,
                    {
                        "project_id": timer.project_id,
                        "workspace_id": timer.workspace_id,
                        "elapsed_seconds": elapsed,
                    },
                )
                timer.last_nudge_sent_at = now
                counts["nudged"] += 1
        return counts
