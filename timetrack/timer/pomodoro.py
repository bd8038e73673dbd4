"""Pomodoro cycle controller.

A Pomodoro timer replaces standard interrupts with phase transitions::

    work --(work_minutes)--> break --(break_minutes)--> deleted

At the end of a work phase the open time entry is closed with source
``pomodoro_break`` and the same running-timer row becomes a break timer.
Breaks are unbilled: no entry is opened for them.  When the break ends the
timer is deleted and the user starts the next session themselves.

Every 4th work session earns a long break (``break_minutes * 3``).  The
completed-cycle count survives the deleted timer in ``pomodoro_progress``,
so the next session picks up where the last one ended unless the user
stepped away for longer than ``POMODORO_STREAK_RESET``.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timedelta

from ..alerts import ALERT_BREAK_COMPLETE, ALERT_BREAK_START, AlertDispatcher
from ..clock import Clock, minutes, utcnow
from ..database.db import get_session
from ..database.models import (
    EntrySource, PomodoroProgress, RunningTimer, UserSettings,
)
from ..database.modes import PomodoroMode, PomodoroPhase
from ..scheduling.scheduler import JobScheduler
from .store import close_entry, open_entry_for

LOGGER = logging.getLogger(__name__)

ROUNDS_PER_CYCLE = 4
LONG_BREAK_MULTIPLIER = 3
POMODORO_STREAK_RESET = timedelta(minutes=60)

TRANSITION_JOB = "pomodoro.transition"


def break_minutes_for(cycle: int, break_minutes: float) -> float:
    """Break length after work session number *cycle*."""
    if cycle % ROUNDS_PER_CYCLE == 0:
        return break_minutes * LONG_BREAK_MULTIPLIER
    return break_minutes


class PomodoroController:
    """Drives work/break transitions for Pomodoro timers."""

    def __init__(
        self,
        scheduler: JobScheduler,
        alerts: AlertDispatcher,
        clock: Clock = utcnow,
    ) -> None:
        self._scheduler = scheduler
        self._alerts = alerts
        self._clock = clock

    # ── start-up ─────────────────────────────────────────────────────

    def carried_cycles(self, db, user_id: str, now: datetime) -> int:
        """Completed cycles to continue from when a new session starts."""
        progress = db.get(PomodoroProgress, user_id)
        if progress is None:
            return 0
        last = progress.last_break_ended_at
        if last is None or now - last > POMODORO_STREAK_RESET:
            return 0
        return progress.completed_cycles

    def begin(
        self, db, timer: RunningTimer, settings: UserSettings, now: datetime,
    ) -> PomodoroMode:
        """Put a freshly created *timer* into its first work phase."""
        completed = self.carried_cycles(db, timer.user_id, now)
        mode = PomodoroMode(
            phase=PomodoroPhase.WORK,
            transition_at=now + minutes(settings.pomodoro_work_minutes),
            work_minutes=settings.pomodoro_work_minutes,
            break_minutes=settings.pomodoro_break_minutes,
            current_cycle=completed + 1,
            completed_cycles=completed,
        )
        timer.apply_mode(mode)
        return mode

    def schedule_transition(self, db, timer: RunningTimer) -> int:
        return self._scheduler.schedule_at(
            db,
            timer.pomodoro_transition_at,
            TRANSITION_JOB,
            timer_id=timer.id,
            transition_at=timer.pomodoro_transition_at,
        )

    # ── scheduled callback ───────────────────────────────────────────

    def process_transition(self, timer_id: int, transition_at: datetime | None = None) -> dict:
        """Advance the timer's phase if this callback is still current."""
        now = self._clock()
        with get_session() as db:
            timer = db.get(RunningTimer, timer_id)
            if timer is None or not timer.pomodoro_enabled:
                return {"action": "no_timer"}
            if timer.is_legacy:
                return {"action": "legacy_timer"}
            if transition_at is not None and timer.pomodoro_transition_at != transition_at:
                return {"action": "stale_job"}

            mode = timer.mode
            if mode.is_break:
                return self._finish_break(db, timer, mode, now)
            return self._start_break(db, timer, mode, now)

    def _start_break(
        self, db, timer: RunningTimer, mode: PomodoroMode, now: datetime,
    ) -> dict:
        entry = open_entry_for(db, timer)
        if entry is not None:
            close_entry(entry, EntrySource.POMODORO_BREAK, now)

        cycle = mode.current_cycle
        actual = break_minutes_for(cycle, mode.break_minutes)
        is_long = cycle % ROUNDS_PER_CYCLE == 0
        ends_at = now + minutes(actual)

        timer.apply_mode(dataclasses.replace(
            mode,
            phase=PomodoroPhase.BREAK,
            transition_at=ends_at,
            break_started_at=now,
            break_ends_at=ends_at,
        ))
        db.flush()

        if is_long:
            title = "Long break time!"
            body = (
                f"Excellent work! You've completed {cycle} work sessions. "
                f"Take {actual:g} minutes for a well-deserved long break."
            )
        else:
            title = "Break time!"
            body = f"Great focus! Take {actual:g} minutes to recharge."
        self._alerts.queue(
            db, timer.user_id, title, body, ALERT_BREAK_START,
            {
                "timer_id": timer.id,
                "project_id": timer.project_id,
                "workspace_id": timer.workspace_id,
                "break_minutes": actual,
                "current_cycle": cycle,
                "is_long_break": is_long,
            },
        )
        self.schedule_transition(db, timer)
        LOGGER.info("Timer %s entered %s break (cycle %d)", timer.id, "long" if is_long else "short", cycle)
        return {
            "action": "break_started",
            "break_minutes": actual,
            "is_long_break": is_long,
            "current_cycle": cycle,
            "stopped_entry_id": entry.id if entry is not None else None,
        }

    def _finish_break(
        self, db, timer: RunningTimer, mode: PomodoroMode, now: datetime,
    ) -> dict:
        completed = mode.completed_cycles + 1
        full_cycle = completed % ROUNDS_PER_CYCLE == 0

        progress = db.get(PomodoroProgress, timer.user_id)
        if progress is None:
            progress = PomodoroProgress(user_id=timer.user_id)
            db.add(progress)
        progress.completed_cycles = completed
        progress.last_break_ended_at = now

        if full_cycle:
            rounds = completed // ROUNDS_PER_CYCLE
            title = "Pomodoro cycle complete!"
            body = (
                f"Congratulations! You've completed {rounds} full Pomodoro "
                f"cycle{'s' if rounds > 1 else ''}. Ready for the next one?"
            )
        else:
            name = timer.project.name if timer.project is not None else "work"
            title = "Break complete"
            body = f"Ready to get back to {name}? Start the timer to resume tracking."
        self._alerts.queue(
            db, timer.user_id, title, body, ALERT_BREAK_COMPLETE,
            {
                "timer_id": timer.id,
                "project_id": timer.project_id,
                "workspace_id": timer.workspace_id,
                "completed_cycles": completed,
                "is_full_cycle_complete": full_cycle,
            },
        )

        timer.ended_at = now
        db.flush()
        db.delete(timer)
        LOGGER.info("Break finished for user %s (%d cycles)", timer.user_id, completed)
        return {
            "action": "break_finished",
            "completed_cycles": completed,
            "full_cycle_complete": full_cycle,
        }
