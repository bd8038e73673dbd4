"""TimeTracker: wires the engine components together.

One instance owns a clock, a :class:`JobScheduler`, an
:class:`AlertDispatcher` and the workspace resolver, and hands them to
every component.  It is also where the durable callbacks are bound to
their handler names, so a job written by one process can be run by any
other process that built a ``TimeTracker``.
"""

from __future__ import annotations

from datetime import datetime

from .alerts import AlertDispatcher
from .clock import Clock, utcnow
from .database.models import EntrySource
from .scheduling.scheduler import JobScheduler
from .settings import Settings
from .timer.budget import BudgetAlertMonitor
from .timer.context import MembershipResolver
from .timer.interrupts import CHECK_JOB, GRACE_JOB, InterruptScheduler
from .timer.pomodoro import TRANSITION_JOB, PomodoroController
from .timer.session import SessionManager
from .timer.sweep import LivenessSweep


class TimeTracker:
    """Caller-facing facade over the timer engine."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        clock: Clock = utcnow,
        alerts: AlertDispatcher | None = None,
        resolver: MembershipResolver | None = None,
    ) -> None:
        settings = settings or Settings()
        self.clock = clock
        self.alerts = alerts or AlertDispatcher()
        self.resolver = resolver or MembershipResolver()
        self.scheduler = JobScheduler(
            clock,
            max_attempts=settings.max_job_attempts,
            retry_seconds=settings.job_retry_seconds,
        )

        self.interrupts = InterruptScheduler(self.scheduler, self.alerts, self.resolver, clock)
        self.pomodoro = PomodoroController(self.scheduler, self.alerts, clock)
        self.budget = BudgetAlertMonitor(self.alerts)
        self.sessions = SessionManager(
            self.interrupts, self.pomodoro, self.budget, self.resolver, clock,
        )
        self.liveness = LivenessSweep(self.interrupts, self.alerts, clock)

        self.scheduler.register(CHECK_JOB, self.interrupts.check)
        self.scheduler.register(GRACE_JOB, self.interrupts.auto_stop_if_no_ack)
        self.scheduler.register(TRANSITION_JOB, self.pomodoro.process_transition)

    # ── session lifecycle ────────────────────────────────────────────

    def start(
        self,
        user_id: str | None,
        project_id: int,
        category: str | None = None,
        pomodoro: bool | None = None,
    ) -> dict:
        return self.sessions.start(user_id, project_id, category=category, pomodoro=pomodoro)

    def stop(self, user_id: str | None, source: EntrySource | None = None) -> dict:
        return self.sessions.stop(user_id, source)

    def reset(self, user_id: str | None) -> dict:
        return self.sessions.reset(user_id)

    def heartbeat(self, user_id: str | None) -> dict:
        return self.sessions.heartbeat(user_id)

    def create_manual_entry(
        self,
        user_id: str | None,
        project_id: int,
        started_at: datetime,
        stopped_at: datetime,
        note: str | None = None,
        category: str | None = None,
    ) -> dict:
        return self.sessions.create_manual_entry(
            user_id, project_id, started_at, stopped_at, note=note, category=category,
        )

    def running_timer(self, user_id: str | None, personal: bool = False) -> dict | None:
        return self.sessions.running_timer(user_id, personal)

    # ── interrupts ───────────────────────────────────────────────────

    def request_interrupt(self, user_id: str | None) -> dict:
        return self.interrupts.request_interrupt(user_id)

    def ack_interrupt(self, user_id: str | None, continue_: bool) -> dict:
        return self.interrupts.ack_interrupt(user_id, continue_)

    def check(self, workspace_id: str | None, user_id: str, due_at: datetime | None = None) -> dict:
        return self.interrupts.check(workspace_id, user_id, due_at)

    def auto_stop_if_no_ack(
        self, workspace_id: str | None, user_id: str, interrupt_at: datetime,
    ) -> dict:
        return self.interrupts.auto_stop_if_no_ack(workspace_id, user_id, interrupt_at)

    # ── pomodoro ─────────────────────────────────────────────────────

    def process_pomodoro_transition(
        self, timer_id: int, transition_at: datetime | None = None,
    ) -> dict:
        return self.pomodoro.process_transition(timer_id, transition_at)

    # ── periodic work ────────────────────────────────────────────────

    def run_due_jobs(self, now: datetime | None = None) -> list[dict]:
        return self.scheduler.run_due(now)

    def sweep(self) -> dict:
        return self.liveness.sweep()

    def nudge(self) -> dict:
        return self.liveness.nudge()
