"""Session manager: the caller-facing timer lifecycle.

States (per user, across every workspace context)
-------------------------------------------------
IDLE          No running timer.
RUNNING       A running timer exists and is not awaiting an ack.
AWAITING_ACK  An interrupt prompt is open (see ``interrupts``).

Transitions
-----------
IDLE → RUNNING                 (start)
RUNNING → AWAITING_ACK         (interrupt check / request_interrupt)
AWAITING_ACK → RUNNING         (ack continue)
AWAITING_ACK → IDLE            (ack stop / grace timeout)
Any → IDLE                     (stop / reset / stale sweep / auto-stop)

Only the side effects are persisted: ``TimeEntry`` rows.

A user has at most one running timer across *all* contexts.  ``start``
stops every other timer of the user inside the same transaction that
inserts the new one; the unique (user, context) constraint catches a
concurrent start racing this one.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..clock import Clock, elapsed_seconds, utcnow
from ..database.db import get_session
from ..database.models import EntrySource, TimeEntry, context_key
from ..database.modes import StandardMode
from ..errors import ConflictError, ValidationError
from .budget import BudgetAlertMonitor, budget_summary
from .context import (
    MembershipResolver, context_probes, require_user, resolve_project_context,
)
from .interrupts import InterruptScheduler
from .pomodoro import PomodoroController
from .store import (
    close_timer, discard_timer, get_project, insert_timer, open_entry,
    probe_timer, timers_for_user,
)
from .user_settings import settings_for

LOGGER = logging.getLogger(__name__)

_NO_TIMER = {"success": False, "reason": "no_running_timer"}


class SessionManager:
    """start / stop / reset / heartbeat / manual entries."""

    def __init__(
        self,
        interrupts: InterruptScheduler,
        pomodoro: PomodoroController,
        budget: BudgetAlertMonitor,
        resolver: MembershipResolver | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._interrupts = interrupts
        self._pomodoro = pomodoro
        self._budget = budget
        self._resolver = resolver or MembershipResolver()
        self._clock = clock

    # ── helpers ──────────────────────────────────────────────────────

    def _callers_timer(self, db, user_id: str):
        workspace_id = self._resolver.resolve(db, user_id)
        return probe_timer(db, user_id, context_probes(workspace_id))

    # ── start ────────────────────────────────────────────────────────

    def start(
        self,
        user_id: str | None,
        project_id: int,
        category: str | None = None,
        pomodoro: bool | None = None,
    ) -> dict:
        """Start tracking *project_id*, stopping any other timer first.

        Standard timers get a ``next_interrupt_at`` from the user's
        settings; Pomodoro timers get a work phase instead and no
        interrupts.  Exactly one callback is scheduled either way
        (none for a standard timer with interrupts disabled).
        """
        user_id = require_user(user_id)
        now = self._clock()
        try:
            with get_session() as db:
                project = get_project(db, project_id)
                workspace_id = resolve_project_context(
                    db, user_id, project, self._resolver, project_id,
                )
                if project.archived:
                    raise ValidationError(
                        "Cannot start a timer for an archived project. "
                        "Unarchive it first or select a different project."
                    )

                for existing in timers_for_user(db, user_id):
                    LOGGER.info("Stopping timer %s before starting a new one", existing.id)
                    close_timer(db, existing, EntrySource.TIMER, now)

                settings = settings_for(db, user_id)
                use_pomodoro = settings.pomodoro_enabled if pomodoro is None else pomodoro

                timer = insert_timer(
                    db,
                    workspace_id=workspace_id,
                    user_id=user_id,
                    project_id=project.id,
                    category=category,
                    started_at=now,
                    last_heartbeat_at=now,
                    awaiting_interrupt_ack=False,
                    is_break_timer=False,
                    pomodoro_enabled=False,
                )
                if use_pomodoro:
                    self._pomodoro.begin(db, timer, settings, now)
                else:
                    timer.apply_mode(StandardMode(
                        next_interrupt_at=self._interrupts.next_interrupt_at(settings, now),
                    ))
                db.flush()

                open_entry(
                    db,
                    user_id=user_id,
                    project_id=project.id,
                    workspace_id=workspace_id,
                    started_at=now,
                    category=category,
                )

                if use_pomodoro:
                    self._pomodoro.schedule_transition(db, timer)
                else:
                    self._interrupts.schedule_check(db, timer)

                LOGGER.info(
                    "Started %s timer %s for user %s on project %s",
                    "pomodoro" if use_pomodoro else "standard", timer.id, user_id, project.id,
                )
                return {
                    "success": True,
                    "timer_id": timer.id,
                    "next_interrupt_at": timer.next_interrupt_at,
                    "pomodoro_transition_at": timer.pomodoro_transition_at,
                }
        except IntegrityError as exc:
            raise ConflictError("Another timer was started at the same time; try again") from exc

    # ── stop / reset ─────────────────────────────────────────────────

    def stop(self, user_id: str | None, source: EntrySource | None = None) -> dict:
        """Close the caller's open entry and delete their timer."""
        user_id = require_user(user_id)
        now = self._clock()
        with get_session() as db:
            timer = self._callers_timer(db, user_id)
            if timer is None:
                return dict(_NO_TIMER)
            timer_id = timer.id
            entry = close_timer(db, timer, source or EntrySource.TIMER, now)
            return {
                "success": True,
                "timer_id": timer_id,
                "entry_id": entry.id if entry is not None else None,
                "seconds": entry.seconds if entry is not None else None,
            }

    def reset(self, user_id: str | None) -> dict:
        """Cancel the caller's timer, discarding the open entry."""
        user_id = require_user(user_id)
        with get_session() as db:
            timer = self._callers_timer(db, user_id)
            if timer is None:
                return dict(_NO_TIMER)
            timer_id = timer.id
            discarded = discard_timer(db, timer)
            return {"success": True, "timer_id": timer_id, "entry_discarded": discarded}

    # ── heartbeat ────────────────────────────────────────────────────

    def heartbeat(self, user_id: str | None) -> dict:
        """Record client liveness and run the budget monitor."""
        user_id = require_user(user_id)
        now = self._clock()
        with get_session() as db:
            timer = self._callers_timer(db, user_id)
            if timer is None:
                return dict(_NO_TIMER)
            timer.last_heartbeat_at = now
            db.flush()

            try:
                with db.begin_nested():
                    budget = self._budget.check(db, timer, now)
            except Exception:
                LOGGER.exception("Budget check failed for timer %s", timer.id)
                budget = "error"
            return {"success": True, "timer_id": timer.id, "budget": budget}

    # ── manual entries ───────────────────────────────────────────────

    def create_manual_entry(
        self,
        user_id: str | None,
        project_id: int,
        started_at: datetime,
        stopped_at: datetime,
        note: str | None = None,
        category: str | None = None,
    ) -> dict:
        user_id = require_user(user_id)
        with get_session() as db:
            project = get_project(db, project_id)
            workspace_id = resolve_project_context(
                db, user_id, project, self._resolver, project_id,
            )
            if stopped_at <= started_at:
                raise ValidationError("End time must be after start time")

            seconds = elapsed_seconds(started_at, stopped_at)
            entry = TimeEntry(
                workspace_id=workspace_id,
                context_key=context_key(workspace_id),
                user_id=user_id,
                project_id=project.id,
                started_at=started_at,
                stopped_at=stopped_at,
                seconds=seconds,
                source=EntrySource.MANUAL.value,
                note=note,
                category=category,
                is_overrun=False,
            )
            db.add(entry)
            db.flush()
            return {"success": True, "entry_id": entry.id, "seconds": seconds}

    # ── read query ───────────────────────────────────────────────────

    def running_timer(self, user_id: str | None, personal: bool = False) -> dict | None:
        """The caller's timer enriched with its project and budget summary."""
        if not user_id:
            return None
        now = self._clock()
        with get_session() as db:
            if personal:
                timer = probe_timer(db, user_id, [None])
            else:
                timer = self._callers_timer(db, user_id)
            if timer is None:
                return None

            data = timer.as_dict()
            data["elapsed_seconds"] = elapsed_seconds(timer.started_at, now)
            project = timer.project
            if project is not None:
                data["project"] = {**project.as_dict(), **budget_summary(db, project, now, timer)}
            else:
                data["project"] = None
            return data
