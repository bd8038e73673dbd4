"""SQLAlchemy ORM models for TimeTrack."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Float, Text, ForeignKey,
    CheckConstraint, Index, UniqueConstraint, text,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from ..clock import utcnow
from .modes import PomodoroMode, PomodoroPhase, StandardMode, TimerMode

PERSONAL_CONTEXT = "personal"


def context_key(workspace_id: str | None) -> str:
    """Non-null key for a workspace context (``None`` = personal)."""
    return workspace_id if workspace_id is not None else PERSONAL_CONTEXT


class EntrySource(Enum):
    TIMER = "timer"
    MANUAL = "manual"
    AUTO_STOP = "auto_stop"
    POMODORO_BREAK = "pomodoro_break"


class BudgetType(Enum):
    HOURS = "hours"
    AMOUNT = "amount"


class Base(DeclarativeBase):
    pass


# ── engine-owned records ──────────────────────────────────────────────────


class RunningTimer(Base):
    """The single live session pointer for a user within a workspace context."""

    __tablename__ = "running_timers"
    __table_args__ = (
        UniqueConstraint("user_id", "context_key", name="uq_running_timer_user_context"),
        CheckConstraint(
            "NOT (pomodoro_enabled AND next_interrupt_at IS NOT NULL)",
            name="ck_running_timer_single_mode",
        ),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=True)   # null = personal context
    context_key = Column(String(64), nullable=False, default=PERSONAL_CONTEXT)
    user_id = Column(String(64), nullable=True)        # null on legacy rows
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    category = Column(String(64), nullable=True)

    started_at = Column(DateTime, nullable=False)
    last_heartbeat_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)

    # ── interrupts ────────────────────────────────────────────────────
    awaiting_interrupt_ack = Column(Boolean, nullable=False, default=False)
    interrupt_shown_at = Column(DateTime, nullable=True)
    next_interrupt_at = Column(DateTime, nullable=True)

    # ── pomodoro ──────────────────────────────────────────────────────
    pomodoro_enabled = Column(Boolean, nullable=False, default=False)
    pomodoro_phase = Column(String(8), nullable=True)   # work | break
    pomodoro_transition_at = Column(DateTime, nullable=True)
    pomodoro_work_minutes = Column(Float, nullable=True)
    pomodoro_break_minutes = Column(Float, nullable=True)
    pomodoro_current_cycle = Column(Integer, nullable=True)
    pomodoro_completed_cycles = Column(Integer, nullable=True)
    is_break_timer = Column(Boolean, nullable=False, default=False)
    break_started_at = Column(DateTime, nullable=True)
    break_ends_at = Column(DateTime, nullable=True)

    # ── alert dedup ───────────────────────────────────────────────────
    overrun_alert_sent_at = Column(DateTime, nullable=True)
    budget_warning_sent_at = Column(DateTime, nullable=True)
    budget_warning_type = Column(String(8), nullable=True)  # hours | amount
    last_nudge_sent_at = Column(DateTime, nullable=True)

    project = relationship("Project", lazy="joined")

    @property
    def is_legacy(self) -> bool:
        """Rows missing their user or project linkage; jobs skip them."""
        return self.user_id is None or self.project is None

    @property
    def mode(self) -> TimerMode:
        if not self.pomodoro_enabled:
            return StandardMode(next_interrupt_at=self.next_interrupt_at)
        return PomodoroMode(
            phase=PomodoroPhase(self.pomodoro_phase or PomodoroPhase.WORK.value),
            transition_at=self.pomodoro_transition_at,
            work_minutes=self.pomodoro_work_minutes,
            break_minutes=self.pomodoro_break_minutes,
            current_cycle=self.pomodoro_current_cycle or 1,
            completed_cycles=self.pomodoro_completed_cycles or 0,
            break_started_at=self.break_started_at,
            break_ends_at=self.break_ends_at,
        )

    def apply_mode(self, mode: TimerMode) -> None:
        """Write *mode* and clear the fields of the other variant."""
        if isinstance(mode, StandardMode):
            self.next_interrupt_at = mode.next_interrupt_at
            self.pomodoro_enabled = False
            self.pomodoro_phase = None
            self.pomodoro_transition_at = None
            self.pomodoro_work_minutes = None
            self.pomodoro_break_minutes = None
            self.pomodoro_current_cycle = None
            self.pomodoro_completed_cycles = None
            self.is_break_timer = False
            self.break_started_at = None
            self.break_ends_at = None
            return

        self.next_interrupt_at = None
        self.pomodoro_enabled = True
        self.pomodoro_phase = mode.phase.value
        self.pomodoro_transition_at = mode.transition_at
        self.pomodoro_work_minutes = mode.work_minutes
        self.pomodoro_break_minutes = mode.break_minutes
        self.pomodoro_current_cycle = mode.current_cycle
        self.pomodoro_completed_cycles = mode.completed_cycles
        self.is_break_timer = mode.is_break
        self.break_started_at = mode.break_started_at
        self.break_ends_at = mode.break_ends_at

    def as_dict(self) -> dict:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}

    def __repr__(self) -> str:
        return (
            f"<RunningTimer id={self.id} user={self.user_id} "
            f"context={self.context_key} project={self.project_id}>"
        )


class TimeEntry(Base):
    """A record of billable time; immutable once closed."""

    __tablename__ = "time_entries"
    __table_args__ = (
        Index(
            "uq_time_entry_open",
            "user_id", "project_id", "context_key",
            unique=True,
            sqlite_where=text("stopped_at IS NULL"),
            postgresql_where=text("stopped_at IS NULL"),
        ),
        Index("ix_time_entry_project", "project_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=True)
    context_key = Column(String(64), nullable=False, default=PERSONAL_CONTEXT)
    user_id = Column(String(64), nullable=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    started_at = Column(DateTime, nullable=False)
    stopped_at = Column(DateTime, nullable=True)
    seconds = Column(Integer, nullable=True)
    source = Column(String(20), nullable=False, default=EntrySource.TIMER.value)
    category = Column(String(64), nullable=True)
    note = Column(Text, nullable=True)
    is_overrun = Column(Boolean, nullable=False, default=False)  # legacy, always False

    @property
    def is_open(self) -> bool:
        return self.stopped_at is None

    def __repr__(self) -> str:
        return (
            f"<TimeEntry id={self.id} project={self.project_id} "
            f"source={self.source} seconds={self.seconds}>"
        )


class UserSettings(Base):
    """Per-user timer preferences consumed by the engine."""

    __tablename__ = "user_settings"

    user_id = Column(String(64), primary_key=True)
    interrupt_enabled = Column(Boolean, nullable=False, default=True)
    interrupt_interval = Column(Float, nullable=False, default=60.0)  # minutes
    grace_period = Column(Integer, nullable=False, default=5)         # seconds
    pomodoro_enabled = Column(Boolean, nullable=False, default=False)
    pomodoro_work_minutes = Column(Float, nullable=False, default=25.0)
    pomodoro_break_minutes = Column(Float, nullable=False, default=5.0)
    budget_warning_enabled = Column(Boolean, nullable=False, default=True)
    budget_warning_threshold_hours = Column(Float, nullable=True)  # None: no warning
    budget_warning_threshold_amount = Column(Float, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<UserSettings user={self.user_id} "
            f"interval={self.interrupt_interval} pomodoro={self.pomodoro_enabled}>"
        )


class PomodoroProgress(Base):
    """Per-user completed Pomodoro cycles, carried across restarts."""

    __tablename__ = "pomodoro_progress"

    user_id = Column(String(64), primary_key=True)
    completed_cycles = Column(Integer, nullable=False, default=0)
    last_break_ended_at = Column(DateTime, nullable=True)


class ScheduledJob(Base):
    """A durable at-time callback."""

    __tablename__ = "scheduled_jobs"
    __table_args__ = (
        Index("ix_scheduled_job_due", "completed_at", "run_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    handler = Column(String(64), nullable=False)
    args = Column(Text, nullable=False, default="{}")   # JSON
    run_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    attempts = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ScheduledJob id={self.id} handler={self.handler} run_at={self.run_at}>"


# ── external collaborators (read-only to the engine) ─────────────────────


class Project(Base):
    """Billable project; owned by project CRUD, only read here."""

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=True)   # null = personal project
    owner_id = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    hourly_rate = Column(Float, nullable=False, default=0.0)
    budget_type = Column(String(8), nullable=False, default=BudgetType.HOURS.value)
    budget_hours = Column(Float, nullable=True)
    budget_amount = Column(Float, nullable=True)
    archived = Column(Boolean, nullable=False, default=False)

    @property
    def is_personal(self) -> bool:
        return self.workspace_id is None

    def as_dict(self) -> dict:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r} workspace={self.workspace_id}>"


class Membership(Base):
    """Workspace membership; owned by organization management."""

    __tablename__ = "memberships"
    __table_args__ = (
        Index("ix_membership_user", "user_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=False)
    user_id = Column(String(64), nullable=False)
    role = Column(String(16), nullable=False, default="member")  # owner | admin | member
    created_at = Column(DateTime, nullable=False, default=utcnow)
    inactive_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Membership workspace={self.workspace_id} user={self.user_id} role={self.role}>"
