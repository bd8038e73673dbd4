"""Timer store: persistence rules for running timers and time entries.

Two uniqueness rules live here and in the schema:

- one ``RunningTimer`` per (user, workspace context);
- one open ``TimeEntry`` per (user, project, workspace context).

The *global* rule (one running timer per user across every context) is
enforced by :class:`~timetrack.timer.session.SessionManager`, which stops
every other timer inside the same transaction that inserts a new one.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import func, select

from ..clock import elapsed_seconds
from ..database.models import (
    EntrySource, Project, RunningTimer, TimeEntry, context_key,
)
from ..errors import ConflictError

TimerPredicate = Callable[[RunningTimer], bool]


# ── running timers ───────────────────────────────────────────────────────


def find_timer(db, user_id: str, workspace_id: str | None) -> Optional[RunningTimer]:
    return db.scalars(
        select(RunningTimer).where(
            RunningTimer.user_id == user_id,
            RunningTimer.context_key == context_key(workspace_id),
        )
    ).first()


def probe_timer(
    db,
    user_id: str,
    contexts: Iterable[str | None],
    predicate: TimerPredicate | None = None,
) -> Optional[RunningTimer]:
    """First timer found walking *contexts* in order that satisfies *predicate*."""
    for workspace_id in contexts:
        timer = find_timer(db, user_id, workspace_id)
        if timer is not None and (predicate is None or predicate(timer)):
            return timer
    return None


def timers_for_user(db, user_id: str) -> list[RunningTimer]:
    return list(db.scalars(
        select(RunningTimer)
        .where(RunningTimer.user_id == user_id)
        .order_by(RunningTimer.id)
    ))


def all_timers(db) -> list[RunningTimer]:
    return list(db.scalars(select(RunningTimer).order_by(RunningTimer.id)))


def insert_timer(db, **fields) -> RunningTimer:
    workspace_id = fields.get("workspace_id")
    timer = RunningTimer(context_key=context_key(workspace_id), **fields)
    db.add(timer)
    db.flush()
    return timer


# ── time entries ─────────────────────────────────────────────────────────


def open_entry_for(db, timer: RunningTimer) -> Optional[TimeEntry]:
    """The open, non-overrun entry that belongs to *timer*."""
    return db.scalars(
        select(TimeEntry).where(
            TimeEntry.project_id == timer.project_id,
            TimeEntry.user_id == timer.user_id,
            TimeEntry.context_key == timer.context_key,
            TimeEntry.stopped_at.is_(None),
            TimeEntry.is_overrun.is_(False),
        )
    ).first()


def open_entry(
    db,
    *,
    user_id: str,
    project_id: int,
    workspace_id: str | None,
    started_at: datetime,
    category: str | None = None,
) -> TimeEntry:
    key = context_key(workspace_id)
    existing = db.scalars(
        select(TimeEntry.id).where(
            TimeEntry.user_id == user_id,
            TimeEntry.project_id == project_id,
            TimeEntry.context_key == key,
            TimeEntry.stopped_at.is_(None),
        )
    ).first()
    if existing is not None:
        raise ConflictError(
            f"Time entry {existing} is still open for this project"
        )
    entry = TimeEntry(
        workspace_id=workspace_id,
        context_key=key,
        user_id=user_id,
        project_id=project_id,
        started_at=started_at,
        source=EntrySource.TIMER.value,
        category=category,
        is_overrun=False,
    )
    db.add(entry)
    db.flush()
    return entry


def close_entry(entry: TimeEntry, source: EntrySource, now: datetime) -> TimeEntry:
    entry.stopped_at = now
    entry.seconds = elapsed_seconds(entry.started_at, now)
    entry.source = source.value
    return entry


def close_timer(
    db, timer: RunningTimer, source: EntrySource, now: datetime,
) -> Optional[TimeEntry]:
    """Close *timer*'s open entry, stamp ``ended_at`` and delete the timer."""
    entry = open_entry_for(db, timer)
    if entry is not None:
        close_entry(entry, source, now)
    timer.ended_at = now
    db.flush()
    db.delete(timer)
    db.flush()
    return entry


def discard_timer(db, timer: RunningTimer) -> bool:
    """Delete *timer* and its open entry without recording any time."""
    entry = open_entry_for(db, timer)
    if entry is not None:
        db.delete(entry)
    db.delete(timer)
    db.flush()
    return entry is not None


# ── projects ─────────────────────────────────────────────────────────────


def get_project(db, project_id: int) -> Optional[Project]:
    return db.get(Project, project_id)


def project_seconds(db, project_id: int) -> int:
    """Seconds recorded on closed, non-overrun entries of a project."""
    total = db.scalar(
        select(func.coalesce(func.sum(TimeEntry.seconds), 0)).where(
            TimeEntry.project_id == project_id,
            TimeEntry.is_overrun.is_(False),
            TimeEntry.stopped_at.is_not(None),
        )
    )
    return int(total or 0)
