"""Shared test helpers for TimeTrack."""

from datetime import datetime, timedelta

from sqlalchemy import select

from timetrack.database.db import get_session
from timetrack.database.models import (
    Membership, Project, RunningTimer, TimeEntry, UserSettings,
)
from timetrack.timer.user_settings import default_settings

T0 = datetime(2026, 3, 2, 9, 0, 0)

USER = "user-1"
WS_A = "ws-a"
WS_B = "ws-b"


class SignalCollector:
    """Utility to capture pyqtSignal emissions into a list."""

    def __init__(self):
        self.items: list = []

    def slot(self, *args):
        self.items.append(args if len(args) > 1 else args[0] if args else None)

    def __call__(self, *args):
        self.slot(*args)

    def __len__(self):
        return len(self.items)

    def __getitem__(self, idx):
        return self.items[idx]

    @property
    def last(self):
        return self.items[-1] if self.items else None

    def of_type(self, alert_type: str) -> list:
        return [a for a in self.items if a["alert_type"] == alert_type]

    def clear(self):
        self.items.clear()


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ── fixtures-as-functions ─────────────────────────────────────────────────


def make_project(workspace_id=None, owner_id=USER, **fields) -> int:
    fields.setdefault("name", "Website")
    with get_session() as db:
        project = Project(workspace_id=workspace_id, owner_id=owner_id, **fields)
        db.add(project)
        db.flush()
        return project.id


def add_membership(user_id, workspace_id, created_at=T0, **fields) -> None:
    with get_session() as db:
        db.add(Membership(
            user_id=user_id, workspace_id=workspace_id, created_at=created_at, **fields,
        ))


def save_user_settings(user_id=USER, **fields) -> None:
    with get_session() as db:
        settings = db.get(UserSettings, user_id)
        if settings is None:
            settings = default_settings(user_id)
            db.add(settings)
        for name, value in fields.items():
            setattr(settings, name, value)


def timers(user_id=USER) -> list[RunningTimer]:
    with get_session() as db:
        return list(db.scalars(
            select(RunningTimer).where(RunningTimer.user_id == user_id)
        ))


def entries(user_id=USER) -> list[TimeEntry]:
    with get_session() as db:
        return list(db.scalars(
            select(TimeEntry).where(TimeEntry.user_id == user_id).order_by(TimeEntry.id)
        ))


def set_timer(**fields) -> None:
    """Patch the single running timer of ``USER``."""
    with get_session() as db:
        timer = db.scalars(select(RunningTimer).where(RunningTimer.user_id == USER)).one()
        for name, value in fields.items():
            setattr(timer, name, value)
