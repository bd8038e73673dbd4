"""Durable at-time callbacks.

Jobs are rows in ``scheduled_jobs`` written inside the caller's own
transaction, so a callback exists exactly when the state change that
scheduled it was committed.  Delivery is at-least-once and possibly late:
a job is marked complete only after its handler returned, and a failing
handler is retried until ``max_attempts``.  There is no cancel; handlers
re-read current state and ignore callbacks that no longer apply.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import select

from ..clock import Clock, utcnow
from ..database.db import get_session
from ..database.models import ScheduledJob

LOGGER = logging.getLogger(__name__)

_DATETIME_KEY = "__datetime__"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_KEY: value.isoformat()}
    raise TypeError(f"Cannot schedule argument of type {type(value).__name__}")


def _decode(obj: dict) -> Any:
    if set(obj) == {_DATETIME_KEY}:
        return datetime.fromisoformat(obj[_DATETIME_KEY])
    return obj


def dump_args(args: dict[str, Any]) -> str:
    return json.dumps(args, default=_encode, sort_keys=True)


def load_args(raw: str) -> dict[str, Any]:
    return json.loads(raw or "{}", object_hook=_decode)


class JobScheduler:
    """Registry of named handlers plus the ``scheduled_jobs`` queue."""

    def __init__(
        self,
        clock: Clock = utcnow,
        *,
        max_attempts: int = 5,
        retry_seconds: int = 30,
    ) -> None:
        self._clock = clock
        self._handlers: dict[str, Callable[..., Any]] = {}
        self.max_attempts = max_attempts
        self.retry_delay = timedelta(seconds=retry_seconds)

    # ── registration ─────────────────────────────────────────────────

    def register(self, name: str, handler: Callable[..., Any]) -> None:
        self._handlers[name] = handler

    @property
    def handler_names(self) -> list[str]:
        return sorted(self._handlers)

    # ── scheduling ───────────────────────────────────────────────────

    def schedule_at(self, db, run_at: datetime, handler: str, **args: Any) -> int:
        """Queue *handler* to run at *run_at* within transaction *db*."""
        if handler not in self._handlers:
            raise KeyError(f"Unknown job handler {handler!r}")
        job = ScheduledJob(
            handler=handler,
            args=dump_args(args),
            run_at=run_at,
            created_at=self._clock(),
            attempts=0,
        )
        db.add(job)
        db.flush()
        LOGGER.debug("Scheduled %s at %s (%s)", handler, run_at, job.args)
        return job.id

    def pending(self, handler: str | None = None) -> list[ScheduledJob]:
        """Jobs not yet completed or abandoned, oldest first."""
        with get_session() as db:
            stmt = (
                select(ScheduledJob)
                .where(ScheduledJob.completed_at.is_(None), ScheduledJob.failed_at.is_(None))
                .order_by(ScheduledJob.run_at, ScheduledJob.id)
            )
            if handler is not None:
                stmt = stmt.where(ScheduledJob.handler == handler)
            return list(db.scalars(stmt))

    # ── execution ────────────────────────────────────────────────────

    def run_due(self, now: datetime | None = None) -> list[dict]:
        """Run every job due at *now*; return one report per job run."""
        now = now or self._clock()
        with get_session() as db:
            due = db.scalars(
                select(ScheduledJob)
                .where(
                    ScheduledJob.completed_at.is_(None),
                    ScheduledJob.failed_at.is_(None),
                    ScheduledJob.run_at <= now,
                )
                .order_by(ScheduledJob.run_at, ScheduledJob.id)
            ).all()
            work = [(job.id, job.handler, job.args) for job in due]

        reports = []
        for job_id, name, raw_args in work:
            reports.append(self._run_one(job_id, name, load_args(raw_args), now))
        return reports

    def _run_one(self, job_id: int, name: str, args: dict, now: datetime) -> dict:
        handler = self._handlers.get(name)
        report: dict[str, Any] = {"job_id": job_id, "handler": name, "ok": False, "result": None}
        error: str | None = None

        if handler is None:
            error = f"no handler registered for {name!r}"
            LOGGER.error("Job %s: %s", job_id, error)
        else:
            try:
                report["result"] = handler(**args)
                report["ok"] = True
            except Exception as exc:
                LOGGER.exception("Job %s (%s) failed", job_id, name)
                error = str(exc) or type(exc).__name__

        with get_session() as db:
            job = db.get(ScheduledJob, job_id)
            if job is None:
                return report
            job.attempts += 1
            if report["ok"]:
                job.completed_at = now
            else:
                job.last_error = error
                if handler is None or job.attempts >= self.max_attempts:
                    job.failed_at = now
                    LOGGER.error("Giving up on job %s (%s) after %d attempts", job_id, name, job.attempts)
                else:
                    job.run_at = now + self.retry_delay
        return report
