"""Wall-clock helpers.

Every timestamp the engine stores is a naive UTC ``datetime``.  Components
take a ``clock`` callable so tests can drive time explicitly.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]

ONE_SECOND = timedelta(seconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def elapsed_seconds(started_at: datetime, stopped_at: datetime) -> int:
    """Whole seconds between two instants, floored and never negative."""
    return max(0, (stopped_at - started_at) // ONE_SECOND)


def minutes(value: float) -> timedelta:
    """``timedelta`` for a possibly fractional number of minutes."""
    return timedelta(minutes=value)
