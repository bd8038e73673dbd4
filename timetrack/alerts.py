"""Outbound user alerts.

``AlertDispatcher`` is the engine's only way to reach the user.  Delivery
itself (push, email) belongs to an external collaborator passed in as
``deliver``; the dispatcher also publishes every alert on the
``alert_sent`` signal so in-process listeners can observe them.

State transitions never deliver directly.  They ``queue`` the alert on
their database session, and delivery happens once that session commits.
A rollback discards the alerts queued inside it, and a rolled back
savepoint discards the alerts queued since it began.

Dispatch is best-effort.  A delivery failure is logged and reported as
``False``; it never propagates into the state transition that triggered it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from PyQt6.QtCore import QObject, pyqtSignal
from sqlalchemy import event
from sqlalchemy.orm import Session as OrmSession

LOGGER = logging.getLogger(__name__)

ALERT_INTERRUPT = "interrupt"
ALERT_BREAK_REMINDER = "break_reminder"
ALERT_BREAK_START = "break_start"
ALERT_BREAK_COMPLETE = "break_complete"
ALERT_BUDGET_WARNING = "budget_warning"
ALERT_OVERRUN = "overrun"
ALERT_NUDGE = "nudge"

Deliver = Callable[[str, str, str, str, dict], None]

_PENDING_KEY = "timetrack.pending_alerts"


# ── session hooks ─────────────────────────────────────────────────────────


@event.listens_for(OrmSession, "after_commit")
def _deliver_pending(session: OrmSession) -> None:
    for dispatcher, _savepoint, args in session.info.pop(_PENDING_KEY, []):
        dispatcher.send(*args)


def _inside(transaction, savepoint) -> bool:
    while transaction is not None:
        if transaction is savepoint:
            return True
        transaction = transaction.parent
    return False


@event.listens_for(OrmSession, "after_soft_rollback")
def _discard_pending(session: OrmSession, previous_transaction) -> None:
    pending = session.info.get(_PENDING_KEY)
    if not pending:
        return
    if previous_transaction.nested:
        kept = [p for p in pending if not _inside(p[1], previous_transaction)]
    else:
        kept = []
    if len(kept) != len(pending):
        LOGGER.debug("Discarding %d alert(s) after rollback", len(pending) - len(kept))
    pending[:] = kept


class AlertDispatcher(QObject):
    """Fire-and-forget alert sink.

    Signals
    -------
    alert_sent(data: dict)
        Emitted after a successful dispatch.  Keys: ``user_id``,
        ``title``, ``body``, ``alert_type``, ``metadata``.
    alert_failed(data: dict)
        Emitted when delivery raised.  Same keys plus ``error``.
    """

    alert_sent = pyqtSignal(object)
    alert_failed = pyqtSignal(object)

    def __init__(
        self,
        deliver: Deliver | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._deliver = deliver

    def queue(
        self,
        db: OrmSession,
        user_id: str,
        title: str,
        body: str,
        alert_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Send the alert once *db* commits."""
        db.info.setdefault(_PENDING_KEY, []).append(
            (self, db.get_nested_transaction(), (user_id, title, body, alert_type, metadata)),
        )

    def send(
        self,
        user_id: str,
        title: str,
        body: str,
        alert_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        data = {
            "user_id": user_id,
            "title": title,
            "body": body,
            "alert_type": alert_type,
            "metadata": dict(metadata or {}),
        }
        try:
            if self._deliver is not None:
                self._deliver(user_id, title, body, alert_type, data["metadata"])
        except Exception as exc:
            LOGGER.exception("Alert %s for user %s could not be delivered", alert_type, user_id)
            data["error"] = str(exc)
            self.alert_failed.emit(data)
            return False

        LOGGER.debug("Sent %s alert to user %s", alert_type, user_id)
        self.alert_sent.emit(data)
        return True
