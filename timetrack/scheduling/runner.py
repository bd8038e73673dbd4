"""Qt-driven job runner.

Three ``QTimer``s drive the engine when it runs as a service:

- job poll   (default 1 s)   drains due ``scheduled_jobs``
- sweep      (default 60 s)  liveness reconciliation
- nudge      (default 300 s) long-running-timer reminders

Each tick catches and logs its own failures so one bad pass never stops
the loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from ..settings import Settings

if TYPE_CHECKING:
    from ..service import TimeTracker

LOGGER = logging.getLogger(__name__)


class JobRunner(QObject):
    """Periodic driver for a :class:`~timetrack.service.TimeTracker`.

    Signals
    -------
    jobs_ran(reports: list)
        Emitted after a poll that executed at least one job.
    sweep_finished(counts: dict)
        Emitted after every liveness sweep.
    nudge_finished(counts: dict)
        Emitted after every nudge pass.
    """

    jobs_ran = pyqtSignal(object)
    sweep_finished = pyqtSignal(object)
    nudge_finished = pyqtSignal(object)

    def __init__(
        self,
        tracker: "TimeTracker",
        settings: Settings | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._tracker = tracker
        settings = settings or Settings()

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(settings.job_poll_interval_ms)
        self._poll_timer.timeout.connect(self._on_poll)

        self._sweep_timer = QTimer(self)
        self._sweep_timer.setInterval(settings.sweep_interval_seconds * 1000)
        self._sweep_timer.timeout.connect(self._on_sweep)

        self._nudge_timer = QTimer(self)
        self._nudge_timer.setInterval(settings.nudge_interval_seconds * 1000)
        self._nudge_timer.timeout.connect(self._on_nudge)

    @property
    def is_running(self) -> bool:
        return self._poll_timer.isActive()

    def start(self) -> None:
        if self.is_running:
            return
        self._poll_timer.start()
        self._sweep_timer.start()
        self._nudge_timer.start()
        LOGGER.info("Job runner started")

    def stop(self) -> None:
        self._poll_timer.stop()
        self._sweep_timer.stop()
        self._nudge_timer.stop()
        LOGGER.info("Job runner stopped")

    # ── ticks ────────────────────────────────────────────────────────

    def _on_poll(self) -> None:
        try:
            reports = self._tracker.run_due_jobs()
        except Exception:
            LOGGER.exception("Job poll failed")
            return
        if reports:
            self.jobs_ran.emit(reports)

    def _on_sweep(self) -> None:
        try:
            counts = self._tracker.sweep()
        except Exception:
            LOGGER.exception("Liveness sweep failed")
            return
        self.sweep_finished.emit(counts)

    def _on_nudge(self) -> None:
        try:
            counts = self._tracker.nudge()
        except Exception:
            LOGGER.exception("Nudge pass failed")
            return
        self.nudge_finished.emit(counts)
