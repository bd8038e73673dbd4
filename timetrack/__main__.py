"""Allow running TimeTrack as a module: python -m timetrack."""

import logging
import sys

from PyQt6.QtCore import QCoreApplication

from .database.db import init_db
from .scheduling.runner import JobRunner
from .service import TimeTracker
from .settings import load_settings

LOGGER = logging.getLogger("timetrack")


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()

    app = QCoreApplication(sys.argv)
    app.setApplicationName("TimeTrack")
    app.setOrganizationName("TimeTrack")

    tracker = TimeTracker(settings)
    runner = JobRunner(tracker, settings)
    runner.start()
    LOGGER.info("TimeTrack job runner ready (handlers: %s)", ", ".join(tracker.scheduler.handler_names))

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
