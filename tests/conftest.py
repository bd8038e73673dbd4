"""Shared pytest fixtures for TimeTrack tests."""

import sys
import pytest

from PyQt6.QtCore import QCoreApplication

from timetrack.alerts import AlertDispatcher
from timetrack.database.db import configure_engine, init_db
from timetrack.service import TimeTracker

from helpers import FakeClock, SignalCollector, T0


@pytest.fixture(scope="session")
def qapp():
    """A single QCoreApplication instance shared across the entire test run."""
    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    yield app


@pytest.fixture(autouse=True)
def test_db():
    """Point every test at a fresh in-memory SQLite database."""
    configure_engine("sqlite:///:memory:")
    init_db()
    yield


@pytest.fixture
def clock():
    """Controllable clock starting at ``T0``."""
    return FakeClock(T0)


@pytest.fixture
def alerts(qapp):
    return AlertDispatcher()


@pytest.fixture
def sent(alerts):
    """Every alert dispatched through ``alerts``."""
    c = SignalCollector()
    alerts.alert_sent.connect(c)
    return c


@pytest.fixture
def tracker(clock, alerts):
    """TimeTracker wired to the fake clock and the test dispatcher."""
    return TimeTracker(clock=clock, alerts=alerts)
