"""Tests for budget warnings and overrun alerts raised from heartbeats."""

from datetime import timedelta

from timetrack.alerts import ALERT_BUDGET_WARNING, ALERT_OVERRUN, AlertDispatcher
from timetrack.service import TimeTracker
from timetrack.timer.user_settings import update_user_settings

from helpers import (
    T0, USER, SignalCollector, make_project, save_user_settings, set_timer, timers,
)


def _used_project(tracker, hours_used, **fields):
    """Project with *hours_used* already recorded as a manual entry."""
    pid = make_project(**fields)
    if hours_used:
        tracker.create_manual_entry(
            USER, pid, T0 - timedelta(hours=hours_used + 1), T0 - timedelta(hours=1),
        )
    return pid


# ═══════════════════════════════════════════════════════════════════════════
#  OVERRUN
# ═══════════════════════════════════════════════════════════════════════════


class TestOverrun:

    def test_one_overrun_alert_for_two_minutes_of_heartbeats(self, tracker, clock, sent):
        save_user_settings(budget_warning_threshold_hours=1)
        pid = _used_project(tracker, 2, budget_type="hours", budget_hours=2.0)
        tracker.start(USER, pid)

        results = []
        for _ in range(13):
            results.append(tracker.heartbeat(USER)["budget"])
            clock.advance(seconds=10)

        assert len(sent.of_type(ALERT_OVERRUN)) == 1
        assert results[0] == "overrun_sent"
        assert set(results[1:]) == {"overrun_throttled"}
        assert sent.of_type(ALERT_OVERRUN)[0]["title"] == "Budget exceeded"

    def test_overrun_resent_after_an_hour(self, tracker, clock, sent):
        pid = _used_project(tracker, 2, budget_type="hours", budget_hours=2.0)
        tracker.start(USER, pid)
        tracker.heartbeat(USER)

        clock.advance(minutes=60)
        assert tracker.heartbeat(USER)["budget"] == "overrun_throttled"
        clock.advance(seconds=1)
        assert tracker.heartbeat(USER)["budget"] == "overrun_sent"
        assert len(sent.of_type(ALERT_OVERRUN)) == 2

    def test_amount_overrun(self, tracker, clock, sent):
        pid = make_project(budget_type="amount", budget_amount=100.0, hourly_rate=50.0)
        tracker.start(USER, pid)
        clock.advance(hours=2)
        assert tracker.heartbeat(USER)["budget"] == "overrun_sent"
        assert "$100.00" in sent.of_type(ALERT_OVERRUN)[0]["body"]

    def test_failed_delivery_is_logged_and_throttled(self, qapp, clock, caplog):
        calls = []

        def flaky(*args):
            calls.append(args)
            if len(calls) == 1:
                raise ConnectionError("push gateway down")

        alerts = AlertDispatcher(deliver=flaky)
        failed = SignalCollector()
        alerts.alert_failed.connect(failed)
        tracker = TimeTracker(clock=clock, alerts=alerts)

        pid = _used_project(tracker, 2, budget_type="hours", budget_hours=2.0)
        tracker.start(USER, pid)

        assert tracker.heartbeat(USER)["budget"] == "overrun_sent"
        assert failed.last["error"] == "push gateway down"
        assert "could not be delivered" in caplog.text
        assert timers()[0].overrun_alert_sent_at == T0

        clock.advance(seconds=10)
        assert tracker.heartbeat(USER)["budget"] == "overrun_throttled"
        assert len(calls) == 1

    def test_delivery_sees_committed_stamp(self, qapp, clock):
        seen = []

        def deliver(*args):
            seen.append(timers()[0].overrun_alert_sent_at)

        tracker = TimeTracker(clock=clock, alerts=AlertDispatcher(deliver=deliver))
        pid = _used_project(tracker, 2, budget_type="hours", budget_hours=2.0)
        tracker.start(USER, pid)
        tracker.heartbeat(USER)
        assert seen == [T0]


# ═══════════════════════════════════════════════════════════════════════════
#  WARNINGS
# ═══════════════════════════════════════════════════════════════════════════


class TestWarning:

    def test_hours_warning_below_threshold(self, tracker, sent):
        pid = _used_project(tracker, 9.5, budget_type="hours", budget_hours=10.0)
        tracker.start(USER, pid)
        assert tracker.heartbeat(USER)["budget"] == "warning_sent"

        (alert,) = sent.of_type(ALERT_BUDGET_WARNING)
        assert alert["title"] == "Budget warning"
        assert alert["metadata"]["warning_type"] == "hours"
        assert timers()[0].budget_warning_type == "hours"

    def test_no_warning_above_threshold(self, tracker, sent):
        pid = _used_project(tracker, 5, budget_type="hours", budget_hours=10.0)
        tracker.start(USER, pid)
        assert tracker.heartbeat(USER)["budget"] == "within_budget"
        assert len(sent) == 0

    def test_warning_throttled_for_thirty_minutes(self, tracker, clock, sent):
        pid = _used_project(tracker, 9, budget_type="hours", budget_hours=10.0)
        tracker.start(USER, pid)
        tracker.heartbeat(USER)

        clock.advance(minutes=30)
        assert tracker.heartbeat(USER)["budget"] == "warning_throttled"
        clock.advance(minutes=1)
        assert tracker.heartbeat(USER)["budget"] == "warning_sent"
        assert len(sent.of_type(ALERT_BUDGET_WARNING)) == 2

    def test_changed_warning_type_is_not_throttled(self, tracker, clock, sent):
        pid = make_project(budget_type="amount", budget_amount=1000.0, hourly_rate=100.0)
        tracker.start(USER, pid)
        clock.advance(hours=9, minutes=30)
        set_timer(budget_warning_sent_at=clock.now, budget_warning_type="hours")

        assert tracker.heartbeat(USER)["budget"] == "warning_sent"
        assert sent.last["metadata"]["warning_type"] == "amount"

    def test_warnings_disabled(self, tracker, sent):
        save_user_settings(budget_warning_enabled=False)
        pid = _used_project(tracker, 9.5, budget_type="hours", budget_hours=10.0)
        tracker.start(USER, pid)
        assert tracker.heartbeat(USER)["budget"] == "within_budget"
        assert len(sent) == 0


# ═══════════════════════════════════════════════════════════════════════════
#  NOT BILLABLE
# ═══════════════════════════════════════════════════════════════════════════


class TestNotBillable:

    def test_break_timer_is_ignored(self, tracker, clock, sent):
        pid = _used_project(tracker, 2, budget_type="hours", budget_hours=1.0)
        tracker.start(USER, pid, pomodoro=True)
        clock.advance(minutes=25)
        tracker.run_due_jobs()
        sent.clear()

        assert tracker.heartbeat(USER)["budget"] == "not_billable"
        assert len(sent) == 0

    def test_project_without_budget(self, tracker):
        tracker.start(USER, make_project())
        assert tracker.heartbeat(USER)["budget"] == "no_budget"

    def test_workspace_mismatch_sends_nothing(self, tracker, sent):
        pid = _used_project(tracker, 2, budget_type="hours", budget_hours=1.0)
        tracker.start(USER, pid)
        set_timer(workspace_id="ws-other")

        assert tracker.heartbeat(USER)["budget"] == "workspace_mismatch"
        assert len(sent) == 0

    def test_cleared_amount_threshold_disables_warning(self, tracker, clock, sent):
        update_user_settings(USER, budget_warning_threshold_amount=None)
        pid = make_project(budget_type="amount", budget_amount=100.0, hourly_rate=10.0)
        tracker.start(USER, pid)
        clock.advance(hours=5, minutes=30)

        assert tracker.heartbeat(USER)["budget"] == "within_budget"
        assert len(sent) == 0
