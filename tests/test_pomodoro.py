"""Tests for the Pomodoro cycle controller."""

import pytest
from datetime import timedelta

from timetrack.alerts import ALERT_BREAK_COMPLETE, ALERT_BREAK_START
from timetrack.database.db import get_session
from timetrack.database.models import EntrySource, PomodoroProgress
from timetrack.database.modes import PomodoroMode, PomodoroPhase, StandardMode
from timetrack.timer.pomodoro import break_minutes_for

from helpers import T0, USER, entries, make_project, save_user_settings, timers


def _run_session(tracker, clock, pid, work=25):
    """Start, let the work phase and the break run out; return both results."""
    tracker.start(USER, pid, pomodoro=True)
    clock.advance(minutes=work)
    (to_break,) = tracker.run_due_jobs()
    clock.now = timers()[0].break_ends_at
    (to_idle,) = tracker.run_due_jobs()
    return to_break["result"], to_idle["result"]


# ═══════════════════════════════════════════════════════════════════════════
#  MODE VARIANT
# ═══════════════════════════════════════════════════════════════════════════


class TestTimerMode:

    def test_pomodoro_timer_has_no_interrupt(self, tracker):
        tracker.start(USER, make_project(), pomodoro=True)
        timer = timers()[0]
        assert timer.pomodoro_enabled is True
        assert timer.next_interrupt_at is None
        mode = timer.mode
        assert isinstance(mode, PomodoroMode)
        assert mode.phase == PomodoroPhase.WORK
        assert mode.current_cycle == 1

    def test_standard_timer_has_no_pomodoro_fields(self, tracker):
        tracker.start(USER, make_project())
        timer = timers()[0]
        assert isinstance(timer.mode, StandardMode)
        assert timer.pomodoro_phase is None
        assert timer.pomodoro_transition_at is None

    def test_apply_mode_clears_other_variant(self, tracker):
        tracker.start(USER, make_project(), pomodoro=True)
        timer = timers()[0]
        timer.apply_mode(StandardMode(next_interrupt_at=T0))
        assert timer.pomodoro_enabled is False
        assert timer.pomodoro_current_cycle is None
        assert timer.is_break_timer is False

        timer.apply_mode(PomodoroMode(
            phase=PomodoroPhase.BREAK, transition_at=T0, work_minutes=25, break_minutes=5,
        ))
        assert timer.next_interrupt_at is None
        assert timer.is_break_timer is True


# ═══════════════════════════════════════════════════════════════════════════
#  TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════


class TestTransitions:

    def test_work_end_starts_break(self, tracker, clock, sent):
        tracker.start(USER, make_project(), pomodoro=True)
        clock.advance(minutes=25)
        (report,) = tracker.run_due_jobs()

        result = report["result"]
        assert result["action"] == "break_started"
        assert result["break_minutes"] == 5
        assert result["is_long_break"] is False

        timer = timers()[0]
        assert timer.is_break_timer is True
        assert timer.pomodoro_phase == "break"
        assert timer.break_started_at == clock.now
        assert timer.break_ends_at == clock.now + timedelta(minutes=5)
        assert timer.pomodoro_transition_at == timer.break_ends_at

        (entry,) = entries()
        assert entry.source == EntrySource.POMODORO_BREAK.value
        assert entry.seconds == 25 * 60
        (alert,) = sent.of_type(ALERT_BREAK_START)
        assert alert["title"] == "Break time!"

    def test_break_end_deletes_timer(self, tracker, clock, sent):
        tracker.start(USER, make_project(), pomodoro=True)
        clock.advance(minutes=25)
        tracker.run_due_jobs()
        clock.advance(minutes=5)
        (report,) = tracker.run_due_jobs()

        assert report["result"] == {
            "action": "break_finished",
            "completed_cycles": 1,
            "full_cycle_complete": False,
        }
        assert timers() == []
        assert len(entries()) == 1
        (alert,) = sent.of_type(ALERT_BREAK_COMPLETE)
        assert alert["title"] == "Break complete"

    def test_stale_transition_is_ignored(self, tracker, clock):
        tracker.start(USER, make_project(), pomodoro=True)
        timer = timers()[0]
        result = tracker.process_pomodoro_transition(timer.id, T0 + timedelta(minutes=1))
        assert result == {"action": "stale_job"}
        assert timers()[0].is_break_timer is False

    def test_transition_for_stopped_timer(self, tracker):
        tracker.start(USER, make_project(), pomodoro=True)
        timer_id = timers()[0].id
        tracker.stop(USER)
        assert tracker.process_pomodoro_transition(timer_id)["action"] == "no_timer"

    def test_old_transition_does_not_touch_new_timer(self, tracker, clock):
        pid = make_project()
        tracker.start(USER, pid, pomodoro=True)
        old_id = timers()[0].id
        clock.advance(minutes=10)
        tracker.start(USER, pid, pomodoro=True)

        clock.advance(minutes=15)
        reports = tracker.run_due_jobs()
        assert [r["result"]["action"] for r in reports] == ["no_timer"]
        assert timers()[0].id != old_id
        assert timers()[0].is_break_timer is False

    def test_stopping_during_break_records_no_time(self, tracker, clock):
        tracker.start(USER, make_project(), pomodoro=True)
        clock.advance(minutes=25)
        tracker.run_due_jobs()
        clock.advance(minutes=2)
        result = tracker.stop(USER)

        assert result["success"] is True
        assert result["entry_id"] is None
        assert len(entries()) == 1


# ═══════════════════════════════════════════════════════════════════════════
#  CYCLES
# ═══════════════════════════════════════════════════════════════════════════


class TestCycles:

    @pytest.mark.parametrize("cycle,expected", [(1, 5), (2, 5), (3, 5), (4, 15), (8, 15)])
    def test_break_minutes_for(self, cycle, expected):
        assert break_minutes_for(cycle, 5) == expected

    def test_fourth_break_is_long_and_completes_cycle(self, tracker, clock, sent):
        save_user_settings(pomodoro_work_minutes=25, pomodoro_break_minutes=5)
        pid = make_project()

        results = [_run_session(tracker, clock, pid) for _ in range(4)]

        breaks = [b["break_minutes"] for b, _ in results]
        assert breaks == [5, 5, 5, 15]
        assert [b["is_long_break"] for b, _ in results] == [False, False, False, True]
        assert results[-1][1]["completed_cycles"] == 4
        assert results[-1][1]["full_cycle_complete"] is True

        titles = [a["title"] for a in sent.of_type(ALERT_BREAK_COMPLETE)]
        assert titles == ["Break complete"] * 3 + ["Pomodoro cycle complete!"]
        assert sent.of_type(ALERT_BREAK_START)[-1]["title"] == "Long break time!"

        with get_session() as db:
            assert db.get(PomodoroProgress, USER).completed_cycles == 4

    def test_cycle_count_resets_after_long_pause(self, tracker, clock):
        pid = make_project()
        _run_session(tracker, clock, pid)
        clock.advance(minutes=61)
        tracker.start(USER, pid, pomodoro=True)
        assert timers()[0].pomodoro_current_cycle == 1
        assert timers()[0].pomodoro_completed_cycles == 0

    def test_cycle_count_carries_into_next_session(self, tracker, clock):
        pid = make_project()
        _run_session(tracker, clock, pid)
        _run_session(tracker, clock, pid)
        tracker.start(USER, pid, pomodoro=True)
        assert timers()[0].pomodoro_current_cycle == 3
