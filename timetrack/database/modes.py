"""Timer modes: the two mutually exclusive field clusters of a running timer.

A running timer is either a *standard* timer, interrupted periodically to
confirm the user is still working, or a *Pomodoro* timer driven through
work/break phases.  ``RunningTimer.mode`` exposes the active cluster as one
of these variants and ``RunningTimer.apply_mode`` writes it back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class PomodoroPhase(Enum):
    WORK = "work"
    BREAK = "break"


@dataclass(frozen=True)
class StandardMode:
    next_interrupt_at: Optional[datetime] = None


@dataclass(frozen=True)
class PomodoroMode:
    phase: PomodoroPhase
    transition_at: datetime
    work_minutes: float
    break_minutes: float
    current_cycle: int = 1
    completed_cycles: int = 0
    break_started_at: Optional[datetime] = None
    break_ends_at: Optional[datetime] = None

    @property
    def is_break(self) -> bool:
        return self.phase is PomodoroPhase.BREAK


TimerMode = Union[StandardMode, PomodoroMode]
