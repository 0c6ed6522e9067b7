"""Countdown timer and deadline-penalty helpers."""

from exam_engine.timing.deadline import (
    compute_late_penalty,
    format_clock,
    minutes_from_instructions,
    time_budget_seconds,
    timer_band,
)
from exam_engine.timing.timer import CountdownTimer, TimerExpired, TimerState, TimerTick

__all__ = [
    "CountdownTimer",
    "TimerExpired",
    "TimerState",
    "TimerTick",
    "compute_late_penalty",
    "format_clock",
    "minutes_from_instructions",
    "time_budget_seconds",
    "timer_band",
]
