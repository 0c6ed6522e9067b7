from datetime import datetime, timedelta, timezone

import pytest

from exam_engine.schemas import LateTier
from exam_engine.timing.deadline import (
    compute_late_penalty,
    format_clock,
    minutes_from_instructions,
    minutes_late,
    time_budget_seconds,
    timer_band,
)

DEADLINE = datetime(2026, 5, 4, 9, 0, tzinfo=timezone.utc)


def test_on_time_has_no_penalty():
    assert compute_late_penalty(8.0, DEADLINE, DEADLINE) is None
    assert compute_late_penalty(8.0, DEADLINE, DEADLINE - timedelta(minutes=5)) is None
    assert compute_late_penalty(8.0, None, DEADLINE) is None


def test_zero_score_is_never_penalised():
    assert compute_late_penalty(0.0, DEADLINE, DEADLINE + timedelta(hours=3)) is None


@pytest.mark.parametrize("minutes, tier, amount", [
    (1, LateTier.FLAT_HALF, 0.5),
    (30, LateTier.FLAT_HALF, 0.5),
    (31, LateTier.FLAT_TWO, 2.0),
    (60, LateTier.FLAT_TWO, 2.0),
    (61, LateTier.HALF_SCORE, 4.0),
])
def test_tier_boundaries(minutes, tier, amount):
    penalty = compute_late_penalty(8.0, DEADLINE, DEADLINE + timedelta(minutes=minutes))
    assert penalty.tier == tier
    assert penalty.amount == amount
    assert penalty.minutes_late == minutes


def test_seconds_late_counts_as_one_minute():
    penalty = compute_late_penalty(5.0, DEADLINE, DEADLINE + timedelta(seconds=20))
    assert penalty.tier == LateTier.FLAT_HALF
    assert penalty.minutes_late == 1


def test_notes():
    flat = compute_late_penalty(8.0, DEADLINE, DEADLINE + timedelta(minutes=45))
    assert flat.note == "Submitted 45 minutes late, −2 points"
    half = compute_late_penalty(6.0, DEADLINE, DEADLINE + timedelta(minutes=90))
    assert half.note == "Submitted 1 hours 30 minutes late, −50% of the score"


def test_naive_times_are_treated_as_utc():
    naive = DEADLINE.replace(tzinfo=None)
    assert minutes_late(naive, DEADLINE + timedelta(minutes=10)) == 10.0


@pytest.mark.parametrize("instructions, minutes", [
    ("You have 45 minutes to finish.", 45),
    ("Thời gian làm bài: 60 phút", 60),
    ("Time: 15 min", 15),
    ("No time limit.", 0),
    (None, 0),
])
def test_minutes_from_instructions(instructions, minutes):
    assert minutes_from_instructions(instructions) == minutes


def test_explicit_duration_wins():
    assert time_budget_seconds(20, "You have 45 minutes") == 1200
    assert time_budget_seconds(None, "You have 45 minutes") == 2700
    assert time_budget_seconds(None, None) == 0


def test_format_clock():
    assert format_clock(0) == "00:00"
    assert format_clock(754) == "12:34"
    assert format_clock(-3) == "00:00"


@pytest.mark.parametrize("left, band", [(900, "calm"), (600, "ok"), (400, "warning"), (100, "low"), (8, "critical")])
def test_timer_band(left, band):
    assert timer_band(left, 1000) == band


def test_untimed_band_is_idle():
    assert timer_band(0, 0) == "idle"
