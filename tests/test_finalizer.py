from datetime import datetime, timedelta, timezone

import pytest

from exam_engine.schemas import LateTier
from exam_engine.scoring.finalizer import clamp_score, finalize, round_half_up

DEADLINE = datetime(2026, 5, 4, 9, 0, tzinfo=timezone.utc)


def test_45_minutes_late_loses_two_points():
    result = finalize(8.0, DEADLINE, DEADLINE + timedelta(minutes=45))
    assert result.raw_score == 8.0
    assert result.late_penalty.tier == LateTier.FLAT_TWO
    assert result.final_score == 6.0


def test_90_minutes_late_loses_half():
    result = finalize(6.0, DEADLINE, DEADLINE + timedelta(minutes=90))
    assert result.late_penalty.tier == LateTier.HALF_SCORE
    assert result.late_penalty.amount == 3.0
    assert result.final_score == 3.0


def test_on_time_keeps_raw_score():
    result = finalize(7.25, DEADLINE, DEADLINE - timedelta(minutes=1), submission_id="s-1")
    assert result.raw_score == 7.3
    assert result.final_score == 7.3
    assert result.late_penalty is None
    assert result.submission_id == "s-1"


def test_small_score_penalty_floors_at_zero():
    result = finalize(0.3, DEADLINE, DEADLINE + timedelta(minutes=10))
    assert result.final_score == 0.0


def test_out_of_range_raw_is_clamped():
    assert finalize(12.4, None, DEADLINE).raw_score == 10.0
    assert finalize(-1.0, None, DEADLINE).raw_score == 0.0


@pytest.mark.parametrize("raw", [0.0, 0.05, 0.5, 1.95, 4.44, 5.0, 7.77, 9.99, 10.0])
@pytest.mark.parametrize("late", [-10, 0, 1, 29, 30, 31, 59, 60, 61, 600])
def test_final_is_bounded_by_raw(raw, late):
    result = finalize(raw, DEADLINE, DEADLINE + timedelta(minutes=late))
    assert 0.0 <= result.final_score <= result.raw_score <= 10.0


def test_finalize_is_deterministic():
    submit = DEADLINE + timedelta(minutes=40)
    assert finalize(6.66, DEADLINE, submit) == finalize(6.66, DEADLINE, submit)


def test_round_half_up():
    assert round_half_up(0.25) == 0.3
    assert round_half_up(0.9375, 2) == 0.94
    assert round_half_up(2.45) == 2.5


def test_clamp_score():
    assert clamp_score(11) == 10
    assert clamp_score(-0.1) == 0.0
