"""
Step 5 — Score Finalizer

finalize(raw_score, deadline, submit_time) → FinalResult

    raw   = clamp(round1(raw_score), 0, 10)
    final = clamp(round1(max(0, raw − penalty)), 0, 10)

so final ≤ raw always holds. Deterministic: same inputs, same output.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from exam_engine import config
from exam_engine.schemas import FinalResult, LatePenalty
from exam_engine.timing.deadline import compute_late_penalty


def round_half_up(value: float, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def clamp_score(value: float, upper: float = config.MAX_SCORE) -> float:
    return min(upper, max(0.0, value))


def finalize(
    raw_score: float,
    deadline: Optional[datetime],
    submit_time: datetime,
    submission_id: Optional[str] = None,
) -> FinalResult:
    raw = clamp_score(round_half_up(raw_score))
    penalty: Optional[LatePenalty] = compute_late_penalty(raw, deadline, submit_time)
    amount = penalty.amount if penalty else 0.0
    final = clamp_score(round_half_up(max(0.0, raw - amount)))
    return FinalResult(
        raw_score=raw,
        late_penalty=penalty,
        final_score=min(final, raw),
        submission_id=submission_id,
        submitted_at=submit_time,
    )
