"""
Deadline and time-budget helpers. Pure functions, no I/O.

Late-penalty tiers, by minutes past the deadline:
  (0, 30]   → −0.5 point
  (30, 60]  → −2 points
  > 60      → −50% of the raw score
A raw score of 0 is never penalised.
"""

import math
import re
from datetime import datetime, timezone
from typing import Optional

from exam_engine.schemas import LatePenalty, LateTier

_MINUTES_PATTERN = re.compile(r"(\d+)\s*(?:minutes|minute|mins|min|phút)\b", re.IGNORECASE)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def minutes_late(deadline: Optional[datetime], submit_time: datetime) -> float:
    """Minutes past the deadline, 0.0 when on time or when there is no deadline."""
    if deadline is None:
        return 0.0
    delta = (_aware(submit_time) - _aware(deadline)).total_seconds() / 60
    return max(0.0, delta)


def _late_note(whole_minutes: int, tier: LateTier) -> str:
    if tier == LateTier.HALF_SCORE:
        hours, mins = divmod(whole_minutes, 60)
        return f"Submitted {hours} hours {mins} minutes late, −50% of the score"
    points = "0.5 points" if tier == LateTier.FLAT_HALF else "2 points"
    return f"Submitted {whole_minutes} minutes late, −{points}"


def compute_late_penalty(
    raw_score: float,
    deadline: Optional[datetime],
    submit_time: datetime,
) -> Optional[LatePenalty]:
    """The penalty owed for this submission, or None when nothing is deducted."""
    late = minutes_late(deadline, submit_time)
    if late <= 0 or raw_score <= 0:
        return None

    if late <= 30:
        tier, amount = LateTier.FLAT_HALF, 0.5
    elif late <= 60:
        tier, amount = LateTier.FLAT_TWO, 2.0
    else:
        tier, amount = LateTier.HALF_SCORE, raw_score / 2

    whole = max(1, math.floor(late))
    return LatePenalty(amount=amount, tier=tier, minutes_late=whole, note=_late_note(whole, tier))


# ─── Time budget ───────────────────────────────────────────────────────────────

def minutes_from_instructions(instructions: Optional[str]) -> int:
    """First "<n> minutes" / "<n> phút" in the author's instructions, else 0."""
    if not instructions:
        return 0
    match = _MINUTES_PATTERN.search(instructions)
    return int(match.group(1)) if match else 0


def time_budget_seconds(duration_minutes: Optional[int], instructions: Optional[str]) -> int:
    """Explicit duration wins; otherwise parse the instructions. 0 means untimed."""
    minutes = duration_minutes or minutes_from_instructions(instructions)
    return minutes * 60


# ─── Display helpers ───────────────────────────────────────────────────────────

def format_clock(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def timer_band(time_left: int, total: int) -> str:
    """Colour band for the countdown: idle, critical, calm, ok, warning or low."""
    if not total:
        return "idle"
    if time_left <= 10:
        return "critical"
    ratio = time_left / total
    if ratio > 0.75:
        return "calm"
    if ratio > 0.5:
        return "ok"
    if ratio > 0.25:
        return "warning"
    return "low"
