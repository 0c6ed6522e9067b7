"""
Deterministic cross-check between a learner's choice and the canonical answer.

Both sides are case-folded, whitespace-collapsed and stripped of an option
letter prefix ("C. ", "c) ", "(C) "). They match when equal, when one contains
the other, or when their option letters agree.
"""

import re
from typing import Optional

_LETTER_PREFIX = re.compile(r"^\(?([a-z])[.):]\s*", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def option_letter(text: str) -> Optional[str]:
    text = (text or "").strip()
    match = _LETTER_PREFIX.match(text)
    if match:
        return match.group(1).lower()
    if len(text) == 1 and text.isalpha():
        return text.lower()
    return None


def normalize_answer(text: str) -> str:
    text = _WHITESPACE.sub(" ", (text or "").strip()).casefold()
    text = _LETTER_PREFIX.sub("", text, count=1)
    return text.strip().rstrip(".")


def answers_match(learner: Optional[str], canonical: Optional[str]) -> bool:
    if not learner or not canonical:
        return False
    a, b = normalize_answer(learner), normalize_answer(canonical)
    if a and b:
        if a == b:
            return True
        # single characters are letters, not text
        if min(len(a), len(b)) > 1 and (a in b or b in a):
            return True
    la, lb = option_letter(learner), option_letter(canonical)
    return la is not None and la == lb
