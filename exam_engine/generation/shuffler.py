"""
Question and option shuffling.

Passage-grouped questions keep their slots; only standalone questions are
permuted among the remaining slots (Fisher-Yates).

Lettered options ("A. ...", "b) ...") are re-lettered after the shuffle so the
learner always sees A, B, C in order, and correct_answer follows its option.
"""

import random
import re
from string import ascii_uppercase
from typing import List, Optional

from exam_engine.grading.answer_match import normalize_answer, option_letter
from exam_engine.schemas import Question, QuestionKind

_OPTION_LABEL = re.compile(r"^\(?[A-Za-z][.)]\s*")


def _fisher_yates(items: list, rng: random.Random) -> list:
    items = list(items)
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def shuffle_questions(questions: List[Question], rng: Optional[random.Random] = None) -> List[Question]:
    if not questions:
        return list(questions)
    rng = rng or random.Random()

    standalone = _fisher_yates([q for q in questions if not q.is_grouped], rng)
    pool = iter(standalone)
    return [q if q.is_grouped else next(pool) for q in questions]


def _correct_index(options: List[str], bodies: List[str], correct: Optional[str]) -> Optional[int]:
    if not correct:
        return None
    target = normalize_answer(correct)
    for i, body in enumerate(bodies):
        if normalize_answer(body) == target:
            return i
    letter = option_letter(correct)
    for i, option in enumerate(options):
        if letter is not None and option_letter(option) == letter:
            return i
    return None


def _shuffle_lettered(q: Question, rng: random.Random) -> Question:
    bodies = [_OPTION_LABEL.sub("", option, count=1) for option in q.options]
    correct = _correct_index(q.options, bodies, q.correct_answer)
    order = _fisher_yates(range(len(bodies)), rng)
    options = [f"{ascii_uppercase[slot]}. {bodies[i]}" for slot, i in enumerate(order)]

    update = {"options": options}
    if correct is not None:
        slot = order.index(correct)
        bare_letter = len(q.correct_answer.strip()) == 1
        update["correct_answer"] = ascii_uppercase[slot] if bare_letter else options[slot]
    return q.model_copy(update=update)


def shuffle_options(questions: List[Question], rng: Optional[random.Random] = None) -> List[Question]:
    """Shuffle options of each multiple-choice question independently."""
    rng = rng or random.Random()
    shuffled = []
    for q in questions:
        if q.kind == QuestionKind.MULTIPLE_CHOICE and 1 < len(q.options) <= len(ascii_uppercase):
            if all(_OPTION_LABEL.match(option) for option in q.options):
                q = _shuffle_lettered(q, rng)
            else:
                q = q.model_copy(update={"options": _fisher_yates(q.options, rng)})
        shuffled.append(q)
    return shuffled
