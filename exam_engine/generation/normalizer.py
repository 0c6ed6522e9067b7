"""
Kind detection and type-consistency normalization.

Every question in a session shares one kind. When a batch comes back with
items of the wrong shape we reshape them instead of dropping them.
"""

from typing import Iterable, List, Optional

from exam_engine.schemas import Question, QuestionKind

UNKNOWN_ANSWER = "Unknown"


def normalize(question: Question, pinned_kind: QuestionKind) -> Question:
    """Return a copy of question reshaped to pinned_kind. Pure."""
    if pinned_kind == QuestionKind.WRITTEN:
        return question.model_copy(update={
            "kind": QuestionKind.WRITTEN,
            "options": [],
            "correct_answer": question.correct_answer or UNKNOWN_ANSWER,
        })
    if pinned_kind == QuestionKind.ESSAY:
        return question.model_copy(update={
            "kind": QuestionKind.ESSAY,
            "options": [],
            "correct_answer": None,
        })
    return question.model_copy(update={
        "kind": QuestionKind.MULTIPLE_CHOICE,
        "options": list(question.options),
    })


def enforce_kind(questions: Iterable[Question], pinned_kind: QuestionKind) -> List[Question]:
    return [normalize(q, pinned_kind) for q in questions]


def detect_kind(questions: List[Question]) -> Optional[QuestionKind]:
    """
    Kind already observed in a question set, or None if it cannot be told.

    All written => WRITTEN; any item with two or more options => MULTIPLE_CHOICE.
    """
    if not questions:
        return None
    if all(q.kind == QuestionKind.WRITTEN for q in questions):
        return QuestionKind.WRITTEN
    if any(len(q.options) > 1 for q in questions):
        return QuestionKind.MULTIPLE_CHOICE
    return None


def resolve_bank_kind(questions: List[Question]) -> QuestionKind:
    """Final kind for a finished bank: written wins, then multiple choice, else essay."""
    if any(q.kind == QuestionKind.WRITTEN for q in questions):
        return QuestionKind.WRITTEN
    if any(len(q.options) >= 2 for q in questions):
        return QuestionKind.MULTIPLE_CHOICE
    return QuestionKind.ESSAY
