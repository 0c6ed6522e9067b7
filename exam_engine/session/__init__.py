"""Durable learner progress: Redis-backed session store and answer collector."""

from exam_engine.session.answers import AnswerCollector
from exam_engine.session.store import SessionStore

__all__ = ["AnswerCollector", "SessionStore"]
