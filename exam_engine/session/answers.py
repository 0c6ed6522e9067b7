"""
Answer Collector: question id → learner answer, persisted on every edit.
"""

import logging
from typing import Dict, List, Optional

import redis

from exam_engine.errors import UnknownQuestion
from exam_engine.schemas import Question
from exam_engine.session.store import SessionStore

log = logging.getLogger(__name__)


class AnswerCollector:
    def __init__(self, store: SessionStore, session_key: str, answers: Optional[Dict[str, str]] = None):
        self.store = store
        self.session_key = session_key
        self._answers: Dict[str, str] = dict(answers or {})
        self._known_ids: Optional[set] = None

    def bind(self, questions: List[Question]):
        """Restrict answers to the ids of the current bank."""
        self._known_ids = {q.id for q in questions}

    def set(self, question_id: str, answer: str):
        if self._known_ids is not None and question_id not in self._known_ids:
            raise UnknownQuestion(f"No question with id {question_id!r} in this session")
        self._answers[question_id] = answer or ""
        try:
            self.store.save(self.session_key, {"answers": {question_id: self._answers[question_id]}})
        except redis.RedisError as e:
            # the in-memory copy is still submitted
            log.warning(f"[ANSWERS] Could not persist answer for {question_id}: {e}")

    def get(self, question_id: str) -> str:
        return self._answers.get(question_id, "")

    def snapshot(self) -> Dict[str, str]:
        return dict(self._answers)

    def complete(self, questions: List[Question]) -> Dict[str, str]:
        """Answers for every question in the bank; missing ones become ""."""
        return {q.id: self._answers.get(q.id, "") for q in questions}

    def answered_count(self) -> int:
        return sum(1 for v in self._answers.values() if v.strip())
