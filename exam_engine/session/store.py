"""
Session State Store.

Every write is read-merge-write against one JSON record per session key, so
answers, position and timer can be saved independently without clobbering
each other. The countdown is stored as an absolute expires_at and turned back
into seconds-left on load, so a process that was down for an hour resumes
with the right remaining time.

Timer saves are debounced (once per TIMER_SAVE_INTERVAL_SECONDS of countdown);
answer and position saves are written immediately.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import redis
from pydantic import ValidationError

from exam_engine import config
from exam_engine.errors import TimerPersistenceFailure
from exam_engine.schemas import BuildResult, SessionRecord, utcnow
from exam_engine.session.redis_client import get_redis

log = logging.getLogger(__name__)


def seconds_until(expires_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    if expires_at is None:
        return None
    now = now or utcnow()
    return max(0, int((expires_at - now).total_seconds()))


class SessionStore:
    def __init__(self, client: Optional[redis.Redis] = None, ttl_minutes: Optional[int] = None):
        self._client = client
        self.ttl_seconds = (ttl_minutes or config.SESSION_TTL_MINUTES) * 60
        self._last_timer_save: Dict[str, int] = {}
        self._linked_caches: Dict[str, str] = {}

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis()
        return self._client

    # ─── Raw record access ────────────────────────────────────────────────────

    def _read(self, session_key: str) -> Optional[dict]:
        raw = self.client.get(session_key)
        if not raw:
            return None
        try:
            return SessionRecord.model_validate_json(raw).model_dump()
        except ValidationError as e:
            log.warning(f"[STORE] Discarding unreadable session record {session_key}: {e}")
            return None

    def _write(self, record: SessionRecord):
        self.client.set(record.session_key, record.model_dump_json(), ex=self.ttl_seconds)
        cache_key = self._linked_caches.get(record.session_key)
        if cache_key:
            self.client.expire(cache_key, self.ttl_seconds)

    # ─── Public contract ──────────────────────────────────────────────────────

    def save(self, session_key: str, partial: Dict[str, Any]) -> SessionRecord:
        """
        Merge partial into the stored record and write it back.

        Recognised keys: answers (merged per question id), current_index,
        time_left_seconds (converted to expires_at), total_time_seconds,
        expires_at.
        """
        merged = self._read(session_key) or {"session_key": session_key}

        if "answers" in partial:
            answers = dict(merged.get("answers") or {})
            answers.update(partial["answers"] or {})
            merged["answers"] = answers
        if "current_index" in partial:
            merged["current_index"] = max(0, int(partial["current_index"]))
        if "total_time_seconds" in partial:
            merged["total_time_seconds"] = partial["total_time_seconds"]
        if "expires_at" in partial:
            merged["expires_at"] = partial["expires_at"]
        if "time_left_seconds" in partial:
            left = partial["time_left_seconds"]
            merged["expires_at"] = None if left is None else utcnow() + timedelta(seconds=left)

        merged["session_key"] = session_key
        merged["time_left_seconds"] = None
        merged["last_updated"] = utcnow()
        record = SessionRecord(**merged)
        self._write(record)
        return record

    def load(self, session_key: str) -> Optional[SessionRecord]:
        data = self._read(session_key)
        if data is None:
            return None
        record = SessionRecord(**data)
        record.time_left_seconds = seconds_until(record.expires_at)
        return record

    def clear(self, session_key: str):
        self.client.delete(session_key)
        self._last_timer_save.pop(session_key, None)

    # ─── Timer (debounced) ────────────────────────────────────────────────────

    def save_timer(
        self,
        session_key: str,
        time_left: int,
        total_time: Optional[int],
        force: bool = False,
    ) -> bool:
        """
        Persist the countdown at most once per TIMER_SAVE_INTERVAL_SECONDS.

        Returns True when a write happened.
        Raises:
            TimerPersistenceFailure: the store rejected the write.
        """
        last = self._last_timer_save.get(session_key)
        due = last is None or (last - time_left) >= config.TIMER_SAVE_INTERVAL_SECONDS
        if not (force or due):
            return False
        try:
            self.save(session_key, {"time_left_seconds": time_left, "total_time_seconds": total_time})
        except redis.RedisError as e:
            raise TimerPersistenceFailure(f"Could not persist timer for {session_key}: {e}") from e
        self._last_timer_save[session_key] = time_left
        return True

    # ─── Question bank cache ──────────────────────────────────────────────────

    def get_cached_questions(self, cache_key: str) -> Optional[BuildResult]:
        """A cache that cannot be read counts as a miss."""
        try:
            raw = self.client.get(cache_key)
        except redis.RedisError as e:
            log.warning(f"[STORE] Question cache {cache_key} unreadable, rebuilding: {e}")
            return None
        if not raw:
            return None
        try:
            result = BuildResult.model_validate_json(raw)
        except ValidationError as e:
            log.warning(f"[STORE] Discarding unreadable question cache {cache_key}: {e}")
            return None
        result.from_cache = True
        return result

    def cache_questions(self, cache_key: str, result: BuildResult):
        try:
            self.client.set(cache_key, result.model_dump_json(), ex=self.ttl_seconds)
        except redis.RedisError as e:
            log.warning(f"[STORE] Could not cache questions under {cache_key}: {e}")

    def clear_questions(self, cache_key: str):
        self.client.delete(cache_key)
