"""
Redis client for exam sessions.

Two kinds of keys live here:
  session:<documentId>[:<ownerId>]    → SessionRecord JSON (answers, position, timer)
  questions:<documentId>[:<ownerId>]  → cached question bank (BuildResult JSON)
"""

from typing import Optional

import redis

from exam_engine import config

_redis_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(config.REDIS_URL, decode_responses=True)
    return _redis_client


# ─── Key helpers ───────────────────────────────────────────────────────────────

def session_key(document_id: str, owner_id: Optional[str] = None) -> str:
    if owner_id:
        return f"session:{document_id}:{owner_id}"
    return f"session:{document_id}"


def questions_key(document_id: str, owner_id: Optional[str] = None) -> str:
    if owner_id:
        return f"questions:{document_id}:{owner_id}"
    return f"questions:{document_id}"
