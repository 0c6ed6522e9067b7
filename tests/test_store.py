from datetime import timedelta

import pytest

from exam_engine.errors import TimerPersistenceFailure
from exam_engine.schemas import BuildResult, QuestionKind, utcnow
from exam_engine.session.redis_client import questions_key, session_key
from exam_engine.session.store import SessionStore, seconds_until

from conftest import make_questions


def test_keys_are_namespaced_per_owner():
    assert session_key("doc-1") == "session:doc-1"
    assert session_key("doc-1", "u7") == "session:doc-1:u7"
    assert questions_key("doc-1", "u7") == "questions:doc-1:u7"


def test_round_trip_restores_answers_index_and_time_left(store):
    store.save("session:doc", {
        "answers": {"q1": "B", "q2": "photosynthesis"},
        "current_index": 3,
        "time_left_seconds": 1200,
        "total_time_seconds": 1800,
    })

    record = store.load("session:doc")

    assert record.answers == {"q1": "B", "q2": "photosynthesis"}
    assert record.current_index == 3
    assert record.total_time_seconds == 1800
    assert 1199 <= record.time_left_seconds <= 1200


def test_partial_saves_merge(store):
    store.save("session:doc", {"answers": {"q1": "A"}, "current_index": 1})
    store.save("session:doc", {"answers": {"q2": "C"}})
    store.save("session:doc", {"current_index": 4})

    record = store.load("session:doc")

    assert record.answers == {"q1": "A", "q2": "C"}
    assert record.current_index == 4


def test_writes_carry_ttl(fake_redis):
    store = SessionStore(client=fake_redis, ttl_minutes=30)
    store.save("session:doc", {"current_index": 0})
    assert fake_redis.ttl["session:doc"] == 1800


def test_time_left_counts_down_while_away(store, fake_redis):
    store.save("session:doc", {"expires_at": utcnow() - timedelta(minutes=5), "total_time_seconds": 600})
    assert store.load("session:doc").time_left_seconds == 0


def test_untimed_record_has_no_time_left(store):
    store.save("session:doc", {"answers": {"q1": "A"}})
    assert store.load("session:doc").time_left_seconds is None


def test_missing_or_corrupt_record_loads_as_none(store, fake_redis):
    assert store.load("session:none") is None
    fake_redis.data["session:bad"] = "{not json"
    assert store.load("session:bad") is None


def test_clear_removes_record(store):
    store.save("session:doc", {"current_index": 2})
    store.clear("session:doc")
    assert store.load("session:doc") is None


def test_timer_saves_are_debounced(store, fake_redis):
    assert store.save_timer("session:doc", 600, 600) is True
    writes = fake_redis.writes
    for left in range(599, 590, -1):
        assert store.save_timer("session:doc", left, 600) is False
    assert fake_redis.writes == writes
    assert store.save_timer("session:doc", 590, 600) is True
    assert store.save_timer("session:doc", 589, 600, force=True) is True


def test_timer_write_failure_raises(store, fake_redis):
    fake_redis.fail_writes = True
    with pytest.raises(TimerPersistenceFailure):
        store.save_timer("session:doc", 300, 600)


def test_question_cache(store):
    result = BuildResult(questions=make_questions(3), kind=QuestionKind.MULTIPLE_CHOICE)
    store.cache_questions("questions:doc", result)

    cached = store.get_cached_questions("questions:doc")
    assert cached.from_cache is True
    assert [q.id for q in cached.questions] == ["q1", "q2", "q3"]

    store.clear_questions("questions:doc")
    assert store.get_cached_questions("questions:doc") is None


def test_unreachable_question_cache_is_a_miss(store, fake_redis):
    result = BuildResult(questions=make_questions(2), kind=QuestionKind.MULTIPLE_CHOICE)
    fake_redis.fail_writes = True
    store.cache_questions("questions:doc", result)
    assert "questions:doc" not in fake_redis.data

    fake_redis.fail_reads = True
    assert store.get_cached_questions("questions:doc") is None


def test_session_saves_keep_linked_question_cache_alive(fake_redis):
    store = SessionStore(client=fake_redis, ttl_minutes=30)
    store.cache_questions("questions:doc", BuildResult(questions=make_questions(1), kind=QuestionKind.MULTIPLE_CHOICE))
    store.link_questions("session:doc", "questions:doc")
    fake_redis.ttl["questions:doc"] = 5

    store.save("session:doc", {"answers": {"q1": "A"}})

    assert fake_redis.ttl["questions:doc"] == 1800
    assert fake_redis.ttl["session:doc"] == 1800


def test_seconds_until_never_negative():
    now = utcnow()
    assert seconds_until(now - timedelta(seconds=30), now) == 0
    assert seconds_until(now + timedelta(seconds=30), now) == 30
    assert seconds_until(None, now) is None
