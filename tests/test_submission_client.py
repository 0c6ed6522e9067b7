import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from exam_engine.errors import SubmissionFailure
from exam_engine.schemas import (
    FinalResult, GradingResult, GradingStatus, LatePenalty, LateTier, QuestionKind, SubmissionPayload,
)
from exam_engine.submission.client import SubmissionClient, _parse_result, payload_body

BASE = "http://backend.test/api/exams"


def _payload(penalty=None):
    return SubmissionPayload(
        document_id="doc-1",
        owner_id="u1",
        kind=QuestionKind.MULTIPLE_CHOICE,
        answers={"q1": "A"},
        details=[GradingResult(question_id="q1", user_answer="A", status=GradingStatus.CORRECT, score=10, max_score=10)],
        result=FinalResult(
            raw_score=8.0,
            final_score=6.0 if penalty else 8.0,
            late_penalty=penalty,
            submitted_at=datetime(2026, 5, 4, 9, 45, tzinfo=timezone.utc),
        ),
    )


def _client(handler):
    return SubmissionClient(base_url=BASE, transport=httpx.MockTransport(handler))


def test_payload_body_carries_late_penalty():
    penalty = LatePenalty(amount=2.0, tier=LateTier.FLAT_TWO, minutes_late=45, note="Submitted 45 minutes late, −2 points")
    body = payload_body(_payload(penalty))

    assert body["score"] == 6.0
    assert body["rawScore"] == 8.0
    assert body["latePenalty"] == {
        "amount": 2.0,
        "tier": "flat-2",
        "minutesLate": 45,
        "note": "Submitted 45 minutes late, −2 points",
        "originalScore": 8.0,
    }
    assert body["details"][0]["status"] == "correct"


def test_on_time_body_has_no_penalty():
    assert "latePenalty" not in payload_body(_payload())


def test_submit_returns_submission_id():
    seen = []

    def handler(request):
        seen.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(201, json={"submissionId": "sub-42"})

    submission_id = asyncio.run(_client(handler).submit(_payload()))

    assert submission_id == "sub-42"
    assert seen[0][0] == "POST"
    assert seen[0][1] == f"{BASE}/submit"
    assert seen[0][2]["documentId"] == "doc-1"


def test_rejected_submit_raises_with_payload():
    payload = _payload()
    client = _client(lambda request: httpx.Response(500, json={"error": "boom"}))

    with pytest.raises(SubmissionFailure) as info:
        asyncio.run(client.submit(payload))

    assert info.value.status_code == 500
    assert info.value.payload == payload


def test_unreachable_backend_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SubmissionFailure):
        asyncio.run(_client(handler).submit(_payload()))


def test_missing_submission_id_raises():
    with pytest.raises(SubmissionFailure):
        asyncio.run(_client(lambda request: httpx.Response(200, json={})).submit(_payload()))


def test_fetch_result_sends_owner_and_document():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json={"result": {"score": 7.5, "rawScore": 8.0, "submissionId": "s-1"}})

    result = asyncio.run(_client(handler).fetch_result("u1", "doc-1"))

    assert seen == [{"sessionOwner": "u1", "documentId": "doc-1"}]
    assert result.final_score == 7.5
    assert result.raw_score == 8.0
    assert result.submission_id == "s-1"


@pytest.mark.parametrize("response", [
    httpx.Response(404),
    httpx.Response(200, json={"result": None}),
    httpx.Response(200, content=b""),
])
def test_no_prior_result(response):
    assert asyncio.run(_client(lambda request: response).fetch_result("u1", "doc-1")) is None


def test_parse_result_reads_late_penalty():
    result = _parse_result({
        "score": 3.0,
        "latePenalty": {"amount": 3.0, "tier": "half-score", "minutesLate": 90, "note": "late"},
        "originalScore": 6.0,
    })
    assert result.raw_score == 6.0
    assert result.late_penalty.tier == LateTier.HALF_SCORE
    assert result.late_penalty.minutes_late == 90
