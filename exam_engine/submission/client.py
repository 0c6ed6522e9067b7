"""
Client for the submission backend.

    POST {base}/submit   {answers, score, details[], latePenalty?, ...} → {submissionId}
    GET  {base}/result?sessionOwner=&documentId=                       → result | null

Any transport error or non-2xx answer on submit becomes SubmissionFailure,
carrying the payload so the caller can re-post it unchanged.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from exam_engine import config
from exam_engine.errors import SubmissionFailure
from exam_engine.schemas import FinalResult, LatePenalty, LateTier, SubmissionPayload
from exam_engine.scoring.finalizer import clamp_score

log = logging.getLogger(__name__)


def payload_body(payload: SubmissionPayload) -> Dict[str, Any]:
    result = payload.result
    body: Dict[str, Any] = {
        "documentId": payload.document_id,
        "owner": payload.owner_id,
        "kind": payload.kind.value,
        "answers": payload.answers,
        "score": result.final_score,
        "rawScore": result.raw_score,
        "details": [d.model_dump(mode="json") for d in payload.details],
        "autoSubmitted": payload.auto_submitted,
        "submittedAt": result.submitted_at.isoformat(),
    }
    if result.late_penalty is not None:
        body["latePenalty"] = {
            "amount": result.late_penalty.amount,
            "tier": result.late_penalty.tier.value,
            "minutesLate": result.late_penalty.minutes_late,
            "note": result.late_penalty.note,
            "originalScore": result.raw_score,
        }
    return body


def _parse_result(data: Any) -> Optional[FinalResult]:
    if isinstance(data, dict) and "result" in data:
        data = data["result"]
    if not isinstance(data, dict) or not data:
        return None

    final = data.get("finalScore", data.get("score"))
    if final is None:
        return None
    final = clamp_score(float(final))
    raw = clamp_score(float(data.get("rawScore", data.get("originalScore", final))))

    penalty = None
    lp = data.get("latePenalty")
    if isinstance(lp, dict) and lp.get("amount"):
        tier = lp.get("tier")
        penalty = LatePenalty(
            amount=float(lp["amount"]),
            tier=LateTier(tier) if tier in {t.value for t in LateTier} else LateTier.FLAT_HALF,
            minutes_late=int(lp.get("minutesLate") or 0),
            note=str(lp.get("note") or ""),
        )

    fields = dict(
        raw_score=max(raw, final),
        final_score=final,
        late_penalty=penalty,
        submission_id=str(data.get("submissionId") or data.get("id") or "") or None,
    )
    if data.get("submittedAt"):
        fields["submitted_at"] = data["submittedAt"]
    return FinalResult(**fields)


class SubmissionClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = config.SUBMISSION_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or config.SUBMISSION_API_URL).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def submit(self, payload: SubmissionPayload) -> str:
        """POST the result; returns the backend's submission id."""
        try:
            async with self._client() as client:
                response = await client.post(f"{self.base_url}/submit", json=payload_body(payload))
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            log.error(f"[SUBMIT] Backend rejected submission: {e}")
            raise SubmissionFailure(
                f"Submission rejected with status {e.response.status_code}",
                payload=payload,
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"[SUBMIT] Backend unreachable: {e}")
            raise SubmissionFailure(f"Submission backend unreachable: {e}", payload=payload) from e

        submission_id = (data.get("submissionId") or data.get("id")) if isinstance(data, dict) else None
        if not submission_id:
            raise SubmissionFailure("Submission backend returned no submission id", payload=payload)
        log.info(f"[SUBMIT] Stored as {submission_id}")
        return str(submission_id)

    async def fetch_result(self, owner_id: str, document_id: str) -> Optional[FinalResult]:
        """Existing result for this learner and document, or None."""
        params = {"sessionOwner": owner_id, "documentId": document_id}
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/result", params=params)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            if not response.content:
                return None
            return _parse_result(response.json())
