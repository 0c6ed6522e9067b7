"""
Exam session router.
Learner-facing endpoints: start (or resume) an attempt, save answers and
position, submit, retry a failed hand-off, abandon.

One ExamSession per (owner_id, document_id) lives in a process-local registry.
"""

import json
import logging
from typing import Dict, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, ValidationError

from exam_engine.errors import InvalidTransition, SubmissionFailure, UnknownQuestion
from exam_engine.generation.gpt_client import TextGenerator, get_text_generator
from exam_engine.orchestrator import ExamSession, SessionState
from exam_engine.schemas import Attachment, ExamConfig
from exam_engine.session.store import SessionStore
from exam_engine.submission.client import SubmissionClient

router = APIRouter(prefix="/sessions", tags=["exam-sessions"])

log = logging.getLogger(__name__)


# ─── Schemas ───────────────────────────────────────────────────────────────────

class AnswerRequest(BaseModel):
    owner_id: str
    question_id: str
    answer: str = ""


class PositionRequest(BaseModel):
    owner_id: str
    index: int


class OwnerRequest(BaseModel):
    owner_id: str


# ─── Dependencies ──────────────────────────────────────────────────────────────

class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[Tuple[str, str], ExamSession] = {}

    def get(self, owner_id: str, document_id: str) -> Optional[ExamSession]:
        return self._sessions.get((owner_id, document_id))

    def put(self, session: ExamSession):
        self._sessions[(session.owner_id, session.exam.document_id)] = session

    def drop(self, owner_id: str, document_id: str):
        self._sessions.pop((owner_id, document_id), None)


_registry = SessionRegistry()
_store: Optional[SessionStore] = None
_submission: Optional[SubmissionClient] = None


def get_registry() -> SessionRegistry:
    return _registry


def get_store() -> SessionStore:
    global _store
    if _store is None:
        _store = SessionStore()
    return _store


def get_submission_client() -> SubmissionClient:
    global _submission
    if _submission is None:
        _submission = SubmissionClient()
    return _submission


def get_generator() -> TextGenerator:
    return get_text_generator()


# ─── Helpers ───────────────────────────────────────────────────────────────────

def _session_or_404(registry: SessionRegistry, owner_id: str, document_id: str) -> ExamSession:
    session = registry.get(owner_id, document_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No active session for document {document_id}")
    return session


def _conflict(e: InvalidTransition) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


def _bad_gateway(e: SubmissionFailure) -> HTTPException:
    result = e.payload.result.model_dump(mode="json") if e.payload is not None else None
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"message": str(e), "result": result, "retry": True},
    )


async def _read_attachment(upload: UploadFile, default_name: str) -> Attachment:
    data = await upload.read()
    return Attachment(
        mime_type=upload.content_type or "application/octet-stream",
        data=data,
        name=upload.filename or default_name,
    )


# ─── Routes ────────────────────────────────────────────────────────────────────

@router.post("/{document_id}/start")
async def start_session(
    document_id: str,
    owner_id: str = Form(...),
    config: str = Form(..., description="ExamConfig as JSON"),
    file: UploadFile = File(..., description="Source document"),
    registry: SessionRegistry = Depends(get_registry),
    store: SessionStore = Depends(get_store),
    submission: SubmissionClient = Depends(get_submission_client),
    generator: TextGenerator = Depends(get_generator),
):
    """Start a new attempt, or return the one already running for this learner."""
    existing = registry.get(owner_id, document_id)
    if existing is not None and existing.state != SessionState.IDLE:
        return existing.snapshot()

    try:
        data = json.loads(config)
        if not isinstance(data, dict):
            raise ValueError("config must be a JSON object")
        exam = ExamConfig(**{**data, "document_id": document_id})
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid exam config: {e}")

    attachment = await _read_attachment(file, document_id)
    session = ExamSession(exam, owner_id, generator, store, submission)
    registry.put(session)

    log.info(f"[START] document={document_id} owner={owner_id} count={exam.question_count}")
    await session.start(attachment)
    return session.snapshot()


@router.get("/{document_id}")
def get_session(
    document_id: str,
    owner_id: str = Query(...),
    registry: SessionRegistry = Depends(get_registry),
):
    return _session_or_404(registry, owner_id, document_id).snapshot()


@router.put("/{document_id}/answers")
def save_answer(
    document_id: str,
    request: AnswerRequest,
    registry: SessionRegistry = Depends(get_registry),
):
    session = _session_or_404(registry, request.owner_id, document_id)
    try:
        session.answer(request.question_id, request.answer)
    except UnknownQuestion as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise _conflict(e)
    return {"saved": True, "question_id": request.question_id}


@router.put("/{document_id}/position")
def save_position(
    document_id: str,
    request: PositionRequest,
    registry: SessionRegistry = Depends(get_registry),
):
    session = _session_or_404(registry, request.owner_id, document_id)
    try:
        index = session.move_to(request.index)
    except InvalidTransition as e:
        raise _conflict(e)
    return {"current_index": index}


@router.post("/{document_id}/submit")
async def submit_session(
    document_id: str,
    owner_id: str = Form(...),
    essay_text: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    registry: SessionRegistry = Depends(get_registry),
):
    session = _session_or_404(registry, owner_id, document_id)
    essay_file = await _read_attachment(file, "submission") if file is not None else None
    try:
        result = await session.submit(essay_text=essay_text, essay_file=essay_file)
    except InvalidTransition as e:
        raise _conflict(e)
    except SubmissionFailure as e:
        raise _bad_gateway(e)
    return result.model_dump(mode="json")


@router.post("/{document_id}/retry")
async def retry_submission(
    document_id: str,
    request: OwnerRequest,
    registry: SessionRegistry = Depends(get_registry),
):
    """Re-post the already computed result after a failed hand-off."""
    session = _session_or_404(registry, request.owner_id, document_id)
    try:
        result = await session.retry_submission()
    except InvalidTransition as e:
        raise _conflict(e)
    except SubmissionFailure as e:
        raise _bad_gateway(e)
    return result.model_dump(mode="json")


@router.delete("/{document_id}")
async def abandon_session(
    document_id: str,
    owner_id: str = Query(...),
    registry: SessionRegistry = Depends(get_registry),
):
    session = _session_or_404(registry, owner_id, document_id)
    try:
        await session.abandon()
    except InvalidTransition as e:
        raise _conflict(e)
    registry.drop(owner_id, document_id)
    return {"abandoned": True}
