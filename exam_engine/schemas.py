"""
Pydantic schemas for the exam session engine.

Layer 1:  ExamConfig / SourceDocument      → what the author configured
Layer 2:  Question / Batch / BuildResult   → question bank pipeline
Layer 3:  SessionRecord                    → durable learner progress
Layer 4:  GradingResult / GradingReport    → judge output, per question
Layer 5:  LatePenalty / FinalResult        → what is handed to the backend
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from exam_engine import config


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Enums ─────────────────────────────────────────────────────────────────────

class QuestionKind(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    WRITTEN = "written"
    ESSAY = "essay"


class ReferenceMode(str, Enum):
    EXTRACT = "extract"     # lift existing questions verbatim
    GENERATE = "generate"   # author new questions on the same topic


class GradingStatus(str, Enum):
    CORRECT = "correct"
    PARTIAL = "partial"
    INCORRECT = "incorrect"
    UNANSWERED = "unanswered"


class LateTier(str, Enum):
    FLAT_HALF = "flat-0.5"      # (0, 30] minutes
    FLAT_TWO = "flat-2"         # (30, 60] minutes
    HALF_SCORE = "half-score"   # > 60 minutes


# ─── Layer 1: Exam input ───────────────────────────────────────────────────────

class Attachment(BaseModel):
    """Binary payload sent alongside a prompt (source document or essay work)."""
    mime_type: str = "application/octet-stream"
    data: bytes
    name: str = "document"


class SourceDocument(BaseModel):
    document_id: str
    name: str
    mime_type: str = "application/pdf"
    data: bytes

    def as_attachment(self) -> Attachment:
        return Attachment(mime_type=self.mime_type, data=self.data, name=self.name)


class ExamConfig(BaseModel):
    """Author-side configuration for one exam document."""
    document_id: str
    title: Optional[str] = None
    reference_mode: ReferenceMode = ReferenceMode.EXTRACT
    question_count: int = Field(config.DEFAULT_QUESTION_COUNT, ge=1, le=500)
    shuffle_questions: bool = False
    shuffle_options: bool = False
    deadline: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, ge=1)
    instructions: Optional[str] = Field(
        None, description="Author preamble, sent as the system instruction on every call"
    )
    model_id: Optional[str] = None


# ─── Layer 2: Question bank ────────────────────────────────────────────────────

class Question(BaseModel):
    id: str
    text: str
    options: List[str] = Field(default_factory=list)   # empty for open-form kinds
    correct_answer: Optional[str] = None
    passage: Optional[str] = None
    group_id: Optional[str] = None
    kind: QuestionKind = QuestionKind.MULTIPLE_CHOICE

    @property
    def is_grouped(self) -> bool:
        return bool(self.passage and self.group_id)


class Batch(BaseModel):
    """One generation unit of at most BATCH_SIZE questions."""
    index: int          # 1-based
    size: int
    total: int
    requested_kind: Optional[QuestionKind] = None


class BuildProgress(BaseModel):
    stage: str
    batch: int = 0
    total_batches: int = 0
    questions: int = 0
    target: int = 0


class BuildResult(BaseModel):
    questions: List[Question] = Field(default_factory=list)
    kind: QuestionKind = QuestionKind.ESSAY
    from_cache: bool = False
    warnings: List[str] = Field(default_factory=list)


# ─── Layer 3: Session ──────────────────────────────────────────────────────────

class SessionRecord(BaseModel):
    session_key: str
    answers: Dict[str, str] = Field(default_factory=dict)
    current_index: int = 0
    expires_at: Optional[datetime] = None
    total_time_seconds: Optional[int] = None
    time_left_seconds: Optional[int] = None     # derived from expires_at on load
    last_updated: datetime = Field(default_factory=utcnow)


# ─── Layer 4: Grading ──────────────────────────────────────────────────────────

class GradingResult(BaseModel):
    question_id: str
    user_answer: str = ""
    status: GradingStatus = GradingStatus.UNANSWERED
    score: float = 0.0
    max_score: float = 0.0
    explanation: str = ""
    correct_answer: Optional[str] = None
    percentage: Optional[float] = None
    level: Optional[str] = None

    @model_validator(mode="after")
    def _score_within_bounds(self):
        if self.score < 0 or self.score > self.max_score + 1e-9:
            raise ValueError(f"score {self.score} outside [0, {self.max_score}]")
        return self


class GradingReport(BaseModel):
    kind: QuestionKind
    results: List[GradingResult] = Field(default_factory=list)
    raw_score: float = 0.0                  # 0..10, authoritative session total
    judge_total: Optional[float] = None     # what the judge claimed, for comparison
    judge_text: str = ""


# ─── Layer 5: Final result ─────────────────────────────────────────────────────

class LatePenalty(BaseModel):
    amount: float
    tier: LateTier
    minutes_late: int
    note: str


class FinalResult(BaseModel):
    raw_score: float = Field(..., ge=0, le=10)
    late_penalty: Optional[LatePenalty] = None
    final_score: float = Field(..., ge=0, le=10)
    submission_id: Optional[str] = None
    submitted_at: datetime = Field(default_factory=utcnow)


class SubmissionPayload(BaseModel):
    """Everything POSTed to the submission backend; retained for manual retry."""
    document_id: str
    owner_id: str
    kind: QuestionKind
    answers: Dict[str, str] = Field(default_factory=dict)
    details: List[GradingResult] = Field(default_factory=list)
    result: FinalResult
    auto_submitted: bool = False
