"""
Session Orchestrator

    IDLE → CHECKING_PRIOR_RESULT ─┬─▶ COMPLETED                      (result already on file)
                                  └─▶ BUILDING_QUESTIONS → PRESENTING
    PRESENTING ──submit()/expiry──▶ SUBMITTING → GRADING ─┬─▶ COMPLETED
                                                          └─▶ ERROR ──retry_submission()──▶ COMPLETED

EXPIRED is entered from PRESENTING when the timer runs out and immediately
turns into an automatic submission. The timer talks to the session only
through its event queue; the session drains it in a background task.

One ExamSession is one learner's one attempt at one document.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Callable, List, Optional

import redis

from exam_engine.errors import InvalidTransition, SubmissionFailure, TimerPersistenceFailure
from exam_engine.generation.gpt_client import TextGenerator
from exam_engine.generation.question_bank import QuestionBankBuilder
from exam_engine.grading.grader import Grader
from exam_engine.schemas import (
    Attachment, BuildProgress, ExamConfig, FinalResult, GradingReport, Question,
    QuestionKind, SubmissionPayload, utcnow,
)
from exam_engine.scoring.finalizer import finalize
from exam_engine.session.answers import AnswerCollector
from exam_engine.session.redis_client import questions_key, session_key
from exam_engine.session.store import SessionStore
from exam_engine.submission.client import SubmissionClient
from exam_engine.timing.deadline import format_clock, time_budget_seconds, timer_band
from exam_engine.timing.timer import CountdownTimer, TimerEvent, TimerExpired, TimerState, TimerTick

log = logging.getLogger(__name__)

ESSAY_DRAFT_KEY = "essay"


class SessionState(str, Enum):
    IDLE = "idle"
    CHECKING_PRIOR_RESULT = "checking-prior-result"
    BUILDING_QUESTIONS = "building-questions"
    PRESENTING = "presenting"
    EXPIRED = "expired"
    SUBMITTING = "submitting"
    GRADING = "grading"
    COMPLETED = "completed"
    ERROR = "error"


class ExamSession:
    def __init__(
        self,
        exam: ExamConfig,
        owner_id: str,
        generator: TextGenerator,
        store: SessionStore,
        submission: SubmissionClient,
        builder: Optional[QuestionBankBuilder] = None,
        grader: Optional[Grader] = None,
        clock: Callable = utcnow,
        rng: Optional[random.Random] = None,
    ):
        self.exam = exam
        self.owner_id = owner_id
        self.store = store
        self.submission = submission
        self.builder = builder or QuestionBankBuilder(generator, store=store, rng=rng)
        self.grader = grader or Grader(generator)
        self.clock = clock

        self.session_key = session_key(exam.document_id, owner_id)
        self.questions_key = questions_key(exam.document_id, owner_id)
        store.link_questions(self.session_key, self.questions_key)

        self.state = SessionState.IDLE
        self.attachment: Optional[Attachment] = None
        self.questions: List[Question] = []
        self.kind: Optional[QuestionKind] = None
        self.build_progress: Optional[BuildProgress] = None
        self.warnings: List[str] = []
        self.current_index = 0
        self.collector = AnswerCollector(store, self.session_key)

        self.timer: Optional[CountdownTimer] = None
        self._restored_timer: tuple = (None, None)     # (time_left, total) from the store
        self.events: "asyncio.Queue[TimerEvent]" = asyncio.Queue()
        self._timer_task: Optional[asyncio.Task] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._build_task: Optional[asyncio.Task] = None
        self._abandoned = False

        self.report: Optional[GradingReport] = None
        self.final_result: Optional[FinalResult] = None
        self.pending_payload: Optional[SubmissionPayload] = None
        self.last_error: Optional[str] = None

    # ─── State helpers ────────────────────────────────────────────────────────

    def _transition(self, new_state: SessionState):
        log.info(f"[SESSION {self.session_key}] {self.state.value} → {new_state.value}")
        self.state = new_state

    def _require(self, *allowed: SessionState):
        if self.state not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise InvalidTransition(f"Cannot do that while {self.state.value} (needs {names})")

    def _on_progress(self, progress: BuildProgress):
        self.build_progress = progress

    def _save(self, partial: dict):
        try:
            self.store.save(self.session_key, partial)
        except redis.RedisError as e:
            log.warning(f"[SESSION {self.session_key}] Could not persist {sorted(partial)}: {e}")

    def _forget(self):
        try:
            self.store.clear(self.session_key)
            self.store.clear_questions(self.questions_key)
        except redis.RedisError as e:
            log.warning(f"[SESSION {self.session_key}] Could not clear saved progress: {e}")

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self, attachment: Attachment) -> SessionState:
        """
        Check for a prior result, build the bank, restore progress, arm the timer.

        A start that fails part way leaves the session IDLE so it can be started again.
        """
        self._require(SessionState.IDLE)
        self.attachment = attachment
        self._abandoned = False
        try:
            return await self._start(attachment)
        except Exception as e:
            log.error(f"[SESSION {self.session_key}] Start failed, back to idle: {e}")
            self._transition(SessionState.IDLE)
            raise

    async def _start(self, attachment: Attachment) -> SessionState:
        self._transition(SessionState.CHECKING_PRIOR_RESULT)
        prior = await self._prior_result()
        if self._abandoned:
            return self.state
        if prior is not None:
            self.final_result = prior
            self._forget()
            self._transition(SessionState.COMPLETED)
            return self.state

        self._transition(SessionState.BUILDING_QUESTIONS)
        self._build_task = asyncio.create_task(
            self.builder.build(attachment, self.exam, on_progress=self._on_progress, cache_key=self.questions_key)
        )
        try:
            result = await self._build_task
        except asyncio.CancelledError:
            if self._abandoned:
                log.info(f"[SESSION {self.session_key}] Build cancelled")
                return self.state
            raise
        finally:
            self._build_task = None

        self.questions = result.questions
        self.kind = result.kind
        self.warnings = list(result.warnings)
        if self.kind != QuestionKind.ESSAY:
            self.collector.bind(self.questions)

        self._restore()
        self._transition(SessionState.PRESENTING)
        self._arm_timer()
        return self.state

    async def _prior_result(self) -> Optional[FinalResult]:
        try:
            return await self.submission.fetch_result(self.owner_id, self.exam.document_id)
        except Exception as e:
            log.warning(f"[SESSION {self.session_key}] Prior-result check failed, continuing: {e}")
            return None

    def _restore(self):
        try:
            record = self.store.load(self.session_key)
        except redis.RedisError as e:
            log.warning(f"[SESSION {self.session_key}] Saved progress unreadable, starting fresh: {e}")
            record = None
        if record is None:
            self._save({"current_index": 0})
            self._restored_timer = (None, None)
            return
        log.info(
            f"[SESSION {self.session_key}] Restored {len(record.answers)} answers at position {record.current_index}"
        )
        self.collector = AnswerCollector(self.store, self.session_key, record.answers)
        if self.kind != QuestionKind.ESSAY:
            self.collector.bind(self.questions)
        self.current_index = self._clamp_index(record.current_index)
        self._restored_timer = (record.time_left_seconds, record.total_time_seconds)

    def _arm_timer(self):
        budget = time_budget_seconds(self.exam.duration_minutes, self.exam.instructions)
        restored_left, restored_total = self._restored_timer
        if restored_left is not None:
            time_left, total = restored_left, restored_total or budget or restored_left
        elif budget:
            time_left, total = budget, budget
        else:
            log.info(f"[SESSION {self.session_key}] Untimed session")
            return

        self.timer = CountdownTimer(time_left, total)
        self.timer.start()
        try:
            self.store.save_timer(self.session_key, time_left, total, force=True)
        except TimerPersistenceFailure as e:
            log.warning(f"[TIMER] {e}")
        self._timer_task = asyncio.create_task(self.timer.run(self.events))
        self._pump_task = asyncio.create_task(self._pump())
        log.info(f"[SESSION {self.session_key}] Timer armed: {format_clock(time_left)} of {format_clock(total)}")

    async def _pump(self):
        while True:
            event = await self.events.get()
            await self.handle_event(event)
            if isinstance(event, TimerExpired):
                return

    async def handle_event(self, event: TimerEvent):
        """Apply one timer event: persist ticks (debounced), auto-submit on expiry."""
        if isinstance(event, TimerTick):
            try:
                self.store.save_timer(self.session_key, event.time_left, event.total)
            except TimerPersistenceFailure as e:
                log.warning(f"[TIMER] {e}")
            return

        if isinstance(event, TimerExpired):
            if self.state != SessionState.PRESENTING:
                log.info(f"[SESSION {self.session_key}] Timer expired while {self.state.value}, ignoring")
                return
            self._transition(SessionState.EXPIRED)
            log.info(f"[SESSION {self.session_key}] Time is up, submitting automatically")
            try:
                await self.submit(auto=True)
            except SubmissionFailure:
                # result is retained in pending_payload for retry_submission()
                pass

    # ─── Learner actions ──────────────────────────────────────────────────────

    def _clamp_index(self, index: int) -> int:
        if not self.questions:
            return 0
        return min(max(0, index), len(self.questions) - 1)

    def answer(self, question_id: str, text: str):
        self._require(SessionState.PRESENTING)
        if self.kind == QuestionKind.ESSAY and question_id != ESSAY_DRAFT_KEY:
            question_id = ESSAY_DRAFT_KEY
        self.collector.set(question_id, text)

    def move_to(self, index: int) -> int:
        self._require(SessionState.PRESENTING)
        self.current_index = self._clamp_index(index)
        self._save({"current_index": self.current_index})
        return self.current_index

    async def submit(
        self,
        essay_text: Optional[str] = None,
        essay_file: Optional[Attachment] = None,
        auto: bool = False,
    ) -> FinalResult:
        """
        Grade what exists, finalize, hand off to the backend.

        Raises:
            InvalidTransition: not presenting (or expired).
            SubmissionFailure: backend unreachable; the result is kept for retry_submission().
        """
        self._require(SessionState.PRESENTING, SessionState.EXPIRED)
        if self.timer is not None:
            self.timer.suspend()

        self._transition(SessionState.SUBMITTING)
        answers = self.collector.complete(self.questions)
        if self.kind == QuestionKind.ESSAY and essay_text is None:
            essay_text = self.collector.get(ESSAY_DRAFT_KEY) or None

        self._transition(SessionState.GRADING)
        self.report = await self.grader.grade(
            self.kind or QuestionKind.ESSAY,
            self.questions,
            answers,
            self.exam,
            source=self.attachment,
            essay_text=essay_text,
            essay_file=essay_file,
            auto_submitted=auto,
        )
        result = finalize(self.report.raw_score, self.exam.deadline, self.clock())
        if result.late_penalty is not None:
            log.info(f"[SESSION {self.session_key}] {result.late_penalty.note}")

        if self.kind == QuestionKind.ESSAY and essay_text:
            answers = {ESSAY_DRAFT_KEY: essay_text}
        payload = SubmissionPayload(
            document_id=self.exam.document_id,
            owner_id=self.owner_id,
            kind=self.kind or QuestionKind.ESSAY,
            answers=answers,
            details=self.report.results,
            result=result,
            auto_submitted=auto,
        )
        return await self._hand_off(payload)

    async def retry_submission(self) -> FinalResult:
        """Re-post the retained result. Never grades again."""
        self._require(SessionState.ERROR)
        if self.pending_payload is None:
            raise InvalidTransition("Nothing to resubmit")
        return await self._hand_off(self.pending_payload)

    async def _hand_off(self, payload: SubmissionPayload) -> FinalResult:
        if self.state != SessionState.SUBMITTING:
            self._transition(SessionState.SUBMITTING)
        try:
            submission_id = await self.submission.submit(payload)
        except SubmissionFailure as e:
            self.pending_payload = payload
            self.final_result = payload.result
            self.last_error = str(e)
            log.error(f"[SESSION {self.session_key}] Submission failed, result kept for retry: {e}")
            self._transition(SessionState.ERROR)
            raise SubmissionFailure(str(e), payload=payload, status_code=e.status_code) from e

        self.final_result = payload.result.model_copy(update={"submission_id": submission_id})
        self.pending_payload = None
        self.last_error = None
        self._forget()
        self._stop_timer()
        self._transition(SessionState.COMPLETED)
        return self.final_result

    # ─── Cancellation ─────────────────────────────────────────────────────────

    def _stop_timer(self):
        if self.timer is not None:
            self.timer.cancel()
        current = asyncio.current_task()
        for task in (self._timer_task, self._pump_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

    async def abandon(self):
        """
        Leave the attempt. Saved progress stays so it can be resumed later.

        Only allowed before submission starts; an ERROR session still holds the
        result waiting for retry_submission().
        """
        if self.state in (
            SessionState.SUBMITTING, SessionState.GRADING, SessionState.ERROR, SessionState.COMPLETED,
        ):
            raise InvalidTransition(f"Cannot abandon while {self.state.value}")
        self._abandoned = True
        self._stop_timer()
        tasks = [t for t in (self._build_task, self._timer_task, self._pump_task) if t is not None]
        if self._build_task is not None:
            self._build_task.cancel()
        for task in tasks:
            if task is asyncio.current_task():
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self.state != SessionState.IDLE:
            self._transition(SessionState.IDLE)

    # ─── View ─────────────────────────────────────────────────────────────────

    @property
    def time_left(self) -> Optional[int]:
        return self.timer.time_left if self.timer is not None else None

    def snapshot(self) -> dict:
        """Learner-facing view; correct answers are never included."""
        total = self.timer.total if self.timer is not None else None
        return {
            "state": self.state.value,
            "kind": self.kind.value if self.kind else None,
            "questions": [
                q.model_dump(include={"id", "text", "options", "passage", "group_id", "kind"}, mode="json")
                for q in self.questions
            ],
            "answers": self.collector.snapshot(),
            "current_index": self.current_index,
            "time_left": self.time_left,
            "total_time": total,
            "clock": format_clock(self.time_left) if self.time_left is not None else None,
            "timer_band": timer_band(self.time_left or 0, total or 0) if self.timer is not None else None,
            "timer_running": bool(self.timer and self.timer.state == TimerState.TICKING),
            "build_progress": self.build_progress.model_dump() if self.build_progress else None,
            "warnings": self.warnings,
            "final_result": self.final_result.model_dump(mode="json") if self.final_result else None,
            "error": self.last_error,
        }
