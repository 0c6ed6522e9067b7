"""
Step 1 — Question Bank Builder

Turns a source document into one ordered, single-kind list of questions.

  Extract mode, or question_count <= BATCH_SIZE  → one extract/generate call
  Generate mode with question_count > BATCH_SIZE → sequential batches of
                  BATCH_SIZE; batch 1 decides the kind, batches 2..N are pinned to it

Batches run strictly in order: each prompt needs the resolved kind and the
questions already written. A failed batch is skipped with a warning.
"""

import logging
import math
import random
from typing import Callable, List, Optional

from exam_engine import config
from exam_engine.errors import GenerationFailure
from exam_engine.generation.gpt_client import TextGenerator
from exam_engine.generation.normalizer import detect_kind, enforce_kind, resolve_bank_kind
from exam_engine.generation.prompts import batch_id_prefix, batch_prompt, single_pass_prompt
from exam_engine.generation.response_parser import parse_questions
from exam_engine.generation.shuffler import shuffle_options, shuffle_questions
from exam_engine.schemas import (
    Attachment, Batch, BuildProgress, BuildResult, ExamConfig, Question,
    QuestionKind, ReferenceMode,
)

log = logging.getLogger("exam_engine.pipeline")

ProgressCallback = Callable[[BuildProgress], None]


def plan_batches(question_count: int, batch_size: int = config.BATCH_SIZE) -> List[Batch]:
    """45 questions at size 20 → batches of 20, 20, 5."""
    total = max(1, math.ceil(question_count / batch_size))
    batches = []
    remaining = question_count
    for index in range(1, total + 1):
        size = min(batch_size, remaining)
        batches.append(Batch(index=index, size=size, total=total))
        remaining -= size
    return batches


def namespace_batch(questions: List[Question], batch_index: int) -> List[Question]:
    """Force ids to q<batch>_<n> and group ids to group<batch>_<gid>."""
    prefix = batch_id_prefix(batch_index)
    group_prefix = f"group{batch_index}_"
    out = []
    for n, q in enumerate(questions, start=1):
        update = {}
        if not q.id.startswith(prefix):
            update["id"] = f"{prefix}{n}"
        if q.group_id and not q.group_id.startswith(group_prefix):
            update["group_id"] = f"{group_prefix}{q.group_id}"
        out.append(q.model_copy(update=update) if update else q)
    return out


def _dedupe_ids(questions: List[Question], seen: set) -> List[Question]:
    out = []
    for q in questions:
        qid = q.id
        while qid in seen:
            qid = f"{qid}_dup"
        seen.add(qid)
        out.append(q if qid == q.id else q.model_copy(update={"id": qid}))
    return out


class QuestionBankBuilder:
    """
    build(attachment, exam) → BuildResult(questions, kind).

    Pass a store (anything with get_cached_questions / cache_questions) and a
    cache_key to reuse a previous build for the same session.
    """

    def __init__(
        self,
        generator: TextGenerator,
        store=None,
        batch_size: int = config.BATCH_SIZE,
        rng: Optional[random.Random] = None,
    ):
        self.generator = generator
        self.store = store
        self.batch_size = batch_size
        self.rng = rng or random.Random()

    async def build(
        self,
        attachment: Attachment,
        exam: ExamConfig,
        on_progress: Optional[ProgressCallback] = None,
        cache_key: Optional[str] = None,
    ) -> BuildResult:
        if self.store is not None and cache_key:
            cached = self.store.get_cached_questions(cache_key)
            if cached is not None:
                log.info(f"[BANK] Cache hit {cache_key}: {len(cached.questions)} {cached.kind.value} questions")
                return cached

        count = exam.question_count
        batched = exam.reference_mode == ReferenceMode.GENERATE and count > self.batch_size
        if batched:
            result = await self._batched(attachment, exam, on_progress)
        else:
            result = await self._single_pass(attachment, exam, on_progress)

        questions = result.questions
        if exam.shuffle_questions:
            questions = shuffle_questions(questions, self.rng)
        if exam.shuffle_options and result.kind == QuestionKind.MULTIPLE_CHOICE:
            questions = shuffle_options(questions, self.rng)
        result = result.model_copy(update={"questions": questions})

        self._report(on_progress, "done", questions=len(questions), target=count)
        if self.store is not None and cache_key:
            self.store.cache_questions(cache_key, result)
        return result

    # ─── Single pass ──────────────────────────────────────────────────────────

    async def _single_pass(
        self,
        attachment: Attachment,
        exam: ExamConfig,
        on_progress: Optional[ProgressCallback],
    ) -> BuildResult:
        generate = exam.reference_mode == ReferenceMode.GENERATE
        self._report(on_progress, "extracting", batch=1, total_batches=1, target=exam.question_count)
        log.info(f"[BANK] Single pass: mode={exam.reference_mode.value}, count={exam.question_count}")

        try:
            raw = await self._call(single_pass_prompt(generate, exam.question_count), attachment, exam)
            questions = parse_questions(raw)
        except GenerationFailure as e:
            log.warning(f"[BANK] Single pass unusable, falling back to essay: {e}")
            return BuildResult(questions=[], kind=QuestionKind.ESSAY, warnings=[str(e)])

        questions = questions[:exam.question_count]
        kind = resolve_bank_kind(questions)
        questions = enforce_kind(questions, kind)
        log.info(f"[BANK] Resolved kind={kind.value} with {len(questions)} questions")
        return BuildResult(questions=questions, kind=kind)

    # ─── Batched ──────────────────────────────────────────────────────────────

    async def _batched(
        self,
        attachment: Attachment,
        exam: ExamConfig,
        on_progress: Optional[ProgressCallback],
    ) -> BuildResult:
        batches = plan_batches(exam.question_count, self.batch_size)
        total = len(batches)
        questions: List[Question] = []
        warnings: List[str] = []
        seen_ids: set = set()
        pinned: Optional[QuestionKind] = None

        for batch in batches:
            if pinned is None:
                pinned = detect_kind(questions)
            batch.requested_kind = pinned
            self._report(
                on_progress, "batch", batch=batch.index, total_batches=total,
                questions=len(questions), target=exam.question_count,
            )
            log.info(
                f"[BATCH {batch.index}/{total}] size={batch.size}, "
                f"kind={pinned.value if pinned else 'undecided'}"
            )

            prompt = batch_prompt(batch.index, total, batch.size, pinned, questions)
            try:
                raw = await self._call(prompt, attachment, exam)
                got = parse_questions(raw, id_prefix=batch_id_prefix(batch.index))
            except GenerationFailure as e:
                e.batch_index = batch.index
                log.warning(f"[BATCH {batch.index}/{total}] Skipped: {e}")
                warnings.append(f"Batch {batch.index} failed, results may be incomplete")
                continue

            got = namespace_batch(got[:batch.size], batch.index)
            got = _dedupe_ids(got, seen_ids)
            if pinned is None:
                pinned = detect_kind(got)
                if pinned is not None:
                    log.info(f"[BATCH {batch.index}/{total}] Kind resolved: {pinned.value}")
            if pinned is not None:
                got = enforce_kind(got, pinned)

            questions.extend(got)
            log.info(f"[BATCH {batch.index}/{total}] OK: {len(got)} questions ({len(questions)} total)")

        kind = pinned or resolve_bank_kind(questions)
        questions = enforce_kind(questions, kind)
        log.info(f"[BANK] Batched build done: kind={kind.value}, {len(questions)}/{exam.question_count} questions")
        return BuildResult(questions=questions, kind=kind, warnings=warnings)

    # ─── Helpers ──────────────────────────────────────────────────────────────

    async def _call(self, prompt: str, attachment: Attachment, exam: ExamConfig) -> str:
        try:
            return await self.generator.generate(
                prompt,
                attachment=attachment,
                model_id=exam.model_id,
                system_instruction=exam.instructions,
                temperature=config.LLM_TEMPERATURE_GENERATION,
            )
        except GenerationFailure:
            raise
        except Exception as e:
            raise GenerationFailure(f"Generation call failed: {e}") from e

    @staticmethod
    def _report(on_progress: Optional[ProgressCallback], stage: str, **fields):
        if on_progress is not None:
            on_progress(BuildProgress(stage=stage, **fields))
