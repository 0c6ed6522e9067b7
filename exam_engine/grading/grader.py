"""
Step 4 — Grading Engine

Strategy by question kind:
  MULTIPLE_CHOICE → judge tokens + deterministic cross-check, binary credit,
                    session score = max(judge total, own recount)
  WRITTEN         → partial credit per sub-point, 5% floor for any attempt,
                    session score = sum of clamped per-question scores
  ESSAY           → rubric score for one submission (text and/or file)

Judge failures never fail the grading pass: the affected question degrades
to the most generous reading the text allows.
"""

import logging
from statistics import mean
from typing import Dict, List, Optional

from exam_engine import config
from exam_engine.generation.gpt_client import TextGenerator
from exam_engine.grading import prompts
from exam_engine.grading.answer_match import answers_match
from exam_engine.grading.judge_parser import (
    ChoiceJudgeParser, EssayJudgeParser, JudgeReading, PartialCreditJudgeParser,
)
from exam_engine.schemas import (
    Attachment, ExamConfig, GradingReport, GradingResult, GradingStatus, Question, QuestionKind,
)
from exam_engine.scoring.finalizer import clamp_score, round_half_up

log = logging.getLogger("exam_engine.pipeline")

EXPIRED_NO_WORK_NOTE = "Time expired, no work submitted"
NO_WORK_NOTE = "No work submitted"


def per_question_max(count: int) -> float:
    return round_half_up(config.MAX_SCORE / count, 2) if count else 0.0


def written_level(percentage: float) -> str:
    if percentage >= 85:
        return "Excellent"
    if percentage >= 70:
        return "Good"
    if percentage >= 50:
        return "Fair"
    if percentage >= 30:
        return "Average"
    if percentage > 0:
        return "Weak"
    return "Poor"


class Grader:
    """Runs the judge for one submission and turns its text into a GradingReport."""

    def __init__(
        self,
        generator: TextGenerator,
        choice_parser: Optional[ChoiceJudgeParser] = None,
        written_parser: Optional[PartialCreditJudgeParser] = None,
        essay_parser: Optional[EssayJudgeParser] = None,
    ):
        self.generator = generator
        self.choice_parser = choice_parser or ChoiceJudgeParser()
        self.written_parser = written_parser or PartialCreditJudgeParser()
        self.essay_parser = essay_parser or EssayJudgeParser()

    async def grade(
        self,
        kind: QuestionKind,
        questions: List[Question],
        answers: Dict[str, str],
        exam: ExamConfig,
        source: Optional[Attachment] = None,
        essay_text: Optional[str] = None,
        essay_file: Optional[Attachment] = None,
        auto_submitted: bool = False,
    ) -> GradingReport:
        if kind == QuestionKind.MULTIPLE_CHOICE:
            return await self.grade_multiple_choice(questions, answers, exam, source)
        if kind == QuestionKind.WRITTEN:
            return await self.grade_written(questions, answers, exam)
        return await self.grade_essay(exam, essay_text, essay_file, questions, auto_submitted)

    async def _judge(self, prompt: str, exam: ExamConfig, attachment: Optional[Attachment] = None) -> str:
        """One judge call. An unreachable judge reads as an empty verdict."""
        try:
            return await self.generator.generate(
                prompt,
                attachment=attachment,
                model_id=exam.model_id,
                system_instruction=exam.instructions,
                temperature=config.LLM_TEMPERATURE_GRADING,
            )
        except Exception as e:
            log.warning(f"[GRADE] Judge call failed, grading from an empty verdict: {e}")
            return ""

    # ─── Multiple choice ──────────────────────────────────────────────────────

    async def grade_multiple_choice(
        self,
        questions: List[Question],
        answers: Dict[str, str],
        exam: ExamConfig,
        source: Optional[Attachment] = None,
    ) -> GradingReport:
        if not questions:
            return GradingReport(kind=QuestionKind.MULTIPLE_CHOICE)

        text = await self._judge(prompts.multiple_choice_prompt(questions, answers), exam, source)
        reading = self.choice_parser.parse(text, len(questions))
        return self.score_multiple_choice(questions, answers, reading)

    def score_multiple_choice(
        self,
        questions: List[Question],
        answers: Dict[str, str],
        reading: JudgeReading,
    ) -> GradingReport:
        max_q = per_question_max(len(questions))
        no_verdict = not reading.items
        if no_verdict:
            log.warning("[GRADE] No per-question verdict, checking answers against the bank's answer key")
        results = []
        for n, q in enumerate(questions, start=1):
            answer = answers.get(q.id, "") or ""
            item = reading.items.get(n)
            canonical = (item.correct_answer if item else None) or q.correct_answer

            if not answer.strip():
                status = GradingStatus.UNANSWERED
            elif item is None and no_verdict:
                matched = answers_match(answer, q.correct_answer)
                status = GradingStatus.CORRECT if matched else GradingStatus.INCORRECT
            elif item is None:
                status = GradingStatus.UNANSWERED
            elif item.token == GradingStatus.CORRECT or answers_match(answer, canonical):
                status = GradingStatus.CORRECT
            else:
                status = GradingStatus.INCORRECT

            if item is None:
                explanation = "The grader returned no verdict for this question"
            else:
                explanation = item.rationale or "No explanation"
                if canonical and canonical not in explanation:
                    explanation = f"Correct answer: {canonical}. {explanation}"

            results.append(GradingResult(
                question_id=q.id,
                user_answer=answer,
                status=status,
                score=max_q if status == GradingStatus.CORRECT else 0.0,
                max_score=max_q,
                explanation=explanation,
                correct_answer=canonical,
            ))

        correct = sum(1 for r in results if r.status == GradingStatus.CORRECT)
        recount = round_half_up(correct / len(questions) * config.MAX_SCORE)
        judge_total = reading.total
        if judge_total is not None and not reading.items:
            log.warning(f"[GRADE] Judge total {judge_total} came with no per-question lines, ignoring it")
            raw = recount
        else:
            raw = clamp_score(max(judge_total or 0.0, recount))
            if judge_total is not None and abs(judge_total - recount) > 0.05:
                log.warning(f"[GRADE] Judge total {judge_total} differs from recount {recount}; using {raw}")
        log.info(f"[GRADE] Multiple choice: {correct}/{len(questions)} correct → {raw}/10")
        return GradingReport(
            kind=QuestionKind.MULTIPLE_CHOICE,
            results=results,
            raw_score=raw,
            judge_total=judge_total,
            judge_text=reading.text,
        )

    # ─── Written ──────────────────────────────────────────────────────────────

    async def grade_written(
        self,
        questions: List[Question],
        answers: Dict[str, str],
        exam: ExamConfig,
    ) -> GradingReport:
        if not questions:
            return GradingReport(kind=QuestionKind.WRITTEN)

        text = await self._judge(prompts.written_prompt(questions, answers, exam.title), exam)
        reading = self.written_parser.parse(text, len(questions))
        return self.score_written(questions, answers, reading)

    def score_written(
        self,
        questions: List[Question],
        answers: Dict[str, str],
        reading: JudgeReading,
    ) -> GradingReport:
        max_q = per_question_max(len(questions))
        results = []
        for n, q in enumerate(questions, start=1):
            answer = answers.get(q.id, "") or ""
            item = reading.items.get(n)

            percentage = 0.0
            score = 0.0
            if item is not None:
                if item.source == "primary" and item.sub_levels:
                    percentage = mean(item.sub_levels)
                else:
                    percentage = item.percentage or 0.0
                percentage = min(100.0, max(0.0, percentage))
                score = percentage / 100 * max_q
                judge_score = item.judge_score
                if item.source == "primary" and judge_score and abs(judge_score - score) <= max_q * 0.1:
                    score = max(judge_score, score)

            if not answer.strip():
                status, percentage, score = GradingStatus.UNANSWERED, 0.0, 0.0
            elif percentage <= 0:
                percentage = config.MIN_EFFORT_PERCENT
                score = max(score, percentage / 100 * max_q)
                status = GradingStatus.PARTIAL
                log.warning(f"[GRADE] Question {n}: no credit found, applying {percentage}% effort floor")
            elif percentage >= 85:
                status = GradingStatus.CORRECT
            else:
                status = GradingStatus.PARTIAL

            score = min(round_half_up(clamp_score(score, max_q), 2), max_q)
            results.append(GradingResult(
                question_id=q.id,
                user_answer=answer,
                status=status,
                score=score,
                max_score=max_q,
                explanation=self._written_explanation(item, score, max_q, percentage),
                correct_answer=(item.correct_answer if item else None) or q.correct_answer,
                percentage=round_half_up(percentage, 1),
                level=written_level(percentage) if status != GradingStatus.UNANSWERED else None,
            ))

        total = clamp_score(round_half_up(sum(r.score for r in results), 2))
        if reading.total is not None and abs(reading.total - total) > 0.05:
            log.warning(f"[GRADE] Judge total {reading.total} differs from summed total {total}")
        log.info(f"[GRADE] Written: {len(results)} questions → {total}/10")
        return GradingReport(
            kind=QuestionKind.WRITTEN,
            results=results,
            raw_score=total,
            judge_total=reading.total,
            judge_text=reading.text,
        )

    @staticmethod
    def _written_explanation(item, score: float, max_q: float, percentage: float) -> str:
        lines = [f"Score: {score:.2f}/{max_q:.2f} ({percentage:.1f}%)"]
        if item is None:
            lines.append("The grader returned no assessment for this question.")
            return "\n".join(lines)
        labels = [
            ("standard_answer", "Standard answer"),
            ("analysis", "Analysis"),
            ("breakdown", "Breakdown"),
            ("calculation", "Calculation"),
            ("strengths", "Strengths"),
            ("improvements", "Improvements"),
            ("suggestions", "Suggestions"),
        ]
        for key, label in labels:
            if item.blocks.get(key):
                lines.append(f"{label}: {item.blocks[key]}")
        if item.rationale:
            lines.append(item.rationale)
        return "\n".join(lines)

    # ─── Essay ────────────────────────────────────────────────────────────────

    async def grade_essay(
        self,
        exam: ExamConfig,
        essay_text: Optional[str] = None,
        essay_file: Optional[Attachment] = None,
        questions: Optional[List[Question]] = None,
        auto_submitted: bool = False,
    ) -> GradingReport:
        has_text = bool(essay_text and essay_text.strip())
        if not has_text and essay_file is None:
            note = EXPIRED_NO_WORK_NOTE if auto_submitted else NO_WORK_NOTE
            log.info(f"[GRADE] Essay: {note}")
            return GradingReport(
                kind=QuestionKind.ESSAY,
                results=[GradingResult(
                    question_id="essay",
                    status=GradingStatus.UNANSWERED,
                    score=0.0,
                    max_score=config.MAX_SCORE,
                    explanation=note,
                )],
                raw_score=0.0,
            )

        prompt = prompts.essay_prompt(exam.title, essay_text, essay_file is not None, questions)
        text = await self._judge(prompt, exam, essay_file)
        reading = self.essay_parser.parse(text)
        return self.score_essay(essay_text or "", reading)

    def score_essay(self, essay_text: str, reading: JudgeReading) -> GradingReport:
        raw = clamp_score(round_half_up(reading.total or 0.0))
        parts = [f"{key.capitalize()}: {body}" for key, body in reading.feedback.items()]
        explanation = "\n\n".join(parts) or reading.text.strip() or "No feedback"
        status = GradingStatus.CORRECT if raw >= 8.5 else GradingStatus.PARTIAL if raw > 0 else GradingStatus.INCORRECT
        log.info(f"[GRADE] Essay → {raw}/10")
        return GradingReport(
            kind=QuestionKind.ESSAY,
            results=[GradingResult(
                question_id="essay",
                user_answer=essay_text,
                status=status,
                score=raw,
                max_score=config.MAX_SCORE,
                explanation=explanation,
            )],
            raw_score=raw,
            judge_total=reading.total,
            judge_text=reading.text,
        )
