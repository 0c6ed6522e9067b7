"""
Grading Engine
exam_engine/grading/

1. Prompts       — one judge prompt per kind, fixed line formats
2. Judge Parser  — judge text → per-question judgements, indexed by number
3. Answer Match  — deterministic multiple-choice cross-check
4. Grader        — binary / partial-credit / rubric scoring into a GradingReport
"""

from exam_engine.grading.grader import Grader

__all__ = ["Grader"]
