"""
Judge prompts, one per grading strategy.

Each prompt fixes a line format keyed by question number; judge_parser.py
reads exactly these formats (plus the Vietnamese headings older judges use).
"""

from typing import Dict, List, Optional

from exam_engine.schemas import Question


# ─── Multiple choice ───────────────────────────────────────────────────────────

MULTIPLE_CHOICE_PROMPT = """\
Grade the following multiple-choice test on a 10-point scale.

{summary}

Grade ALL {count} questions, including the ones the learner did not answer.
For every question give the correct answer right after the learner's choice and a short
rationale, citing the passage when there is one.

Judge each answer EXACTLY:
- Correct: the learner's choice is IDENTICAL to the correct answer
- Incorrect: the learner's choice DIFFERS from the correct answer
- Unanswered: the learner chose nothing

The score is the number of correct answers divided by the TOTAL number of questions, times 10.
If no answer is correct the score is 0.

Your response must start with "SCORE: [score]/10" followed by one line per question in this format:
Question [number]: [Correct/Incorrect/Unanswered] - Correct answer: [full correct option] - [rationale]
"""


def multiple_choice_summary(questions: List[Question], answers: Dict[str, str]) -> str:
    blocks = []
    for n, q in enumerate(questions, start=1):
        chosen = answers.get(q.id) or "No answer"
        block = (
            f"Question {n}: {q.text}\n"
            f"Learner's choice: {chosen}\n"
            f"Options: {', '.join(q.options)}"
        )
        if q.passage:
            block += f"\nPassage: {q.passage}"
        blocks.append(block)
    return "\n\n".join(blocks)


def multiple_choice_prompt(questions: List[Question], answers: Dict[str, str]) -> str:
    return MULTIPLE_CHOICE_PROMPT.format(
        summary=multiple_choice_summary(questions, answers),
        count=len(questions),
    )


# ─── Written (partial credit) ──────────────────────────────────────────────────

WRITTEN_PROMPT = """\
You are a teacher grading a short-answer test with PARTIAL CREDIT. Grade the work below.

Test details:
- Title: {title}
- Number of questions: {count}
- Maximum per question: {per_question:.2f} points
- Total: 10 points

Learner's work:
{answers_block}

PARTIAL-CREDIT RULES (MANDATORY):

1. BREAK EACH QUESTION DOWN
- Split every question into the sub-points a complete answer must cover.
- Each sub-point is graded at exactly one level: 100%, 75%, 50%, 25% or 0%.
- ALWAYS credit the parts that are right, however small.

2. LEVELS
- 100%: fully correct and complete
- 75%: mostly right, a small detail missing or slightly wrong
- 50%: half right, the main idea is there but details are missing or wrong
- 25%: the basic idea is right but unclear or with many wrong details
- 0%: wrong or unrelated

3. SCORE
- Question score = (sum of sub-point percentages ÷ number of sub-points) ÷ 100 × maximum per question
- Example: a 2.5-point question with sub-points at 75%, 50%, 25%, 0% → 37.5% → 0.94/2.5
- NEVER give 0 when any part is right.

4. LEVEL BY PERCENTAGE
- Excellent: 85-100%
- Good: 70-84%
- Fair: 50-69%
- Average: 30-49%
- Weak: 1-29%
- Poor: 0%

REQUIRED OUTPUT FORMAT:

TOTAL: [sum of question scores]/10

Question 1: [score]/[maximum] - Percentage: [X.X]% - Level: [Excellent/Good/Fair/Average/Weak/Poor]
+ Standard answer: [every point a complete answer must contain]
+ Analysis: [the question has X sub-points: ...]
+ Breakdown:
  - Point 1: [what is checked] → [100%/75%/50%/25%/0%] - [reason]
  - Point 2: [what is checked] → [100%/75%/50%/25%/0%] - [reason]
+ Calculation: ([p1] + [p2] + ...) ÷ [n] = [X]% = [score]/[maximum]
+ Strengths: [what the learner did well]
+ Improvements: [what is missing]
+ Suggestions: [how to answer more completely]

[Repeat for all {count} questions]

SUMMARY:
- Overall comments and recommendations

IMPORTANT:
- Grade ALL {count} questions, even unanswered ones.
- Scores to 2 decimal places.
- Prefer partial credit over 0 whenever possible.
"""


def written_answers_block(questions: List[Question], answers: Dict[str, str]) -> str:
    return "\n\n".join(
        f"Question {n}: {q.text}\nLearner's answer: {answers.get(q.id) or 'No answer'}"
        for n, q in enumerate(questions, start=1)
    )


def written_prompt(questions: List[Question], answers: Dict[str, str], title: Optional[str] = None) -> str:
    return WRITTEN_PROMPT.format(
        title=title or "Written test",
        count=len(questions),
        per_question=10 / len(questions),
        answers_block=written_answers_block(questions, answers),
    )


# ─── Essay ─────────────────────────────────────────────────────────────────────

ESSAY_PROMPT = """\
You are a teacher grading a practical essay on a 10-point scale.

Assignment: {title}
{brief}
RUBRIC:
- Understanding of the task (20%)
- Content: accuracy, detail and critical thinking (40%)
- Presentation and structure (20%)
- Creativity and depth (20%)

{work}

Respond in this format:
SCORE: [score]/10
STRENGTHS: [what the work does well]
IMPROVEMENTS: [what is weak or missing]
SUGGESTIONS: [how to improve]
"""


def essay_prompt(
    title: Optional[str],
    essay_text: Optional[str],
    has_attachment: bool,
    questions: Optional[List[Question]] = None,
) -> str:
    brief = ""
    if questions:
        brief = "Brief:\n" + "\n".join(f"- {q.text}" for q in questions) + "\n"
    parts = []
    if essay_text and essay_text.strip():
        parts.append(f"Learner's written submission:\n{essay_text.strip()}")
    if has_attachment:
        parts.append("The learner's work is attached; read the attached file carefully.")
    return ESSAY_PROMPT.format(title=title or "Practical essay", brief=brief, work="\n\n".join(parts))
