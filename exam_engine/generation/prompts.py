"""
Prompt templates for the question bank pipeline.

Single-pass:  EXTRACT_PROMPT / GENERATE_PROMPT   (question_count <= BATCH_SIZE)
Batched:      BATCH_DECIDE_PROMPT                (batch 1, kind not yet known)
              BATCH_MULTIPLE_CHOICE_PROMPT       (batches 2..N, kind pinned)
              BATCH_WRITTEN_PROMPT               (batches 2..N, kind pinned)

Every template asks for a bare JSON array; the parser tolerates prose around it.
"""

from typing import List, Optional

from exam_engine.schemas import Question, QuestionKind


# ─── Shared blocks ─────────────────────────────────────────────────────────────

KIND_SIGNALS = """\
1. PRACTICAL ESSAY:
   - Signals: build / implement / design a system, write a program, develop an application,
     "analyse in detail", "present fully", multi-part practical requirements.
   - Expected answer is a file, a project or a long document, not a line of text.
   - If these signals are present, the test is a PRACTICAL ESSAY.

2. WRITTEN (short open answer):
   - Signals: short-answer items (1-5 words, one sentence, a definition, a formula).
   - No A/B/C/D options.
   - Blank markers such as "___", "(...)" or boxes to fill in.
   - Verbs: "Fill in", "Write the formula", "Define", "State the name", "Compute the value".
   - If these signals are present and there are no essay signals, the test is WRITTEN.

3. MULTIPLE CHOICE:
   - Signals: each item has 2-5 clearly lettered or numbered options (A, B, C, D or 1, 2, 3, 4).
   - Phrases like "Choose the correct answer", "Circle", "Select".
   - Items may be tied to a reading passage.
   - If these signals are present and there are no essay or written signals, the test is MULTIPLE CHOICE.
"""

PASSAGE_RULES = """\
PASSAGE RULES:
- Check whether the source contains reading PASSAGES with questions attached to them.
- If EVERY source question is tied to a passage: every new question must be tied to a NEW passage.
  Write as many new passages as the source has, with similar length, and give each passage the
  same number of questions its source counterpart had.
- If the source mixes passage questions and standalone questions: keep a similar ratio.
- If the source has no passages: every question is standalone with "passage": null, "groupId": null.
- Questions sharing a passage carry the same "groupId". Put the passage text ONLY in "passage",
  never repeat it inside "text".
"""

LANGUAGE_RULES = """\
- Always write in the same language as the source document.
- Keep the subject and difficulty of the source document.
"""

MULTIPLE_CHOICE_FORMAT = """\
[
  {{
    "id": "{id_prefix}1",
    "text": "Question text...",
    "options": ["A. Option 1", "B. Option 2", "C. Option 3", "D. Option 4"],
    "correctAnswer": "B. Option 2",
    "passage": null,
    "groupId": null
  }}
]"""

WRITTEN_FORMAT = """\
[
  {{
    "id": "{id_prefix}1",
    "text": "Fill in the blank: Photosynthesis converts ___",
    "options": [],
    "type": "written",
    "correctAnswer": "light energy into chemical energy"
  }}
]"""


# ─── Single-pass prompts ───────────────────────────────────────────────────────

EXTRACT_PROMPT = """\
MODE: EXTRACT QUESTIONS FROM THE ATTACHED DOCUMENT

STEP 1: CLASSIFY THE TEST
Decide which kind of test the document contains (check in this order):

{kind_signals}

STEP 2: EXTRACT
- If the document has fewer than {question_count} questions, extract ALL of them.
- Otherwise extract EXACTLY the first {question_count} questions.
- Do NOT invent new questions. Copy the wording verbatim.

STEP 3: OUTPUT FORMAT
A. MULTIPLE CHOICE — keep the options exactly as printed. If an item belongs to a passage,
   put the passage in "passage" and give every item of that passage the same "groupId":
{mc_format}

B. WRITTEN — short open answers, "options" is empty, "type" is "written":
{written_format}

C. PRACTICAL ESSAY — return an empty array: []

GENERAL:
{language_rules}
- Return ONLY the JSON array.
"""

GENERATE_PROMPT = """\
MODE: WRITE A NEW TEST BASED ON THE ATTACHED REFERENCE DOCUMENT

STEP 1: CLASSIFY THE TEST
Decide which kind of test the reference document contains (check in this order):

{kind_signals}

STEP 2: WRITE NEW QUESTIONS OF THE SAME KIND
- Write EXACTLY {question_count} NEW questions on the same topic and at the same difficulty.
- New content must differ from the document but test the same knowledge.
- MULTIPLE CHOICE: 3-5 options per question, exactly one correct; include "correctAnswer".
- WRITTEN: short open answers (1-3 words, a formula, a definition); include "type": "written"
  and "correctAnswer".
- PRACTICAL ESSAY: return an empty array [] (the essay brief is shown from the document).

{passage_rules}
STEP 3: OUTPUT FORMAT
Multiple choice:
{mc_format}

Written:
{written_format}

GENERAL:
{language_rules}
- Return ONLY the JSON array.
"""


# ─── Batched prompts ───────────────────────────────────────────────────────────

BATCH_DECIDE_PROMPT = """\
MODE: DECIDE THE TEST KIND FROM THE REFERENCE DOCUMENT - BATCH {batch}/{total_batches}

STEP 1: CLASSIFY
Analyse the reference document and choose the ONE kind that fits best:

1. WRITTEN:
   - Many items asking for a short answer (1-5 words, a sentence, a definition, a formula).
   - No A/B/C/D options; blank markers such as "___" or "(...)".
   - Verbs: "Fill in", "Write the formula", "Define", "State", "Compute".

2. MULTIPLE CHOICE:
   - Items with 2-5 clearly lettered or numbered options.
   - Phrases like "Choose the correct answer", "Circle", "Select".

STEP 2: WRITE {batch_size} NEW questions of the chosen kind. ALL questions in this batch must be
the SAME kind.

REQUIRED:
- WRITTEN questions: add "type": "written" and "correctAnswer" to every item, "options": [].
- MULTIPLE CHOICE questions: add "options" (3-5 entries) and "correctAnswer".
- Use the id prefix "{id_prefix}" so ids do not collide with other batches.

{passage_rules}
WRITTEN FORMAT:
{written_format}

MULTIPLE CHOICE FORMAT:
{mc_format}

{language_rules}
- Return ONLY the JSON array.
"""

BATCH_MULTIPLE_CHOICE_PROMPT = """\
MODE: WRITE NEW MULTIPLE-CHOICE QUESTIONS FROM THE REFERENCE DOCUMENT - BATCH {batch}/{total_batches}

This is batch {batch} of {total_batches}. The test kind is already fixed: MULTIPLE CHOICE.
Do NOT deviate from it.

Write {batch_size} NEW multiple-choice questions, COMPLETELY DIFFERENT from the ones already
written in earlier batches.
{previous_block}
{passage_rules}
FORMAT:
{mc_format}

NOTES:
{language_rules}
- Use the id prefix "{id_prefix}" so ids do not collide with other batches.
- 3-5 options per question, exactly one correct, always include "correctAnswer".
- Use groupId values of the form "group{batch}_<n>".
- Return ONLY the JSON array.
"""

BATCH_WRITTEN_PROMPT = """\
MODE: WRITE NEW WRITTEN QUESTIONS FROM THE REFERENCE DOCUMENT - BATCH {batch}/{total_batches}

This is batch {batch} of {total_batches}. The test kind is already fixed: WRITTEN (short open
answers). Do NOT write multiple-choice questions in this batch.

Write {batch_size} NEW written questions, COMPLETELY DIFFERENT from the ones already written in
earlier batches.
{previous_block}
FORMAT:
{written_format}

NOTES:
{language_rules}
- Use the id prefix "{id_prefix}" so ids do not collide with other batches.
- EVERY item must have "type": "written" and a "correctAnswer" used for grading.
- Questions must be simple, clear and grounded in the document.
- Return ONLY the JSON array.
"""


# ─── Builders ──────────────────────────────────────────────────────────────────

MAX_PREVIOUS_LISTED = 60


def _previous_block(previous: List[Question]) -> str:
    if not previous:
        return ""
    lines = [f"- {q.text[:120]}" for q in previous[-MAX_PREVIOUS_LISTED:]]
    return "\nQuestions already written (do NOT repeat or paraphrase them):\n" + "\n".join(lines) + "\n"


def batch_id_prefix(batch_index: int) -> str:
    return f"q{batch_index}_"


def single_pass_prompt(generate: bool, question_count: int) -> str:
    template = GENERATE_PROMPT if generate else EXTRACT_PROMPT
    return template.format(
        kind_signals=KIND_SIGNALS,
        question_count=question_count,
        passage_rules=PASSAGE_RULES,
        language_rules=LANGUAGE_RULES,
        mc_format=MULTIPLE_CHOICE_FORMAT.format(id_prefix="q"),
        written_format=WRITTEN_FORMAT.format(id_prefix="q"),
    )


def batch_prompt(
    batch: int,
    total_batches: int,
    batch_size: int,
    pinned_kind: Optional[QuestionKind],
    previous: List[Question],
) -> str:
    """Prompt for one batch. Batch 1 without a pinned kind lets the model decide."""
    id_prefix = batch_id_prefix(batch)
    fields = dict(
        batch=batch,
        total_batches=total_batches,
        batch_size=batch_size,
        id_prefix=id_prefix,
        previous_block=_previous_block(previous),
        passage_rules=PASSAGE_RULES,
        language_rules=LANGUAGE_RULES,
        mc_format=MULTIPLE_CHOICE_FORMAT.format(id_prefix=id_prefix),
        written_format=WRITTEN_FORMAT.format(id_prefix=id_prefix),
    )
    if pinned_kind is None:
        return BATCH_DECIDE_PROMPT.format(**fields)
    if pinned_kind == QuestionKind.WRITTEN:
        return BATCH_WRITTEN_PROMPT.format(**fields)
    return BATCH_MULTIPLE_CHOICE_PROMPT.format(**fields)
