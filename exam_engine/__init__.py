"""
Exam Session Engine
exam_engine/

Turns a source document into a timed, resumable exam and a bounded final score.

1. Question Bank   — extract or generate questions, batched, one kind per session
2. Session Store   — Redis-backed answers, position and countdown
3. Timer/Deadline  — countdown with auto-submit, late-penalty tiers
4. Grading         — LLM judge, parsed into per-question results
5. Finalizer       — raw score → penalised, clamped final score
6. Orchestrator    — the session state machine tying the steps together
"""
