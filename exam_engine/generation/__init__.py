"""
Question Bank Pipeline
exam_engine/generation/

Steps:
1. Prompts          — extract / generate / batch prompts (kind decided or pinned)
2. GPT Client       — one narrow call: prompt + optional attachment + system preamble
3. Response Parser  — first "[...]" span → cleaned Question objects
4. Normalizer       — reshape items to the session's single kind
5. Shuffler         — group-preserving question shuffle, per-question option shuffle
6. Question Bank    — single-pass or sequential batches, cached per session
"""
