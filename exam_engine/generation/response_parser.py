"""
Response parser for question generation.

The model is asked for a bare JSON array but often wraps it in prose or code
fences. We locate the first "[" ... last "]" span, parse it (repairing minor
JSON damage), and clean every item into a Question.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import json_repair

from exam_engine.errors import GenerationFailure
from exam_engine.schemas import Question, QuestionKind

log = logging.getLogger(__name__)

_ARRAY_SPAN = re.compile(r"\[[\s\S]*\]")

_LEAD_INS = [
    re.compile(r"^(according to the (passage|text)( above| below)?,?\s*)", re.IGNORECASE),
    re.compile(r"^(based on the (passage|text)( above| below)?,?\s*)", re.IGNORECASE),
    re.compile(r"^(theo đoạn văn (trên|sau|dưới đây),?\s*)", re.IGNORECASE),
    re.compile(r"^(dựa vào đoạn văn,?\s*)", re.IGNORECASE),
]

_PASSAGE_ECHO_MARKERS = [
    re.compile(r"\(\s*same passage as q\d+\s*\)", re.IGNORECASE),
    re.compile(r"\(\s*đoạn văn giống hệt đoạn văn của q\d+\s*\)", re.IGNORECASE),
]


# ─── JSON extraction ───────────────────────────────────────────────────────────

def extract_json_array(raw: str) -> List[Any]:
    """
    Return the first JSON array found in raw model output.

    Raises:
        GenerationFailure: no "[...]" span, or the span is not a list even after repair.
    """
    text = (raw or "").strip()
    text = re.sub(r"^```(?:json)?\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"\s*```$", "", text, flags=re.MULTILINE)

    match = _ARRAY_SPAN.search(text)
    if not match:
        raise GenerationFailure(f"No JSON array in model response: {text[:200]}")

    span = match.group(0)
    try:
        data = json.loads(span)
    except json.JSONDecodeError:
        data = json_repair.loads(span)

    if not isinstance(data, list):
        raise GenerationFailure(f"Model response is not a JSON array: {span[:200]}")
    return data


# ─── Item cleaning ─────────────────────────────────────────────────────────────

def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _item_kind(item: Dict[str, Any], options: List[str]) -> QuestionKind:
    declared = _as_text(item.get("type")).lower()
    if declared in ("written", "short", "short-answer"):
        return QuestionKind.WRITTEN
    if declared in ("essay", "practical"):
        return QuestionKind.ESSAY
    if len(options) >= 2:
        return QuestionKind.MULTIPLE_CHOICE
    return QuestionKind.WRITTEN


def strip_lead_in(text: str) -> str:
    for pattern in _LEAD_INS:
        text = pattern.sub("", text)
    return text.strip()


def clean_passage(passage: Optional[str]) -> Optional[str]:
    if not passage:
        return None
    for pattern in _PASSAGE_ECHO_MARKERS:
        passage = pattern.sub("", passage)
    passage = passage.strip()
    return passage or None


def clean_questions(items: List[Any], id_prefix: str = "q") -> List[Question]:
    """
    Turn raw JSON items into Question objects.

    - one passage per groupId (first non-empty wins)
    - passage text is removed from the question's own text
    - "According to the passage..." lead-ins are dropped
    - items with no text are skipped; missing ids become <prefix><n>
    """
    dicts = [i for i in items if isinstance(i, dict)]

    passage_map: Dict[str, str] = {}
    for item in dicts:
        gid = _as_text(item.get("groupId") or item.get("group_id"))
        passage = _as_text(item.get("passage"))
        if gid and passage and gid not in passage_map:
            passage_map[gid] = passage

    questions: List[Question] = []
    seen_ids = set()
    for n, item in enumerate(dicts, start=1):
        text = _as_text(item.get("text") or item.get("question"))
        if not text:
            log.warning("Skipping generated item %d with no text", n)
            continue

        gid = _as_text(item.get("groupId") or item.get("group_id")) or None
        passage = passage_map.get(gid) if gid else _as_text(item.get("passage"))
        passage = clean_passage(passage)

        if passage and passage in text:
            text = text.replace(passage, "").strip()
        text = strip_lead_in(text)

        raw_options = item.get("options")
        options = [_as_text(o) for o in raw_options if _as_text(o)] if isinstance(raw_options, list) else []

        qid = _as_text(item.get("id")) or f"{id_prefix}{n}"
        while qid in seen_ids:
            qid = f"{qid}_dup"
        seen_ids.add(qid)

        correct = _as_text(item.get("correctAnswer") or item.get("correct_answer")) or None

        questions.append(Question(
            id=qid,
            text=text,
            options=options,
            correct_answer=correct,
            passage=passage,
            group_id=gid if passage else None,
            kind=_item_kind(item, options),
        ))
    return questions


def parse_questions(raw: str, id_prefix: str = "q") -> List[Question]:
    """extract_json_array + clean_questions. Raises GenerationFailure on no array."""
    return clean_questions(extract_json_array(raw), id_prefix=id_prefix)
