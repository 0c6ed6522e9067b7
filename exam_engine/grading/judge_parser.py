"""
Judge-response parsers, one per grading strategy.

The judge answers in line-oriented blocks keyed by question number. Every
parser looks each question up by its expected number, never by order of
appearance, so an omitted or re-ordered question only affects itself.

    ChoiceJudgeParser         "Question N: Correct - Correct answer: X - why"
    PartialCreditJudgeParser  "Question N: s/m - Percentage: P% - Level: L" + "+ Label:" blocks
    EssayJudgeParser          "SCORE: X/10" + STRENGTHS / IMPROVEMENTS / SUGGESTIONS

Vietnamese headings ("Câu", "ĐIỂM SỐ", "Tỷ lệ", ...) are accepted everywhere.
"""

import logging
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from exam_engine.errors import ParseFailure
from exam_engine.schemas import GradingStatus

log = logging.getLogger("exam_engine.pipeline")

HEADING = r"(?:Question|Câu)"
NEXT_HEADING = rf"(?={HEADING}\s*\d+\s*:|SUMMARY\s*:|TỔNG\s*KẾT\s*:|$)"

_PERCENT = re.compile(r"(\d{1,3}(?:[.,]\d+)?)\s*%")
_SUB_LEVEL = re.compile(r"(?:→|->)\s*(\d{1,3}(?:[.,]\d+)?)\s*%")
_BLOCK_LINE = re.compile(r"^\s*\+\s*([^:\n]{1,40}):\s*(.*)$")

PARTIAL_PHRASES = [
    re.compile(r"partially\s+correct", re.IGNORECASE),
    re.compile(r"\bpartly\b", re.IGNORECASE),
    re.compile(r"has\s+the\s+right\s+idea", re.IGNORECASE),
    re.compile(r"\bincomplete\b", re.IGNORECASE),
    re.compile(r"một\s*phần", re.IGNORECASE),
    re.compile(r"phần\s*đúng", re.IGNORECASE),
    re.compile(r"có\s*ý\s*tưởng", re.IGNORECASE),
    re.compile(r"chưa\s*đầy\s*đủ", re.IGNORECASE),
]
PARTIAL_PHRASE_PERCENT = 25.0

_CHOICE_TOKENS = {
    "correct": GradingStatus.CORRECT,
    "đúng": GradingStatus.CORRECT,
    "incorrect": GradingStatus.INCORRECT,
    "sai": GradingStatus.INCORRECT,
    "unanswered": GradingStatus.UNANSWERED,
    "chưa trả lời": GradingStatus.UNANSWERED,
}

_BLOCK_LABELS = {
    "standard answer": "standard_answer",
    "đáp án chuẩn": "standard_answer",
    "analysis": "analysis",
    "phân tích": "analysis",
    "breakdown": "breakdown",
    "chi tiết chấm điểm": "breakdown",
    "calculation": "calculation",
    "tính toán": "calculation",
    "strengths": "strengths",
    "điểm mạnh": "strengths",
    "improvements": "improvements",
    "cần cải thiện": "improvements",
    "suggestions": "suggestions",
    "gợi ý": "suggestions",
}


def to_number(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    try:
        return float(text.strip().replace(",", "."))
    except ValueError:
        return None


class QuestionJudgement(BaseModel):
    """What the judge said about one question number."""
    number: int
    source: str = "primary"     # primary | percent | phrase
    token: Optional[GradingStatus] = None
    correct_answer: Optional[str] = None
    rationale: str = ""
    judge_score: Optional[float] = None
    judge_max: Optional[float] = None
    percentage: Optional[float] = None
    level: Optional[str] = None
    blocks: Dict[str, str] = Field(default_factory=dict)
    sub_levels: List[float] = Field(default_factory=list)


class JudgeReading(BaseModel):
    total: Optional[float] = None
    items: Dict[int, QuestionJudgement] = Field(default_factory=dict)
    feedback: Dict[str, str] = Field(default_factory=dict)
    text: str = ""


class JudgeResponseParser:
    """Base class: turn raw judge text into a JudgeReading."""

    total_pattern: re.Pattern = re.compile(r"(?:SCORE|ĐIỂM\s*SỐ)\s*:\s*(\d+(?:[.,]\d+)?)\s*/\s*10", re.IGNORECASE)

    def parse(self, text: str, expected: int) -> JudgeReading:
        text = text or ""
        reading = JudgeReading(total=self.total(text), text=text)
        for number in range(1, expected + 1):
            try:
                reading.items[number] = self.question(text, number)
            except ParseFailure as e:
                item = self.fallback(text, number)
                if item is None:
                    log.warning(f"[JUDGE] Question {number}: no verdict ({e})")
                else:
                    log.warning(f"[JUDGE] Question {number}: primary format missing, used {item.source} fallback")
                    reading.items[number] = item
        return reading

    def total(self, text: str) -> Optional[float]:
        match = self.total_pattern.search(text)
        return to_number(match.group(1)) if match else None

    def question(self, text: str, number: int) -> QuestionJudgement:
        """Primary format for one question. Raises ParseFailure when absent."""
        raise NotImplementedError

    def fallback(self, text: str, number: int) -> Optional[QuestionJudgement]:
        return None


def question_section(text: str, number: int) -> Optional[str]:
    """Text from the "Question N:" heading up to the next heading, if the heading exists."""
    match = re.search(
        rf"{HEADING}\s*{number}\s*:([\s\S]*?){NEXT_HEADING}",
        text,
        re.IGNORECASE,
    )
    return match.group(1) if match else None


# ─── Multiple choice ───────────────────────────────────────────────────────────

class ChoiceJudgeParser(JudgeResponseParser):

    def question(self, text: str, number: int) -> QuestionJudgement:
        pattern = re.compile(
            rf"{HEADING}\s*{number}\s*:\s*(Correct|Incorrect|Unanswered|Đúng|Sai|Chưa\s+trả\s+lời)"
            rf"\s*[-–]\s*(?:Correct\s+answer|Đáp\s+án\s+đúng)\s*:\s*(.+?)\s+[-–]\s+(.+?){NEXT_HEADING}",
            re.IGNORECASE | re.DOTALL,
        )
        match = pattern.search(text)
        if not match:
            raise ParseFailure(f"no verdict line for question {number}")
        token = re.sub(r"\s+", " ", match.group(1).strip()).lower()
        return QuestionJudgement(
            number=number,
            token=_CHOICE_TOKENS.get(token, GradingStatus.INCORRECT),
            correct_answer=match.group(2).strip(),
            rationale=match.group(3).strip(),
        )


# ─── Written (partial credit) ──────────────────────────────────────────────────

def split_blocks(details: str) -> Dict[str, str]:
    """Collect "+ Label: ..." blocks (continuation lines included) by canonical key."""
    blocks: Dict[str, List[str]] = {}
    current: Optional[str] = None
    for line in details.splitlines():
        match = _BLOCK_LINE.match(line)
        if match:
            label = re.sub(r"\s+", " ", match.group(1).strip()).lower()
            current = _BLOCK_LABELS.get(label)
            if current is not None:
                blocks.setdefault(current, []).append(match.group(2).strip())
            continue
        if current is not None and line.strip():
            blocks[current].append(line.strip())
    return {key: "\n".join(lines).strip() for key, lines in blocks.items()}


class PartialCreditJudgeParser(JudgeResponseParser):

    total_pattern = re.compile(r"(?:TOTAL|ĐIỂM\s*TỔNG)\s*:\s*(\d+(?:[.,]\d+)?)\s*/\s*10", re.IGNORECASE)

    def question(self, text: str, number: int) -> QuestionJudgement:
        pattern = re.compile(
            rf"{HEADING}\s*{number}\s*:\s*([\d.,]+)\s*/\s*([\d.,]+)"
            rf"\s*[-–]\s*(?:Percentage|Tỷ\s*lệ)\s*:\s*([\d.,]+)\s*%"
            rf"\s*[-–]\s*(?:Level|Trạng\s*thái)\s*:\s*([^+\n]*)"
            rf"([\s\S]*?){NEXT_HEADING}",
            re.IGNORECASE,
        )
        match = pattern.search(text)
        if not match:
            raise ParseFailure(f"no score line for question {number}")

        details = match.group(5) or ""
        blocks = split_blocks(details)
        levels_source = blocks.get("breakdown") or details
        sub_levels = [v for v in (to_number(m) for m in _SUB_LEVEL.findall(levels_source)) if v is not None]

        return QuestionJudgement(
            number=number,
            source="primary",
            judge_score=to_number(match.group(1)),
            judge_max=to_number(match.group(2)),
            percentage=to_number(match.group(3)),
            level=match.group(4).strip() or None,
            correct_answer=blocks.get("standard_answer"),
            blocks=blocks,
            sub_levels=sub_levels,
        )

    def fallback(self, text: str, number: int) -> Optional[QuestionJudgement]:
        section = question_section(text, number)
        if section is None:
            return None
        percent = _PERCENT.search(section)
        if percent:
            return QuestionJudgement(
                number=number,
                source="percent",
                percentage=to_number(percent.group(1)),
                blocks=split_blocks(section),
            )
        if any(p.search(section) for p in PARTIAL_PHRASES):
            return QuestionJudgement(
                number=number,
                source="phrase",
                percentage=PARTIAL_PHRASE_PERCENT,
                rationale=section.strip()[:500],
            )
        return None


# ─── Essay ─────────────────────────────────────────────────────────────────────

_ESSAY_SECTION = re.compile(
    r"^\s*(STRENGTHS|IMPROVEMENTS|SUGGESTIONS|ĐÁNH\s*GIÁ|NHẬN\s*XÉT\s*CHUNG)\s*:\s*",
    re.IGNORECASE | re.MULTILINE,
)
_ESSAY_KEYS = {
    "strengths": "strengths",
    "improvements": "improvements",
    "suggestions": "suggestions",
    "đánh giá": "improvements",
    "nhận xét chung": "suggestions",
}


class EssayJudgeParser(JudgeResponseParser):

    def parse(self, text: str, expected: int = 0) -> JudgeReading:
        text = text or ""
        reading = JudgeReading(total=self.total(text), text=text)
        if reading.total is None:
            log.warning("[JUDGE] Essay verdict has no SCORE line")

        headers = list(_ESSAY_SECTION.finditer(text))
        for i, header in enumerate(headers):
            end = headers[i + 1].start() if i + 1 < len(headers) else len(text)
            label = re.sub(r"\s+", " ", header.group(1).strip()).lower()
            key = _ESSAY_KEYS.get(label)
            body = text[header.end():end].strip()
            if key and body:
                reading.feedback[key] = body
        return reading
