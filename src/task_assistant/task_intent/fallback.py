"""Progressive local fallback used when remote NLU is unavailable."""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from .models import ParseResult, ParseSource, TaskInfo, TaskType
from .patterns import (
    TIME_EXPR,
    categorize_task_type,
    clean_title,
    extract_attendees,
    extract_location,
    parse_date_expression,
    parse_time_expression,
    parse_time_range,
    split_people,
)

logger = logging.getLogger(__name__)

ASK_USER_REPLY = (
    "🤔 Tôi chưa hiểu rõ yêu cầu của bạn. Bạn có thể nói rõ hơn không?\n"
    "💡 Ví dụ: \"Họp với team lúc 15:00 ngày mai\" hoặc \"Nộp báo cáo trước thứ 6\""
)

MIN_ACCEPT_CONFIDENCE = 0.3

ENHANCED_MEETING_PATTERNS = (
    re.compile(
        r"^(họp|meeting|gặp|call|gọi)\s+(.+?)\s+(lúc|vào|at)\s+"
        r"(\d{1,2}[:.]?\d{0,2}\s*(?:am|pm|h|giờ)?)",
        re.I,
    ),
    re.compile(r"^(cuộc họp|meeting)\s+(.+?)\s+(ngày|on)\s+(.+)", re.I),
    re.compile(r"^(gặp|meet)\s+(.+?)\s+(tại|at)\s+(.+)", re.I),
)

ENHANCED_TASK_PATTERNS = (
    re.compile(
        r"^(làm|hoàn thành|complete|finish|submit|nộp)\s+(.+?)"
        r"(?:\s+(trước|by|deadline)\s+(.+))?$",
        re.I,
    ),
    re.compile(r"^(nhắc|remind|reminder)\s+(.+)", re.I),
    re.compile(r"^(cần|need to|phải)\s+(.+)", re.I),
)

ACTION_KEYWORDS = frozenset(
    ["họp", "meeting", "gặp", "call", "gọi", "làm", "hoàn thành", "submit", "nộp"]
)

TEMPLATES: tuple[tuple[re.Pattern[str], float, str], ...] = (
    (re.compile(rf"^(.+?)\s+(?:lúc|at)\s+({TIME_EXPR}.*)$", re.I), 0.6, "time"),
    (re.compile(r"^(.+?)\s+(?:với|with)\s+(.+)$", re.I), 0.55, "attendees"),
    (re.compile(r"^(.+?)\s+(?:tại|at)\s+(.+)$", re.I), 0.5, "location"),
)


@dataclass
class FallbackOutcome:
    """Result of the fallback chain and the level that produced it."""

    result: ParseResult
    level: int
    strategy: str


def _enrich(info: TaskInfo, message: str, today: date) -> TaskInfo:
    """Fill in whatever schedule, people and place details the message carries."""
    start, end = parse_time_range(message)
    if start and info.due_time is None:
        info.start_time = info.due_time = start
        info.end_time = end
    if info.due_time is None:
        info.due_time = parse_time_expression(message)
    if info.due_date is None:
        info.due_date = parse_date_expression(message, today)
    if not info.attendees:
        info.attendees = extract_attendees(message)
    if info.location is None:
        info.location = extract_location(message)
    return info


class ProgressiveFallback:
    """
    Ordered chain of increasingly permissive local parsers.

    Levels:
        1. Enhanced regex re-scan
        2. Keyword extraction
        3. Template matching
        4. Ask the user directly
    """

    def __init__(self) -> None:
        self._levels: list[tuple[int, str, Callable[[str, date], ParseResult | None]]] = [
            (1, "Enhanced Regex Patterns", self._enhanced_regex),
            (2, "Keyword Extraction", self._keyword_extraction),
            (3, "Template Matching", self._template_matching),
        ]

    def run(
        self, message: str, error: Exception | None = None, today: date | None = None
    ) -> FallbackOutcome:
        today = today or date.today()
        if error is not None:
            logger.warning(f"⚠️ Remote parsing failed, using local fallback: {error}")

        text = message.strip()
        for level, name, handler in self._levels:
            logger.debug(f"Trying fallback level {level}: {name}")
            result = handler(text, today)
            if result is not None and result.confidence > MIN_ACCEPT_CONFIDENCE:
                logger.info(
                    f"Fallback level {level} ({name}) succeeded "
                    f"with confidence {result.confidence:.2f}"
                )
                return FallbackOutcome(result=result, level=level, strategy=name)

        return FallbackOutcome(
            result=ParseResult(
                is_task=False,
                confidence=0.2,
                source=ParseSource.FALLBACK,
                reasoning="Fallback level 4: asking user directly",
                quick_reply=ASK_USER_REPLY,
            ),
            level=4,
            strategy="Ask User Directly",
        )

    def _enhanced_regex(self, text: str, today: date) -> ParseResult | None:
        for pattern in ENHANCED_MEETING_PATTERNS:
            match = pattern.match(text)
            if match:
                info = TaskInfo(
                    title=f"{match.group(1)} {match.group(2)}",
                    task_type=categorize_task_type(text),
                )
                return self._result(_enrich(info, text, today), 0.7, "enhanced meeting regex")

        for pattern in ENHANCED_TASK_PATTERNS:
            match = pattern.match(text)
            if match:
                body = match.group(2)
                title = clean_title(f"{match.group(1)} {body}") or text
                info = TaskInfo(title=title, task_type=TaskType.TASK)
                return self._result(_enrich(info, text, today), 0.65, "enhanced task regex")
        return None

    def _keyword_extraction(self, text: str, today: date) -> ParseResult | None:
        lowered = text.lower()
        action_found = any(
            re.search(rf"\b{re.escape(k)}\b", lowered) for k in ACTION_KEYWORDS
        )
        people = [
            m.group(0)
            for m in re.finditer(r"\b[A-ZÀ-Ỹ][a-zà-ỹ]+", text)
            if m.start() > 0 and len(m.group(0)) > 2
        ]
        if not action_found and not people:
            return None

        info = TaskInfo(title=clean_title(text) or text, task_type=categorize_task_type(text))
        info = _enrich(info, text, today)
        if not info.attendees:
            info.attendees = people
        return self._result(info, 0.5 if action_found else 0.3, "keyword extraction")

    def _template_matching(self, text: str, today: date) -> ParseResult | None:
        for pattern, confidence, slot in TEMPLATES:
            match = pattern.match(text)
            if not match:
                continue
            info = TaskInfo(title=match.group(1).strip(), task_type=categorize_task_type(text))
            value = match.group(2).strip()
            if slot == "time":
                info.due_time = parse_time_expression(value)
            elif slot == "attendees":
                info.attendees = split_people(value)
            else:
                info.location = value
            return self._result(_enrich(info, text, today), confidence, f"template ({slot})")
        return None

    @staticmethod
    def _result(info: TaskInfo, confidence: float, how: str) -> ParseResult:
        return ParseResult(
            is_task=True,
            confidence=confidence,
            source=ParseSource.FALLBACK,
            reasoning=f"Local fallback: {how}",
            task=info,
        )
