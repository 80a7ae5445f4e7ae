"""
Declarative pattern rules for Vietnamese/English task messages.

Rules are plain data (name, compiled pattern, confidence, extractor) and are
consumed by two generic evaluators: first_match() for the ordered
high-confidence table and accumulate() for additive medium-confidence signals.
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, time, timedelta

from .models import ParseResult, ParseSource, TaskInfo, TaskType

# Time-of-day expression: 15:00, 15h, 15h30, 3 giờ, 3 giờ 30 chiều, 9am
TIME_EXPR = (
    r"\d{1,2}(?:\s*:\s*\d{2}|\s*h\s*\d{0,2}|\s*giờ(?:\s*\d{1,2}(?:\s*phút)?)?)?"
    r"(?:\s*(?:sáng|trưa|chiều|tối|đêm|am|pm))?"
)

_TIME_RE = re.compile(
    r"(?<![\d/:])(\d{1,2})\s*"
    r"(?::\s*(\d{2})|h(?![a-z])\s*(\d{2})?|giờ(?:\s*(\d{1,2})(?:\s*phút)?)?)"
    r"(?:\s*(sáng|trưa|chiều|tối|đêm|am|pm))?(?![\d/])",
    re.IGNORECASE,
)
_AMPM_RE = re.compile(r"(?<![\d:])(\d{1,2})\s*(am|pm)\b", re.IGNORECASE)
_PERIOD_ONLY_RE = re.compile(r"\b(sáng|trưa|chiều|tối)\b", re.IGNORECASE)
_RANGE_RE = re.compile(
    rf"(?:từ\s+)?({TIME_EXPR})\s*(?:-|–|đến|tới|to)\s*({TIME_EXPR})", re.IGNORECASE
)

PERIOD_DEFAULTS = {
    "sáng": time(9, 0),
    "trưa": time(12, 0),
    "chiều": time(15, 0),
    "tối": time(19, 0),
}

WEEKDAYS = {
    "thứ hai": 0,
    "thứ 2": 0,
    "thứ ba": 1,
    "thứ 3": 1,
    "thứ tư": 2,
    "thứ 4": 2,
    "thứ năm": 3,
    "thứ 5": 3,
    "thứ sáu": 4,
    "thứ 6": 4,
    "thứ bảy": 5,
    "thứ 7": 5,
    "chủ nhật": 6,
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}
_WEEKDAY_RE = re.compile(
    r"\b(" + "|".join(sorted(WEEKDAYS, key=len, reverse=True)) + r")\b", re.IGNORECASE
)

_RELATIVE_DATES: list[tuple[re.Pattern[str], int]] = [
    (
        re.compile(r"\b(hôm nay|today|sáng nay|trưa nay|chiều nay|tối nay)\b", re.I),
        0,
    ),
    (re.compile(r"\b(ngày kia|ngày mốt|mốt)\b", re.I), 2),
    # A lone "mai" is a name ("chị Mai") unless it is the whole reply
    (
        re.compile(
            r"\b(ngày mai|sáng mai|trưa mai|chiều mai|tối mai|tomorrow)\b|^\s*mai\s*[.!]?\s*$",
            re.I,
        ),
        1,
    ),
    (re.compile(r"\b(tuần sau|tuần tới|next week)\b", re.I), 7),
]
_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_DMY_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")

EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")

# Words that end an attendee or location phrase
_STOP_WORDS = (
    r"lúc|vào|ngày|tại|ở|hôm|sáng|chiều|tối|trưa|thứ|chủ nhật|để|về|từ|trước"
)
_PHRASE_STOP = rf"(?=\s+(?:{_STOP_WORDS})\b|\s+\d|[,;!?]|\.(?:\s|$)|$)"
# Attendee lists keep their commas so split_people can separate names
_PEOPLE_STOP = rf"(?=\s+(?:{_STOP_WORDS})\b|\s+\d|[;!?]|\.(?:\s|$)|$)"

_SCHEDULE_TOKENS = [
    re.compile(rf"\b(?:lúc|vào lúc|vào)\s+{TIME_EXPR}", re.I),
    re.compile(rf"(?:từ\s+)?{TIME_EXPR}\s*(?:-|–|đến|tới)\s*{TIME_EXPR}", re.I),
    _TIME_RE,
    _AMPM_RE,
    re.compile(r"\b(?:vào\s+)?(?:ngày\s+)?\d{4}-\d{1,2}-\d{1,2}\b", re.I),
    re.compile(r"\b(?:vào\s+)?(?:ngày\s+)?\d{1,2}/\d{1,2}(?:/\d{2,4})?\b", re.I),
    re.compile(
        r"\b(?:vào\s+)?(?:hôm nay|ngày mai|ngày kia|ngày mốt|tuần sau|tuần tới|"
        r"tối nay|sáng nay|trưa nay|chiều nay|sáng mai|trưa mai|chiều mai|tối mai|"
        r"today|tomorrow|next week)\b",
        re.I,
    ),
    re.compile(r"\b(?:vào\s+)?(?:" + "|".join(WEEKDAYS) + r")\b", re.I),
]
_TRAILING_CONNECTORS = re.compile(
    r"(?:\s+(?:lúc|vào|ngày|trước|deadline|hạn|hôm|sáng|chiều|tối))+\s*$", re.I
)


def _resolve_period(hour: int, period: str | None) -> int:
    period = (period or "").lower()
    if period in ("chiều", "tối", "pm") and hour < 12:
        return hour + 12
    if period in ("đêm",) and 6 <= hour < 12:
        return hour + 12
    if period == "am" and hour == 12:
        return 0
    return hour


def parse_time_expression(text: str) -> time | None:
    """
    Parse the first time-of-day expression in text.

    Bare period words map to defaults: sáng 09:00, trưa 12:00,
    chiều 15:00, tối 19:00.
    """
    match = _TIME_RE.search(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or match.group(3) or match.group(4) or 0)
        hour = _resolve_period(hour, match.group(5))
        if hour <= 23 and minute <= 59:
            return time(hour, minute)
    match = _AMPM_RE.search(text)
    if match:
        hour = _resolve_period(int(match.group(1)), match.group(2))
        if hour <= 23:
            return time(hour, 0)
    match = _PERIOD_ONLY_RE.search(text)
    if match:
        return PERIOD_DEFAULTS[match.group(1).lower()]
    return None


def parse_time_range(text: str) -> tuple[time | None, time | None]:
    """Parse 'từ 9h đến 10h30' / '9:00-10:00' style ranges."""
    match = _RANGE_RE.search(text)
    if not match:
        return None, None
    return parse_time_expression(match.group(1)), parse_time_expression(match.group(2))


def next_weekday(today: date, weekday: int) -> date:
    """Next occurrence of weekday strictly after today."""
    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


def parse_date_expression(text: str, today: date | None = None) -> date | None:
    """Parse relative (hôm nay, ngày mai, thứ 6) or absolute dates."""
    today = today or date.today()

    match = _ISO_DATE_RE.search(text)
    if match:
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            return None

    match = _DMY_RE.search(text)
    if match:
        day, month = int(match.group(1)), int(match.group(2))
        year_text = match.group(3)
        year = today.year
        if year_text:
            year = int(year_text) + (2000 if len(year_text) == 2 else 0)
        try:
            parsed = date(year, month, day)
        except ValueError:
            return None
        if not year_text and parsed < today:
            parsed = parsed.replace(year=year + 1)
        return parsed

    lowered = text.lower()
    for pattern, offset in _RELATIVE_DATES:
        if pattern.search(lowered):
            return today + timedelta(days=offset)

    match = _WEEKDAY_RE.search(lowered)
    if match:
        return next_weekday(today, WEEKDAYS[match.group(1).lower()])
    return None


def extract_emails(text: str) -> list[str]:
    return EMAIL_RE.findall(text)


def split_people(text: str) -> list[str]:
    """Split 'anh Nam, chị Lan và Minh' into names."""
    parts = re.split(r"\s*(?:,|;|\bvà\b|\band\b|&)\s*", text.strip(), flags=re.I)
    return [p.strip() for p in parts if p and p.strip()]


def extract_attendees(text: str) -> list[str]:
    """Attendees from 'với X' / 'cùng X' phrases plus any e-mail address."""
    attendees: list[str] = []
    for match in re.finditer(rf"\b(?:với|cùng)\s+(.+?){_PEOPLE_STOP}", text, re.I):
        for name in split_people(match.group(1)):
            if not EMAIL_RE.fullmatch(name) and name not in attendees:
                attendees.append(name)
    for email in extract_emails(text):
        if email not in attendees:
            attendees.append(email)
    return attendees


def extract_location(text: str) -> str | None:
    match = re.search(rf"\b(?:tại|ở)\s+(.+?){_PHRASE_STOP}", text, re.I)
    if match:
        return match.group(1).strip()
    match = re.search(r"\b(phòng\s+[\w.-]+|zoom|google meet|teams)\b", text, re.I)
    return match.group(1).strip() if match else None


def clean_title(text: str) -> str:
    """Strip date/time phrases and dangling connectors from a title."""
    cleaned = text
    for pattern in _SCHEDULE_TOKENS:
        cleaned = pattern.sub(" ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip(" ,.;:-")
    cleaned = _TRAILING_CONNECTORS.sub("", cleaned)
    return cleaned.strip(" ,.;:-")


_MEETING_KEYWORDS = re.compile(
    r"\b(họp|meeting|cuộc họp|hội nghị|hội thảo|phỏng vấn|interview|tư vấn|"
    r"bàn bạc|thương lượng|negotiate|standup)\b",
    re.I,
)
_FORMAL_MEETING = re.compile(r"\b(họp|meeting|cuộc họp|hội nghị|phỏng vấn)\b", re.I)
_PERSONAL_MEETING = re.compile(r"\b(gặp|gặp mặt)\b", re.I)
_PERSON_TITLES = re.compile(r"\b(anh|chị|ông|bà|ms\.|mr\.)\s", re.I)
_SPECIFIC_TIME = re.compile(
    r"\d{1,2}h|\d{1,2}:\d{2}|\d{1,2}\s*giờ|lúc\s*\d+|vào\s*\d+", re.I
)
_CALENDAR_KEYWORDS = re.compile(
    r"\b(gặp|gặp mặt|hẹn|appointment|lịch hẹn|sinh nhật|birthday|lễ|event|sự kiện|"
    r"khám bác sĩ|bác sĩ|doctor|bệnh viện|đi|đến|tại|ở|lúc|vào|với|cùng|reminder|"
    r"nhắc|conference|seminar|workshop|khóa học|training|đào tạo|lớp học|buổi|"
    r"concert)\b",
    re.I,
)
_TASK_KEYWORDS = re.compile(
    r"\b(làm|viết|tạo|hoàn thành|complete|mua|buy|đọc|read|học|study|kiểm tra|"
    r"check|review|dọn dẹp|chuẩn bị|prepare|nộp|submit|gửi|send|email|báo cáo|"
    r"report|thuyết trình|present|demo|code|lập trình|debug|test|deploy)\b",
    re.I,
)


def categorize_task_type(text: str) -> TaskType:
    """Decide between task, calendar event and meeting from keywords."""
    if re.match(r"^\[(meeting|họp)\]", text, re.I):
        return TaskType.MEETING
    if re.match(r"^\[(calendar|lịch)\]", text, re.I):
        return TaskType.CALENDAR
    if re.match(r"^\[(task|công việc)\]", text, re.I) or re.search(
        r"(?:tạo|làm|create)\s+task|task\s*:", text, re.I
    ):
        return TaskType.TASK

    has_time = bool(_SPECIFIC_TIME.search(text))
    if _PERSONAL_MEETING.search(text) and (has_time or _PERSON_TITLES.search(text)):
        return TaskType.CALENDAR
    if _FORMAL_MEETING.search(text):
        return TaskType.MEETING

    meeting_hits = len(_MEETING_KEYWORDS.findall(text))
    calendar_hits = len(_CALENDAR_KEYWORDS.findall(text))
    task_hits = len(_TASK_KEYWORDS.findall(text))
    if calendar_hits and (has_time or re.search(r"\b(ngày|thứ)\b", text, re.I)):
        return TaskType.CALENDAR
    if meeting_hits > task_hits:
        return TaskType.MEETING
    if calendar_hits > task_hits:
        return TaskType.CALENDAR
    return TaskType.TASK


@dataclass
class Extraction:
    """What a rule pulled out of a message."""

    task: TaskInfo | None = None
    command: str | None = None
    command_args: str = ""


Extractor = Callable[[re.Match[str], str, date], Extraction]


@dataclass(frozen=True)
class PatternRule:
    """Pattern, fixed confidence and the extractor run on a match."""

    name: str
    pattern: re.Pattern[str]
    confidence: float
    extractor: Extractor


@dataclass
class RuleMatch:
    """A single rule that fired."""

    rule: PatternRule
    extraction: Extraction


@dataclass
class AccumulatedMatch:
    """Merged result of every additive rule that fired."""

    task: TaskInfo
    confidence: float
    rule_names: list[str] = field(default_factory=list)


def first_match(
    rules: Sequence[PatternRule], message: str, today: date | None = None
) -> RuleMatch | None:
    """Return the first rule (in table order) whose pattern matches."""
    today = today or date.today()
    for rule in rules:
        match = rule.pattern.search(message)
        if match:
            return RuleMatch(rule=rule, extraction=rule.extractor(match, message, today))
    return None


def accumulate(
    rules: Sequence[PatternRule], message: str, today: date | None = None
) -> AccumulatedMatch | None:
    """Evaluate every rule independently and merge their extracted fields."""
    today = today or date.today()
    merged: TaskInfo | None = None
    confidences: list[float] = []
    names: list[str] = []
    for rule in rules:
        match = rule.pattern.search(message)
        if not match:
            continue
        extraction = rule.extractor(match, message, today)
        if extraction.task is None:
            continue
        if merged is None:
            merged = extraction.task
        else:
            merged.merge(extraction.task)
        confidences.append(rule.confidence)
        names.append(rule.name)
    if merged is None:
        return None
    return AccumulatedMatch(
        task=merged, confidence=sum(confidences) / len(confidences), rule_names=names
    )


def _schedule_fields(info: TaskInfo, text: str, today: date) -> TaskInfo:
    start, end = parse_time_range(text)
    if start:
        info.start_time = start
        info.due_time = start
        info.end_time = end
    elif info.due_time is None:
        info.due_time = parse_time_expression(text)
    if info.due_date is None:
        info.due_date = parse_date_expression(text, today)
    return info


COMMAND_ALIASES = {
    "new": "new",
    "tạo": "new",
    "list": "list",
    "done": "done",
    "xong": "done",
    "hoàn thành": "done",
    "delete": "delete",
    "xóa": "delete",
    "xoá": "delete",
    "xoa": "delete",
    "edit": "edit",
    "sửa": "edit",
    "sua": "edit",
    "help": "help",
    "stats": "stats",
    "me": "me",
    "cancel": "cancel",
    "hủy": "cancel",
    "huy": "cancel",
}


def _slash_command(match: re.Match[str], message: str, today: date) -> Extraction:
    name = COMMAND_ALIASES[match.group(1).lower()]
    return Extraction(command=name, command_args=(match.group(2) or "").strip())


def _natural_command(name: str) -> Extractor:
    def extract(match: re.Match[str], message: str, today: date) -> Extraction:
        args = match.group("args") if "args" in match.groupdict() else ""
        return Extraction(command=name, command_args=(args or "").strip())

    return extract


def _meeting(match: re.Match[str], message: str, today: date) -> Extraction:
    title = f"{match.group(1)} {match.group(2)}".strip()
    info = TaskInfo(
        title=title,
        task_type=categorize_task_type(message),
        due_time=parse_time_expression(match.group(4)),
        attendees=extract_attendees(message),
        location=extract_location(message),
    )
    return Extraction(task=_schedule_fields(info, message, today))


def _deadline(match: re.Match[str], message: str, today: date) -> Extraction:
    tail = match.group(4)
    info = TaskInfo(
        title=f"{match.group(1)} {match.group(2)}".strip(),
        task_type=TaskType.TASK,
        due_date=parse_date_expression(tail, today),
        due_time=parse_time_expression(tail),
    )
    return Extraction(task=_schedule_fields(info, message, today))


def _call(match: re.Match[str], message: str, today: date) -> Extraction:
    person = match.group(2).strip()
    info = TaskInfo(
        title=f"{match.group(1)} {person}".strip(),
        task_type=TaskType.CALENDAR,
        due_time=parse_time_expression(match.group(4)),
        attendees=split_people(person),
    )
    return Extraction(task=_schedule_fields(info, message, today))


def _reminder(match: re.Match[str], message: str, today: date) -> Extraction:
    body = match.group(2)
    info = TaskInfo(
        title=clean_title(body) or body.strip(),
        task_type=categorize_task_type(body),
    )
    if info.task_type == TaskType.MEETING:
        info.attendees = extract_attendees(body)
    return Extraction(task=_schedule_fields(info, body, today))


def _attendee(match: re.Match[str], message: str, today: date) -> Extraction:
    info = TaskInfo(
        title=clean_title(message),
        task_type=categorize_task_type(message),
        attendees=extract_attendees(message),
    )
    return Extraction(task=_schedule_fields(info, message, today))


def _location(match: re.Match[str], message: str, today: date) -> Extraction:
    info = TaskInfo(
        title=clean_title(message),
        task_type=categorize_task_type(message),
        location=match.group(2).strip(),
    )
    return Extraction(task=_schedule_fields(info, message, today))


_REFS = r"(?P<args>[\d][\d,\s\-]*)"

COMMAND_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        "slash_command",
        re.compile(
            r"^/(new|tạo|list|done|xong|delete|xóa|xoá|xoa|edit|sửa|sua|help|stats|me|"
            r"cancel|hủy|huy)\b\s*(.*)$",
            re.I | re.S,
        ),
        0.99,
        _slash_command,
    ),
    PatternRule(
        "list_query",
        re.compile(r"^(danh sách|xem task|xem danh sách|liệt kê)(?:\s+task)?\s*$", re.I),
        0.99,
        _natural_command("list"),
    ),
    PatternRule(
        "stats_query",
        re.compile(r"^(thống kê|bao nhiêu task|chưa xong)\s*$", re.I),
        0.99,
        _natural_command("stats"),
    ),
    PatternRule(
        "delete_action",
        re.compile(rf"^(?:xóa|xoá|delete|remove)\s+(?:task\s+)?{_REFS}$", re.I),
        0.95,
        _natural_command("delete"),
    ),
    PatternRule(
        "done_action",
        re.compile(rf"^(?:xong|done|hoàn thành|finish)\s+(?:task\s+)?{_REFS}$", re.I),
        0.95,
        _natural_command("done"),
    ),
)

HIGH_CONFIDENCE_RULES: tuple[PatternRule, ...] = COMMAND_RULES + (
    PatternRule(
        "meeting_with_time",
        re.compile(rf"^(họp|meeting|gặp)\s+(.+?)\s+(lúc|vào)\s+({TIME_EXPR})", re.I),
        0.9,
        _meeting,
    ),
    PatternRule(
        "deadline",
        re.compile(
            r"^(làm|hoàn thành|submit|nộp)\s+(.+?)\s+(trước|deadline|hạn|vào)\s+(.+)$", re.I
        ),
        0.85,
        _deadline,
    ),
    PatternRule(
        "call_with_time",
        re.compile(
            rf"^(gọi điện|gọi|call)\s+(?:cho\s+)?(.+?)\s+(lúc|vào|at)\s+({TIME_EXPR})", re.I
        ),
        0.88,
        _call,
    ),
    PatternRule(
        "reminder",
        re.compile(r"^(nhắc nhở|nhắc|remind me|remind|reminder)\s+(?:tôi\s+|me\s+)?(.+)$", re.I),
        0.8,
        _reminder,
    ),
)

MEDIUM_CONFIDENCE_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        "attendee_mention",
        re.compile(rf"\b(với|cùng)\s+(.+?){_PHRASE_STOP}", re.I),
        0.6,
        _attendee,
    ),
    PatternRule(
        "location_mention",
        re.compile(rf"\b(tại|ở)\s+(.+?){_PHRASE_STOP}", re.I),
        0.65,
        _location,
    ),
)


def match_patterns(
    message: str,
    today: date | None = None,
    high_rules: Sequence[PatternRule] = HIGH_CONFIDENCE_RULES,
    medium_rules: Sequence[PatternRule] = MEDIUM_CONFIDENCE_RULES,
    no_match_confidence: float = 0.3,
) -> ParseResult:
    """Run the high-confidence table, then the additive table."""
    text = message.strip()
    hit = first_match(high_rules, text, today)
    if hit is not None:
        extraction = hit.extraction
        return ParseResult(
            is_task=extraction.task is not None,
            confidence=hit.rule.confidence,
            source=ParseSource.PATTERN,
            reasoning=f"Matched rule '{hit.rule.name}'",
            task=extraction.task,
            command=extraction.command,
            command_args=extraction.command_args,
            rule_name=hit.rule.name,
        )

    combined = accumulate(medium_rules, text, today)
    if combined is not None:
        return ParseResult(
            is_task=True,
            confidence=combined.confidence,
            source=ParseSource.PATTERN,
            reasoning=f"Matched rules {', '.join(combined.rule_names)}",
            task=combined.task,
            rule_name="+".join(combined.rule_names),
        )

    return ParseResult(
        is_task=False,
        confidence=no_match_confidence,
        source=ParseSource.PATTERN,
        reasoning="No pattern matched",
    )


# Reply vocabularies used while a conversation is collecting fields
CANCEL_WORDS = frozenset(
    {
        "không",
        "hủy",
        "huy",
        "cancel",
        "/cancel",
        "no",
        "n",
        "stop",
        "quit",
        "exit",
        "bỏ",
        "thôi",
    }
)
SKIP_PATTERN = re.compile(
    r"\b(không cần|chưa biết|chưa rõ|không rõ|không cụ thể|bỏ qua|skip|không có|để sau|"
    r"tùy|no deadline|không deadline)\b",
    re.I,
)
CONFIRM_PATTERN = re.compile(
    r"^(có|ok|okay|được|đồng ý|yes|y|đúng|xác nhận|tiếp tục|vẫn tạo|tạo luôn|confirm)\b",
    re.I,
)


def is_cancel_reply(text: str) -> bool:
    """Exact, case-insensitive match against the cancellation vocabulary."""
    return text.strip().lower() in CANCEL_WORDS
