"""Calendar / task-list selection with per-user preference learning."""

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from .config import (
    AUTO_SELECT_CONFIDENCE,
    DEFAULT_PROMOTION_MIN_COUNT,
    DEFAULT_PROMOTION_RATIO,
    FUZZY_PATTERN_CONFIDENCE,
    LEARNED_PATTERN_MAX_CONFIDENCE,
    LEARNED_PATTERN_MIN_OCCURRENCES,
    MAX_PATTERNS_PER_USER,
    UNAVAILABLE_TARGET_PENALTY,
)
from .models import (
    PatternPreference,
    SelectionKind,
    SelectionOption,
    SelectionResult,
    UserPreference,
)

logger = logging.getLogger(__name__)

PRIMARY_CALENDAR_ID = "primary"
DEFAULT_TASK_LIST_ID = "@default"


@dataclass(frozen=True)
class SelectionRule:
    """Static keyword rule pointing at a destination kind."""

    pattern: re.Pattern[str]
    kind: SelectionKind
    confidence: float
    reasoning: str


SELECTION_RULES: tuple[SelectionRule, ...] = (
    SelectionRule(
        re.compile(r"\b(họp|meeting|standup|review|demo|project)\b", re.I),
        SelectionKind.CALENDAR,
        0.85,
        "Work meeting vocabulary",
    ),
    SelectionRule(
        re.compile(r"\b(mua|shopping|ăn|uống|personal|cá nhân)\b", re.I),
        SelectionKind.TASK_LIST,
        0.8,
        "Personal errand vocabulary",
    ),
    SelectionRule(
        re.compile(r"\b(\d{1,2}:\d{2}|\d{1,2}h\d{0,2}|appointment|cuộc hẹn)\b", re.I),
        SelectionKind.CALENDAR,
        0.9,
        "Specific time or appointment",
    ),
    SelectionRule(
        re.compile(r"\b(deadline|nộp|submit|hoàn thành|finish)\b", re.I),
        SelectionKind.TASK_LIST,
        0.85,
        "Deadline vocabulary",
    ),
    SelectionRule(
        re.compile(r"\b(tại|ở|phòng|zoom|teams|google meet)\b", re.I),
        SelectionKind.CALENDAR,
        0.8,
        "Location or meeting room",
    ),
)

_PATTERN_KEYWORDS = re.compile(
    r"\b(họp|meeting|task|làm|gặp|call|gọi|nộp|deadline|submit)\b", re.I
)
_KEY_STOPWORDS = frozenset(
    {
        "tôi", "mình", "em", "anh", "chị", "cho", "với", "và", "là", "của",
        "lúc", "vào", "ngày", "mai", "nay", "hôm", "the", "a", "an", "to", "at",
    }
)
_KEY_NOISE = re.compile(r"^(\d+([:h/.-]\d*)*|sáng|trưa|chiều|tối|am|pm)$", re.I)

_TIME_HINT = re.compile(r"\b(\d{1,2}:\d{2}|\d{1,2}h\d{0,2}|sáng|chiều|tối)\b", re.I)
_LOCATION_HINT = re.compile(r"\b(tại|ở|phòng|zoom|teams|google meet)\b", re.I)
_ATTENDEE_HINT = re.compile(r"\b(với|cùng|họp|meeting)\b", re.I)
_TASK_HINT = re.compile(
    r"\b(làm|hoàn thành|deadline|nộp|submit|task|nhiệm vụ)\b", re.I
)


def extract_pattern_key(message: str) -> str:
    """
    Derive the learning key of a message.

    Significant keywords joined with "-" when present, else the first three
    words left after dropping stopwords, numbers and time tokens. An empty
    key means the message is not learnable.
    """
    normalized = message.lower().strip()
    if not normalized:
        return ""

    keywords = [m.group(1) for m in _PATTERN_KEYWORDS.finditer(normalized)]
    if keywords:
        return "-".join(keywords)

    words = [word.strip(".,!?;:\"'()") for word in normalized.split()]
    words = [
        w for w in words if w and w not in _KEY_STOPWORDS and not _KEY_NOISE.match(w)
    ]
    return "-".join(words[:3])


class TargetSelector:
    """
    Chooses a calendar or task list for a new item.

    Attempts run in order: static keyword rules, the user's learned pattern
    for the message, a similar learned pattern, and a content heuristic. Ids
    the caller cannot offer are replaced by a safe default at a confidence
    penalty.
    """

    def __init__(
        self,
        auto_select_confidence: float = AUTO_SELECT_CONFIDENCE,
        max_patterns_per_user: int = MAX_PATTERNS_PER_USER,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.auto_select_confidence = auto_select_confidence
        self.max_patterns_per_user = max_patterns_per_user
        self._clock = clock
        self._preferences: dict[str, UserPreference] = {}

    def preferences_for(self, user_id: str) -> UserPreference:
        if user_id not in self._preferences:
            self._preferences[user_id] = UserPreference()
        return self._preferences[user_id]

    def select(
        self,
        message: str,
        user_id: str,
        calendars: Sequence[SelectionOption],
        task_lists: Sequence[SelectionOption],
    ) -> SelectionResult:
        """
        Pick a destination for the item described by message.

        Args:
            message: Original request text
            user_id: User whose history is consulted
            calendars: Calendars the caller can write to
            task_lists: Task lists the caller can write to

        Returns:
            SelectionResult; auto_selected is False when the user should be asked
        """
        preference = self.preferences_for(user_id)

        result = self._select_by_rules(message, preference)
        if result is None:
            result = self._select_by_habit(message, preference)
        if result is None:
            result = self._select_by_content(message)

        result = self._apply_availability(result, calendars, task_lists)
        result.auto_selected = (
            result.kind is not None and result.confidence >= self.auto_select_confidence
        )
        logger.debug(
            f"Selection for {user_id}: calendar={result.calendar_id} "
            f"task_list={result.task_list_id} confidence={result.confidence:.2f} "
            f"({result.reasoning})"
        )
        return result

    def learn(
        self,
        user_id: str,
        message: str,
        calendar_id: str | None = None,
        task_list_id: str | None = None,
    ) -> None:
        """Record the destination the user finally chose for message."""
        preference = self.preferences_for(user_id)
        key = extract_pattern_key(message)
        now = self._clock()

        if key:
            pattern = preference.patterns.get(key)
            if pattern is None:
                self._make_room(preference)
                pattern = preference.patterns[key] = PatternPreference(last_used=now)
            pattern.occurrence_count += 1
            pattern.last_used = now
            if calendar_id:
                pattern.calendar_id = calendar_id
            if task_list_id:
                pattern.task_list_id = task_list_id

        preference.total_selections += 1
        if calendar_id and self._should_promote(
            preference, SelectionKind.CALENDAR, calendar_id
        ):
            preference.default_calendar_id = calendar_id
        if task_list_id and self._should_promote(
            preference, SelectionKind.TASK_LIST, task_list_id
        ):
            preference.default_task_list_id = task_list_id

        target = calendar_id or task_list_id
        logger.info(f"Learned selection for {user_id}: '{key}' -> {target}")

    def get_stats(self) -> dict[str, float]:
        total_patterns = sum(len(p.patterns) for p in self._preferences.values())
        users = len(self._preferences)
        return {
            "total_users": users,
            "total_patterns": total_patterns,
            "avg_patterns_per_user": total_patterns / users if users else 0.0,
        }

    def _select_by_rules(
        self, message: str, preference: UserPreference
    ) -> SelectionResult | None:
        for rule in SELECTION_RULES:
            if rule.pattern.search(message):
                if rule.kind == SelectionKind.CALENDAR:
                    return SelectionResult(
                        confidence=rule.confidence,
                        reasoning=rule.reasoning,
                        calendar_id=preference.default_calendar_id or PRIMARY_CALENDAR_ID,
                    )
                return SelectionResult(
                    confidence=rule.confidence,
                    reasoning=rule.reasoning,
                    task_list_id=preference.default_task_list_id or DEFAULT_TASK_LIST_ID,
                )
        return None

    def _select_by_habit(
        self, message: str, preference: UserPreference
    ) -> SelectionResult | None:
        key = extract_pattern_key(message)
        learned = preference.patterns.get(key) if key else None
        if learned and learned.occurrence_count >= LEARNED_PATTERN_MIN_OCCURRENCES:
            return SelectionResult(
                confidence=min(
                    LEARNED_PATTERN_MAX_CONFIDENCE, 0.6 + 0.1 * learned.occurrence_count
                ),
                reasoning=f"Learned from history ({learned.occurrence_count} times)",
                calendar_id=learned.calendar_id,
                task_list_id=learned.task_list_id,
            )

        words = set(message.lower().split())
        for pattern_key, data in preference.patterns.items():
            shared = words & set(pattern_key.split("-"))
            if len(shared) >= 2 and data.occurrence_count >= LEARNED_PATTERN_MIN_OCCURRENCES:
                return SelectionResult(
                    confidence=FUZZY_PATTERN_CONFIDENCE,
                    reasoning=f"Similar to learned pattern '{pattern_key}'",
                    calendar_id=data.calendar_id,
                    task_list_id=data.task_list_id,
                )
        return None

    @staticmethod
    def _select_by_content(message: str) -> SelectionResult:
        if (
            _TIME_HINT.search(message)
            or _LOCATION_HINT.search(message)
            or _ATTENDEE_HINT.search(message)
        ):
            return SelectionResult(
                confidence=0.7,
                reasoning="Time, place or attendees suggest an event",
                calendar_id=PRIMARY_CALENDAR_ID,
            )
        if _TASK_HINT.search(message):
            return SelectionResult(
                confidence=0.65,
                reasoning="Action or deadline suggests a task",
                task_list_id=DEFAULT_TASK_LIST_ID,
            )
        return SelectionResult(confidence=0.5, reasoning="Neutral content")

    @staticmethod
    def _apply_availability(
        result: SelectionResult,
        calendars: Sequence[SelectionOption],
        task_lists: Sequence[SelectionOption],
    ) -> SelectionResult:
        if result.calendar_id and not calendars:
            result.calendar_id = None
            result.confidence *= UNAVAILABLE_TARGET_PENALTY
            result.reasoning += " (no calendar available)"
        elif result.calendar_id:
            if all(c.id != result.calendar_id for c in calendars):
                primary = next((c for c in calendars if c.primary), calendars[0])
                result.calendar_id = primary.id
                result.confidence *= UNAVAILABLE_TARGET_PENALTY
                result.reasoning += " (fallback to primary calendar)"
        if result.task_list_id and not task_lists:
            result.task_list_id = None
            result.confidence *= UNAVAILABLE_TARGET_PENALTY
            result.reasoning += " (no task list available)"
        elif result.task_list_id:
            if all(t.id != result.task_list_id for t in task_lists):
                result.task_list_id = task_lists[0].id
                result.confidence *= UNAVAILABLE_TARGET_PENALTY
                result.reasoning += " (fallback to default task list)"
        return result

    @staticmethod
    def _should_promote(
        preference: UserPreference, kind: SelectionKind, target_id: str
    ) -> bool:
        threshold = max(
            DEFAULT_PROMOTION_MIN_COUNT,
            DEFAULT_PROMOTION_RATIO * preference.total_selections,
        )
        if kind == SelectionKind.CALENDAR:
            count = sum(
                p.occurrence_count
                for p in preference.patterns.values()
                if p.calendar_id == target_id
            )
        else:
            count = sum(
                p.occurrence_count
                for p in preference.patterns.values()
                if p.task_list_id == target_id
            )
        return count >= threshold

    def _make_room(self, preference: UserPreference) -> None:
        while len(preference.patterns) >= self.max_patterns_per_user:
            victim = min(
                preference.patterns,
                key=lambda k: (
                    preference.patterns[k].occurrence_count,
                    preference.patterns[k].last_used,
                ),
            )
            del preference.patterns[victim]
            logger.debug(f"Evicted learned pattern '{victim}'")
