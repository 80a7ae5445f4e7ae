"""Data models for the task intent engine."""

from dataclasses import dataclass, field, fields
from datetime import date, datetime, time
from enum import Enum
from typing import Any


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


class TaskType(str, Enum):
    """Kind of item a message describes."""

    TASK = "task"
    CALENDAR = "calendar"
    MEETING = "meeting"


class ParseSource(str, Enum):
    """Classifier stage that produced a result."""

    PATTERN = "pattern"
    CACHE = "cache"
    REMOTE = "remote"
    FALLBACK = "fallback"


class ConversationStage(str, Enum):
    """Slot-filling conversation stage."""

    NEW = "new"
    AWAITING_FIELD = "awaiting_field"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class FieldIntent(str, Enum):
    """Intent of a reply given while a field is being collected."""

    DATE = "date"
    TIME = "time"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    SKIP = "skip"
    CONTENT = "content"
    ATTENDEES = "attendees"
    UNCLEAR = "unclear"


class ConflictKind(str, Enum):
    """Kind of schedule collision."""

    OVERLAP = "overlap"
    TOO_CLOSE = "too-close"


class SelectionKind(str, Enum):
    """Destination kind for a new item."""

    CALENDAR = "calendar"
    TASK_LIST = "taskList"


class MatchMethod(str, Enum):
    """Strategy that resolved a task reference."""

    POSITION = "position"
    ID = "id"
    KEYWORD = "keyword"
    PARTIAL = "partial"


class PreFilterVerdict(str, Enum):
    """Coarse pre-filter verdict."""

    LIKELY_TASK = "likely_task"
    LIKELY_NOT_TASK = "likely_not_task"
    UNCERTAIN = "uncertain"


@dataclass
class TaskInfo:
    """Structured task or event extracted from natural language."""

    title: str = ""
    description: str | None = None
    due_date: date | None = None
    due_time: time | None = None
    start_time: time | None = None
    end_time: time | None = None
    location: str | None = None
    attendees: list[str] = field(default_factory=list)
    task_type: TaskType = TaskType.TASK
    calendar_id: str | None = None
    task_list_id: str | None = None

    @property
    def effective_start(self) -> time | None:
        """Start time used for scheduling (explicit start, else due time)."""
        return self.start_time or self.due_time

    def is_set(self, name: str) -> bool:
        value = getattr(self, name)
        if isinstance(value, (list, str)):
            return bool(value)
        return value is not None

    def merge(self, other: "TaskInfo", overwrite: bool = False) -> list[str]:
        """
        Merge fields from another TaskInfo.

        Args:
            other: Source of new values
            overwrite: Replace fields that already hold a value

        Returns:
            Names of the fields that changed
        """
        changed = []
        for f in fields(self):
            if f.name == "task_type":
                continue
            if not other.is_set(f.name):
                continue
            if self.is_set(f.name) and not overwrite:
                continue
            value = getattr(other, f.name)
            setattr(self, f.name, list(value) if isinstance(value, list) else value)
            changed.append(f.name)
        return changed

    def apply_fields(self, values: dict[str, Any], overwrite: bool = False) -> list[str]:
        """
        Merge a plain field mapping, same rules as merge().

        task_type always has a value, so without overwrite it only moves away
        from the plain TASK default.
        """
        changed = []
        for name, value in values.items():
            if not hasattr(self, name) or value in (None, "", []):
                continue
            if name == "task_type":
                task_type = TaskType(value)
                if task_type != self.task_type and (overwrite or self.task_type == TaskType.TASK):
                    self.task_type = task_type
                    changed.append(name)
                continue
            if self.is_set(name) and not overwrite:
                continue
            setattr(self, name, value)
            changed.append(name)
        return changed


@dataclass
class PreFilterResult:
    """Outcome of the cheap pre-filter heuristics."""

    is_task_likely: bool
    confidence: float
    reason: str
    quick_reply: str | None = None

    @property
    def verdict(self) -> PreFilterVerdict:
        if self.is_task_likely:
            return PreFilterVerdict.LIKELY_TASK
        if self.confidence <= 0.5:
            return PreFilterVerdict.UNCERTAIN
        return PreFilterVerdict.LIKELY_NOT_TASK


@dataclass
class ParseResult:
    """Structured interpretation of one chat message."""

    is_task: bool
    confidence: float
    source: ParseSource
    reasoning: str = ""
    task: TaskInfo | None = None
    command: str | None = None
    command_args: str = ""
    quick_reply: str | None = None
    rule_name: str | None = None

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class ClassificationDiagnostics:
    """Per-message record of which classifier stages ran."""

    stages: list[str] = field(default_factory=list)
    prefilter: PreFilterResult | None = None
    cache_hit: bool = False
    remote_called: bool = False
    remote_error: str | None = None
    fallback_level: int | None = None
    processing_time: float = 0.0


@dataclass
class ClassificationOutcome:
    """Result envelope returned by IntentClassifier.classify."""

    success: bool
    result: ParseResult
    diagnostics: ClassificationDiagnostics


@dataclass
class TaskExtractionResult:
    """Remote NLU answer for a whole message."""

    is_task: bool
    confidence: float
    task: TaskInfo | None = None
    reasoning: str = ""

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class FieldParseResult:
    """Interpretation of a reply in field mode."""

    intent: FieldIntent
    confidence: float
    fields: dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class Task:
    """Persisted task record."""

    id: int
    content: str
    created_at: datetime
    due_date: date | None = None
    due_time: time | None = None
    end_time: time | None = None
    task_type: TaskType = TaskType.TASK
    location: str | None = None
    description: str | None = None
    attendees: list[str] = field(default_factory=list)
    done: bool = False
    calendar_id: str | None = None
    task_list_id: str | None = None
    external_id: str | None = None
    near_due_notified: bool = False
    completed_at: datetime | None = None


@dataclass
class DeletedTask:
    """Snapshot of a task taken right before deletion."""

    original_id: int
    content: str
    deleted_at: datetime
    due_date: date | None = None
    due_time: time | None = None
    snapshot: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScheduleEntry:
    """Busy interval on a single date."""

    start: time
    end: time | None = None
    label: str = ""
    task_id: int | None = None

    @classmethod
    def from_task(cls, task: Task) -> "ScheduleEntry":
        if task.due_time is None:
            raise ValueError(f"Task {task.id} has no start time")
        return cls(
            start=task.due_time, end=task.end_time, label=task.content, task_id=task.id
        )


@dataclass
class Conflict:
    """One collision between a candidate slot and an existing entry."""

    entry: ScheduleEntry
    kind: ConflictKind
    overlap_minutes: int = 0
    gap_minutes: int | None = None


@dataclass
class ConflictResult:
    """Advisory outcome of a conflict check."""

    has_conflict: bool
    conflicts: list[Conflict] = field(default_factory=list)
    suggested_times: list[time] = field(default_factory=list)


@dataclass
class PendingTask:
    """Task waiting on a conflict or destination decision."""

    task: TaskInfo
    awaiting_conflict_decision: bool = False
    awaiting_calendar_selection: bool = False
    awaiting_task_list_selection: bool = False
    conflict: ConflictResult | None = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class ConversationState:
    """Slot-filling session of one user."""

    user_id: str
    task: TaskInfo
    stage: ConversationStage = ConversationStage.NEW
    awaiting_field: str | None = None
    last_activity: datetime = field(default_factory=datetime.now)
    skipped_fields: set[str] = field(default_factory=set)
    original_message: str = ""


@dataclass
class SelectionOption:
    """Calendar or task list the user can pick."""

    id: str
    name: str
    kind: SelectionKind
    primary: bool = False


@dataclass
class PendingSelection:
    """Open question asking the user to pick a destination."""

    user_id: str
    kind: SelectionKind
    options: list[SelectionOption]
    task: TaskInfo
    message: str = ""
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class PatternPreference:
    """Learned destination for one pattern key."""

    calendar_id: str | None = None
    task_list_id: str | None = None
    occurrence_count: int = 0
    last_used: datetime = field(default_factory=datetime.now)


@dataclass
class UserPreference:
    """Everything the selector has learned about a user."""

    patterns: dict[str, PatternPreference] = field(default_factory=dict)
    default_calendar_id: str | None = None
    default_task_list_id: str | None = None
    total_selections: int = 0


@dataclass
class SelectionResult:
    """Destination chosen by the target selector."""

    confidence: float
    reasoning: str
    calendar_id: str | None = None
    task_list_id: str | None = None
    auto_selected: bool = False

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)

    @property
    def kind(self) -> SelectionKind | None:
        if self.calendar_id:
            return SelectionKind.CALENDAR
        if self.task_list_id:
            return SelectionKind.TASK_LIST
        return None


@dataclass
class TaskMatch:
    """Task found for a user reference."""

    task: Task
    method: MatchMethod
    ambiguous: bool = False
    candidates: list[Task] = field(default_factory=list)


@dataclass
class BatchItemResult:
    """Per-reference outcome of a batch operation."""

    reference: str
    success: bool
    task: Task | None = None
    error: str | None = None


@dataclass
class BatchResult:
    """Aggregate outcome of a batch operation."""

    success_count: int = 0
    failed_count: int = 0
    details: list[BatchItemResult] = field(default_factory=list)

    def add(self, item: BatchItemResult) -> None:
        self.details.append(item)
        if item.success:
            self.success_count += 1
        else:
            self.failed_count += 1


@dataclass
class EditInfo:
    """Fields a user asked to change on an existing task."""

    content: str | None = None
    due_date: date | None = None
    due_time: time | None = None
    end_time: time | None = None
    location: str | None = None
    description: str | None = None

    def changes(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def is_empty(self) -> bool:
        return not self.changes()

    @property
    def touches_schedule(self) -> bool:
        return any(
            v is not None for v in (self.due_date, self.due_time, self.end_time)
        )
