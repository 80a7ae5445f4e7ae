"""Slot-filling conversation that collects the fields a new task still needs."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from .config import SESSION_TIMEOUT_SECONDS
from .intent_classifier import IntentClassifier
from .interfaces import SessionStore
from .models import ConversationStage, ConversationState, FieldIntent, TaskInfo, TaskType
from .patterns import is_cancel_reply
from .session_store import InMemorySessionStore

logger = logging.getLogger(__name__)

TIMEOUT_NOTICE = "⏰ Hết thời gian tạo task. Vui lòng thử lại."
CANCEL_NOTICE = "❌ Đã hủy bỏ việc tạo task."

REQUIRED_FIELDS: dict[TaskType, tuple[str, ...]] = {
    TaskType.TASK: ("title", "due_date"),
    TaskType.CALENDAR: ("title", "due_date", "time"),
    TaskType.MEETING: ("title", "due_date", "time", "attendees"),
}

# A reply below this confidence is treated as unclear
MIN_FIELD_CONFIDENCE = 0.5

FIELD_NAMES = {
    "title": "tiêu đề/nội dung",
    "due_date": "ngày thực hiện",
    "time": "giờ thực hiện",
    "attendees": "người tham gia",
}

TYPE_LABELS = {
    TaskType.TASK: "task",
    TaskType.CALENDAR: "sự kiện lịch",
    TaskType.MEETING: "cuộc họp",
}

FIELD_PROMPTS = {
    "title": "📝 Nội dung task là gì?",
    "due_date": (
        "⏰ Bạn muốn hoàn thành task này khi nào?\n\n"
        "💡 Ví dụ:\n"
        '• "hôm nay"\n'
        '• "ngày mai"\n'
        '• "thứ hai"\n'
        '• "2025-05-26"\n'
        '• "không cần deadline" (nếu không có thời hạn)'
    ),
    "time": (
        "🕐 Bạn muốn làm lúc mấy giờ?\n\n"
        "💡 Ví dụ:\n"
        '• "15:30"\n'
        '• "3 giờ chiều"\n'
        '• "sáng"\n'
        '• "không cần giờ cụ thể"'
    ),
    "attendees": (
        "👥 Ai sẽ tham gia? Nhập tên hoặc email "
        '(ví dụ: "john@gmail.com" hoặc "Anh Nam, chị Lan")'
    ),
}

FIELD_HINTS = {
    "due_date": '📅 Ngày: Nhập theo định dạng DD/MM/YYYY hoặc "hôm nay", "ngày mai"',
    "time": '⏰ Giờ: Nhập theo định dạng HH:mm hoặc "9 giờ sáng", "2 giờ chiều"',
    "attendees": (
        '👥 Người tham gia: Nhập tên hoặc email (ví dụ: "john@gmail.com" '
        'hoặc "Anh Nam, chị Lan")'
    ),
}


def _field_is_filled(task: TaskInfo, field_name: str) -> bool:
    if field_name == "time":
        return task.effective_start is not None
    return task.is_set(field_name)


def missing_fields(task: TaskInfo, skipped: set[str] | None = None) -> list[str]:
    """Required fields of the task's type that are neither set nor skipped."""
    skipped = skipped or set()
    return [
        name
        for name in REQUIRED_FIELDS[task.task_type]
        if name not in skipped and not _field_is_filled(task, name)
    ]


@dataclass
class ConversationTurn:
    """What the engine wants the caller to do after one step."""

    stage: ConversationStage
    message: str | None = None
    task: TaskInfo | None = None
    timed_out: bool = False

    @property
    def is_complete(self) -> bool:
        return self.stage == ConversationStage.COMPLETE


class ConversationEngine:
    """
    Per-user state machine: new -> awaiting_field -> [awaiting_confirmation]
    -> complete | cancelled.

    Missing fields are recomputed after every merge, so one reply carrying
    several values advances several steps at once. Sessions idle longer than
    the timeout are cancelled the next time they are touched.
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        store: SessionStore[ConversationState] | None = None,
        timeout_seconds: float = SESSION_TIMEOUT_SECONDS,
        require_confirmation: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize the engine.

        Args:
            classifier: Used in field mode to interpret replies
            store: Session store, an in-memory one is created if omitted
            timeout_seconds: Idle time before a session is dropped
            require_confirmation: Ask "có/không" before completing
            clock: Source of the current time
        """
        self._classifier = classifier
        self._store: SessionStore[ConversationState] = (
            store
            if store is not None
            else InMemorySessionStore(timeout_seconds, lambda state: state.last_activity, clock)
        )
        self.require_confirmation = require_confirmation

    def get_state(self, user_id: str) -> ConversationState | None:
        return self._store.get(user_id)

    def has_active(self, user_id: str) -> bool:
        return self._store.get(user_id) is not None

    def cancel(self, user_id: str) -> bool:
        return self._store.delete(user_id) is not None

    def sweep_expired(self) -> list[str]:
        """Drop every idle session; returns the affected user ids."""
        expired = self._store.sweep_expired()
        for user_id in expired:
            logger.info(f"⏰ Conversation for {user_id} timed out")
        return expired

    async def start(
        self, user_id: str, task_info: TaskInfo, original_message: str = ""
    ) -> ConversationTurn:
        """
        Open (or replace) the user's conversation for a freshly parsed task.

        Returns:
            COMPLETE with the task when nothing is missing, otherwise a prompt
        """
        if self._store.delete(user_id) is not None:
            logger.info(f"Replacing unfinished conversation for {user_id}")

        state = ConversationState(
            user_id=user_id,
            task=task_info,
            last_activity=self._store.now(),
            original_message=original_message,
        )
        missing = missing_fields(task_info)
        if not missing:
            return self._advance(state)

        self._store.set(user_id, state)
        state.stage = ConversationStage.AWAITING_FIELD
        state.awaiting_field = missing[0]
        logger.info(f"Conversation for {user_id} waiting on {missing}")
        return ConversationTurn(state.stage, self._intro_prompt(task_info, missing))

    async def handle_reply(self, user_id: str, text: str) -> ConversationTurn | None:
        """
        Feed one user reply into the active conversation.

        Returns:
            None when the user has no active conversation
        """
        state = self._store.get(user_id)
        if state is None:
            return None

        if self._store.is_expired(state):
            self._store.delete(user_id)
            state.stage = ConversationStage.CANCELLED
            logger.info(f"⏰ Conversation for {user_id} expired")
            return ConversationTurn(state.stage, TIMEOUT_NOTICE, timed_out=True)

        state.last_activity = self._store.now()
        if is_cancel_reply(text):
            return self._cancel(state)

        if state.stage == ConversationStage.AWAITING_CONFIRMATION:
            result = await self._classifier.parse_field(text, "confirmation", state.task)
            if result.intent == FieldIntent.CANCEL:
                return self._cancel(state)
            if result.intent == FieldIntent.CONFIRM:
                return self._complete(state)
            return ConversationTurn(state.stage, self._confirmation_prompt(state.task))

        field_name = state.awaiting_field or "title"
        result = await self._classifier.parse_field(text, field_name, state.task)
        logger.debug(
            f"Reply for {field_name}: intent={result.intent.value} "
            f"confidence={result.confidence:.2f}"
        )

        if result.intent == FieldIntent.CANCEL:
            return self._cancel(state)

        if result.intent == FieldIntent.SKIP and field_name != "title":
            state.skipped_fields.add(field_name)
            return self._advance(state)

        unusable = (FieldIntent.UNCLEAR, FieldIntent.SKIP, FieldIntent.CONFIRM)
        if result.intent in unusable or result.confidence < MIN_FIELD_CONFIDENCE:
            return self._reprompt(state, text)

        values = dict(result.fields)
        if field_name != "title":
            values.pop("task_type", None)
        changed = state.task.apply_fields(values)
        if not changed and not _field_is_filled(state.task, field_name):
            return self._reprompt(state, text)
        return self._advance(state)

    def _advance(self, state: ConversationState) -> ConversationTurn:
        missing = missing_fields(state.task, state.skipped_fields)
        if missing:
            state.stage = ConversationStage.AWAITING_FIELD
            state.awaiting_field = missing[0]
            self._store.set(state.user_id, state)
            return ConversationTurn(state.stage, FIELD_PROMPTS[missing[0]])

        confirming = state.stage == ConversationStage.AWAITING_CONFIRMATION
        if self.require_confirmation and not confirming:
            state.stage = ConversationStage.AWAITING_CONFIRMATION
            state.awaiting_field = None
            self._store.set(state.user_id, state)
            return ConversationTurn(state.stage, self._confirmation_prompt(state.task))

        return self._complete(state)

    def _complete(self, state: ConversationState) -> ConversationTurn:
        self._store.delete(state.user_id)
        state.stage = ConversationStage.COMPLETE
        state.awaiting_field = None
        logger.info(f"Conversation for {state.user_id} complete: {state.task.title}")
        return ConversationTurn(state.stage, task=state.task)

    def _cancel(self, state: ConversationState) -> ConversationTurn:
        self._store.delete(state.user_id)
        state.stage = ConversationStage.CANCELLED
        logger.info(f"Conversation for {state.user_id} cancelled")
        return ConversationTurn(state.stage, CANCEL_NOTICE)

    def _reprompt(self, state: ConversationState, text: str) -> ConversationTurn:
        field_name = state.awaiting_field or "title"
        message = (
            f'❌ Không hiểu "{text.strip()}". Vui lòng thử lại:\n\n'
            f"{FIELD_PROMPTS[field_name]}\n"
            'Gõ "hủy" để hủy bỏ tạo task.'
        )
        return ConversationTurn(state.stage, message)

    @staticmethod
    def _intro_prompt(task: TaskInfo, missing: list[str]) -> str:
        label = TYPE_LABELS[task.task_type]
        names = ", ".join(FIELD_NAMES[name] for name in missing)
        lines = [f"🤖 Để tạo {label}, Boss cần bổ sung thông tin: {names}."]
        if task.title:
            lines.insert(0, f'📝 Tôi sẽ tạo {label}: "{task.title}"')
        lines.append("")
        lines.extend(FIELD_HINTS[name] for name in missing if name in FIELD_HINTS)
        if missing[0] == "title":
            lines.append(FIELD_PROMPTS["title"])
        lines.append('Gõ "hủy" để hủy bỏ tạo task.')
        return "\n".join(lines)

    @staticmethod
    def _confirmation_prompt(task: TaskInfo) -> str:
        lines = [f"📝 {task.title}"]
        if task.due_date:
            lines.append(f"📅 Ngày: {task.due_date.isoformat()}")
        if task.effective_start:
            lines.append(f"⏰ Giờ: {task.effective_start.strftime('%H:%M')}")
        if task.attendees:
            lines.append(f"👥 Người tham gia: {', '.join(task.attendees)}")
        lines.append('Xác nhận tạo? Trả lời "có" hoặc "không".')
        return "\n".join(lines)
