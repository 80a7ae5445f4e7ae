"""Chat-facing facade that routes messages through the intent engine."""

import logging
from collections import deque
from collections.abc import Callable
from datetime import date, datetime

from .config import DEFAULT_OWNER_ID, SESSION_TIMEOUT_SECONDS
from .conversation_engine import TIMEOUT_NOTICE, ConversationEngine
from .exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    TaskAssistantError,
    ValidationError,
)
from .formatters import (
    HELP_TEXT,
    format_batch_result,
    format_conflict,
    format_created,
    format_edit_result,
    format_not_found,
    format_stats,
    format_task_list,
)
from .intent_classifier import IntentClassifier
from .interfaces import (
    CalendarService,
    MessageSender,
    ReminderScheduler,
    SessionStore,
    TaskStore,
)
from .models import ParseResult, PendingTask, TaskInfo, TaskType
from .patterns import (
    CONFIRM_PATTERN,
    categorize_task_type,
    clean_title,
    extract_attendees,
    extract_location,
    is_cancel_reply,
    parse_date_expression,
    parse_time_expression,
    parse_time_range,
)
from .reminders import reminder_time_for
from .selection import (
    SELECTION_CANCEL_NOTICE,
    SELECTION_TIMEOUT_NOTICE,
    AnswerStatus,
    SelectionManager,
)
from .session_store import InMemorySessionStore
from .task_operations import TaskOperations, parse_edit_command
from .task_resolver import parse_batch_references

logger = logging.getLogger(__name__)

HISTORY_LENGTH = 5

CONFLICT_CANCEL_NOTICE = "❌ Đã hủy tạo task."
CONFLICT_REPEAT_PROMPT = 'Phản hồi "có" để tiếp tục hoặc "không" để hủy.'
NOTHING_TO_CANCEL = "Không có thao tác nào đang chờ."
CANCELLED_ALL = "❌ Đã hủy thao tác đang dở."
UNKNOWN_MESSAGE = (
    "🤔 Mình chưa hiểu ý bạn. Gõ /help để xem hướng dẫn hoặc mô tả task cụ thể hơn."
)
MISSING_REFERENCE = "❌ Vui lòng nhập số thứ tự, ID hoặc từ khóa của task."


def task_from_text(text: str, today: date | None = None) -> TaskInfo:
    """Build a TaskInfo directly from free text, for explicit /new requests."""
    start, end = parse_time_range(text)
    return TaskInfo(
        title=clean_title(text) or text.strip(),
        due_date=parse_date_expression(text, today),
        due_time=start or parse_time_expression(text),
        start_time=start,
        end_time=end,
        location=extract_location(text),
        attendees=extract_attendees(text),
        task_type=categorize_task_type(text),
    )


class TaskAssistant:
    """
    Handles one chat message at a time for any number of users.

    Per-user pending state is checked before classification, in this order:
    conflict decision, destination selection, slot-filling conversation.
    Every library error is turned into a reply here; nothing propagates to
    the transport.
    """

    def __init__(
        self,
        store: TaskStore,
        classifier: IntentClassifier | None = None,
        calendar: CalendarService | None = None,
        reminders: ReminderScheduler | None = None,
        sender: MessageSender | None = None,
        conversation: ConversationEngine | None = None,
        selection: SelectionManager | None = None,
        operations: TaskOperations | None = None,
        pending_store: SessionStore[PendingTask] | None = None,
        owner_id: str = DEFAULT_OWNER_ID,
        timeout_seconds: float = SESSION_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Wire the assistant.

        Args:
            store: Task persistence
            classifier: Intent classifier, a local-only one is created if omitted
            calendar: Calendar backend; without it tasks stay local
            reminders: Reminder scheduler, optional
            sender: Used by sweep_expired() to notify users
            conversation: Slot-filling engine, built on classifier if omitted
            selection: Destination selection manager
            operations: Task operations, built on store if omitted
            pending_store: Holds tasks waiting for a conflict answer
            owner_id: Principal user
            timeout_seconds: Idle time before pending state is dropped
            clock: Source of the current time
        """
        self.store = store
        self.classifier = classifier or IntentClassifier()
        self.calendar = calendar
        self.reminders = reminders
        self.sender = sender
        self.conversation = conversation or ConversationEngine(
            self.classifier, timeout_seconds=timeout_seconds, clock=clock
        )
        self.selection = selection or SelectionManager(
            timeout_seconds=timeout_seconds, clock=clock
        )
        self.operations = operations or TaskOperations(store)
        self.owner_id = owner_id
        self._clock = clock
        self._pending: SessionStore[PendingTask] = (
            pending_store
            if pending_store is not None
            else InMemorySessionStore(timeout_seconds, lambda pending: pending.created_at, clock)
        )
        self._history: dict[str, deque[str]] = {}

    async def handle_message(self, user_id: str, text: str) -> str:
        """
        Process one incoming message and return the reply text.

        Args:
            user_id: Sender
            text: Raw message (already transcribed for voice)

        Returns:
            Reply to send back
        """
        text = text.strip()
        try:
            reply = await self._handle_pending(user_id, text)
            if reply is None:
                reply = await self._handle_new_message(user_id, text)
        except TaskAssistantError as e:
            logger.error(f"Error handling message from {user_id}: {e}")
            reply = f"❌ {e}"
        self._remember(user_id, text)
        return reply

    def cancel_all(self, user_id: str) -> bool:
        """Drop the user's pending task, conversation and selection together."""
        cancelled = self._pending.delete(user_id) is not None
        cancelled = self.conversation.cancel(user_id) or cancelled
        cancelled = self.selection.cancel(user_id) or cancelled
        if cancelled:
            logger.info(f"Cancelled all pending state for {user_id}")
        return cancelled

    async def sweep_expired(self) -> list[str]:
        """Expire idle state for every user, notifying them when a sender is set."""
        expired = set(self.conversation.sweep_expired())
        expired.update(self.selection.sweep_expired())
        expired.update(self._pending.sweep_expired())
        for user_id in sorted(expired):
            if self.sender is not None:
                await self.sender.send_message(user_id, TIMEOUT_NOTICE)
        return sorted(expired)

    def _remember(self, user_id: str, text: str) -> None:
        if not text:
            return
        history = self._history.setdefault(user_id, deque(maxlen=HISTORY_LENGTH))
        history.append(text)

    async def _handle_pending(self, user_id: str, text: str) -> str | None:
        pending = self._pending.get(user_id)
        if pending is not None:
            if self._pending.is_expired(pending):
                self._pending.delete(user_id)
                return TIMEOUT_NOTICE
            if CONFIRM_PATTERN.search(text.lower()):
                self._pending.delete(user_id)
                return await self._create(user_id, pending.task, force=True)
            if is_cancel_reply(text):
                self._pending.delete(user_id)
                return CONFLICT_CANCEL_NOTICE
            if not text.startswith("/"):
                return CONFLICT_REPEAT_PROMPT
            # A command abandons the undecided task
            self._pending.delete(user_id)

        if self.selection.has_pending(user_id):
            answer = self.selection.answer(user_id, text)
            if answer.status == AnswerStatus.SELECTED:
                return await self._create(user_id, answer.task)
            if answer.status == AnswerStatus.CANCELLED:
                return SELECTION_CANCEL_NOTICE
            if answer.status == AnswerStatus.EXPIRED:
                return SELECTION_TIMEOUT_NOTICE
            if not text.startswith("/"):
                selection = self.selection.get_pending(user_id)
                return "❌ Lựa chọn không hợp lệ.\n" + self.selection.format_prompt(selection)

        state = self.conversation.get_state(user_id)
        if state is not None and not text.startswith("/"):
            turn = await self.conversation.handle_reply(user_id, text)
            if turn is not None:
                if turn.is_complete:
                    message = state.original_message or turn.task.title
                    return await self._route_new_task(user_id, turn.task, message)
                return turn.message or ""

        return None

    async def _handle_new_message(self, user_id: str, text: str) -> str:
        history = list(self._history.get(user_id, ()))
        outcome = await self.classifier.classify(text, user_id, history)
        result = outcome.result

        if result.command is not None:
            return await self._dispatch_command(user_id, result)
        if result.is_task and result.task is not None:
            return await self._start_task(user_id, result.task, text)
        return result.quick_reply or UNKNOWN_MESSAGE

    async def _start_task(self, user_id: str, task_info: TaskInfo, text: str) -> str:
        turn = await self.conversation.start(user_id, task_info, text)
        if turn.is_complete:
            return await self._route_new_task(user_id, turn.task, text)
        return turn.message or ""

    async def _route_new_task(self, user_id: str, task_info: TaskInfo, message: str) -> str:
        calendars, task_lists = [], []
        if self.calendar is not None:
            try:
                calendars = await self.calendar.list_calendars()
                task_lists = await self.calendar.list_task_lists()
            except ExternalServiceError as e:
                logger.warning(f"Could not list destinations, keeping task local: {e}")

        pending = self.selection.propose(user_id, task_info, message, calendars, task_lists)
        if pending is not None:
            return self.selection.format_prompt(pending)
        return await self._create(user_id, task_info)

    async def _create(self, user_id: str, task_info: TaskInfo, force: bool = False) -> str:
        try:
            task = await self.operations.create_task(task_info, force=force)
        except ConflictError as e:
            self._pending.set(
                user_id,
                PendingTask(
                    task=task_info,
                    awaiting_conflict_decision=True,
                    conflict=e.conflict,
                    created_at=self._pending.now(),
                ),
            )
            return format_conflict(e.conflict)
        except ValidationError as e:
            return f"❌ {e}"

        synced = []
        if self.calendar is not None:
            scheduled = task_info.task_type in (TaskType.CALENDAR, TaskType.MEETING)
            try:
                if scheduled:
                    external_id = await self.calendar.create_event(task_info)
                    synced.append("Lịch")
                else:
                    external_id = await self.calendar.create_task(task_info)
                    synced.append("Danh sách task")
                await self.operations.attach_external_id(task.id, external_id)
            except ExternalServiceError as e:
                logger.warning(f"⚠️ Sync failed for task {task.id}, kept locally: {e}")

        reminder_set = False
        trigger = reminder_time_for(task_info)
        if self.reminders is not None and trigger is not None:
            await self.reminders.schedule_reminder(task_info, trigger)
            reminder_set = trigger > self._clock()

        return format_created(task_info, synced, reminder_set)

    async def _dispatch_command(self, user_id: str, result: ParseResult) -> str:
        command, args = result.command, result.command_args.strip()
        logger.debug(f"Command /{command} from {user_id}: '{args}'")

        if command == "list":
            return format_task_list(await self.operations.unfinished_snapshot())
        if command == "stats":
            return format_stats(await self.operations.statistics())
        if command == "help":
            return HELP_TEXT
        if command == "me":
            role = "chủ sở hữu" if user_id == self.owner_id else "người dùng"
            return f"👤 ID của bạn: {user_id} ({role})"
        if command == "cancel":
            return CANCELLED_ALL if self.cancel_all(user_id) else NOTHING_TO_CANCEL
        if command == "new":
            if not args:
                return await self._start_task(user_id, TaskInfo(), "")
            task_info = result.task or task_from_text(args)
            return await self._start_task(user_id, task_info, args)
        if command == "done":
            return await self._run_reference_command(args, "hoàn thành")
        if command == "delete":
            return await self._run_reference_command(args, "xóa")
        if command == "edit":
            return await self._edit(args)

        return UNKNOWN_MESSAGE

    async def _run_reference_command(self, args: str, operation: str) -> str:
        if not args:
            return MISSING_REFERENCE
        references = parse_batch_references(args)

        if len(references) == 1:
            try:
                if operation == "xóa":
                    task = await self.operations.delete_task(references[0])
                    return f"🗑️ Đã xóa: {task.content}"
                task = await self.operations.complete_task(references[0])
                return f"✅ Đã hoàn thành: {task.content}"
            except NotFoundError:
                unfinished = await self.operations.unfinished_snapshot()
                return format_not_found(references[0], unfinished)

        if operation == "xóa":
            batch = await self.operations.batch_delete(references)
        else:
            batch = await self.operations.batch_complete(references)
        return format_batch_result(operation, batch)

    async def _edit(self, args: str) -> str:
        try:
            references, edit = parse_edit_command(args, self._clock().date())
        except ValidationError as e:
            return f"❌ {e}\n💡 Ví dụ: /edit 1 giờ:15:30 hoặc /edit 2 Họp với khách hàng"
        batch = await self.operations.batch_edit(references, edit)
        return format_edit_result(batch, edit)

