"""Pending calendar / task-list questions and their answers."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .config import SELECTION_TIMEOUT_SECONDS
from .interfaces import SessionStore
from .models import (
    PendingSelection,
    SelectionKind,
    SelectionOption,
    SelectionResult,
    TaskInfo,
    TaskType,
)
from .patterns import is_cancel_reply
from .session_store import InMemorySessionStore
from .target_selector import TargetSelector

logger = logging.getLogger(__name__)

SELECTION_TIMEOUT_NOTICE = "⏰ Hết thời gian chọn lịch. Vui lòng tạo lại task."
SELECTION_CANCEL_NOTICE = "❌ Đã hủy bỏ việc tạo task."


class AnswerStatus(str, Enum):
    """How a reply to a pending selection was understood."""

    SELECTED = "selected"
    INVALID = "invalid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    NO_PENDING = "no_pending"


@dataclass
class SelectionAnswer:
    """Outcome of answering a pending selection."""

    status: AnswerStatus
    task: TaskInfo | None = None
    option: SelectionOption | None = None


def apply_selection(task: TaskInfo, result: SelectionResult) -> None:
    if result.calendar_id:
        task.calendar_id = result.calendar_id
    if result.task_list_id:
        task.task_list_id = result.task_list_id


class SelectionManager:
    """
    Decides where a finished task goes, asking the user when unsure.

    A confident TargetSelector result is applied directly. Otherwise a
    numbered PendingSelection is stored for the user; the answer is learned so
    the next similar request can be auto-selected.
    """

    def __init__(
        self,
        selector: TargetSelector | None = None,
        store: SessionStore[PendingSelection] | None = None,
        timeout_seconds: float = SELECTION_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.selector = selector or TargetSelector()
        self._store: SessionStore[PendingSelection] = (
            store
            if store is not None
            else InMemorySessionStore(timeout_seconds, lambda pending: pending.created_at, clock)
        )

    def has_pending(self, user_id: str) -> bool:
        return self._store.get(user_id) is not None

    def get_pending(self, user_id: str) -> PendingSelection | None:
        return self._store.get(user_id)

    def cancel(self, user_id: str) -> bool:
        return self._store.delete(user_id) is not None

    def sweep_expired(self) -> list[str]:
        return self._store.sweep_expired()

    def propose(
        self,
        user_id: str,
        task: TaskInfo,
        message: str,
        calendars: Sequence[SelectionOption],
        task_lists: Sequence[SelectionOption],
    ) -> PendingSelection | None:
        """
        Select a destination for task.

        Returns:
            None when the destination was applied to task, otherwise the
            PendingSelection now waiting for the user's answer
        """
        result = self.selector.select(
            message or task.title, user_id, calendars, task_lists
        )
        scheduled = task.task_type in (TaskType.CALENDAR, TaskType.MEETING)
        kind = SelectionKind.CALENDAR if scheduled else SelectionKind.TASK_LIST
        options = list(calendars if scheduled else task_lists)

        if result.auto_selected or len(options) <= 1:
            if not result.auto_selected and options:
                result = SelectionResult(
                    confidence=result.confidence,
                    reasoning="Only one destination available",
                    calendar_id=options[0].id if scheduled else None,
                    task_list_id=None if scheduled else options[0].id,
                )
            apply_selection(task, result)
            if result.kind is None:
                logger.info(f"No destination for '{task.title}' ({result.reasoning})")
            else:
                logger.info(
                    f"🎯 Auto-selected {result.calendar_id or result.task_list_id} "
                    f"for '{task.title}' ({result.reasoning})"
                )
            return None

        # Primary first, then in the order the service listed them
        options.sort(key=lambda option: not option.primary)
        pending = PendingSelection(
            user_id=user_id,
            kind=kind,
            options=options,
            task=task,
            message=message,
            created_at=self._store.now(),
        )
        self._store.set(user_id, pending)
        logger.info(f"Asking {user_id} to choose among {len(options)} {kind.value} options")
        return pending

    def format_prompt(self, pending: PendingSelection) -> str:
        label = "lịch" if pending.kind == SelectionKind.CALENDAR else "danh sách task"
        lines = [f"📋 Chọn {label} cho: {pending.task.title}"]
        for index, option in enumerate(pending.options, start=1):
            suffix = " (mặc định)" if option.primary else ""
            lines.append(f"{index}. {option.name}{suffix}")
        lines.append("Trả lời bằng số thứ tự hoặc tên. Gõ 'hủy' để bỏ qua.")
        return "\n".join(lines)

    def answer(self, user_id: str, text: str) -> SelectionAnswer:
        """
        Interpret a reply to the user's pending selection.

        A number picks by position, otherwise option names are matched
        case-insensitively (exact, then substring). Unclear replies leave the
        selection pending.
        """
        pending = self._store.get(user_id)
        if pending is None:
            return SelectionAnswer(AnswerStatus.NO_PENDING)
        if self._store.is_expired(pending):
            self._store.delete(user_id)
            logger.info(f"Selection for {user_id} expired")
            return SelectionAnswer(AnswerStatus.EXPIRED)
        if is_cancel_reply(text):
            self._store.delete(user_id)
            return SelectionAnswer(AnswerStatus.CANCELLED)

        option = self._match_option(text.strip(), pending.options)
        if option is None:
            return SelectionAnswer(AnswerStatus.INVALID)

        self._store.delete(user_id)
        task = pending.task
        if option.kind == SelectionKind.CALENDAR:
            task.calendar_id = option.id
            self.selector.learn(user_id, pending.message, calendar_id=option.id)
        else:
            task.task_list_id = option.id
            self.selector.learn(user_id, pending.message, task_list_id=option.id)
        return SelectionAnswer(AnswerStatus.SELECTED, task=task, option=option)

    @staticmethod
    def _match_option(
        text: str, options: Sequence[SelectionOption]
    ) -> SelectionOption | None:
        if text.isdigit():
            index = int(text)
            if 1 <= index <= len(options):
                return options[index - 1]
            return None

        lowered = text.lower()
        for option in options:
            if option.name.lower() == lowered or option.id.lower() == lowered:
                return option
        partial = [option for option in options if lowered in option.name.lower()]
        if len(partial) == 1:
            return partial[0]
        return None
