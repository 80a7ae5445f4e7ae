"""Offline calendar service and console message sender."""

import logging
import uuid

from .exceptions import ExternalServiceError
from .interfaces import CalendarService, MessageSender
from .models import SelectionKind, SelectionOption, TaskInfo
from .target_selector import DEFAULT_TASK_LIST_ID, PRIMARY_CALENDAR_ID

logger = logging.getLogger(__name__)


class LocalCalendarService(CalendarService):
    """
    Calendar backend that keeps events and task-list entries in memory.

    Starts with one primary calendar and one default task list; more can be
    added with add_calendar() / add_task_list().
    """

    def __init__(self) -> None:
        self._calendars = [
            SelectionOption(PRIMARY_CALENDAR_ID, "Lịch chính", SelectionKind.CALENDAR, True)
        ]
        self._task_lists = [
            SelectionOption(DEFAULT_TASK_LIST_ID, "Việc cần làm", SelectionKind.TASK_LIST, True)
        ]
        self.events: dict[str, TaskInfo] = {}
        self.tasks: dict[str, TaskInfo] = {}

    def add_calendar(self, name: str) -> SelectionOption:
        option = SelectionOption(uuid.uuid4().hex[:12], name, SelectionKind.CALENDAR)
        self._calendars.append(option)
        return option

    def add_task_list(self, name: str) -> SelectionOption:
        option = SelectionOption(uuid.uuid4().hex[:12], name, SelectionKind.TASK_LIST)
        self._task_lists.append(option)
        return option

    async def list_calendars(self) -> list[SelectionOption]:
        return list(self._calendars)

    async def list_task_lists(self) -> list[SelectionOption]:
        return list(self._task_lists)

    async def create_event(self, task_info: TaskInfo) -> str:
        calendar_id = task_info.calendar_id or PRIMARY_CALENDAR_ID
        if all(c.id != calendar_id for c in self._calendars):
            raise ExternalServiceError(f"Unknown calendar: {calendar_id}")
        event_id = str(uuid.uuid4())
        self.events[event_id] = task_info
        logger.debug(f"Created local event {event_id} in {calendar_id}")
        return event_id

    async def create_task(self, task_info: TaskInfo) -> str:
        task_list_id = task_info.task_list_id or DEFAULT_TASK_LIST_ID
        if all(t.id != task_list_id for t in self._task_lists):
            raise ExternalServiceError(f"Unknown task list: {task_list_id}")
        entry_id = str(uuid.uuid4())
        self.tasks[entry_id] = task_info
        logger.debug(f"Created local task entry {entry_id} in {task_list_id}")
        return entry_id


class ConsoleMessageSender(MessageSender):
    """Prints outgoing messages; used by the interactive CLI."""

    async def send_message(self, user_id: str, text: str) -> None:
        print(f"🤖 {text}")
