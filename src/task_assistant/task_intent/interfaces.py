"""Abstract interfaces for the collaborators around the intent engine."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any, Generic, TypeVar

from .models import (
    DeletedTask,
    FieldParseResult,
    SelectionOption,
    Task,
    TaskExtractionResult,
    TaskInfo,
)

T = TypeVar("T")


class RemoteNLU(ABC):
    """Remote natural-language understanding service."""

    @abstractmethod
    async def extract_task(self, text: str) -> TaskExtractionResult:
        """
        Extract a task from a whole message.

        Args:
            text: Raw chat message

        Returns:
            TaskExtractionResult with the structured task, if any

        Raises:
            ExternalServiceError: If the service fails or times out
        """
        pass

    @abstractmethod
    async def parse_field(
        self, text: str, expected_field: str, context: dict[str, Any] | None = None
    ) -> FieldParseResult:
        """
        Interpret a reply given while one field is being collected.

        Args:
            text: User reply
            expected_field: Field the conversation is waiting for
            context: Already known task fields

        Returns:
            FieldParseResult describing the reply's intent

        Raises:
            ExternalServiceError: If the service fails or times out
        """
        pass


class TaskStore(ABC):
    """Persistence contract for task records."""

    @abstractmethod
    async def insert_task(self, task_info: TaskInfo, external_id: str | None = None) -> Task:
        pass

    @abstractmethod
    async def get_task(self, task_id: int) -> Task:
        """Raises NotFoundError when the id does not exist."""
        pass

    @abstractmethod
    async def query_tasks(
        self,
        done: bool | None = None,
        due_date: date | None = None,
        order_by: Iterable[str] = ("due_date", "due_time"),
    ) -> list[Task]:
        pass

    @abstractmethod
    async def update_task_fields(self, task_id: int, updates: dict[str, Any]) -> Task:
        pass

    @abstractmethod
    async def delete_task(self, task_id: int) -> None:
        pass

    @abstractmethod
    async def insert_deleted_record(self, snapshot: DeletedTask) -> None:
        pass


class CalendarService(ABC):
    """Calendar and task-list backend."""

    @abstractmethod
    async def list_calendars(self) -> list[SelectionOption]:
        pass

    @abstractmethod
    async def list_task_lists(self) -> list[SelectionOption]:
        pass

    @abstractmethod
    async def create_event(self, task_info: TaskInfo) -> str:
        """Create a calendar event and return its id."""
        pass

    @abstractmethod
    async def create_task(self, task_info: TaskInfo) -> str:
        """Create a task-list entry and return its id."""
        pass


class MessageSender(ABC):
    """Outgoing side of the chat transport."""

    @abstractmethod
    async def send_message(self, user_id: str, text: str) -> None:
        pass


class ReminderScheduler(ABC):
    """Schedules reminder notifications; firing is up to the implementation."""

    @abstractmethod
    async def schedule_reminder(self, task_info: TaskInfo, trigger_time: datetime) -> None:
        pass


class SessionStore(ABC, Generic[T]):
    """
    Per-user keyed state with expiry.

    Entries carry their own activity timestamp; the store decides when one is
    stale. Engines stamp new entries with now() so tests can drive time.
    """

    @abstractmethod
    def get(self, user_id: str) -> T | None:
        pass

    @abstractmethod
    def set(self, user_id: str, value: T) -> None:
        pass

    @abstractmethod
    def delete(self, user_id: str) -> T | None:
        pass

    @abstractmethod
    def sweep_expired(self) -> list[str]:
        """Remove stale entries and return the user ids that were dropped."""
        pass

    @abstractmethod
    def is_expired(self, value: T) -> bool:
        """Whether an entry has been idle longer than the store's timeout."""
        pass

    @abstractmethod
    def now(self) -> datetime:
        """Current time on the store's clock, used to stamp new entries."""
        pass
