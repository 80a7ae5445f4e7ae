"""Tests for the offline calendar service."""

import pytest

from task_assistant.task_intent.exceptions import ExternalServiceError
from task_assistant.task_intent.local_services import (
    ConsoleMessageSender,
    LocalCalendarService,
)
from task_assistant.task_intent.models import TaskInfo


@pytest.mark.unit
class TestLocalCalendarService:
    """Test cases for LocalCalendarService."""

    @pytest.mark.asyncio
    async def test_default_destinations(self) -> None:
        """Test the starting calendar and task list."""
        service = LocalCalendarService()

        calendars = await service.list_calendars()
        task_lists = await service.list_task_lists()

        assert [(c.id, c.primary) for c in calendars] == [("primary", True)]
        assert [t.id for t in task_lists] == ["@default"]

    @pytest.mark.asyncio
    async def test_create_in_added_calendar(self) -> None:
        """Test creating an event in a new calendar."""
        service = LocalCalendarService()
        work = service.add_calendar("Công việc")

        event_id = await service.create_event(TaskInfo(title="Họp", calendar_id=work.id))

        assert service.events[event_id].title == "Họp"

    @pytest.mark.asyncio
    async def test_unknown_destination(self) -> None:
        """Test that unknown ids are rejected like a remote service would."""
        service = LocalCalendarService()

        with pytest.raises(ExternalServiceError, match="Unknown calendar"):
            await service.create_event(TaskInfo(title="Họp", calendar_id="nope"))
        with pytest.raises(ExternalServiceError, match="Unknown task list"):
            await service.create_task(TaskInfo(title="Mua sữa", task_list_id="nope"))

    @pytest.mark.asyncio
    async def test_console_sender(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test console output."""
        await ConsoleMessageSender().send_message("u1", "Xin chào")

        assert capsys.readouterr().out == "🤖 Xin chào\n"
