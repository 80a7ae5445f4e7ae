"""Tests for the interactive chat CLI."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from task_assistant.main import TaskAssistantCLI
from task_assistant.task_intent.assistant import TaskAssistant
from task_assistant.task_intent.conversation_engine import TIMEOUT_NOTICE
from task_assistant.task_intent.database import TaskDatabase
from task_assistant.task_intent.exceptions import DatabaseError
from task_assistant.task_intent.intent_classifier import IntentClassifier
from task_assistant.task_intent.reminders import DueTaskNotifier

TODAY = date(2025, 5, 21)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 5, 21, 9, 0)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
async def database() -> AsyncGenerator[TaskDatabase]:
    """Create in-memory database for testing."""
    db = TaskDatabase(":memory:", wal_mode=False)
    await db.initialize()
    yield db
    await db.close()


def scripted_input(
    lines: Iterator[str], before: dict[str, Callable[[], None]] | None = None
) -> Callable[[], Awaitable[str]]:
    """Replacement for _read_line that returns lines and runs hooks first."""
    hooks = before or {}

    async def read_line() -> str:
        # Let background tasks run between prompts
        await asyncio.sleep(0)
        line = next(lines)
        if line in hooks:
            hooks[line]()
        return line

    return read_line


@pytest.mark.unit
class TestTaskAssistantCLI:
    """Test cases for the TaskAssistantCLI class."""

    @pytest.mark.asyncio
    async def test_cli_initialization(self, database: TaskDatabase) -> None:
        """Test CLI initialization."""
        cli = TaskAssistantCLI(TaskAssistant(database), "u1")

        assert cli._user_id == "u1"
        assert cli._notifier is None
        assert cli._running is False

    @pytest.mark.asyncio
    async def test_replies_are_printed(
        self, database: TaskDatabase, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that each message gets a console reply."""
        assistant = TaskAssistant(
            database, classifier=IntentClassifier(remote=None, today=lambda: TODAY)
        )
        cli = TaskAssistantCLI(assistant, "u1")

        with patch.object(cli, "_read_line", new=scripted_input(iter(["/list", "/quit"]))):
            await cli.run()

        out = capsys.readouterr().out
        assert "🤖 Không có task nào." in out
        assert "👋 Goodbye!" in out
        assert cli._running is False

    @pytest.mark.asyncio
    async def test_late_reply_gets_timeout_notice(
        self, database: TaskDatabase, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that a reply after the session timeout is answered with the notice."""
        clock = FakeClock()
        assistant = TaskAssistant(
            database,
            classifier=IntentClassifier(remote=None, today=lambda: TODAY),
            timeout_seconds=300,
            clock=clock,
        )
        cli = TaskAssistantCLI(assistant, "u1")

        def six_minutes_later() -> None:
            clock.now += timedelta(minutes=6)

        read_line = scripted_input(
            iter(["/new Viết báo cáo", "ngày mai", "/quit"]),
            before={"ngày mai": six_minutes_later},
        )
        with patch.object(cli, "_read_line", new=read_line):
            await cli.run()

        out = capsys.readouterr().out
        assert f"🤖 {TIMEOUT_NOTICE}" in out
        assert await assistant.operations.unfinished_snapshot() == []

    @pytest.mark.asyncio
    async def test_notifier_ticks_in_background(self, database: TaskDatabase) -> None:
        """Test that the notifier runs while waiting for input and stops on exit."""
        notifier = AsyncMock(spec=DueTaskNotifier)
        cli = TaskAssistantCLI(TaskAssistant(database), "u1", notifier)

        with patch.object(cli, "_read_line", new=scripted_input(iter(["", "/quit"]))):
            await cli.run()

        notifier.tick.assert_awaited()

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_stop_chat(
        self, database: TaskDatabase, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that a failing tick is logged and the chat keeps going."""
        notifier = AsyncMock(spec=DueTaskNotifier)
        notifier.tick.side_effect = DatabaseError("database is locked")
        cli = TaskAssistantCLI(TaskAssistant(database), "u1", notifier)

        with patch("logging.error") as mock_error:
            with patch.object(
                cli, "_read_line", new=scripted_input(iter(["", "/list", "/quit"]))
            ):
                await cli.run()

        mock_error.assert_any_call("Notification tick failed: database is locked")
        assert "🤖 Không có task nào." in capsys.readouterr().out
