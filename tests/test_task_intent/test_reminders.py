"""Tests for reminder scheduling and due-task notices."""

from collections.abc import AsyncGenerator
from datetime import date, datetime, time

import pytest

from task_assistant.task_intent.database import TaskDatabase
from task_assistant.task_intent.interfaces import MessageSender
from task_assistant.task_intent.models import EditInfo, TaskInfo, TaskType
from task_assistant.task_intent.reminders import (
    DueTaskNotifier,
    InMemoryReminderScheduler,
    reminder_time_for,
)
from task_assistant.task_intent.task_operations import TaskOperations

TODAY = date(2025, 5, 21)


@pytest.mark.unit
class TestReminderTime:
    """Test cases for reminder_time_for."""

    def test_meeting_one_hour_before(self) -> None:
        """Test that events are reminded an hour ahead."""
        info = TaskInfo(
            title="Họp", task_type=TaskType.MEETING, due_date=date(2025, 5, 22), due_time=time(15, 0)
        )
        assert reminder_time_for(info) == datetime(2025, 5, 22, 14, 0)

    def test_task_day_before_at_nine(self) -> None:
        """Test that tasks are reminded the morning before."""
        info = TaskInfo(title="Nộp báo cáo", due_date=date(2025, 5, 23))
        assert reminder_time_for(info) == datetime(2025, 5, 22, 9, 0)

    def test_no_date_no_reminder(self) -> None:
        """Test undated items."""
        assert reminder_time_for(TaskInfo(title="Đọc sách")) is None


@pytest.mark.unit
class TestInMemoryReminderScheduler:
    """Test cases for InMemoryReminderScheduler."""

    @pytest.mark.asyncio
    async def test_schedule_and_fire(self) -> None:
        """Test that reminders fire once their time has come."""
        now = {"value": datetime(2025, 5, 21, 8, 0)}
        scheduler = InMemoryReminderScheduler(clock=lambda: now["value"])
        info = TaskInfo(title="Họp")

        await scheduler.schedule_reminder(info, datetime(2025, 5, 21, 9, 0))
        assert len(scheduler.pending()) == 1
        assert scheduler.due() == []

        now["value"] = datetime(2025, 5, 21, 9, 0)
        fired = scheduler.due()
        assert [r.task.title for r in fired] == ["Họp"]
        assert scheduler.due() == []
        assert scheduler.pending() == []

    @pytest.mark.asyncio
    async def test_past_trigger_is_skipped(self) -> None:
        """Test that a reminder in the past is not stored."""
        scheduler = InMemoryReminderScheduler(clock=lambda: datetime(2025, 5, 21, 10, 0))

        await scheduler.schedule_reminder(TaskInfo(title="Họp"), datetime(2025, 5, 21, 9, 0))

        assert scheduler.reminders == []


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingSender(MessageSender):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_message(self, user_id: str, text: str) -> None:
        self.sent.append((user_id, text))


@pytest.fixture
async def database() -> AsyncGenerator[TaskDatabase]:
    """Create in-memory database for testing."""
    db = TaskDatabase(":memory:", wal_mode=False)
    await db.initialize()
    yield db
    await db.close()


@pytest.mark.unit
class TestDueTaskNotifier:
    """Test cases for DueTaskNotifier."""

    @pytest.mark.asyncio
    async def test_checklist_once_per_day(self, database: TaskDatabase) -> None:
        """Test that the checklist goes out on the first tick after 07:00 only."""
        await database.insert_task(TaskInfo(title="Nộp báo cáo", due_date=TODAY))
        done = await database.insert_task(TaskInfo(title="Đã xong"))
        await database.update_task_fields(done.id, {"done": True})
        clock = FakeClock(datetime(2025, 5, 21, 6, 59))
        sender = RecordingSender()
        notifier = DueTaskNotifier(database, sender, "boss", clock=clock)

        await notifier.tick()
        assert sender.sent == []

        clock.now = datetime(2025, 5, 21, 7, 0)
        await notifier.tick()
        clock.now = datetime(2025, 5, 21, 12, 0)
        await notifier.tick()

        assert sender.sent == [("boss", "☀️ Checklist sáng:\n1. Nộp báo cáo")]

        clock.now = datetime(2025, 5, 22, 7, 5)
        await notifier.tick()
        assert len(sender.sent) == 2

    @pytest.mark.asyncio
    async def test_near_due_window_and_flag(self, database: TaskDatabase) -> None:
        """Test that only tasks due within 15 minutes are announced, once."""
        soon = await database.insert_task(
            TaskInfo(title="Họp team", due_date=TODAY, due_time=time(9, 10), location="phòng 2")
        )
        await database.insert_task(TaskInfo(title="Chiều", due_date=TODAY, due_time=time(15, 0)))
        await database.insert_task(TaskInfo(title="Đã qua", due_date=TODAY, due_time=time(8, 0)))
        await database.insert_task(TaskInfo(title="Không giờ", due_date=TODAY))
        clock = FakeClock(datetime(2025, 5, 21, 8, 55, 30))
        sender = RecordingSender()
        notifier = DueTaskNotifier(database, sender, "boss", clock=clock)

        notified = await notifier.notify_near_due()

        assert [t.id for t in notified] == [soon.id]
        assert notified[0].near_due_notified is True
        assert (await database.get_task(soon.id)).near_due_notified is True
        assert len(sender.sent) == 1
        assert sender.sent[0][1].startswith("🚨 Sắp đến hạn: Họp team")
        assert "📍 Địa điểm: phòng 2" in sender.sent[0][1]
        assert sender.sent[0][1].endswith("⏳ Còn 15 phút")

        clock.now = datetime(2025, 5, 21, 9, 5)
        assert await notifier.notify_near_due() == []
        assert len(sender.sent) == 1

    @pytest.mark.asyncio
    async def test_rescheduled_task_is_announced_again(self, database: TaskDatabase) -> None:
        """Test that moving a task's time clears the near-due flag."""
        task = await database.insert_task(
            TaskInfo(title="Gọi Nam", due_date=TODAY, due_time=time(9, 10))
        )
        clock = FakeClock(datetime(2025, 5, 21, 9, 0))
        sender = RecordingSender()
        notifier = DueTaskNotifier(database, sender, "boss", clock=clock)
        await notifier.notify_near_due()

        await TaskOperations(database).edit_task(str(task.id), EditInfo(due_time=time(16, 0)))
        assert (await database.get_task(task.id)).near_due_notified is False

        clock.now = datetime(2025, 5, 21, 15, 50)
        await notifier.notify_near_due()
        assert len(sender.sent) == 2
        assert sender.sent[1][1].endswith("⏳ Còn 10 phút")

    @pytest.mark.asyncio
    async def test_scheduled_reminders_are_delivered(self, database: TaskDatabase) -> None:
        """Test that tick() sends reminders whose time has come."""
        clock = FakeClock(datetime(2025, 5, 21, 5, 0))
        scheduler = InMemoryReminderScheduler(clock)
        info = TaskInfo(
            title="Họp", task_type=TaskType.MEETING, due_date=TODAY, due_time=time(6, 45)
        )
        await scheduler.schedule_reminder(info, reminder_time_for(info))
        sender = RecordingSender()
        notifier = DueTaskNotifier(database, sender, "boss", clock=clock, reminders=scheduler)

        await notifier.tick()
        assert sender.sent == []

        clock.now = datetime(2025, 5, 21, 5, 45)
        await notifier.tick()

        assert sender.sent == [("boss", "⏰ Nhắc nhở: 🤝 Họp @2025-05-21 @06:45")]
        assert scheduler.pending() == []

    @pytest.mark.asyncio
    async def test_without_scheduler(self, database: TaskDatabase) -> None:
        """Test that reminder delivery is a no-op without a scheduler."""
        notifier = DueTaskNotifier(database, RecordingSender(), "boss")

        assert await notifier.deliver_reminders() == []
