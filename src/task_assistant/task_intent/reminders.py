"""Reminder time calculation, an in-memory scheduler and due-task notices."""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from .config import (
    CHECKLIST_TIME,
    EVENT_REMINDER_LEAD_MINUTES,
    NEAR_DUE_LEAD_MINUTES,
    TASK_REMINDER_TIME,
)
from .formatters import format_checklist, format_near_due, format_reminder
from .interfaces import MessageSender, ReminderScheduler, TaskStore
from .models import Task, TaskInfo, TaskType

logger = logging.getLogger(__name__)


def reminder_time_for(task_info: TaskInfo) -> datetime | None:
    """
    When to remind the user about a task.

    Calendar events and meetings are reminded one hour before they start;
    plain tasks at 09:00 on the day before. Items without a date get no
    reminder.
    """
    if task_info.due_date is None:
        return None

    start = task_info.effective_start
    due = datetime.combine(task_info.due_date, start or datetime.min.time())
    if task_info.task_type in (TaskType.CALENDAR, TaskType.MEETING):
        return due - timedelta(minutes=EVENT_REMINDER_LEAD_MINUTES)
    return datetime.combine(task_info.due_date - timedelta(days=1), TASK_REMINDER_TIME)


@dataclass
class ScheduledReminder:
    """Reminder waiting to be delivered."""

    task: TaskInfo
    trigger_time: datetime
    sent: bool = False


class InMemoryReminderScheduler(ReminderScheduler):
    """Keeps reminders in a list; due() hands back the ones ready to fire."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self.reminders: list[ScheduledReminder] = []

    async def schedule_reminder(self, task_info: TaskInfo, trigger_time: datetime) -> None:
        if trigger_time <= self._clock():
            logger.info(f"Reminder for '{task_info.title}' is in the past, skipping")
            return
        self.reminders.append(ScheduledReminder(task_info, trigger_time))
        logger.info(
            f"⏰ Reminder for '{task_info.title}' at {trigger_time.isoformat(timespec='minutes')}"
        )

    def due(self) -> list[ScheduledReminder]:
        """Mark and return every unsent reminder whose time has come."""
        now = self._clock()
        ready = [r for r in self.reminders if not r.sent and r.trigger_time <= now]
        for reminder in ready:
            reminder.sent = True
        return ready

    def pending(self) -> list[ScheduledReminder]:
        return [r for r in self.reminders if not r.sent]


class DueTaskNotifier:
    """
    Morning checklist and near-due notices for one user's tasks.

    tick() is called periodically. The checklist goes out once per day, on the
    first tick at or after checklist_time. A task is announced once when it is
    due within the lead window; the near_due_notified flag is stored with the
    task so a restart does not repeat the notice. Reminders scheduled when a
    task was created are delivered from the same tick.
    """

    def __init__(
        self,
        store: TaskStore,
        sender: MessageSender,
        user_id: str,
        clock: Callable[[], datetime] = datetime.now,
        checklist_time: time = CHECKLIST_TIME,
        lead_minutes: int = NEAR_DUE_LEAD_MINUTES,
        reminders: InMemoryReminderScheduler | None = None,
    ) -> None:
        self._store = store
        self._sender = sender
        self._user_id = user_id
        self._clock = clock
        self._checklist_time = checklist_time
        self._lead = timedelta(minutes=lead_minutes)
        self._reminders = reminders
        self._last_checklist: date | None = None

    async def send_checklist(self) -> list[Task]:
        """Send the titles of every unfinished task."""
        tasks = await self._store.query_tasks(done=False)
        await self._sender.send_message(self._user_id, format_checklist(tasks))
        self._last_checklist = self._clock().date()
        logger.info(f"☀️ Sent checklist with {len(tasks)} task(s) to {self._user_id}")
        return tasks

    async def notify_near_due(self) -> list[Task]:
        """Announce unfinished tasks due within the lead window and flag them."""
        now = self._clock()
        notified: list[Task] = []
        for task in await self._store.query_tasks(done=False):
            if task.near_due_notified or task.due_date is None or task.due_time is None:
                continue
            remaining = datetime.combine(task.due_date, task.due_time) - now
            if remaining <= timedelta(0) or remaining > self._lead:
                continue
            minutes_left = math.ceil(remaining.total_seconds() / 60)
            await self._sender.send_message(self._user_id, format_near_due(task, minutes_left))
            notified.append(
                await self._store.update_task_fields(task.id, {"near_due_notified": True})
            )
            logger.info(f"🚨 Task {task.id} due in {minutes_left} minute(s)")
        return notified

    async def deliver_reminders(self) -> list[ScheduledReminder]:
        """Send every scheduled reminder whose trigger time has passed."""
        if self._reminders is None:
            return []
        ready = self._reminders.due()
        for reminder in ready:
            await self._sender.send_message(self._user_id, format_reminder(reminder.task))
        return ready

    async def tick(self) -> None:
        now = self._clock()
        if self._last_checklist != now.date() and now.time() >= self._checklist_time:
            await self.send_checklist()
        await self.notify_near_due()
        await self.deliver_reminders()
