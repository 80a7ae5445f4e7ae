"""Task operations by user reference: create, complete, delete, edit, single and batch."""

import dataclasses
import logging
import re
from datetime import date, datetime, time
from typing import Any

from .config import CONFLICT_BUFFER_MINUTES, DEFAULT_EVENT_DURATION_MINUTES
from .conflict_detector import detect_conflicts, should_check_conflicts
from .exceptions import (
    AmbiguousMatchError,
    ConflictError,
    NotFoundError,
    TaskAssistantError,
    ValidationError,
)
from .interfaces import TaskStore
from .models import (
    BatchItemResult,
    BatchResult,
    ConflictResult,
    DeletedTask,
    EditInfo,
    ScheduleEntry,
    Task,
    TaskInfo,
    TaskMatch,
)
from .patterns import parse_date_expression, parse_time_expression
from .task_resolver import TaskReferenceResolver, parse_batch_references

logger = logging.getLogger(__name__)

UNFINISHED_ORDER = ("due_date", "due_time")
ALL_ORDER = ("done", "due_date", "due_time")

EDIT_FIELD_ALIASES = {
    "content": "content",
    "nội dung": "content",
    "noi dung": "content",
    "date": "due_date",
    "ngày": "due_date",
    "ngay": "due_date",
    "time": "due_time",
    "giờ": "due_time",
    "gio": "due_time",
    "end": "end_time",
    "endtime": "end_time",
    "kết thúc": "end_time",
    "ket thuc": "end_time",
    "location": "location",
    "địa điểm": "location",
    "dia diem": "location",
    "nơi": "location",
    "noi": "location",
    "description": "description",
    "mô tả": "description",
    "mo ta": "description",
    "ghi chú": "description",
    "ghi chu": "description",
}
_EDIT_FIELD_RE = re.compile(
    r"(?:^|\s)("
    + "|".join(re.escape(k) for k in sorted(EDIT_FIELD_ALIASES, key=len, reverse=True))
    + r")\s*:",
    re.IGNORECASE,
)
_BARE_HOUR_RE = re.compile(r"(\d{1,2})h?")


def _parse_edit_time(value: str) -> time:
    parsed = parse_time_expression(value)
    if parsed is not None:
        return parsed
    bare = _BARE_HOUR_RE.fullmatch(value.strip())
    if bare and int(bare.group(1)) < 24:
        return time(int(bare.group(1)), 0)
    raise ValidationError(f"Giờ không hợp lệ: {value}", field="due_time")


def parse_edit_command(args: str, today: date | None = None) -> tuple[list[str], EditInfo]:
    """
    Parse the arguments of an edit command.

    Two forms are accepted: "<refs> field:value field:value" and
    "<refs> new content". The first whitespace-separated token holds the
    references and goes through parse_batch_references.

    Returns:
        (references, EditInfo)

    Raises:
        ValidationError: If references or changes are missing or a value is invalid
    """
    text = args.strip()
    if not text:
        raise ValidationError("Thiếu thông tin cần chỉnh sửa")

    refs_part, _, rest = text.partition(" ")
    references = parse_batch_references(refs_part)
    rest = rest.strip()
    if not rest:
        raise ValidationError("Thiếu thông tin cần chỉnh sửa")

    matches = list(_EDIT_FIELD_RE.finditer(rest))
    if not matches:
        return references, EditInfo(content=rest)

    values: dict[str, Any] = {}
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(rest)
        value = rest[match.end() : end].strip()
        if not value:
            continue
        field_name = EDIT_FIELD_ALIASES[match.group(1).lower()]
        if field_name == "due_date":
            parsed_date = parse_date_expression(value, today or date.today())
            if parsed_date is None:
                raise ValidationError(f"Ngày không hợp lệ: {value}", field="due_date")
            values[field_name] = parsed_date
        elif field_name in ("due_time", "end_time"):
            values[field_name] = _parse_edit_time(value)
        else:
            values[field_name] = value

    edit = EditInfo(**values)
    if edit.is_empty():
        raise ValidationError("Không tìm thấy thông tin hợp lệ để chỉnh sửa")
    return references, edit


def task_to_info(task: Task) -> TaskInfo:
    return TaskInfo(
        title=task.content,
        description=task.description,
        due_date=task.due_date,
        due_time=task.due_time,
        end_time=task.end_time,
        location=task.location,
        attendees=list(task.attendees),
        task_type=task.task_type,
        calendar_id=task.calendar_id,
        task_list_id=task.task_list_id,
    )


class TaskOperations:
    """
    Resolves user references and mutates stored tasks.

    Positions always refer to the unfinished snapshot in (due_date, due_time)
    order, which is what the user sees in the task list. Batch operations
    resolve every reference before the first mutation so deletions cannot
    shift later positions.
    """

    def __init__(
        self,
        store: TaskStore,
        resolver: TaskReferenceResolver | None = None,
        default_duration: int = DEFAULT_EVENT_DURATION_MINUTES,
        buffer_minutes: int = CONFLICT_BUFFER_MINUTES,
    ) -> None:
        self._store = store
        self._resolver = resolver or TaskReferenceResolver()
        self.default_duration = default_duration
        self.buffer_minutes = buffer_minutes

    async def unfinished_snapshot(self) -> list[Task]:
        return await self._store.query_tasks(done=False, order_by=UNFINISHED_ORDER)

    async def all_snapshot(self) -> list[Task]:
        return await self._store.query_tasks(order_by=ALL_ORDER)

    async def find_task(self, reference: str) -> TaskMatch:
        """
        Resolve one reference against the current snapshots.

        Raises:
            NotFoundError: If nothing matches
        """
        snapshot = await self.unfinished_snapshot()
        match = self._resolver.resolve(reference, snapshot, await self.all_snapshot())
        if match is None:
            raise NotFoundError(reference)
        return match

    async def check_conflicts(
        self, task_info: TaskInfo, exclude_id: int | None = None
    ) -> ConflictResult:
        """Check a task against unfinished timed tasks on the same date."""
        if not should_check_conflicts(task_info):
            return ConflictResult(has_conflict=False)

        same_day = await self._store.query_tasks(
            done=False, due_date=task_info.due_date, order_by=("due_time",)
        )
        entries = [
            ScheduleEntry.from_task(task)
            for task in same_day
            if task.due_time is not None and task.id != exclude_id
        ]
        return detect_conflicts(
            task_info.due_date,
            task_info.effective_start,
            task_info.end_time,
            entries,
            default_duration=self.default_duration,
            buffer_minutes=self.buffer_minutes,
        )

    async def create_task(
        self,
        task_info: TaskInfo,
        force: bool = False,
        external_id: str | None = None,
    ) -> Task:
        """
        Store a new task after an advisory conflict check.

        Args:
            task_info: Complete task to store
            force: Skip the conflict check ("proceed anyway")
            external_id: Calendar event or task-list id, if already synced

        Returns:
            Stored task

        Raises:
            ValidationError: If the task has no title
            ConflictError: If the schedule collides and force is False
        """
        if not task_info.title.strip():
            raise ValidationError("Thiếu nội dung task", field="title")

        if not force:
            result = await self.check_conflicts(task_info)
            if result.has_conflict:
                raise ConflictError(result)
        elif should_check_conflicts(task_info):
            logger.info(f"Creating '{task_info.title}' without conflict check (forced)")

        task = await self._store.insert_task(task_info, external_id=external_id)
        logger.info(f"✅ Created {task.task_type.value} {task.id}: {task.content}")
        return task

    async def attach_external_id(self, task_id: int, external_id: str) -> Task:
        """Link a stored task to the calendar event or task-list entry it was synced to."""
        return await self._store.update_task_fields(task_id, {"external_id": external_id})

    async def complete_task(self, reference: str) -> Task:
        match = await self.find_task(reference)
        return await self._complete(match.task)

    async def delete_task(self, reference: str) -> Task:
        match = await self.find_task(reference)
        if match.ambiguous:
            logger.warning(
                f"Deleting first of {len(match.candidates)} candidates for '{reference}'"
            )
        await self._delete(match.task)
        return match.task

    async def edit_task(self, reference: str, edit: EditInfo, force: bool = False) -> Task:
        """
        Apply an edit to one task.

        Raises:
            ValidationError: If the edit is empty
            NotFoundError: If the reference matches nothing
            ConflictError: If the new schedule collides and force is False
        """
        if edit.is_empty():
            raise ValidationError("Thiếu thông tin cần chỉnh sửa")
        match = await self.find_task(reference)
        return await self._edit(match.task, edit, force)

    async def batch_complete(self, references: list[str]) -> BatchResult:
        return await self._batch(references, self._complete, refuse_ambiguous=False)

    async def batch_delete(self, references: list[str]) -> BatchResult:
        async def delete(task: Task) -> Task:
            await self._delete(task)
            return task

        return await self._batch(references, delete, refuse_ambiguous=True)

    async def batch_edit(
        self, references: list[str], edit: EditInfo, force: bool = False
    ) -> BatchResult:
        if edit.is_empty():
            raise ValidationError("Thiếu thông tin cần chỉnh sửa")

        async def apply(task: Task) -> Task:
            return await self._edit(task, edit, force)

        return await self._batch(references, apply, refuse_ambiguous=True)

    async def statistics(self) -> dict[str, int]:
        tasks = await self._store.query_tasks()
        done = sum(1 for task in tasks if task.done)
        return {"total": len(tasks), "done": done, "undone": len(tasks) - done}

    async def _batch(self, references, operation, refuse_ambiguous: bool) -> BatchResult:
        result = BatchResult()
        resolved: list[tuple[str, Task]] = []
        snapshot = await self.unfinished_snapshot()
        pool = await self.all_snapshot()
        seen: set[int] = set()

        # Resolve everything first: positions must refer to the list the user saw
        for reference in references:
            match = self._resolver.resolve(reference, snapshot, pool)
            if match is None:
                result.add(
                    BatchItemResult(reference, False, error=str(NotFoundError(reference)))
                )
            elif match.ambiguous and refuse_ambiguous:
                error = AmbiguousMatchError(reference, match.candidates)
                result.add(BatchItemResult(reference, False, error=str(error)))
            elif match.task.id in seen:
                result.add(
                    BatchItemResult(
                        reference, False, match.task, error="Trùng với tham chiếu trước đó"
                    )
                )
            else:
                seen.add(match.task.id)
                resolved.append((reference, match.task))

        for reference, task in resolved:
            try:
                updated = await operation(task)
            except ConflictError as e:
                error = f"Xung đột lịch với {len(e.conflict.conflicts)} mục"
                result.add(BatchItemResult(reference, False, task, error=error))
            except TaskAssistantError as e:
                result.add(BatchItemResult(reference, False, task, error=str(e)))
            else:
                result.add(BatchItemResult(reference, True, updated))

        logger.info(
            f"Batch over {references}: {result.success_count} ok, "
            f"{result.failed_count} failed"
        )
        return result

    async def _complete(self, task: Task) -> Task:
        updated = await self._store.update_task_fields(
            task.id, {"done": True, "completed_at": datetime.now()}
        )
        logger.info(f"Completed task {task.id}: {task.content}")
        return updated

    async def _delete(self, task: Task) -> None:
        snapshot = dataclasses.asdict(task)
        await self._store.insert_deleted_record(
            DeletedTask(
                original_id=task.id,
                content=task.content,
                deleted_at=datetime.now(),
                due_date=task.due_date,
                due_time=task.due_time,
                snapshot=snapshot,
            )
        )
        await self._store.delete_task(task.id)
        logger.info(f"Deleted task {task.id}: {task.content}")

    async def _edit(self, task: Task, edit: EditInfo, force: bool) -> Task:
        if edit.touches_schedule and not force:
            candidate = task_to_info(task)
            candidate.apply_fields(
                {
                    "due_date": edit.due_date,
                    "due_time": edit.due_time,
                    "end_time": edit.end_time,
                },
                overwrite=True,
            )
            result = await self.check_conflicts(candidate, exclude_id=task.id)
            if result.has_conflict:
                raise ConflictError(result)

        changes = edit.changes()
        if edit.touches_schedule:
            # A moved deadline gets a fresh near-due notice
            changes["near_due_notified"] = False
        updated = await self._store.update_task_fields(task.id, changes)
        logger.info(f"Edited task {task.id}: {list(edit.changes())}")
        return updated
