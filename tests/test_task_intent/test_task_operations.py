"""Tests for task operations by user reference."""

from collections.abc import AsyncGenerator
from datetime import date, time

import pytest

from task_assistant.task_intent.database import TaskDatabase
from task_assistant.task_intent.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from task_assistant.task_intent.models import EditInfo, TaskInfo, TaskType
from task_assistant.task_intent.task_operations import TaskOperations, parse_edit_command

TODAY = date(2025, 5, 21)
DAY = date(2025, 5, 22)


@pytest.fixture
async def database() -> AsyncGenerator[TaskDatabase]:
    """Create in-memory database for testing."""
    db = TaskDatabase(":memory:", wal_mode=False)
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def operations(database: TaskDatabase) -> TaskOperations:
    return TaskOperations(database)


async def add_tasks(operations: TaskOperations, *titles: str) -> None:
    for i, title in enumerate(titles):
        await operations.create_task(TaskInfo(title=title, due_date=date(2025, 6, 1 + i)))


@pytest.mark.unit
class TestParseEditCommand:
    """Test cases for parse_edit_command."""

    def test_field_value_pairs(self) -> None:
        """Test the field:value form."""
        refs, edit = parse_edit_command("1 giờ:15:30 địa điểm:phòng B", TODAY)

        assert refs == ["1"]
        assert edit.due_time == time(15, 30)
        assert edit.location == "phòng B"
        assert edit.content is None

    def test_new_content(self) -> None:
        """Test the plain text form."""
        refs, edit = parse_edit_command("2 Họp mới", TODAY)

        assert refs == ["2"]
        assert edit == EditInfo(content="Họp mới")

    def test_batch_references_and_date(self) -> None:
        """Test a range with a relative date."""
        refs, edit = parse_edit_command("1-3 ngày:ngày mai", TODAY)

        assert refs == ["1", "2", "3"]
        assert edit.due_date == date(2025, 5, 22)

    def test_bare_hour(self) -> None:
        """Test that a bare hour is accepted as a time."""
        _, edit = parse_edit_command("1 time:9", TODAY)

        assert edit.due_time == time(9, 0)

    @pytest.mark.parametrize("args", ["", "1", "1 giờ:abc", "1 ngày:xyz"])
    def test_invalid(self, args: str) -> None:
        """Test missing and malformed edits."""
        with pytest.raises(ValidationError):
            parse_edit_command(args, TODAY)


@pytest.mark.unit
class TestTaskOperations:
    """Test cases for single task operations."""

    @pytest.mark.asyncio
    async def test_create_requires_title(self, operations: TaskOperations) -> None:
        """Test that empty titles are rejected."""
        with pytest.raises(ValidationError):
            await operations.create_task(TaskInfo(title=" "))

    @pytest.mark.asyncio
    async def test_create_conflict_and_force(self, operations: TaskOperations) -> None:
        """Test the advisory conflict check on creation."""
        await operations.create_task(
            TaskInfo(
                title="Họp A",
                task_type=TaskType.MEETING,
                due_date=DAY,
                due_time=time(9, 0),
                end_time=time(10, 0),
            )
        )
        clash = TaskInfo(
            title="Họp B", task_type=TaskType.MEETING, due_date=DAY, due_time=time(9, 30)
        )

        with pytest.raises(ConflictError) as exc_info:
            await operations.create_task(clash)
        assert exc_info.value.conflict.has_conflict is True

        task = await operations.create_task(clash, force=True)
        assert task.content == "Họp B"

    @pytest.mark.asyncio
    async def test_done_tasks_do_not_conflict(self, operations: TaskOperations) -> None:
        """Test that completed tasks free their slot."""
        await operations.create_task(
            TaskInfo(title="Họp A", task_type=TaskType.MEETING, due_date=DAY, due_time=time(9, 0))
        )
        await operations.complete_task("1")

        result = await operations.check_conflicts(
            TaskInfo(title="Họp B", task_type=TaskType.MEETING, due_date=DAY, due_time=time(9, 0))
        )

        assert result.has_conflict is False

    @pytest.mark.asyncio
    async def test_complete_by_position(self, operations: TaskOperations) -> None:
        """Test that positions follow the unfinished list order."""
        await add_tasks(operations, "A", "B", "C")

        task = await operations.complete_task("2")

        assert task.content == "B"
        assert task.done is True
        assert [t.content for t in await operations.unfinished_snapshot()] == ["A", "C"]

    @pytest.mark.asyncio
    async def test_delete_by_keyword_keeps_snapshot(
        self, operations: TaskOperations, database: TaskDatabase
    ) -> None:
        """Test deletion by keyword and the deleted record."""
        await add_tasks(operations, "Mua sữa", "Gửi báo cáo")

        deleted = await operations.delete_task("báo cáo")

        assert deleted.content == "Gửi báo cáo"
        records = await database.list_deleted()
        assert [r.content for r in records] == ["Gửi báo cáo"]

    @pytest.mark.asyncio
    async def test_not_found(self, operations: TaskOperations) -> None:
        """Test an unknown reference."""
        await add_tasks(operations, "A")

        with pytest.raises(NotFoundError):
            await operations.complete_task("xyz")

    @pytest.mark.asyncio
    async def test_edit(self, operations: TaskOperations) -> None:
        """Test editing content and time."""
        await add_tasks(operations, "A")

        task = await operations.edit_task("1", EditInfo(content="A mới", due_time=time(8, 0)))

        assert task.content == "A mới"
        assert task.due_time == time(8, 0)

    @pytest.mark.asyncio
    async def test_edit_into_conflict(self, operations: TaskOperations) -> None:
        """Test that moving a meeting onto another one is flagged."""
        for title, start in (("Họp A", time(9, 0)), ("Họp B", time(14, 0))):
            await operations.create_task(
                TaskInfo(title=title, task_type=TaskType.MEETING, due_date=DAY, due_time=start)
            )

        with pytest.raises(ConflictError):
            await operations.edit_task("2", EditInfo(due_time=time(9, 30)))

        task = await operations.edit_task("2", EditInfo(due_time=time(9, 30)), force=True)
        assert task.due_time == time(9, 30)

    @pytest.mark.asyncio
    async def test_statistics(self, operations: TaskOperations) -> None:
        """Test total/done/undone counts."""
        await add_tasks(operations, "A", "B")
        await operations.complete_task("1")

        assert await operations.statistics() == {"total": 2, "done": 1, "undone": 1}

    @pytest.mark.asyncio
    async def test_attach_external_id(self, operations: TaskOperations) -> None:
        """Test linking a task to its synced copy."""
        await add_tasks(operations, "A")

        task = await operations.attach_external_id(1, "evt-9")

        assert task.external_id == "evt-9"


@pytest.mark.unit
class TestBatchOperations:
    """Test cases for batch operations."""

    @pytest.mark.asyncio
    async def test_batch_delete_whole_list(self, operations: TaskOperations) -> None:
        """Test deleting every item of a three item list."""
        await add_tasks(operations, "A", "B", "C")

        result = await operations.batch_delete(["1", "2", "3"])

        assert result.success_count == 3
        assert result.failed_count == 0
        assert await operations.unfinished_snapshot() == []

    @pytest.mark.asyncio
    async def test_batch_delete_resolves_before_mutating(
        self, operations: TaskOperations
    ) -> None:
        """Test that positions refer to the list as it was before the batch."""
        await add_tasks(operations, "A", "B", "C", "D", "E")

        result = await operations.batch_delete(["1", "2", "3"])

        assert result.success_count == 3
        assert [t.content for t in await operations.unfinished_snapshot()] == ["D", "E"]

    @pytest.mark.asyncio
    async def test_batch_complete_partial_failure(self, operations: TaskOperations) -> None:
        """Test that one bad reference does not stop the others."""
        await add_tasks(operations, "A", "B")

        result = await operations.batch_complete(["1", "xyz", "2"])

        assert result.success_count == 2
        assert result.failed_count == 1
        failed = [d for d in result.details if not d.success]
        assert failed[0].reference == "xyz"
        assert "xyz" in failed[0].error

    @pytest.mark.asyncio
    async def test_batch_duplicate_reference(self, operations: TaskOperations) -> None:
        """Test that the same task twice counts once."""
        await add_tasks(operations, "A", "B")

        result = await operations.batch_complete(["1", "ID:1"])

        assert result.success_count == 1
        assert result.failed_count == 1

    @pytest.mark.asyncio
    async def test_batch_delete_refuses_ambiguous(self, operations: TaskOperations) -> None:
        """Test that a fuzzy match on several tasks is not deleted."""
        await add_tasks(operations, "Báo cáo tuần", "Báo cáo tháng")

        result = await operations.batch_delete(["cáo quý"])

        assert result.success_count == 0
        assert result.failed_count == 1
        assert len(await operations.unfinished_snapshot()) == 2

    @pytest.mark.asyncio
    async def test_batch_edit(self, operations: TaskOperations) -> None:
        """Test editing a range."""
        await add_tasks(operations, "A", "B", "C")

        result = await operations.batch_edit(["1", "2"], EditInfo(location="Nhà"))

        assert result.success_count == 2
        assert all(d.task.location == "Nhà" for d in result.details)

    @pytest.mark.asyncio
    async def test_batch_edit_requires_changes(self, operations: TaskOperations) -> None:
        """Test that an empty edit is rejected before anything resolves."""
        with pytest.raises(ValidationError):
            await operations.batch_edit(["1"], EditInfo())
