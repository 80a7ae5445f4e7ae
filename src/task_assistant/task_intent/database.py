"""Database layer for chat tasks using SQLite."""

import json
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from typing import Any

import aiosqlite

from .config import SCHEMA_VERSION
from .exceptions import DatabaseError, NotFoundError, SchemaError
from .interfaces import TaskStore
from .models import DeletedTask, Task, TaskInfo, TaskType

logger = logging.getLogger(__name__)

# Columns callers may change through update_task_fields
UPDATABLE_COLUMNS = frozenset(
    {
        "content",
        "due_date",
        "due_time",
        "end_time",
        "task_type",
        "location",
        "description",
        "attendees",
        "done",
        "calendar_id",
        "task_list_id",
        "external_id",
        "near_due_notified",
        "completed_at",
    }
)
ORDERABLE_COLUMNS = frozenset({"id", "done", "due_date", "due_time", "created_at"})


def _to_db(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, TaskType):
        return value.value
    if isinstance(value, list):
        return json.dumps(value, ensure_ascii=False)
    return value


class TaskDatabase(TaskStore):
    """SQLite database for task storage and deletion snapshots."""

    def __init__(self, db_path: str, wal_mode: bool = True) -> None:
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file (use ":memory:" for in-memory)
            wal_mode: Enable WAL mode for concurrent access
        """
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Initialize database schema and connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row

            # WAL is not supported in :memory:
            if self.wal_mode and self.db_path != ":memory:":
                await self._connection.execute("PRAGMA journal_mode=WAL")

        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database schema with tables and indexes."""
        async with self._get_connection() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            current_version = result[0] if result and result[0] is not None else 0

            if current_version > SCHEMA_VERSION:
                raise SchemaError(
                    f"Database schema version {current_version} is newer than "
                    f"supported version {SCHEMA_VERSION}"
                )
            if current_version < SCHEMA_VERSION:
                await self._apply_migrations(conn, current_version)

            await conn.commit()

    async def _apply_migrations(
        self, conn: aiosqlite.Connection, from_version: int
    ) -> None:
        """
        Apply database migrations.

        Args:
            conn: Database connection
            from_version: Current schema version
        """
        if from_version < 1:
            logger.info(f"Creating task schema version {SCHEMA_VERSION} in {self.db_path}")
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    due_date TEXT,
                    due_time TEXT,
                    end_time TEXT,
                    task_type TEXT NOT NULL DEFAULT 'task',
                    location TEXT,
                    description TEXT,
                    attendees TEXT,
                    done INTEGER NOT NULL DEFAULT 0,
                    calendar_id TEXT,
                    task_list_id TEXT,
                    external_id TEXT,
                    near_due_notified INTEGER NOT NULL DEFAULT 0,
                    completed_at TIMESTAMP
                )
                """
            )
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_done ON tasks(done)")
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_due ON tasks(due_date, due_time)"
            )

            # No foreign key: snapshots outlive the rows they describe
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS deleted_tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    original_id INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    due_date TEXT,
                    due_time TEXT,
                    deleted_at TIMESTAMP NOT NULL,
                    snapshot TEXT
                )
                """
            )

            await conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Get database connection context manager.

        Yields:
            Database connection

        Raises:
            DatabaseError: If connection is not initialized
        """
        if self._connection is None:
            raise DatabaseError("Database not initialized")
        yield self._connection

    async def get_schema_version(self) -> int:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            return result[0] if result and result[0] is not None else 0

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def insert_task(self, task_info: TaskInfo, external_id: str | None = None) -> Task:
        """
        Insert a new task built from extracted task info.

        Args:
            task_info: Structured task to persist
            external_id: Id of the calendar event or task-list entry, if any

        Returns:
            The stored Task with its assigned id

        Raises:
            DatabaseError: If insertion fails
        """
        if not task_info.title.strip():
            raise DatabaseError("Cannot store a task without content")
        try:
            async with self._get_connection() as conn:
                cursor = await conn.execute(
                    """
                    INSERT INTO tasks (
                        content, created_at, due_date, due_time, end_time, task_type,
                        location, description, attendees, calendar_id, task_list_id,
                        external_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        task_info.title.strip(),
                        datetime.now().isoformat(),
                        _to_db(task_info.due_date),
                        _to_db(task_info.effective_start),
                        _to_db(task_info.end_time),
                        task_info.task_type.value,
                        task_info.location,
                        task_info.description,
                        _to_db(task_info.attendees) if task_info.attendees else None,
                        task_info.calendar_id,
                        task_info.task_list_id,
                        external_id,
                    ),
                )
                task_id = cursor.lastrowid
                await conn.commit()
        except aiosqlite.Error as e:
            raise DatabaseError(f"Failed to insert task: {e}") from e

        logger.debug(f"Inserted task {task_id}: {task_info.title}")
        return await self.get_task(task_id)

    async def get_task(self, task_id: int) -> Task:
        """
        Get a task by id.

        Raises:
            NotFoundError: If task not found
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
            row = await cursor.fetchone()

            if row is None:
                raise NotFoundError(str(task_id))

            return self._row_to_task(row)

    async def query_tasks(
        self,
        done: bool | None = None,
        due_date: date | None = None,
        order_by: Iterable[str] = ("due_date", "due_time"),
    ) -> list[Task]:
        """
        List tasks with optional filters.

        Args:
            done: Filter by completion flag
            due_date: Only tasks due on this date
            order_by: Columns to sort by, ascending

        Returns:
            List of tasks in the requested order
        """
        query = "SELECT * FROM tasks WHERE 1=1"
        params: list[Any] = []

        if done is not None:
            query += " AND done = ?"
            params.append(int(done))

        if due_date is not None:
            query += " AND due_date = ?"
            params.append(due_date.isoformat())

        columns = list(order_by)
        unknown = [c for c in columns if c not in ORDERABLE_COLUMNS]
        if unknown:
            raise DatabaseError(f"Cannot order tasks by {unknown}")
        # id keeps the order stable between equal keys
        query += " ORDER BY " + ", ".join([*columns, "id"])

        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_task(row) for row in rows]

    async def update_task_fields(self, task_id: int, updates: dict[str, Any]) -> Task:
        """
        Update multiple task fields.

        Args:
            task_id: Task id
            updates: Column names and new values

        Returns:
            The updated task

        Raises:
            NotFoundError: If task not found
            DatabaseError: If a column is not updatable
        """
        await self.get_task(task_id)

        unknown = [name for name in updates if name not in UPDATABLE_COLUMNS]
        if unknown:
            raise DatabaseError(f"Cannot update task columns {unknown}")

        if updates:
            set_clauses = [f"{name} = ?" for name in updates]
            params = [_to_db(value) for value in updates.values()]
            params.append(task_id)

            async with self._get_connection() as conn:
                await conn.execute(
                    f"UPDATE tasks SET {', '.join(set_clauses)} WHERE id = ?", params
                )
                await conn.commit()

        logger.debug(f"Updated task {task_id} fields: {list(updates.keys())}")
        return await self.get_task(task_id)

    async def delete_task(self, task_id: int) -> None:
        """
        Delete a task.

        Raises:
            NotFoundError: If task not found
        """
        await self.get_task(task_id)

        async with self._get_connection() as conn:
            await conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            await conn.commit()

    async def insert_deleted_record(self, snapshot: DeletedTask) -> None:
        try:
            async with self._get_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO deleted_tasks (
                        original_id, content, due_date, due_time, deleted_at, snapshot
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        snapshot.original_id,
                        snapshot.content,
                        _to_db(snapshot.due_date),
                        _to_db(snapshot.due_time),
                        snapshot.deleted_at.isoformat(),
                        json.dumps(snapshot.snapshot, ensure_ascii=False, default=str),
                    ),
                )
                await conn.commit()
        except aiosqlite.Error as e:
            raise DatabaseError(f"Failed to record deleted task: {e}") from e

    async def list_deleted(self) -> list[DeletedTask]:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM deleted_tasks ORDER BY id")
            rows = await cursor.fetchall()
            return [
                DeletedTask(
                    original_id=row["original_id"],
                    content=row["content"],
                    deleted_at=datetime.fromisoformat(row["deleted_at"]),
                    due_date=date.fromisoformat(row["due_date"]) if row["due_date"] else None,
                    due_time=time.fromisoformat(row["due_time"]) if row["due_time"] else None,
                    snapshot=json.loads(row["snapshot"]) if row["snapshot"] else {},
                )
                for row in rows
            ]

    async def get_statistics(self) -> dict[str, int]:
        """
        Get task statistics.

        Returns:
            Dictionary with total, done and undone counts
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(done), 0) FROM tasks"
            )
            total, done = await cursor.fetchone()
            return {"total": total, "done": done, "undone": total - done}

    def _row_to_task(self, row: aiosqlite.Row) -> Task:
        """
        Convert database row to Task object.

        Args:
            row: Database row

        Returns:
            Task object
        """
        return Task(
            id=row["id"],
            content=row["content"],
            created_at=datetime.fromisoformat(row["created_at"]),
            due_date=date.fromisoformat(row["due_date"]) if row["due_date"] else None,
            due_time=time.fromisoformat(row["due_time"]) if row["due_time"] else None,
            end_time=time.fromisoformat(row["end_time"]) if row["end_time"] else None,
            task_type=TaskType(row["task_type"]),
            location=row["location"],
            description=row["description"],
            attendees=json.loads(row["attendees"]) if row["attendees"] else [],
            done=bool(row["done"]),
            calendar_id=row["calendar_id"],
            task_list_id=row["task_list_id"],
            external_id=row["external_id"],
            near_due_notified=bool(row["near_due_notified"]),
            completed_at=(
                datetime.fromisoformat(row["completed_at"])
                if row["completed_at"]
                else None
            ),
        )
