"""MCP Server exposing the task assistant using FastMCP."""

import asyncio
import logging
from datetime import date
from typing import Any

from fastmcp import FastMCP

from .assistant import TaskAssistant
from .config import (
    DEFAULT_MCP_HOST,
    DEFAULT_MCP_PORT,
    DEFAULT_MCP_SERVER_NAME,
    AssistantSettings,
)
from .database import TaskDatabase
from .exceptions import ValidationError
from .intent_classifier import IntentClassifier
from .local_services import LocalCalendarService
from .models import BatchResult, Task, TaskInfo, TaskType
from .ollama_nlu import OllamaNLU
from .patterns import parse_time_expression
from .reminders import InMemoryReminderScheduler
from .task_operations import parse_edit_command
from .task_resolver import parse_batch_references

logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(DEFAULT_MCP_SERVER_NAME)

# Global assistant (initialized in cli_entry())
_assistant: TaskAssistant | None = None

TOOL_NAMES = [
    "send_message",
    "list_tasks",
    "complete_tasks",
    "delete_tasks",
    "edit_tasks",
    "get_task_statistics",
    "check_conflicts",
]


def get_assistant() -> TaskAssistant:
    """Get the global assistant instance."""
    if _assistant is None:
        raise RuntimeError("Assistant not initialized")
    return _assistant


def set_assistant(assistant: TaskAssistant | None) -> None:
    """Set the global assistant instance (for testing)."""
    global _assistant
    _assistant = assistant


def _task_to_dict(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "content": task.content,
        "task_type": task.task_type.value,
        "done": task.done,
        "created_at": task.created_at.isoformat(),
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "due_time": task.due_time.strftime("%H:%M") if task.due_time else None,
        "end_time": task.end_time.strftime("%H:%M") if task.end_time else None,
        "location": task.location,
        "attendees": task.attendees,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
    }


def _batch_to_dict(result: BatchResult) -> dict[str, Any]:
    return {
        "success": result.failed_count == 0,
        "success_count": result.success_count,
        "failed_count": result.failed_count,
        "details": [
            {
                "reference": item.reference,
                "success": item.success,
                "task_id": item.task.id if item.task else None,
                "error": item.error,
            }
            for item in result.details
        ],
    }


async def _send_message_impl(user_id: str, text: str) -> dict[str, Any]:
    """Implementation of send_message tool."""
    try:
        reply = await get_assistant().handle_message(user_id, text)
        return {"success": True, "reply": reply}
    except Exception as e:
        logger.error(f"Error handling message: {e}")
        return {"success": False, "error": str(e)}


async def _list_tasks_impl(include_done: bool = False) -> dict[str, Any]:
    """
    List tasks in the order positions refer to.

    Args:
        include_done: Also list completed tasks (after the unfinished ones).
            They carry no position since references only count unfinished tasks.
    """
    try:
        operations = get_assistant().operations
        if include_done:
            tasks = await operations.all_snapshot()
        else:
            tasks = await operations.unfinished_snapshot()
        unfinished = [task for task in tasks if not task.done]
        listed = [
            {"position": i, **_task_to_dict(task)} for i, task in enumerate(unfinished, start=1)
        ]
        listed.extend(
            {"position": None, **_task_to_dict(task)} for task in tasks if task.done
        )
        return {"tasks": listed}
    except Exception as e:
        logger.error(f"Error listing tasks: {e}")
        return {"success": False, "error": str(e)}


async def _complete_tasks_impl(references: str) -> dict[str, Any]:
    """Implementation of complete_tasks tool."""
    try:
        refs = parse_batch_references(references)
        result = await get_assistant().operations.batch_complete(refs)
        return _batch_to_dict(result)
    except Exception as e:
        logger.error(f"Error completing tasks: {e}")
        return {"success": False, "error": str(e)}


async def _delete_tasks_impl(references: str) -> dict[str, Any]:
    """Implementation of delete_tasks tool."""
    try:
        refs = parse_batch_references(references)
        result = await get_assistant().operations.batch_delete(refs)
        return _batch_to_dict(result)
    except Exception as e:
        logger.error(f"Error deleting tasks: {e}")
        return {"success": False, "error": str(e)}


async def _edit_tasks_impl(command: str, force: bool = False) -> dict[str, Any]:
    """
    Edit tasks with the same syntax as the /edit chat command.

    Args:
        command: "<references> <field>:<value> ..." or "<references> <new content>"
        force: Apply schedule changes even when they conflict
    """
    try:
        refs, edit = parse_edit_command(command)
        result = await get_assistant().operations.batch_edit(refs, edit, force=force)
        return _batch_to_dict(result)
    except ValidationError as e:
        logger.warning(f"Invalid edit command: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error editing tasks: {e}")
        return {"success": False, "error": str(e)}


async def _get_task_statistics_impl() -> dict[str, Any]:
    """Implementation of get_task_statistics tool."""
    try:
        return await get_assistant().operations.statistics()
    except Exception as e:
        logger.error(f"Error getting task statistics: {e}")
        return {"success": False, "error": str(e)}


async def _check_conflicts_impl(
    due_date: str, start_time: str, end_time: str | None = None
) -> dict[str, Any]:
    """Implementation of check_conflicts tool."""
    try:
        parsed_date = date.fromisoformat(due_date)
    except ValueError:
        return {"success": False, "error": f"Invalid date format: {due_date}"}

    start = parse_time_expression(start_time)
    if start is None:
        return {"success": False, "error": f"Invalid time format: {start_time}"}
    end = parse_time_expression(end_time) if end_time else None

    try:
        candidate = TaskInfo(
            title="candidate",
            due_date=parsed_date,
            due_time=start,
            end_time=end,
            task_type=TaskType.CALENDAR,
        )
        result = await get_assistant().operations.check_conflicts(candidate)
        return {
            "success": True,
            "has_conflict": result.has_conflict,
            "conflicts": [
                {
                    "task_id": conflict.entry.task_id,
                    "content": conflict.entry.label,
                    "start": conflict.entry.start.strftime("%H:%M"),
                    "kind": conflict.kind.value,
                    "overlap_minutes": conflict.overlap_minutes,
                    "gap_minutes": conflict.gap_minutes,
                }
                for conflict in result.conflicts
            ],
            "suggested_times": [t.strftime("%H:%M") for t in result.suggested_times],
        }
    except Exception as e:
        logger.error(f"Error checking conflicts: {e}")
        return {"success": False, "error": str(e)}


# FastMCP decorated wrappers (for actual MCP server)
@mcp.tool()
async def send_message(user_id: str, text: str) -> dict[str, Any]:
    """
    Send a chat message to the assistant, exactly as a chat user would.

    Args:
        user_id: Sender id
        text: Message text (commands such as /list are accepted)

    Returns:
        Dictionary with the assistant's reply
    """
    return await _send_message_impl(user_id=user_id, text=text)


@mcp.tool()
async def list_tasks(include_done: bool = False) -> dict[str, Any]:
    """
    List tasks with the positions used by references.

    Args:
        include_done: Also list completed tasks

    Returns:
        Dictionary with tasks list
    """
    return await _list_tasks_impl(include_done=include_done)


@mcp.tool()
async def complete_tasks(references: str) -> dict[str, Any]:
    """
    Mark tasks done.

    Args:
        references: Positions, ids or keywords ("1", "1,3,5", "2-4", "ID:17")

    Returns:
        Dictionary with per-reference results
    """
    return await _complete_tasks_impl(references=references)


@mcp.tool()
async def delete_tasks(references: str) -> dict[str, Any]:
    """
    Delete tasks.

    Args:
        references: Positions, ids or keywords ("1", "1,3,5", "2-4", "ID:17")

    Returns:
        Dictionary with per-reference results
    """
    return await _delete_tasks_impl(references=references)


@mcp.tool()
async def edit_tasks(command: str, force: bool = False) -> dict[str, Any]:
    """
    Edit tasks.

    Args:
        command: "<references> <field>:<value>", e.g. "1,2 giờ:15:30"
        force: Apply schedule changes even when they conflict

    Returns:
        Dictionary with per-reference results
    """
    return await _edit_tasks_impl(command=command, force=force)


@mcp.tool()
async def get_task_statistics() -> dict[str, Any]:
    """
    Get task statistics.

    Returns:
        Dictionary with total, done and undone counts
    """
    return await _get_task_statistics_impl()


@mcp.tool()
async def check_conflicts(
    due_date: str, start_time: str, end_time: str | None = None
) -> dict[str, Any]:
    """
    Check a time slot against scheduled tasks.

    Args:
        due_date: Date in ISO format
        start_time: Start time ("15:30", "3h chiều")
        end_time: Optional end time

    Returns:
        Dictionary with conflicts and suggested alternative starts
    """
    return await _check_conflicts_impl(
        due_date=due_date, start_time=start_time, end_time=end_time
    )


# Compatibility wrapper for tests
class MCPServer:
    """
    Compatibility wrapper for testing.

    The actual MCP server uses FastMCP with function decorators.
    This class provides a compatible interface for tests.
    """

    def __init__(
        self,
        assistant: TaskAssistant,
        server_name: str = DEFAULT_MCP_SERVER_NAME,
        host: str = DEFAULT_MCP_HOST,
        port: int = DEFAULT_MCP_PORT,
    ) -> None:
        """Initialize MCP Server wrapper."""
        self._assistant = assistant
        self._server_name = server_name
        self._host = host
        self._port = port
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the server."""
        set_assistant(self._assistant)
        self._initialized = True

    async def shutdown(self) -> None:
        """Shutdown the server."""
        set_assistant(None)
        self._initialized = False

    def get_available_tools(self) -> list[str]:
        """Get list of available tools."""
        return list(TOOL_NAMES)

    async def handle_send_message(self, params: dict[str, Any]) -> dict[str, Any]:
        if "text" not in params:
            return {"success": False, "error": "Missing required field: text"}
        user_id = params.get("user_id", self._assistant.owner_id)
        return await _send_message_impl(user_id=user_id, text=params["text"])

    async def handle_list_tasks(self, params: dict[str, Any]) -> dict[str, Any]:
        return await _list_tasks_impl(include_done=bool(params.get("include_done")))

    async def handle_complete_tasks(self, params: dict[str, Any]) -> dict[str, Any]:
        if "references" not in params:
            return {"success": False, "error": "Missing required field: references"}
        return await _complete_tasks_impl(references=params["references"])

    async def handle_delete_tasks(self, params: dict[str, Any]) -> dict[str, Any]:
        if "references" not in params:
            return {"success": False, "error": "Missing required field: references"}
        return await _delete_tasks_impl(references=params["references"])

    async def handle_edit_tasks(self, params: dict[str, Any]) -> dict[str, Any]:
        if "command" not in params:
            return {"success": False, "error": "Missing required field: command"}
        return await _edit_tasks_impl(
            command=params["command"], force=bool(params.get("force"))
        )

    async def handle_get_task_statistics(self, params: dict[str, Any]) -> dict[str, Any]:
        return await _get_task_statistics_impl()

    async def handle_check_conflicts(self, params: dict[str, Any]) -> dict[str, Any]:
        for required in ("due_date", "start_time"):
            if required not in params:
                return {"success": False, "error": f"Missing required field: {required}"}
        return await _check_conflicts_impl(
            due_date=params["due_date"],
            start_time=params["start_time"],
            end_time=params.get("end_time"),
        )


async def build_assistant(settings: AssistantSettings) -> TaskAssistant:
    """Create the database-backed assistant described by settings."""
    database = TaskDatabase(settings.database_path)
    await database.initialize()

    remote = None
    if settings.remote_enabled:
        remote = OllamaNLU(
            model=settings.ollama_model,
            base_url=settings.ollama_base_url,
            timeout=settings.ollama_timeout,
        )
    classifier = IntentClassifier(
        remote=remote, confidence_threshold=settings.confidence_threshold
    )
    return TaskAssistant(
        database,
        classifier=classifier,
        calendar=LocalCalendarService(),
        reminders=InMemoryReminderScheduler(),
        owner_id=settings.owner_id,
        timeout_seconds=settings.session_timeout,
    )


def cli_entry() -> None:
    """CLI entry point for the MCP server."""
    import sys

    # Check for transport argument
    transport_type = "stdio"
    if len(sys.argv) > 1 and sys.argv[1] in ("stdio", "sse", "http"):
        transport_type = "sse" if sys.argv[1] == "http" else sys.argv[1]
    run_server(AssistantSettings.from_env(), transport_type)


def run_server(settings: AssistantSettings, transport: str = "stdio") -> None:
    """Initialize the assistant, then hand the process over to FastMCP."""

    async def setup() -> None:
        set_assistant(await build_assistant(settings))
        logger.info(
            f"MCP Server initialized with {len(TOOL_NAMES)} tools (transport={transport})"
        )
        if transport == "sse":
            logger.info(
                f"Server will listen on http://{DEFAULT_MCP_HOST}:{DEFAULT_MCP_PORT}"
            )

    asyncio.run(setup())

    # FastMCP's run() manages its own event loop
    if transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(transport="sse", host=DEFAULT_MCP_HOST, port=DEFAULT_MCP_PORT)


if __name__ == "__main__":
    cli_entry()
