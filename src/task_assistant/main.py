"""Command-line interface for the task assistant."""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from .logging_utils import configure_logging
from .task_intent.assistant import TaskAssistant
from .task_intent.config import AssistantSettings
from .task_intent.database import TaskDatabase
from .task_intent.exceptions import TaskAssistantError
from .task_intent.local_services import ConsoleMessageSender
from .task_intent.mcp_server import build_assistant, run_server
from .task_intent.reminders import DueTaskNotifier, InMemoryReminderScheduler

EXIT_WORDS = ("/quit", "/exit", "quit", "exit")
NOTIFY_INTERVAL_SECONDS = 60


class TaskAssistantCLI:
    """Interactive console chat with the assistant."""

    def __init__(
        self,
        assistant: TaskAssistant,
        user_id: str,
        notifier: DueTaskNotifier | None = None,
    ) -> None:
        """
        Initialize the CLI.

        Args:
            assistant: Fully wired assistant
            user_id: Identity the console user chats as
            notifier: Checklist and near-due notices, ticked in the background
        """
        self._assistant = assistant
        self._user_id = user_id
        self._notifier = notifier
        self._sender = ConsoleMessageSender()
        self._running = False

    async def _read_line(self) -> str:
        return await asyncio.to_thread(input, "👤 ")

    async def _notify_loop(self, notifier: DueTaskNotifier) -> None:
        while self._running:
            try:
                await notifier.tick()
            except TaskAssistantError as e:
                logging.error(f"Notification tick failed: {e}")
            await asyncio.sleep(NOTIFY_INTERVAL_SECONDS)

    async def run(self) -> None:
        """
        Main CLI run loop.

        Handles startup, main loop, and graceful shutdown.
        """
        print("✅ Task assistant ready. Gõ /help để xem hướng dẫn, /quit để thoát.")
        self._running = True
        notify_task = None
        if self._notifier is not None:
            notify_task = asyncio.create_task(self._notify_loop(self._notifier))
        try:
            while self._running:
                try:
                    line = await self._read_line()
                except EOFError:
                    break

                if line.strip().lower() in EXIT_WORDS:
                    break
                if not line.strip():
                    continue

                reply = await self._assistant.handle_message(self._user_id, line)
                await self._sender.send_message(self._user_id, reply)

        except (KeyboardInterrupt, asyncio.CancelledError):
            pass
        finally:
            self._running = False
            if notify_task is not None:
                notify_task.cancel()
            print("\n👋 Goodbye!")


async def main(settings: AssistantSettings, user_id: str) -> None:
    """Main entry point for the console chat."""
    assistant = await build_assistant(settings)
    reminders = assistant.reminders
    notifier = DueTaskNotifier(
        assistant.store,
        ConsoleMessageSender(),
        user_id,
        reminders=reminders if isinstance(reminders, InMemoryReminderScheduler) else None,
    )
    cli = TaskAssistantCLI(assistant, user_id, notifier)
    try:
        await cli.run()
    finally:
        if isinstance(assistant.store, TaskDatabase):
            await assistant.store.close()


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Task Assistant CLI - Manage tasks and calendar events by chatting",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  task-assistant                               # Interactive chat with defaults
  task-assistant --verbose                     # Enable verbose logging
  task-assistant --trace                       # Enable trace logging
  task-assistant --db-path /tmp/tasks.db       # Use another database file
  task-assistant --user alice                  # Chat as another user
  task-assistant --no-remote                   # Local parsing only, no Ollama
  task-assistant --mcp stdio                   # Run the MCP server over stdio
  task-assistant --mcp sse                     # Run the MCP server over HTTP/SSE

Environment:
  TASK_ASSISTANT_DB_PATH, TASK_ASSISTANT_OLLAMA_MODEL, TASK_ASSISTANT_OLLAMA_URL,
  TASK_ASSISTANT_OWNER_ID, TASK_ASSISTANT_REMOTE_NLU and friends override defaults.

Controls:
  /quit or Ctrl+C - Stop and exit gracefully
        """,
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging and debug information",
    )

    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable trace logging (most verbose, includes all debug info)",
    )

    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        metavar="PATH",
        help="SQLite database file (default: ~/.task-assistant/tasks.db)",
    )

    parser.add_argument(
        "--user",
        type=str,
        default=None,
        metavar="ID",
        help="User id for the console chat (default: the configured owner)",
    )

    parser.add_argument(
        "--mcp",
        choices=["stdio", "sse"],
        default=None,
        help="Run the MCP server with the given transport instead of the chat",
    )

    parser.add_argument(
        "--no-remote",
        action="store_true",
        help="Disable the Ollama remote NLU and rely on local parsing",
    )

    return parser


def settings_from_args(args: argparse.Namespace) -> AssistantSettings:
    """Environment settings with command-line overrides applied."""
    settings = AssistantSettings.from_env()
    if args.db_path:
        settings = replace(settings, database_path=args.db_path)
    if args.no_remote:
        settings = replace(settings, remote_enabled=False)
    return settings


def handle_arguments(args: argparse.Namespace) -> tuple[bool, bool]:
    """
    Handle parsed command-line arguments.

    Args:
        args: Parsed arguments from argparse

    Returns:
        Tuple of (success, should_continue):
        - success: True if all operations succeeded, False if any failed
        - should_continue: True if the console chat should start
    """
    configure_logging(verbose=args.verbose, trace=args.trace)

    if args.mcp:
        try:
            run_server(settings_from_args(args), args.mcp)
        except Exception as e:
            print(f"❌ Error running MCP server: {e}")
            return False, False
        return True, False

    return True, True


def cli_entry_with_args() -> None:
    """CLI entry point with argument parsing."""
    parser = create_argument_parser()

    try:
        args = parser.parse_args()

        # Handle arguments and check if we should continue
        success, should_continue = handle_arguments(args)

        if not success:
            sys.exit(1)

        if not should_continue:
            sys.exit(0)

        settings = settings_from_args(args)
        asyncio.run(main(settings, args.user or settings.owner_id))

    except KeyboardInterrupt:
        pass  # Graceful shutdown
    except SystemExit:
        # Re-raise SystemExit (from argparse help, etc.)
        raise
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli_entry_with_args()
