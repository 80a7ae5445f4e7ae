"""Logging utilities with custom trace level."""

import logging
from typing import Any

# Define custom TRACE level (lower than DEBUG)
TRACE_LEVEL = 5

VERBOSE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Third-party loggers that are noisy below WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def add_trace_level() -> None:
    """Add a custom TRACE logging level."""
    logging.addLevelName(TRACE_LEVEL, "TRACE")

    def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
        """Log a message with severity 'TRACE'."""
        if self.isEnabledFor(TRACE_LEVEL):
            self._log(TRACE_LEVEL, message, args, **kwargs)

    logging.Logger.trace = trace  # type: ignore[attr-defined]


def configure_logging(verbose: bool = False, trace: bool = False) -> int:
    """
    Configure root logging for the CLI.

    Args:
        verbose: DEBUG level with logger names
        trace: TRACE level, also lets third-party INFO logs through

    Returns:
        The level that was configured
    """
    add_trace_level()

    if trace:
        level = TRACE_LEVEL
        logging.basicConfig(level=level, format=VERBOSE_FORMAT)
        third_party_level = logging.INFO
    elif verbose:
        level = logging.DEBUG
        logging.basicConfig(level=level, format=VERBOSE_FORMAT)
        third_party_level = logging.WARNING
    else:
        level = logging.INFO
        logging.basicConfig(level=level, format=DEFAULT_FORMAT)
        third_party_level = logging.WARNING

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
    return level
