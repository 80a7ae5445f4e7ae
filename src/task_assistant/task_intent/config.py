"""Configuration constants for the task intent engine."""

import os
from dataclasses import dataclass
from datetime import time

# Intent Classification
DEFAULT_CONFIDENCE_THRESHOLD = 0.6
PATTERN_ACCEPT_CONFIDENCE = 0.7
PREFILTER_SHORT_CIRCUIT_CONFIDENCE = 0.8
NO_PATTERN_CONFIDENCE = 0.3

# Parse Cache
CACHE_MAX_SIZE = 1000
CACHE_TTL_SECONDS = 24 * 60 * 60
CACHE_MIN_CONFIDENCE = 0.7
CACHE_EVICTION_RATIO = 0.2

# Conversation
SESSION_TIMEOUT_SECONDS = 5 * 60
SELECTION_TIMEOUT_SECONDS = 5 * 60

# Task references
MAX_BATCH_RANGE = 50

# Conflict Detection
DEFAULT_EVENT_DURATION_MINUTES = 60
CONFLICT_BUFFER_MINUTES = 60
WORK_DAY_START = time(8, 0)
WORK_DAY_END = time(18, 0)
FALLBACK_SUGGESTIONS = (time(7, 0), time(19, 0))
MAX_SUGGESTIONS = 3

# Target Selection
AUTO_SELECT_CONFIDENCE = 0.6
LEARNED_PATTERN_MIN_OCCURRENCES = 3
LEARNED_PATTERN_MAX_CONFIDENCE = 0.95
FUZZY_PATTERN_CONFIDENCE = 0.65
UNAVAILABLE_TARGET_PENALTY = 0.8
DEFAULT_PROMOTION_MIN_COUNT = 5
DEFAULT_PROMOTION_RATIO = 0.3
MAX_PATTERNS_PER_USER = 200

# Reminders
EVENT_REMINDER_LEAD_MINUTES = 60
TASK_REMINDER_TIME = time(9, 0)
CHECKLIST_TIME = time(7, 0)
NEAR_DUE_LEAD_MINUTES = 15

# LLM Configuration
DEFAULT_OLLAMA_MODEL = "llama3.2:3b"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_OLLAMA_TIMEOUT = 10.0  # seconds
DEFAULT_OLLAMA_MAX_RETRIES = 3
DEFAULT_OLLAMA_TEMPERATURE = 0.1
DEFAULT_REMOTE_TIMEOUT = 20.0  # hard cap around a whole remote NLU call

# LLM Prompt Templates
# Placeholders: {text}, {today}, {day_name}, {tomorrow}
DEFAULT_EXTRACTION_PROMPT = """Bạn là trợ lý quản lý công việc. Phân tích tin nhắn tiếng Việt sau.
Respond ONLY in TOML format. Omit any key whose value is unknown.

Rules:
- Today is {today} ({day_name}); "ngày mai" = {tomorrow}
- task_type: "meeting" for họp/meeting with people, "calendar" for events at a
  specific time, otherwise "task"
- Dates as "YYYY-MM-DD", times as "HH:MM" (24h)
- Confidence: ~0.9 for clear tasks, ~0.5 for unclear, ~0.1 for chit-chat

TOML format:
is_task = true/false
confidence = 0.0-1.0
title = "short title"
task_type = "task/calendar/meeting"
due_date = "YYYY-MM-DD"
due_time = "HH:MM"
end_time = "HH:MM"
location = "text"
attendees = ["name or email"]
description = "text"
reasoning = "one sentence"

Message:
"{text}"
"""

# Placeholders: {text}, {expected_field}, {context}, {today}, {day_name}, {tomorrow}
DEFAULT_FIELD_PROMPT = """The user is answering a question about the field "{expected_field}"
of a task ({context}). Today is {today} ({day_name}); "ngày mai" = {tomorrow}.
Respond ONLY in TOML format. Omit any key whose value is unknown.

TOML format:
intent = "date/time/confirm/cancel/skip/content/attendees/unclear"
confidence = 0.0-1.0
value = "YYYY-MM-DD for date, HH:MM for time, text for content"
attendees = ["name or email"]
reasoning = "one sentence"

Reply:
"{text}"
"""

# Storage Configuration
DEFAULT_DATABASE_PATH = os.path.expanduser("~/.task-assistant/tasks.db")
DEFAULT_WAL_MODE = True

# Database Schema Version
SCHEMA_VERSION = 1

# MCP Server Configuration
DEFAULT_MCP_HOST = "localhost"
DEFAULT_MCP_PORT = 3000
DEFAULT_MCP_SERVER_NAME = "task-assistant"

DEFAULT_OWNER_ID = "boss"


@dataclass
class AssistantSettings:
    """Runtime settings, overridable through TASK_ASSISTANT_* variables."""

    database_path: str = DEFAULT_DATABASE_PATH
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    ollama_base_url: str = DEFAULT_OLLAMA_BASE_URL
    ollama_timeout: float = DEFAULT_OLLAMA_TIMEOUT
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    session_timeout: float = SESSION_TIMEOUT_SECONDS
    owner_id: str = DEFAULT_OWNER_ID
    remote_enabled: bool = True

    @classmethod
    def from_env(cls) -> "AssistantSettings":
        """Build settings from the environment, falling back to defaults."""
        return cls(
            database_path=os.path.expanduser(
                os.getenv("TASK_ASSISTANT_DB_PATH", DEFAULT_DATABASE_PATH)
            ),
            ollama_model=os.getenv("TASK_ASSISTANT_OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL),
            ollama_base_url=os.getenv(
                "TASK_ASSISTANT_OLLAMA_URL", DEFAULT_OLLAMA_BASE_URL
            ),
            ollama_timeout=float(
                os.getenv("TASK_ASSISTANT_OLLAMA_TIMEOUT", DEFAULT_OLLAMA_TIMEOUT)
            ),
            confidence_threshold=float(
                os.getenv(
                    "TASK_ASSISTANT_CONFIDENCE_THRESHOLD", DEFAULT_CONFIDENCE_THRESHOLD
                )
            ),
            session_timeout=float(
                os.getenv("TASK_ASSISTANT_SESSION_TIMEOUT", SESSION_TIMEOUT_SECONDS)
            ),
            owner_id=os.getenv("TASK_ASSISTANT_OWNER_ID", DEFAULT_OWNER_ID),
            remote_enabled=os.getenv("TASK_ASSISTANT_REMOTE_NLU", "1").lower()
            not in ("0", "false", "no", "off"),
        )
