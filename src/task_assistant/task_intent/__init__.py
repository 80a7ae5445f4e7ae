"""Conversational task-intent resolution engine."""

from .assistant import TaskAssistant
from .conflict_detector import detect_conflicts
from .conversation_engine import ConversationEngine
from .intent_classifier import IntentClassifier
from .models import (
    ConflictResult,
    ParseResult,
    SelectionResult,
    Task,
    TaskInfo,
    TaskType,
)
from .target_selector import TargetSelector
from .task_operations import TaskOperations
from .task_resolver import TaskReferenceResolver, parse_batch_references

__all__ = [
    "Task",
    "TaskInfo",
    "TaskType",
    "ParseResult",
    "ConflictResult",
    "SelectionResult",
    "IntentClassifier",
    "ConversationEngine",
    "TaskReferenceResolver",
    "parse_batch_references",
    "TaskOperations",
    "TargetSelector",
    "detect_conflicts",
    "TaskAssistant",
]
