"""Custom exceptions for the task intent engine."""

from typing import Any


class TaskAssistantError(Exception):
    """Base exception for task assistant errors."""

    pass


class ValidationError(TaskAssistantError):
    """Exception raised when a required field is missing or invalid."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(TaskAssistantError):
    """Exception raised when a task reference matches nothing."""

    def __init__(self, reference: str, candidates: list[Any] | None = None) -> None:
        super().__init__(f"Không tìm thấy task phù hợp: {reference}")
        self.reference = reference
        self.candidates = candidates or []


class AmbiguousMatchError(TaskAssistantError):
    """Exception raised when a reference fuzzily matches several tasks."""

    def __init__(self, reference: str, candidates: list[Any]) -> None:
        super().__init__(
            f"Tham chiếu '{reference}' khớp với {len(candidates)} task, vui lòng chọn rõ hơn"
        )
        self.reference = reference
        self.candidates = candidates


class ConflictError(TaskAssistantError):
    """Exception raised when a schedule collides with existing tasks."""

    def __init__(self, conflict: Any) -> None:
        super().__init__("Schedule conflict detected")
        self.conflict = conflict


class ExternalServiceError(TaskAssistantError):
    """Exception raised when a remote collaborator call fails."""

    pass


class RemoteTimeoutError(ExternalServiceError):
    """Exception raised when a remote collaborator call times out."""

    pass


class DatabaseError(TaskAssistantError):
    """Exception raised for database related errors."""

    pass


class SchemaError(DatabaseError):
    """Exception raised for database schema errors."""

    pass
