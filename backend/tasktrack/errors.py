"""Exception types for time accounting and reporting."""

from __future__ import annotations


class TaskTrackError(Exception):
    """Base exception for all recoverable TaskTrack errors."""

    status_code: int = 500
    error: str = "Internal server error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidDurationFormat(TaskTrackError):
    """Raised when a work item's time text is outside the accepted grammar."""

    status_code = 400
    error = "Invalid time format"


class InvalidDateRange(TaskTrackError):
    """Raised when a date bound does not parse or the start lies after the end."""

    status_code = 400
    error = "Invalid date range"


class InvalidReportRequest(TaskTrackError):
    """Raised when report parameters are missing or carry unsupported values."""

    status_code = 400
    error = "Invalid report request"


class ScopeNotFound(TaskTrackError):
    """Raised when no project, user or department matches the requested scope."""

    status_code = 404
    error = "Resource not found"


class WorkItemNotFound(TaskTrackError):
    """Raised when a task or subtask id does not exist."""

    status_code = 404
    error = "Resource not found"


class RenderFailure(TaskTrackError):
    """Raised when a report model could not be turned into document bytes."""

    status_code = 500
    error = "Report rendering failed"


class StoreError(TaskTrackError):
    """Raised when the persistent store fails to answer a query."""

    status_code = 500
    error = "Internal server error"


class InvalidWorkItem(TaskTrackError):
    """Raised when a creation payload breaks a work item constraint."""

    status_code = 400
    error = "Invalid work item"
