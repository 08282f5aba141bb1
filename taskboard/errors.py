"""Domain errors raised by the storage and coordinator layers.

Every error carries an HTTP status and a stable ``code``; ``main`` renders
them as ``{"error": {"code", "message", "details", "requestId"}}``.
"""
from __future__ import annotations

from typing import Any, Optional


class TaskboardError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# === NotFound ===


class NotFound(TaskboardError):
    status_code = 404
    code = "not_found"


class BoardNotFound(NotFound):
    code = "board_not_found"

    def __init__(self, board_id: str) -> None:
        super().__init__("Board not found", {"boardId": board_id})


class ColumnNotFound(NotFound):
    code = "column_not_found"

    def __init__(self, column_id: str, board_id: Optional[str] = None) -> None:
        details = {"columnId": column_id}
        if board_id is not None:
            details["boardId"] = board_id
        super().__init__("Column not found", details)


class TaskNotFound(NotFound):
    code = "task_not_found"

    def __init__(self, task_id: str) -> None:
        super().__init__("Task not found", {"taskId": task_id})


class OrganizationNotFound(NotFound):
    code = "organization_not_found"

    def __init__(self, organization_id: str) -> None:
        super().__init__("Organization not found", {"organizationId": organization_id})


class UserNotFound(NotFound):
    code = "user_not_found"

    def __init__(self, user_ref: str) -> None:
        super().__init__("User not found", {"user": user_ref})


# === InvalidOperation ===


class InvalidOperation(TaskboardError):
    status_code = 400
    code = "invalid_operation"


class ColumnNotEmpty(InvalidOperation):
    code = "column_not_empty"

    def __init__(self, column_id: str, task_count: int) -> None:
        super().__init__(
            "Cannot delete column with tasks. Move tasks to another column first.",
            {"columnId": column_id, "taskCount": task_count},
        )


class TaskNotInSourceColumn(InvalidOperation):
    code = "task_not_in_source_column"

    def __init__(self, task_id: str, column_id: str) -> None:
        super().__init__("Task not found in source column", {"taskId": task_id, "columnId": column_id})


class UnmappedColumnName(InvalidOperation):
    code = "unmapped_column_name"

    def __init__(self, name: str) -> None:
        super().__init__("Column name does not map to a task status; pass an explicit status", {"name": name})


class StatusColumnMismatch(InvalidOperation):
    code = "status_column_mismatch"


class PreconditionFailed(InvalidOperation):
    status_code = 412
    code = "precondition_failed"


# === Authorization ===


class Unauthorized(TaskboardError):
    status_code = 401
    code = "unauthorized"


class Forbidden(TaskboardError):
    status_code = 403
    code = "forbidden"


# === Persistence ===


class PersistenceFailure(TaskboardError):
    """A storage round-trip failed and the transaction was rolled back.

    ``details["applied"]`` lists the steps that reached the database, which is
    always empty because board and task writes share one transaction.
    """

    status_code = 500
    code = "persistence_failure"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        details = dict(details or {})
        details.setdefault("applied", [])
        super().__init__(message, details)


class ConcurrentModification(PersistenceFailure):
    status_code = 409
    code = "concurrent_modification"
