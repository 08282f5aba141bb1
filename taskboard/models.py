from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


class TaskStatus(str, enum.Enum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    TESTING = "testing"
    DONE = "done"


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MEMBER = "member"


# Lowercased column name -> status of the tasks it holds.
COLUMN_STATUS_BY_NAME: dict[str, TaskStatus] = {
    "to do": TaskStatus.TODO,
    "in progress": TaskStatus.IN_PROGRESS,
    "review": TaskStatus.REVIEW,
    "done": TaskStatus.DONE,
}

DEFAULT_COLUMNS: tuple[tuple[str, TaskStatus], ...] = (
    ("To Do", TaskStatus.TODO),
    ("In Progress", TaskStatus.IN_PROGRESS),
    ("Review", TaskStatus.REVIEW),
    ("Done", TaskStatus.DONE),
)


def status_for_column_name(name: str) -> Optional[TaskStatus]:
    """Map a column name to a task status, or ``None`` if it is not recognised."""
    return COLUMN_STATUS_BY_NAME.get(name.strip().lower())


# === Board document ===


@dataclass
class Column:
    id: str
    name: str
    order: int
    status: TaskStatus
    tasks: list[str] = field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "status": self.status.value,
            "tasks": list(self.tasks),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Column:
        raw_status = doc.get("status")
        if raw_status:
            status = TaskStatus(raw_status)
        else:
            # columns written before the status tag existed
            status = status_for_column_name(doc["name"]) or TaskStatus.TODO
        return cls(
            id=doc["id"],
            name=doc["name"],
            order=int(doc.get("order", 0)),
            status=status,
            tasks=[str(t) for t in doc.get("tasks", [])],
        )


@dataclass
class Board:
    id: str
    name: str
    organization_id: str
    created_at: datetime
    updated_at: datetime
    version: int = 1
    columns: list[Column] = field(default_factory=list)

    def column(self, column_id: str) -> Optional[Column]:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def column_holding(self, task_id: str) -> Optional[Column]:
        for column in self.columns:
            if task_id in column.tasks:
                return column
        return None

    def sorted_columns(self) -> list[Column]:
        return sorted(self.columns, key=lambda c: (c.order, c.id))


@dataclass
class MoveResult:
    """Outcome of a task move.

    ``applied`` names the writes that were committed together: ``"columns"``
    for the board document and ``"status"`` for the task record.
    """

    board: Board
    task_id: str
    from_column_id: Optional[str]
    to_column_id: str
    index: int
    previous_status: Optional[TaskStatus]
    status: TaskStatus
    applied: list[str] = field(default_factory=list)

    @property
    def status_changed(self) -> bool:
        return "status" in self.applied
