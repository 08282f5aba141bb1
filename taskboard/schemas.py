from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .models import TaskPriority, TaskStatus, UserRole


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    requestId: str


class ErrorEnvelope(BaseModel):
    error: ErrorBody


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str


class Message(BaseModel):
    message: str


# === Users & auth ===


class UserSummary(BaseModel):
    id: str
    name: str
    email: str


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole
    organizations: list[str]
    createdAt: datetime


class RegisterIn(BaseModel):
    name: str = Field(min_length=1, max_length=140)
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=6, max_length=256)


class LoginIn(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenOut(BaseModel):
    token: str
    user: UserOut


class UserPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=140)
    email: Optional[str] = Field(default=None, min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    role: Optional[UserRole] = None


class ForgotPasswordIn(BaseModel):
    email: str = Field(min_length=1)


class ResetPasswordIn(BaseModel):
    token: str = Field(min_length=1)
    newPassword: str = Field(min_length=6, max_length=256)


class ResetPasswordOut(BaseModel):
    message: str
    token: str
    user: UserOut


class TokenValidity(BaseModel):
    valid: bool
    message: str


# === Organizations ===


class BoardRef(BaseModel):
    id: str
    name: str


class OrganizationIn(BaseModel):
    name: str = Field(min_length=1, max_length=140)


class OrganizationOut(BaseModel):
    id: str
    name: str
    members: list[UserSummary]
    boards: list[BoardRef]
    createdAt: datetime
    updatedAt: datetime


class MemberIn(BaseModel):
    email: str = Field(min_length=1)


# === Boards & columns ===


class BoardIn(BaseModel):
    name: str = Field(min_length=1, max_length=140)
    organizationId: str


class BoardPatch(BaseModel):
    name: str = Field(min_length=1, max_length=140)


class ColumnIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=80)
    status: Optional[TaskStatus] = None


class ColumnPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=80)
    order: Optional[int] = None


class ColumnOrderItem(BaseModel):
    columnId: str
    order: int


class ColumnReorder(BaseModel):
    columnOrder: list[ColumnOrderItem]


class ColumnOut(BaseModel):
    id: str
    name: str
    order: int
    status: TaskStatus
    tasks: list[str]


class TaskMoveIn(BaseModel):
    taskId: str
    sourceColumnId: str
    destinationColumnId: str
    sourceIndex: Optional[int] = None
    destinationIndex: int = 0


class MoveOut(BaseModel):
    taskId: str
    fromColumnId: Optional[str]
    toColumnId: str
    index: int
    previousStatus: Optional[TaskStatus]
    status: TaskStatus
    statusChanged: bool
    applied: list[str]


# === Tasks ===


class TaskIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=8000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee: str
    reporter: Optional[str] = None
    organizationId: str
    boardId: Optional[str] = None
    columnId: Optional[str] = None


class TaskPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=8000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee: Optional[str] = None
    boardId: Optional[str] = None
    columnId: Optional[str] = None


class TaskOut(BaseModel):
    id: str
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    assignee: Union[UserSummary, str]
    reporter: Union[UserSummary, str]
    organizationId: str
    boardId: Optional[str]
    columnId: Optional[str]
    createdAt: datetime
    updatedAt: datetime


class TaskUpdateOut(BaseModel):
    task: TaskOut
    move: Optional[MoveOut] = None


class ColumnView(BaseModel):
    id: str
    name: str
    order: int
    status: TaskStatus
    # unresolved task ids stay as plain strings
    tasks: list[Union[TaskOut, str]]


class BoardView(BaseModel):
    id: str
    name: str
    organizationId: str
    organization: Optional[BoardRef] = None
    version: int
    createdAt: datetime
    updatedAt: datetime
    columns: list[ColumnView]
    move: Optional[MoveOut] = None
