import logging
from contextlib import asynccontextmanager
from datetime import timedelta, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import config
from .auth import create_token, get_current_user, require_admin, send_password_reset
from .coordinator import BoardCoordinator, task_view, user_summary
from .db import OrganizationRecord, TaskRecord, UserRecord, get_db, init_db
from .errors import ColumnNotFound, Forbidden, InvalidOperation, TaskboardError, Unauthorized, UserNotFound
from .logging import setup_logging
from .models import Board, Column, MoveResult, UserRole
from .schemas import (
    BoardIn,
    BoardPatch,
    BoardRef,
    BoardView,
    ColumnIn,
    ColumnOut,
    ColumnPatch,
    ColumnReorder,
    ErrorBody,
    ErrorEnvelope,
    ForgotPasswordIn,
    Health,
    LoginIn,
    MemberIn,
    Message,
    MoveOut,
    OrganizationIn,
    OrganizationOut,
    RegisterIn,
    ResetPasswordIn,
    ResetPasswordOut,
    TaskIn,
    TaskMoveIn,
    TaskOut,
    TaskPatch,
    TaskUpdateOut,
    TokenOut,
    TokenValidity,
    UserOut,
    UserPatch,
    UserSummary,
    Version,
)
from .storage import Storage
from .utils import (
    etag_for_version,
    hash_password,
    new_reset_token,
    new_uuid,
    now_utc,
    parse_if_match,
    sha256_hex,
    verify_password,
)

logger = logging.getLogger(__name__)

RESET_MESSAGE = "If your email exists in our system, you will receive a password reset link"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL)
    init_db()
    logger.info("%s %s started", config.APP_NAME, config.VERSION)
    yield


app = FastAPI(title=config.APP_NAME, version=config.VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TaskboardError)
async def taskboard_error_handler(request: Request, exc: TaskboardError) -> JSONResponse:
    request_id = new_uuid()
    if exc.status_code >= 500:
        logger.error("%s %s failed [%s]: %s", request.method, request.url.path, request_id, exc.message)
    else:
        logger.debug("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorEnvelope(
            error=ErrorBody(code=exc.code, message=exc.message, details=exc.details, requestId=request_id)
        ).model_dump(mode="json"),
    )


# === Helpers ===


def get_storage(db: Session = Depends(get_db)) -> Storage:
    return Storage(db)


def get_coordinator(storage: Storage = Depends(get_storage)) -> BoardCoordinator:
    return BoardCoordinator(storage)


def user_out(user: UserRecord) -> UserOut:
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        organizations=[o.id for o in user.organizations],
        createdAt=user.created_at,
    )


def organization_out(organization: OrganizationRecord) -> OrganizationOut:
    return OrganizationOut(
        id=organization.id,
        name=organization.name,
        members=[UserSummary(**user_summary(m)) for m in organization.members],
        boards=[BoardRef(id=b.id, name=b.name) for b in organization.boards],
        createdAt=organization.created_at,
        updatedAt=organization.updated_at,
    )


def task_out(task: TaskRecord) -> TaskOut:
    return TaskOut(**task_view(task))


def column_out(column: Column) -> ColumnOut:
    return ColumnOut(
        id=column.id,
        name=column.name,
        order=column.order,
        status=column.status,
        tasks=list(column.tasks),
    )


def move_out(result: MoveResult) -> MoveOut:
    return MoveOut(
        taskId=result.task_id,
        fromColumnId=result.from_column_id,
        toColumnId=result.to_column_id,
        index=result.index,
        previousStatus=result.previous_status,
        status=result.status,
        statusChanged=result.status_changed,
        applied=result.applied,
    )


def board_view(coordinator: BoardCoordinator, board: Board, response: Optional[Response] = None) -> BoardView:
    organization = coordinator.storage.get_organization(board.organization_id)
    view = BoardView(**coordinator.assemble_board(board, organization.name))
    if response is not None:
        response.headers["ETag"] = etag_for_version(board.version)
    return view


def is_member(organization: OrganizationRecord, user: UserRecord) -> bool:
    return any(m.id == user.id for m in organization.members)


def check_member(organization: OrganizationRecord, user: UserRecord) -> None:
    if user.role == UserRole.ADMIN.value:
        return
    if not is_member(organization, user):
        raise Forbidden("You are not a member of this organization", {"organizationId": organization.id})


def board_for_user(storage: Storage, board_id: str, user: UserRecord) -> Board:
    board = storage.load_board(board_id)
    check_member(storage.get_organization(board.organization_id), user)
    return board


def task_for_user(storage: Storage, task_id: str, user: UserRecord) -> TaskRecord:
    task = storage.get_task(task_id)
    check_member(storage.get_organization(task.organization_id), user)
    return task


def as_utc(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# === Health & metadata ===


@app.get("/api/health", response_model=Health)
def health() -> Health:
    return Health(status="ok")


@app.get("/api/version", response_model=Version)
def version() -> Version:
    return Version(version=config.VERSION)


# === Auth & users ===


@app.post("/api/auth/register", response_model=UserOut, status_code=201)
def register(payload: RegisterIn, storage: Storage = Depends(get_storage)):
    email = payload.email.strip().lower()
    if storage.find_user_by_email(email) is not None:
        raise InvalidOperation("Email already in use", {"email": email})
    user = storage.add_user(
        UserRecord(
            name=payload.name.strip(),
            email=email,
            password_hash=hash_password(payload.password),
            role=UserRole.MEMBER.value,
        )
    )
    storage.commit(["user"])
    logger.info("User registered: %s", user.id)
    return user_out(user)


@app.post("/api/auth/login", response_model=TokenOut)
def login(payload: LoginIn, storage: Storage = Depends(get_storage)):
    user = storage.find_user_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password_hash):
        raise Unauthorized("Invalid credentials")
    return TokenOut(token=create_token(user.id), user=user_out(user))


@app.post("/api/auth/forgot-password", response_model=Message)
def forgot_password(payload: ForgotPasswordIn, storage: Storage = Depends(get_storage)):
    user = storage.find_user_by_email(payload.email)
    if user is None:
        return Message(message=RESET_MESSAGE)
    token = new_reset_token()
    user.reset_token_hash = sha256_hex(token)
    user.reset_token_expires_at = now_utc() + timedelta(seconds=config.RESET_TOKEN_TTL_SECONDS)
    storage.commit(["user"])
    send_password_reset(user.email, f"{config.FRONTEND_URL}/reset-password/{token}")
    return Message(message=RESET_MESSAGE)


def _user_for_reset_token(storage: Storage, token: str) -> Optional[UserRecord]:
    user = storage.find_user_by_reset_token(sha256_hex(token))
    if user is None or user.reset_token_expires_at is None:
        return None
    if as_utc(user.reset_token_expires_at) <= now_utc():
        return None
    return user


@app.post("/api/auth/reset-password", response_model=ResetPasswordOut)
def reset_password(payload: ResetPasswordIn, storage: Storage = Depends(get_storage)):
    user = _user_for_reset_token(storage, payload.token)
    if user is None:
        raise InvalidOperation("Invalid or expired password reset token")
    user.password_hash = hash_password(payload.newPassword)
    user.reset_token_hash = None
    user.reset_token_expires_at = None
    storage.commit(["user"])
    logger.info("Password reset for user %s", user.id)
    return ResetPasswordOut(
        message="Password has been reset successfully",
        token=create_token(user.id),
        user=user_out(user),
    )


@app.get("/api/auth/validate-reset-token/{token}", response_model=TokenValidity)
def validate_reset_token(token: str, storage: Storage = Depends(get_storage)):
    if _user_for_reset_token(storage, token) is None:
        return JSONResponse(
            status_code=400,
            content={"valid": False, "message": "Invalid or expired password reset token"},
        )
    return TokenValidity(valid=True, message="Token is valid")


@app.get("/api/auth/profile", response_model=UserOut)
def profile(user: UserRecord = Depends(get_current_user)):
    return user_out(user)


@app.get("/api/auth/search", response_model=list[UserSummary])
def search_users(
    query: Optional[str] = Query(default=None),
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    if not query:
        raise InvalidOperation("Search query is required")
    return [UserSummary(**user_summary(u)) for u in storage.search_users(query)]


@app.get("/api/auth/{user_id}", response_model=UserOut)
def get_user(user_id: str, user: UserRecord = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return user_out(storage.get_user(user_id))


@app.get("/api/users", response_model=list[UserOut])
def list_users(user: UserRecord = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    require_admin(user)
    return [user_out(u) for u in storage.all_users()]


@app.put("/api/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: str,
    payload: UserPatch,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    if user_id != user.id and user.role != UserRole.ADMIN.value:
        raise Forbidden("Not authorized to update this user")
    target = storage.get_user(user_id)
    if payload.name is not None:
        target.name = payload.name.strip()
    if payload.email is not None:
        email = payload.email.strip().lower()
        other = storage.find_user_by_email(email)
        if other is not None and other.id != target.id:
            raise InvalidOperation("Email already in use", {"email": email})
        target.email = email
    # role changes are silently ignored for non-admins
    if payload.role is not None and user.role == UserRole.ADMIN.value:
        target.role = payload.role.value
    storage.commit(["user"])
    return user_out(target)


@app.delete("/api/users/{user_id}", response_model=Message)
def delete_user(user_id: str, user: UserRecord = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    require_admin(user)
    storage.delete_user(storage.get_user(user_id))
    storage.commit(["user"])
    logger.info("User deleted: %s", user_id)
    return Message(message="User deleted successfully")


# === Organizations ===


@app.get("/api/organization", response_model=list[OrganizationOut])
def list_my_organizations(user: UserRecord = Depends(get_current_user)):
    return [organization_out(o) for o in user.organizations]


@app.post("/api/organization", response_model=OrganizationOut, status_code=201)
def create_organization(
    payload: OrganizationIn,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    storage = coordinator.storage
    organization = storage.add_organization(OrganizationRecord(name=payload.name.strip(), members=[user]))
    coordinator.create_board(organization, "Default Board")
    storage.commit(["organization", "board"])
    logger.info("Organization created: %s by %s", organization.id, user.id)
    return organization_out(organization)


@app.get("/api/organization/{organization_id}", response_model=OrganizationOut)
def get_organization(
    organization_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    organization = storage.get_organization(organization_id)
    if not is_member(organization, user):
        raise Forbidden("Not authorized to access this organization")
    return organization_out(organization)


@app.get("/api/organization/{organization_id}/members", response_model=list[UserSummary])
def list_members(
    organization_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    organization = storage.get_organization(organization_id)
    if not is_member(organization, user):
        raise Forbidden("Not authorized to view this organization")
    return [UserSummary(**user_summary(m)) for m in organization.members]


@app.put("/api/organization/{organization_id}", response_model=OrganizationOut)
def update_organization(
    organization_id: str,
    payload: OrganizationIn,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    organization = storage.get_organization(organization_id)
    if not is_member(organization, user):
        raise Forbidden("Not authorized to update this organization")
    organization.name = payload.name.strip()
    storage.commit(["organization"])
    return organization_out(organization)


@app.delete("/api/organization/{organization_id}", response_model=Message)
def delete_organization(
    organization_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    organization = storage.get_organization(organization_id)
    if user.role != UserRole.ADMIN.value:
        raise Forbidden("Not authorized to delete this organization")
    for task in storage.query_tasks(organization_id=organization.id):
        storage.delete_task(task)
    # boards go with the organization (delete-orphan), memberships with the association table
    storage.delete_organization(organization)
    storage.commit(["tasks", "boards", "organization"])
    logger.info("Organization deleted: %s", organization_id)
    return Message(message="Organization deleted successfully")


@app.post("/api/organization/{organization_id}/members", response_model=OrganizationOut)
def add_member(
    organization_id: str,
    payload: MemberIn,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    organization = storage.get_organization(organization_id)
    if not is_member(organization, user):
        raise Forbidden("Not authorized to add members to this organization")
    new_member = storage.find_user_by_email(payload.email)
    if new_member is None:
        raise UserNotFound(payload.email)
    if is_member(organization, new_member):
        raise InvalidOperation("User is already a member of this organization")
    organization.members.append(new_member)
    storage.commit(["organization"])
    logger.info("Member %s added to organization %s", new_member.id, organization.id)
    return organization_out(organization)


@app.delete("/api/organization/{organization_id}/members/{member_id}", response_model=OrganizationOut)
def remove_member(
    organization_id: str,
    member_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    organization = storage.get_organization(organization_id)
    if user.role != UserRole.ADMIN.value and user.id != member_id:
        raise Forbidden("Not authorized to remove members from this organization")
    organization.members = [m for m in organization.members if m.id != member_id]
    for task in storage.query_tasks(organization_id=organization.id, assignee_id=member_id):
        task.assignee_id = user.id
    storage.commit(["organization", "tasks"])
    logger.info("Member %s removed from organization %s", member_id, organization.id)
    return organization_out(organization)


# === Boards ===


@app.get("/api/board/organization/{organization_id}", response_model=list[BoardView])
def list_boards(
    organization_id: str,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    organization = coordinator.storage.get_organization(organization_id)
    check_member(organization, user)
    return [
        BoardView(**coordinator.assemble_board(b, organization.name))
        for b in coordinator.storage.boards_for_organization(organization.id)
    ]


@app.post("/api/board", response_model=BoardView, status_code=201)
def create_board(
    payload: BoardIn,
    response: Response,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    organization = coordinator.storage.get_organization(payload.organizationId)
    check_member(organization, user)
    board = coordinator.create_board(organization, payload.name)
    coordinator.storage.commit(["board"])
    return board_view(coordinator, board, response)


@app.get("/api/board/{board_id}", response_model=BoardView)
def get_board(
    board_id: str,
    response: Response,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    board = board_for_user(coordinator.storage, board_id, user)
    return board_view(coordinator, board, response)


@app.put("/api/board/{board_id}", response_model=BoardView)
def update_board(
    board_id: str,
    payload: BoardPatch,
    response: Response,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
):
    board_for_user(coordinator.storage, board_id, user)
    board = coordinator.rename_board(board_id, payload.name, parse_if_match(if_match))
    return board_view(coordinator, board, response)


@app.delete("/api/board/{board_id}", response_model=Message)
def delete_board(
    board_id: str,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    board_for_user(coordinator.storage, board_id, user)
    coordinator.delete_board(board_id)
    return Message(message="Board deleted successfully")


@app.post("/api/board/{board_id}/columns", response_model=BoardView)
def add_column_to_board(
    board_id: str,
    payload: ColumnIn,
    response: Response,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
):
    board_for_user(coordinator.storage, board_id, user)
    coordinator.add_column(board_id, payload.name, payload.status, parse_if_match(if_match))
    return board_view(coordinator, coordinator.storage.load_board(board_id), response)


# declared before the {column_id} route so "reorder" is not read as a column id
@app.put("/api/board/{board_id}/columns/reorder", response_model=BoardView)
def reorder_columns(
    board_id: str,
    payload: ColumnReorder,
    response: Response,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
):
    board_for_user(coordinator.storage, board_id, user)
    board = coordinator.reorder_columns(
        board_id,
        [(item.columnId, item.order) for item in payload.columnOrder],
        parse_if_match(if_match),
    )
    return board_view(coordinator, board, response)


@app.put("/api/board/{board_id}/columns/{column_id}", response_model=BoardView)
def update_board_column(
    board_id: str,
    column_id: str,
    payload: ColumnPatch,
    response: Response,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
):
    board_for_user(coordinator.storage, board_id, user)
    coordinator.update_column(board_id, column_id, payload.name, payload.order, parse_if_match(if_match))
    return board_view(coordinator, coordinator.storage.load_board(board_id), response)


@app.delete("/api/board/{board_id}/columns/{column_id}", response_model=Message)
def delete_board_column(
    board_id: str,
    column_id: str,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
):
    board_for_user(coordinator.storage, board_id, user)
    coordinator.delete_column(board_id, column_id, parse_if_match(if_match))
    return Message(message="Column deleted successfully")


# === Columns ===


@app.get("/api/column/board/{board_id}", response_model=list[ColumnOut])
def list_columns(
    board_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    board = board_for_user(storage, board_id, user)
    return [column_out(c) for c in board.sorted_columns()]


@app.get("/api/column/{board_id}/{column_id}", response_model=ColumnOut)
def get_column(
    board_id: str,
    column_id: str,
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    board = board_for_user(storage, board_id, user)
    column = board.column(column_id)
    if column is None:
        raise ColumnNotFound(column_id, board_id)
    return column_out(column)


@app.post("/api/column/{board_id}", response_model=ColumnOut, status_code=201)
def create_column(
    board_id: str,
    payload: ColumnIn,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
):
    board_for_user(coordinator.storage, board_id, user)
    return column_out(coordinator.add_column(board_id, payload.name, payload.status, parse_if_match(if_match)))


@app.post("/api/column/{board_id}/move-task", response_model=BoardView)
def move_task(
    board_id: str,
    payload: TaskMoveIn,
    response: Response,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
):
    board_for_user(coordinator.storage, board_id, user)
    result = coordinator.move_task(
        board_id,
        payload.taskId,
        payload.sourceColumnId,
        payload.destinationColumnId,
        payload.sourceIndex,
        payload.destinationIndex,
        parse_if_match(if_match),
    )
    view = board_view(coordinator, result.board, response)
    view.move = move_out(result)
    return view


@app.put("/api/column/{board_id}/{column_id}", response_model=ColumnOut)
def update_column(
    board_id: str,
    column_id: str,
    payload: ColumnPatch,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
):
    board_for_user(coordinator.storage, board_id, user)
    return column_out(
        coordinator.update_column(board_id, column_id, payload.name, payload.order, parse_if_match(if_match))
    )


@app.delete("/api/column/{board_id}/{column_id}", response_model=Message)
def delete_column(
    board_id: str,
    column_id: str,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
):
    board_for_user(coordinator.storage, board_id, user)
    coordinator.delete_column(board_id, column_id, parse_if_match(if_match))
    return Message(message="Column deleted successfully")


# === Tasks ===


def _user_org_ids(user: UserRecord) -> Optional[list[str]]:
    if user.role == UserRole.ADMIN.value:
        return None
    return [o.id for o in user.organizations]


@app.get("/api/tasks", response_model=list[TaskOut])
def list_tasks(
    organizationId: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    priority: Optional[str] = Query(default=None),
    assignee: Optional[str] = Query(default=None),
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    tasks = storage.query_tasks(
        organization_id=organizationId,
        status=status,
        priority=priority,
        assignee_id=assignee,
        organization_ids=_user_org_ids(user),
    )
    return [task_out(t) for t in tasks]


@app.get("/api/tasks/search", response_model=list[TaskOut])
def search_tasks(
    query: Optional[str] = Query(default=None),
    organizationId: Optional[str] = Query(default=None),
    user: UserRecord = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    if not query:
        raise InvalidOperation("Search query is required")
    tasks = storage.query_tasks(
        organization_id=organizationId,
        text=query,
        limit=20,
        organization_ids=_user_org_ids(user),
    )
    return [task_out(t) for t in tasks]


@app.get("/api/tasks/{task_id}", response_model=TaskOut)
def get_task(task_id: str, user: UserRecord = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return task_out(task_for_user(storage, task_id, user))


@app.post("/api/tasks", response_model=TaskOut, status_code=201)
def create_task(
    payload: TaskIn,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    storage = coordinator.storage
    check_member(storage.get_organization(payload.organizationId), user)
    assignee = storage.get_user(payload.assignee)
    reporter = storage.get_user(payload.reporter) if payload.reporter else user
    task = coordinator.create_task(
        title=payload.title,
        description=payload.description,
        status=payload.status,
        priority=payload.priority,
        assignee=assignee,
        reporter=reporter,
        organization_id=payload.organizationId,
        board_id=payload.boardId,
        column_id=payload.columnId,
    )
    return task_out(task)


@app.put("/api/tasks/{task_id}", response_model=TaskUpdateOut)
def update_task(
    task_id: str,
    payload: TaskPatch,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    storage = coordinator.storage
    task_for_user(storage, task_id, user)
    assignee = storage.get_user(payload.assignee) if payload.assignee else None
    task, move = coordinator.update_task(
        task_id,
        title=payload.title,
        description=payload.description,
        status=payload.status,
        priority=payload.priority,
        assignee=assignee,
        column_id=payload.columnId,
        board_id=payload.boardId,
    )
    return TaskUpdateOut(task=task_out(task), move=move_out(move) if move else None)


@app.delete("/api/tasks/{task_id}", response_model=Message)
def delete_task(
    task_id: str,
    user: UserRecord = Depends(get_current_user),
    coordinator: BoardCoordinator = Depends(get_coordinator),
):
    task_for_user(coordinator.storage, task_id, user)
    coordinator.delete_task(task_id)
    return Message(message="Task deleted successfully")
