"""Keeps column membership, column order and task status in step.

The board document (with its embedded columns) and the task row are separate
records. Every public method here stages all of its writes on the shared
session and commits them once, so a move either lands completely or not at
all. The task row carries ``board_id``/``column_id`` so the column holding a
task can be found without scanning every board; the scan remains as the
fallback when that back-reference is missing or stale.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from . import config
from .db import OrganizationRecord, TaskRecord, UserRecord
from .errors import (
    BoardNotFound,
    ColumnNotEmpty,
    ColumnNotFound,
    InvalidOperation,
    PreconditionFailed,
    StatusColumnMismatch,
    TaskNotInSourceColumn,
    UnmappedColumnName,
)
from .models import (
    DEFAULT_COLUMNS,
    Board,
    Column,
    MoveResult,
    TaskPriority,
    TaskStatus,
    status_for_column_name,
)
from .ordering import close_gap, insert_at, next_order, remove_first, renumber, slide
from .storage import Storage
from .utils import new_uuid

logger = logging.getLogger(__name__)


class BoardCoordinator:
    def __init__(self, storage: Storage, strict_column_status: Optional[bool] = None) -> None:
        self.storage = storage
        if strict_column_status is None:
            strict_column_status = config.STRICT_COLUMN_STATUS
        self.strict_column_status = strict_column_status

    # === Helpers ===
    @staticmethod
    def _check_version(board: Board, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != board.version:
            raise PreconditionFailed(
                "Board version does not match If-Match",
                {"boardId": board.id, "expected": expected_version, "current": board.version},
            )

    @staticmethod
    def _require_column(board: Board, column_id: str) -> Column:
        column = board.column(column_id)
        if column is None:
            raise ColumnNotFound(column_id, board.id)
        return column

    def resolve_column_status(self, name: str, status: Optional[TaskStatus] = None) -> TaskStatus:
        """Pick the status a new column stands for.

        An explicit ``status`` wins; otherwise the name is mapped. Unmapped
        names fall back to ``todo`` unless strict mode is on.
        """
        if status is not None:
            return TaskStatus(status)
        inferred = status_for_column_name(name)
        if inferred is not None:
            return inferred
        if self.strict_column_status:
            raise UnmappedColumnName(name)
        logger.warning("Column %r does not map to a status; tasks moved into it become 'todo'", name)
        return TaskStatus.TODO

    @staticmethod
    def _column_name(name: str) -> str:
        name = name.strip()
        if not name:
            raise InvalidOperation("Column name must not be blank")
        return name

    def _load_for_write(self, board_id: str, expected_version: Optional[int]) -> Board:
        board = self.storage.load_board(board_id)
        self._check_version(board, expected_version)
        return board

    # === Boards ===
    def create_board(self, organization: OrganizationRecord, name: str) -> Board:
        columns = [
            Column(id=new_uuid(), name=col_name, order=order, status=status)
            for order, (col_name, status) in enumerate(DEFAULT_COLUMNS)
        ]
        board = self.storage.create_board(organization, name.strip(), columns)
        logger.info("Board created: %s (%s) in organization %s", board.id, board.name, organization.id)
        return board

    def rename_board(self, board_id: str, name: str, expected_version: Optional[int] = None) -> Board:
        board = self._load_for_write(board_id, expected_version)
        board.name = name.strip()
        self.storage.save_board(board)
        self.storage.commit(["board"])
        return board

    def delete_board(self, board_id: str) -> Board:
        board = self.storage.delete_board(board_id)
        for task in self.storage.tasks_on_board(board_id):
            task.board_id = None
            task.column_id = None
        self.storage.commit(["board", "tasks"])
        logger.info("Board deleted: %s", board_id)
        return board

    # === Columns ===
    def add_column(
        self,
        board_id: str,
        name: str,
        status: Optional[TaskStatus] = None,
        expected_version: Optional[int] = None,
    ) -> Column:
        board = self._load_for_write(board_id, expected_version)
        column = Column(
            id=new_uuid(),
            name=self._column_name(name),
            order=next_order(board.columns),
            status=self.resolve_column_status(name, status),
        )
        board.columns.append(column)
        self.storage.save_board(board)
        self.storage.commit(["columns"])
        logger.info("Column added: %s (%s) at order %d on board %s", column.id, column.name, column.order, board.id)
        return column

    def update_column(
        self,
        board_id: str,
        column_id: str,
        name: Optional[str] = None,
        order: Optional[int] = None,
        expected_version: Optional[int] = None,
    ) -> Column:
        board = self._load_for_write(board_id, expected_version)
        column = self._require_column(board, column_id)
        changed = False
        if name is not None:
            name = self._column_name(name)
            if name != column.name:
                column.name = name
                changed = True
        if order is not None:
            old_order = column.order
            if slide(board.columns, column, order):
                changed = True
                logger.info("Column %s moved from order %d to %d", column.id, old_order, column.order)
        if changed:
            self.storage.save_board(board)
            self.storage.commit(["columns"])
        return column

    def delete_column(self, board_id: str, column_id: str, expected_version: Optional[int] = None) -> Board:
        # fresh read inside this transaction; the versioned save rejects a
        # concurrent write that lands before commit
        board = self._load_for_write(board_id, expected_version)
        column = self._require_column(board, column_id)
        if column.tasks:
            raise ColumnNotEmpty(column.id, len(column.tasks))
        board.columns.remove(column)
        close_gap(board.columns, column.order)
        self.storage.save_board(board)
        self.storage.commit(["columns"])
        logger.info("Column deleted: %s from board %s", column_id, board.id)
        return board

    def reorder_columns(
        self,
        board_id: str,
        column_order: Iterable[tuple[str, int]],
        expected_version: Optional[int] = None,
    ) -> Board:
        board = self._load_for_write(board_id, expected_version)
        requested: dict[str, int] = {}
        for column_id, order in column_order:
            self._require_column(board, column_id)
            requested[column_id] = order
        renumber(board.columns, requested)
        self.storage.save_board(board)
        self.storage.commit(["columns"])
        logger.info("Columns reordered on board %s", board.id)
        return board

    # === Task moves ===
    def move_task(
        self,
        board_id: str,
        task_id: str,
        source_column_id: str,
        dest_column_id: str,
        source_index: Optional[int] = None,
        dest_index: int = 0,
        expected_version: Optional[int] = None,
    ) -> MoveResult:
        """Drag-and-drop move of ``task_id`` between (or within) columns.

        ``source_index`` is only a hint: the first occurrence of the id is
        removed wherever it is. ``dest_index`` is clamped to the destination
        list. Crossing columns sets the task's status to the destination
        column's status; both writes commit together.
        """
        board = self._load_for_write(board_id, expected_version)
        source = self._require_column(board, source_column_id)
        dest = self._require_column(board, dest_column_id)
        if task_id not in source.tasks:
            raise TaskNotInSourceColumn(task_id, source.id)

        removed_at = remove_first(source.tasks, task_id)
        if source_index is not None and source_index != removed_at:
            logger.debug("Stale source index for task %s: hinted %s, found %d", task_id, source_index, removed_at)
        for column in board.columns:
            if task_id in column.tasks:
                logger.warning("Task %s was also listed in column %s; removing", task_id, column.id)
                column.tasks = [t for t in column.tasks if t != task_id]
        index = insert_at(dest.tasks, task_id, dest_index)

        task = self.storage.find_task(task_id)
        previous_status = TaskStatus(task.status) if task is not None else None
        new_status = previous_status if source.id == dest.id else dest.status
        steps = ["columns"]
        if task is None:
            logger.warning("Task %s is listed on board %s but has no record; status not updated", task_id, board.id)
            new_status = dest.status
        else:
            task.board_id = board.id
            task.column_id = dest.id
            if new_status != previous_status:
                task.status = new_status.value
                steps.append("status")

        self.storage.save_board(board)
        self.storage.commit(steps)
        logger.info(
            "Task moved: %s (%s -> %s, index %d, status %s)",
            task_id,
            source.id,
            dest.id,
            index,
            new_status.value if new_status else None,
        )
        return MoveResult(
            board=board,
            task_id=task_id,
            from_column_id=source.id,
            to_column_id=dest.id,
            index=index,
            previous_status=previous_status,
            status=new_status,
            applied=steps,
        )

    def _locate(self, task: TaskRecord) -> list[Board]:
        """Boards whose columns list ``task``.

        Tries the back-reference first and falls back to scanning the
        organization's boards when it is missing or out of date.
        """
        if task.board_id is not None:
            try:
                board = self.storage.load_board(task.board_id)
            except BoardNotFound:
                board = None
            if board is not None and board.column_holding(task.id) is not None:
                return [board]
            logger.debug("Stale back-reference for task %s (board %s); scanning boards", task.id, task.board_id)
        return self.storage.boards_containing_task(task.id, task.organization_id)

    def _find_column(self, column_id: str, organization_id: str, board_id: Optional[str] = None) -> Board:
        if board_id is not None:
            board = self.storage.load_board(board_id)
            if board.organization_id != organization_id:
                # boards of other organizations are invisible here
                raise ColumnNotFound(column_id, board_id)
            self._require_column(board, column_id)
            return board
        for board in self.storage.boards_for_organization(organization_id):
            if board.column(column_id) is not None:
                return board
        raise ColumnNotFound(column_id)

    def _pull(self, task_id: str, boards: Iterable[Board]) -> dict[str, Board]:
        touched = {}
        for board in boards:
            for column in board.columns:
                if task_id in column.tasks:
                    column.tasks = [t for t in column.tasks if t != task_id]
                    touched[board.id] = board
        return touched

    def _relocate(
        self,
        task: TaskRecord,
        column_id: str,
        board_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
    ) -> MoveResult:
        target_board = self._find_column(column_id, task.organization_id, board_id)
        target = target_board.column(column_id)
        if status is not None and TaskStatus(status) != target.status:
            raise StatusColumnMismatch(
                "Status does not match the target column",
                {"status": TaskStatus(status).value, "columnId": target.id, "columnStatus": target.status.value},
            )

        current = self._locate(task)
        from_column_id = None
        for board in current:
            holder = board.column_holding(task.id)
            if holder is not None and from_column_id is None:
                from_column_id = holder.id
        touched = self._pull(task.id, current)
        # the target board may have been read twice; keep the copy that was pulled from
        target_board = touched.get(target_board.id, target_board)
        target = target_board.column(column_id)
        index = insert_at(target.tasks, task.id, len(target.tasks))
        touched[target_board.id] = target_board

        previous_status = TaskStatus(task.status) if task.status else None
        task.status = target.status.value
        task.board_id = target_board.id
        task.column_id = target.id
        for board in touched.values():
            self.storage.save_board(board)

        steps = ["columns"]
        if previous_status != target.status:
            steps.append("status")
        logger.info("Task relocated: %s (%s -> %s)", task.id, from_column_id, target.id)
        return MoveResult(
            board=target_board,
            task_id=task.id,
            from_column_id=from_column_id,
            to_column_id=target.id,
            index=index,
            previous_status=previous_status,
            status=target.status,
            applied=steps,
        )

    def relocate_task(
        self,
        task_id: str,
        column_id: str,
        board_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
    ) -> MoveResult:
        """Pull the task from wherever it is and append it to ``column_id``."""
        task = self.storage.get_task(task_id)
        result = self._relocate(task, column_id, board_id, status)
        self.storage.commit(result.applied)
        return result

    def _sync_status(self, task: TaskRecord, status: TaskStatus) -> Optional[MoveResult]:
        """Change status without an explicit column.

        A task sitting on a board is moved to the first column standing for
        ``status``; with no such column the change is rejected. A task that
        is on no board just takes the new status.
        """
        status = TaskStatus(status)
        boards = self._locate(task)
        if not boards:
            task.status = status.value
            task.board_id = None
            task.column_id = None
            return None
        board = boards[0]
        holder = board.column_holding(task.id)
        if holder is not None and holder.status == status:
            task.status = status.value
            return None
        for column in board.sorted_columns():
            if column.status == status:
                return self._relocate(task, column.id, board.id)
        raise StatusColumnMismatch(
            "No column on the task's board stands for this status",
            {"status": status.value, "boardId": board.id},
        )

    def detach_task(self, task_id: str, organization_id: Optional[str] = None) -> list[str]:
        """Pull ``task_id`` from every column that lists it; return the board ids touched."""
        touched = self._pull(task_id, self.storage.boards_containing_task(task_id, organization_id))
        for board in touched.values():
            self.storage.save_board(board)
        return list(touched)

    # === Task records ===
    def create_task(
        self,
        *,
        title: str,
        organization_id: str,
        assignee: UserRecord,
        reporter: UserRecord,
        description: str = "",
        status: Optional[TaskStatus] = None,
        priority: Optional[TaskPriority] = None,
        board_id: Optional[str] = None,
        column_id: Optional[str] = None,
    ) -> TaskRecord:
        task = TaskRecord(
            id=new_uuid(),
            title=title.strip(),
            description=description or "",
            status=TaskStatus(status or TaskStatus.TODO).value,
            priority=TaskPriority(priority or TaskPriority.MEDIUM).value,
            assignee_id=assignee.id,
            reporter_id=reporter.id,
            organization_id=organization_id,
        )
        self.storage.add_task(task)
        steps = ["task"]
        if column_id is not None:
            self._relocate(task, column_id, board_id, status)
            steps.append("columns")
        self.storage.commit(steps)
        logger.info("Task created: %s in organization %s", task.id, organization_id)
        return task

    def update_task(
        self,
        task_id: str,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        priority: Optional[TaskPriority] = None,
        assignee: Optional[UserRecord] = None,
        column_id: Optional[str] = None,
        board_id: Optional[str] = None,
    ) -> tuple[TaskRecord, Optional[MoveResult]]:
        task = self.storage.get_task(task_id)
        if title is not None:
            task.title = title.strip()
        if description is not None:
            task.description = description
        if priority is not None:
            task.priority = TaskPriority(priority).value
        if assignee is not None:
            task.assignee_id = assignee.id

        move = None
        steps = ["task"]
        if column_id is not None:
            holder, holder_board = None, None
            for board in self._locate(task):
                column = board.column_holding(task.id)
                if column is not None and column.id == column_id:
                    holder, holder_board = column, board
            if holder is None:
                move = self._relocate(task, column_id, board_id, status)
                steps.append("columns")
            elif status is not None and TaskStatus(status) != holder.status:
                raise StatusColumnMismatch(
                    "Status does not match the target column",
                    {"status": TaskStatus(status).value, "columnId": holder.id, "columnStatus": holder.status.value},
                )
            else:
                task.status = holder.status.value
                task.board_id, task.column_id = holder_board.id, holder.id
        elif status is not None and TaskStatus(status).value != task.status:
            move = self._sync_status(task, status)
            if move is not None:
                steps.append("columns")
        self.storage.commit(steps)
        return task, move

    def delete_task(self, task_id: str) -> None:
        task = self.storage.get_task(task_id)
        touched = self.detach_task(task.id, task.organization_id)
        self.storage.delete_task(task)
        self.storage.commit(["columns", "task"])
        logger.info("Task deleted: %s (detached from %d board(s))", task_id, len(touched))

    # === Reads ===
    def assemble_board(self, board: Board, organization_name: Optional[str] = None) -> dict[str, Any]:
        """Board with columns by order and task ids resolved to task records.

        Ids with no task record are left as plain strings.
        """
        columns = board.sorted_columns()
        tasks = self.storage.tasks_by_ids(t for c in columns for t in c.tasks)
        return {
            "id": board.id,
            "name": board.name,
            "organizationId": board.organization_id,
            "organization": (
                {"id": board.organization_id, "name": organization_name} if organization_name is not None else None
            ),
            "version": board.version,
            "createdAt": board.created_at,
            "updatedAt": board.updated_at,
            "columns": [
                {
                    "id": c.id,
                    "name": c.name,
                    "order": c.order,
                    "status": c.status.value,
                    "tasks": [task_view(tasks[t]) if t in tasks else t for t in c.tasks],
                }
                for c in columns
            ],
        }

    def get_board_by_id(self, board_id: str) -> dict[str, Any]:
        board = self.storage.load_board(board_id)
        organization = self.storage.get_organization(board.organization_id)
        return self.assemble_board(board, organization.name)


def user_summary(user: Optional[UserRecord]) -> Optional[dict[str, str]]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


def task_view(task: TaskRecord) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "assignee": user_summary(task.assignee) or task.assignee_id,
        "reporter": user_summary(task.reporter) or task.reporter_id,
        "organizationId": task.organization_id,
        "boardId": task.board_id,
        "columnId": task.column_id,
        "createdAt": task.created_at,
        "updatedAt": task.updated_at,
    }
