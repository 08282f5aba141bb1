from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from .db import BoardRecord, OrganizationRecord, TaskRecord, UserRecord
from .errors import (
    BoardNotFound,
    ConcurrentModification,
    OrganizationNotFound,
    PersistenceFailure,
    TaskNotFound,
    UserNotFound,
)
from .models import Board, Column

logger = logging.getLogger(__name__)


class Storage:
    """Document-style access to boards, tasks, users and organizations.

    A board is read into a :class:`~taskboard.models.Board` and written back
    as one row update of its ``columns`` document. Nothing is committed until
    :meth:`commit`, so every write made between two commits lands together or
    not at all.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # === Transactions ===
    @contextmanager
    def _writing(self, steps: list[str]) -> Iterator[None]:
        try:
            yield
        except StaleDataError as exc:
            self.session.rollback()
            logger.warning("Concurrent board update detected; rolled back %s", steps or "transaction")
            raise ConcurrentModification(
                "Board was modified by another request; reload and retry",
                {"attempted": steps},
            ) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Write failed, rolled back %s: %s", steps or "transaction", exc)
            raise PersistenceFailure("Storage write failed", {"attempted": steps}) from exc

    def commit(self, steps: Iterable[str] = ()) -> None:
        steps = list(steps)
        with self._writing(steps):
            self.session.commit()

    # === Board documents ===
    def _board_record(self, board_id: str) -> BoardRecord:
        record = self.session.get(BoardRecord, board_id)
        if record is None:
            raise BoardNotFound(board_id)
        return record

    @staticmethod
    def _to_board(record: BoardRecord) -> Board:
        return Board(
            id=record.id,
            name=record.name,
            organization_id=record.organization_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
            version=record.version,
            columns=[Column.from_document(doc) for doc in record.columns or []],
        )

    def load_board(self, board_id: str) -> Board:
        return self._to_board(self._board_record(board_id))

    def boards_for_organization(self, organization_id: str) -> list[Board]:
        stmt = (
            select(BoardRecord)
            .where(BoardRecord.organization_id == organization_id)
            .order_by(BoardRecord.created_at.desc())
        )
        return [self._to_board(r) for r in self.session.scalars(stmt)]

    def create_board(self, organization: OrganizationRecord, name: str, columns: list[Column]) -> Board:
        record = BoardRecord(
            name=name,
            organization=organization,
            columns=[c.to_document() for c in columns],
        )
        self.session.add(record)
        self.session.flush()
        return self._to_board(record)

    def save_board(self, board: Board) -> Board:
        """Stage the board's name and column document for the next commit."""
        record = self._board_record(board.id)
        current = record.version
        if current != board.version:
            # the row may have been re-read after the board was loaded
            self.session.rollback()
            logger.warning("Board %s changed since it was read (read v%d, now v%d)", board.id, board.version, current)
            raise ConcurrentModification(
                "Board was modified by another request; reload and retry",
                {"boardId": board.id, "attempted": ["columns"], "expected": board.version, "current": current},
            )
        record.name = board.name
        record.columns = [c.to_document() for c in board.sorted_columns()]
        with self._writing(["columns"]):
            self.session.flush()
        board.version = record.version
        board.updated_at = record.updated_at
        return board

    def delete_board(self, board_id: str) -> Board:
        record = self._board_record(board_id)
        board = self._to_board(record)
        self.session.delete(record)
        return board

    def boards_containing_task(self, task_id: str, organization_id: Optional[str] = None) -> list[Board]:
        """Containment scan over board documents.

        Columns are embedded JSON with no index on task ids, so every board
        (of the organization, when given) is read and searched.
        """
        stmt = select(BoardRecord)
        if organization_id is not None:
            stmt = stmt.where(BoardRecord.organization_id == organization_id)
        found = []
        for record in self.session.scalars(stmt):
            board = self._to_board(record)
            if board.column_holding(task_id) is not None:
                found.append(board)
        return found

    # === Tasks ===
    def get_task(self, task_id: str) -> TaskRecord:
        task = self.session.get(TaskRecord, task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def find_task(self, task_id: str) -> Optional[TaskRecord]:
        return self.session.get(TaskRecord, task_id)

    def add_task(self, task: TaskRecord) -> TaskRecord:
        self.session.add(task)
        self.session.flush()
        return task

    def delete_task(self, task: TaskRecord) -> None:
        self.session.delete(task)

    def tasks_by_ids(self, task_ids: Iterable[str]) -> dict[str, TaskRecord]:
        ids = list(dict.fromkeys(task_ids))
        if not ids:
            return {}
        stmt = (
            select(TaskRecord)
            .where(TaskRecord.id.in_(ids))
            .options(selectinload(TaskRecord.assignee), selectinload(TaskRecord.reporter))
        )
        return {t.id: t for t in self.session.scalars(stmt)}

    def tasks_on_board(self, board_id: str) -> list[TaskRecord]:
        return list(self.session.scalars(select(TaskRecord).where(TaskRecord.board_id == board_id)))

    def query_tasks(
        self,
        organization_id: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        assignee_id: Optional[str] = None,
        text: Optional[str] = None,
        limit: Optional[int] = None,
        organization_ids: Optional[Iterable[str]] = None,
    ) -> list[TaskRecord]:
        stmt = select(TaskRecord).options(
            selectinload(TaskRecord.assignee), selectinload(TaskRecord.reporter)
        )
        if organization_id is not None:
            stmt = stmt.where(TaskRecord.organization_id == organization_id)
        if organization_ids is not None:
            stmt = stmt.where(TaskRecord.organization_id.in_(list(organization_ids)))
        if status is not None:
            stmt = stmt.where(TaskRecord.status == status)
        if priority is not None:
            stmt = stmt.where(TaskRecord.priority == priority)
        if assignee_id is not None:
            stmt = stmt.where(TaskRecord.assignee_id == assignee_id)
        if text:
            pattern = f"%{text}%"
            stmt = stmt.where(or_(TaskRecord.title.ilike(pattern), TaskRecord.description.ilike(pattern)))
        stmt = stmt.order_by(TaskRecord.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    # === Users ===
    def get_user(self, user_id: str) -> UserRecord:
        user = self.session.get(UserRecord, user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def find_user(self, user_id: str) -> Optional[UserRecord]:
        return self.session.get(UserRecord, user_id)

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        stmt = select(UserRecord).where(UserRecord.email == email.strip().lower())
        return self.session.scalars(stmt).first()

    def find_user_by_reset_token(self, token_hash: str) -> Optional[UserRecord]:
        stmt = select(UserRecord).where(UserRecord.reset_token_hash == token_hash)
        return self.session.scalars(stmt).first()

    def add_user(self, user: UserRecord) -> UserRecord:
        self.session.add(user)
        self.session.flush()
        return user

    def delete_user(self, user: UserRecord) -> None:
        self.session.delete(user)

    def all_users(self) -> list[UserRecord]:
        return list(self.session.scalars(select(UserRecord).order_by(UserRecord.name)))

    def search_users(self, text: str, limit: int = 10) -> list[UserRecord]:
        pattern = f"%{text}%"
        stmt = (
            select(UserRecord)
            .where(or_(UserRecord.name.ilike(pattern), UserRecord.email.ilike(pattern)))
            .order_by(UserRecord.name)
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    # === Organizations ===
    def get_organization(self, organization_id: str) -> OrganizationRecord:
        organization = self.session.get(OrganizationRecord, organization_id)
        if organization is None:
            raise OrganizationNotFound(organization_id)
        return organization

    def add_organization(self, organization: OrganizationRecord) -> OrganizationRecord:
        self.session.add(organization)
        self.session.flush()
        return organization

    def delete_organization(self, organization: OrganizationRecord) -> None:
        self.session.delete(organization)
