import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from conftest import column_named, make_organization, make_user
from taskboard.coordinator import BoardCoordinator
from taskboard.db import Base
from taskboard.errors import (
    BoardNotFound,
    ColumnNotEmpty,
    ColumnNotFound,
    ConcurrentModification,
    InvalidOperation,
    PersistenceFailure,
    PreconditionFailed,
    StatusColumnMismatch,
    TaskNotInSourceColumn,
    UnmappedColumnName,
)
from taskboard.models import Column, TaskStatus
from taskboard.ordering import is_contiguous
from taskboard.storage import Storage


@pytest.fixture()
def owner(storage):
    return make_user(storage)


@pytest.fixture()
def org_board(storage, coordinator, owner):
    return make_organization(storage, coordinator, owner)


@pytest.fixture()
def board(org_board):
    return org_board[1]


def _task(coordinator, org_board, owner, title="T1", column="To Do", **kwargs):
    organization, board = org_board
    column_id = column_named(board, column).id if column else None
    return coordinator.create_task(
        title=title,
        organization_id=organization.id,
        assignee=owner,
        reporter=owner,
        board_id=board.id if column else None,
        column_id=column_id,
        **kwargs,
    )


def _orders(board):
    return {c.name: c.order for c in board.columns}


# === Board creation ===


def test_new_board_has_default_columns(storage, board):
    board = storage.load_board(board.id)
    assert [(c.name, c.order, c.status) for c in board.sorted_columns()] == [
        ("To Do", 0, TaskStatus.TODO),
        ("In Progress", 1, TaskStatus.IN_PROGRESS),
        ("Review", 2, TaskStatus.REVIEW),
        ("Done", 3, TaskStatus.DONE),
    ]
    assert all(c.tasks == [] for c in board.columns)


def test_load_unknown_board_raises(storage):
    with pytest.raises(BoardNotFound):
        storage.load_board("missing")


# === Columns ===


def test_add_column_appends_at_next_order(storage, coordinator, board):
    column = coordinator.add_column(board.id, "Backlog")
    assert column.order == 4
    assert column.status == TaskStatus.TODO
    assert is_contiguous(storage.load_board(board.id).columns)


def test_add_column_with_explicit_status(coordinator, board):
    column = coordinator.add_column(board.id, "QA", status=TaskStatus.TESTING)
    assert column.status == TaskStatus.TESTING


def test_add_column_name_maps_to_status(coordinator, board):
    assert coordinator.add_column(board.id, "  done ").status == TaskStatus.DONE


def test_strict_mode_rejects_unmapped_column_name(storage, board):
    strict = BoardCoordinator(storage, strict_column_status=True)
    with pytest.raises(UnmappedColumnName):
        strict.add_column(board.id, "Backlog")
    assert strict.add_column(board.id, "Backlog", status=TaskStatus.TODO).status == TaskStatus.TODO


def test_update_column_order_shifts_columns_in_between(storage, coordinator, board):
    review = column_named(board, "Review")
    coordinator.update_column(board.id, review.id, order=0)
    assert _orders(storage.load_board(board.id)) == {"Review": 0, "To Do": 1, "In Progress": 2, "Done": 3}


def test_update_column_order_moving_right(storage, coordinator, board):
    todo = column_named(board, "To Do")
    coordinator.update_column(board.id, todo.id, order=2)
    assert _orders(storage.load_board(board.id)) == {"In Progress": 0, "Review": 1, "To Do": 2, "Done": 3}


def test_update_column_clamps_out_of_range_order(storage, coordinator, board):
    todo = column_named(board, "To Do")
    column = coordinator.update_column(board.id, todo.id, order=99)
    assert column.order == 3
    assert is_contiguous(storage.load_board(board.id).columns)


def test_rename_column_keeps_its_status(storage, coordinator, org_board, owner):
    board = org_board[1]
    review = column_named(board, "Review")
    coordinator.update_column(board.id, review.id, name="Ready for QA")
    renamed = storage.load_board(board.id).column(review.id)
    assert renamed.name == "Ready for QA"
    assert renamed.status == TaskStatus.REVIEW

    task = _task(coordinator, org_board, owner)
    coordinator.move_task(board.id, task.id, column_named(board, "To Do").id, review.id)
    assert storage.get_task(task.id).status == "review"


def test_update_unknown_column_raises(coordinator, board):
    with pytest.raises(ColumnNotFound):
        coordinator.update_column(board.id, "nope", name="X")


def test_delete_column_closes_gap(storage, coordinator, board):
    in_progress = column_named(board, "In Progress")
    coordinator.delete_column(board.id, in_progress.id)
    after = storage.load_board(board.id)
    assert _orders(after) == {"To Do": 0, "Review": 1, "Done": 2}


def test_delete_non_empty_column_fails_and_leaves_board_unchanged(storage, coordinator, org_board, owner):
    board = org_board[1]
    _task(coordinator, org_board, owner)
    before = storage.load_board(board.id)
    with pytest.raises(ColumnNotEmpty) as exc:
        coordinator.delete_column(board.id, column_named(board, "To Do").id)
    assert exc.value.details["taskCount"] == 1
    after = storage.load_board(board.id)
    assert after.version == before.version
    assert [c.to_document() for c in after.sorted_columns()] == [c.to_document() for c in before.sorted_columns()]


def test_reorder_columns_renumbers(storage, coordinator, board):
    done = column_named(board, "Done")
    todo = column_named(board, "To Do")
    coordinator.reorder_columns(board.id, [(done.id, 0), (todo.id, 3)])
    after = storage.load_board(board.id)
    assert [c.name for c in after.sorted_columns()] == ["Done", "In Progress", "Review", "To Do"]
    assert is_contiguous(after.columns)


def test_reorder_with_unknown_column_raises(coordinator, board):
    with pytest.raises(ColumnNotFound):
        coordinator.reorder_columns(board.id, [("ghost", 0)])


def test_partial_reorder_keeps_requested_slot(storage, coordinator, board):
    coordinator.reorder_columns(board.id, [(column_named(board, "Done").id, 0)])
    assert _orders(storage.load_board(board.id)) == {"Done": 0, "To Do": 1, "In Progress": 2, "Review": 3}


def test_blank_column_name_is_rejected(storage, coordinator, board):
    with pytest.raises(InvalidOperation):
        coordinator.update_column(board.id, column_named(board, "Review").id, name="   ")
    with pytest.raises(InvalidOperation):
        coordinator.add_column(board.id, "  ")
    assert storage.load_board(board.id).column(column_named(board, "Review").id).name == "Review"


def test_column_orders_stay_contiguous_through_mutations(storage, coordinator, board):
    added = [coordinator.add_column(board.id, f"Extra {i}").id for i in range(3)]
    assert is_contiguous(storage.load_board(board.id).columns)
    coordinator.delete_column(board.id, added[1])
    assert is_contiguous(storage.load_board(board.id).columns)
    current = storage.load_board(board.id)
    reversed_order = [(c.id, i) for i, c in enumerate(reversed(current.sorted_columns()))]
    coordinator.reorder_columns(board.id, reversed_order)
    assert is_contiguous(storage.load_board(board.id).columns)
    coordinator.delete_column(board.id, column_named(current, "Review").id)
    coordinator.update_column(board.id, added[0], order=0)
    final = storage.load_board(board.id)
    assert is_contiguous(final.columns)
    assert len(final.columns) == 5


# === Moves ===


def test_move_across_columns_updates_lists_and_status(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    todo, in_progress = column_named(board, "To Do"), column_named(board, "In Progress")

    result = coordinator.move_task(board.id, task.id, todo.id, in_progress.id, 0, 0)

    after = storage.load_board(board.id)
    assert after.column(todo.id).tasks == []
    assert after.column(in_progress.id).tasks == [task.id]
    stored = storage.get_task(task.id)
    assert stored.status == "in-progress"
    assert (stored.board_id, stored.column_id) == (board.id, in_progress.id)
    assert result.previous_status == TaskStatus.TODO
    assert result.status == TaskStatus.IN_PROGRESS
    assert result.status_changed
    assert result.applied == ["columns", "status"]


def test_move_within_column_only_reorders(storage, coordinator, org_board, owner):
    board = org_board[1]
    first = _task(coordinator, org_board, owner, title="first")
    second = _task(coordinator, org_board, owner, title="second")
    todo = column_named(board, "To Do")
    assert storage.load_board(board.id).column(todo.id).tasks == [first.id, second.id]

    result = coordinator.move_task(board.id, second.id, todo.id, todo.id, 1, 0)

    assert storage.load_board(board.id).column(todo.id).tasks == [second.id, first.id]
    assert storage.get_task(second.id).status == "todo"
    assert not result.status_changed
    assert result.applied == ["columns"]


def test_move_clamps_destination_index(storage, coordinator, org_board, owner):
    board = org_board[1]
    done = column_named(board, "Done")
    a = _task(coordinator, org_board, owner, title="a", column="Done", status=TaskStatus.DONE)
    b = _task(coordinator, org_board, owner, title="b")
    result = coordinator.move_task(board.id, b.id, column_named(board, "To Do").id, done.id, 0, 50)
    assert result.index == 1
    assert storage.load_board(board.id).column(done.id).tasks == [a.id, b.id]


def test_move_ignores_stale_source_index(storage, coordinator, org_board, owner):
    board = org_board[1]
    first = _task(coordinator, org_board, owner, title="first")
    second = _task(coordinator, org_board, owner, title="second")
    todo, review = column_named(board, "To Do"), column_named(board, "Review")
    coordinator.move_task(board.id, second.id, todo.id, review.id, source_index=0)
    after = storage.load_board(board.id)
    assert after.column(todo.id).tasks == [first.id]
    assert after.column(review.id).tasks == [second.id]


def test_move_task_not_in_source_column_leaves_board_unchanged(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    before = storage.load_board(board.id)
    with pytest.raises(TaskNotInSourceColumn):
        coordinator.move_task(
            board.id, task.id, column_named(board, "In Progress").id, column_named(board, "Done").id
        )
    after = storage.load_board(board.id)
    assert after.version == before.version
    assert after.column(column_named(board, "To Do").id).tasks == [task.id]
    assert storage.get_task(task.id).status == "todo"


def test_move_with_unknown_column_raises(coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    with pytest.raises(ColumnNotFound):
        coordinator.move_task(board.id, task.id, column_named(board, "To Do").id, "nowhere")


def test_move_into_explicit_status_column(storage, coordinator, org_board, owner):
    board = org_board[1]
    qa = coordinator.add_column(board.id, "QA", status=TaskStatus.TESTING)
    task = _task(coordinator, org_board, owner)
    coordinator.move_task(board.id, task.id, column_named(board, "To Do").id, qa.id)
    assert storage.get_task(task.id).status == "testing"


def test_move_into_unmapped_column_sets_todo(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner, column="Review", status=TaskStatus.REVIEW)
    backlog = coordinator.add_column(board.id, "Backlog")
    coordinator.move_task(board.id, task.id, column_named(board, "Review").id, backlog.id)
    assert storage.get_task(task.id).status == "todo"


def test_move_strips_duplicate_occurrences(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    doc = storage.load_board(board.id)
    doc.column(column_named(board, "Review").id).tasks.append(task.id)
    storage.save_board(doc)
    storage.commit()

    done = column_named(board, "Done")
    coordinator.move_task(board.id, task.id, column_named(board, "To Do").id, done.id)
    after = storage.load_board(board.id)
    holders = [c.name for c in after.columns if task.id in c.tasks]
    assert holders == ["Done"]


def test_move_dangling_reference_skips_status(storage, coordinator, board):
    doc = storage.load_board(board.id)
    doc.column(column_named(board, "To Do").id).tasks.append("ghost")
    storage.save_board(doc)
    storage.commit()

    done = column_named(board, "Done")
    result = coordinator.move_task(board.id, "ghost", column_named(board, "To Do").id, done.id)
    assert result.previous_status is None
    assert result.applied == ["columns"]
    assert not result.status_changed
    assert storage.load_board(board.id).column(done.id).tasks == ["ghost"]

    again = coordinator.move_task(board.id, "ghost", done.id, done.id)
    assert again.applied == ["columns"]
    assert not again.status_changed


def test_move_with_stale_version_fails(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    current = storage.load_board(board.id)
    with pytest.raises(PreconditionFailed) as exc:
        coordinator.move_task(
            board.id,
            task.id,
            column_named(board, "To Do").id,
            column_named(board, "Done").id,
            expected_version=current.version - 1,
        )
    assert exc.value.status_code == 412
    assert exc.value.details["current"] == current.version


def test_board_version_increases_with_each_write(storage, coordinator, board):
    before = storage.load_board(board.id).version
    coordinator.add_column(board.id, "Backlog")
    assert storage.load_board(board.id).version == before + 1


@pytest.fixture()
def file_sessions(tmp_path):
    """Session factory over a file database, so two sessions see each other's commits."""
    engine = create_engine(f"sqlite:///{tmp_path / 'boards.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def test_concurrent_write_from_another_session_is_reported(file_sessions):
    setup = Storage(file_sessions())
    owner = make_user(setup)
    _, board = make_organization(setup, BoardCoordinator(setup, strict_column_status=False), owner)
    setup.session.close()

    first, second = Storage(file_sessions()), Storage(file_sessions())
    try:
        stale = first.load_board(board.id)
        BoardCoordinator(second, strict_column_status=False).add_column(board.id, "Backlog")

        stale.columns.append(Column(id="other", name="Other", order=4, status=TaskStatus.TODO))
        with pytest.raises(ConcurrentModification) as exc:
            first.save_board(stale)
        assert exc.value.status_code == 409
        assert exc.value.details["applied"] == []

        names = [c.name for c in first.load_board(board.id).sorted_columns()]
        assert names == ["To Do", "In Progress", "Review", "Done", "Backlog"]
    finally:
        first.session.close()
        second.session.close()


def test_failed_commit_rolls_back_both_writes(storage, coordinator, org_board, owner, monkeypatch):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    todo, done = column_named(board, "To Do"), column_named(board, "Done")

    def broken_commit():
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(storage.session, "commit", broken_commit)
    with pytest.raises(PersistenceFailure) as exc:
        coordinator.move_task(board.id, task.id, todo.id, done.id)
    monkeypatch.undo()

    assert exc.value.details == {"attempted": ["columns", "status"], "applied": []}
    after = storage.load_board(board.id)
    assert after.column(todo.id).tasks == [task.id]
    assert after.column(done.id).tasks == []
    assert storage.get_task(task.id).status == "todo"


# === Task records ===


def test_create_task_into_column_sets_back_reference(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner, column="In Progress", status=TaskStatus.IN_PROGRESS)
    stored = storage.get_task(task.id)
    assert stored.column_id == column_named(board, "In Progress").id
    assert stored.board_id == board.id
    assert storage.load_board(board.id).column(stored.column_id).tasks == [task.id]


def test_create_task_with_conflicting_status_is_rejected(coordinator, org_board, owner):
    with pytest.raises(StatusColumnMismatch):
        _task(coordinator, org_board, owner, column="Done", status=TaskStatus.TODO)


def test_status_change_moves_task_to_matching_column(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    _, move = coordinator.update_task(task.id, status=TaskStatus.REVIEW)
    assert move is not None
    assert move.from_column_id == column_named(board, "To Do").id
    assert move.to_column_id == column_named(board, "Review").id
    after = storage.load_board(board.id)
    assert after.column_holding(task.id).name == "Review"
    assert storage.get_task(task.id).status == "review"


def test_status_change_without_matching_column_is_rejected(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    with pytest.raises(StatusColumnMismatch):
        coordinator.update_task(task.id, status=TaskStatus.TESTING)
    storage.session.rollback()
    assert storage.get_task(task.id).status == "todo"
    assert storage.load_board(board.id).column_holding(task.id).name == "To Do"


def test_status_change_for_task_on_no_board(storage, coordinator, org_board, owner):
    task = _task(coordinator, org_board, owner, column=None)
    updated, move = coordinator.update_task(task.id, status=TaskStatus.DONE)
    assert move is None
    assert updated.status == "done"


def test_update_task_with_column_relocates(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    done = column_named(board, "Done")
    updated, move = coordinator.update_task(task.id, column_id=done.id, title="Shipped")
    assert updated.title == "Shipped"
    assert updated.status == "done"
    assert move.applied == ["columns", "status"]
    assert storage.load_board(board.id).column(done.id).tasks == [task.id]


def test_update_task_column_and_status_must_agree(coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    with pytest.raises(StatusColumnMismatch):
        coordinator.update_task(task.id, column_id=column_named(board, "Done").id, status=TaskStatus.REVIEW)


def test_stale_back_reference_falls_back_to_scan(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    stored = storage.get_task(task.id)
    stored.board_id = "gone"
    stored.column_id = None
    storage.commit()

    coordinator.update_task(task.id, status=TaskStatus.DONE)
    after = storage.load_board(board.id)
    assert after.column_holding(task.id).name == "Done"
    assert storage.get_task(task.id).board_id == board.id


def test_delete_task_removes_it_from_columns(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    coordinator.delete_task(task.id)
    assert storage.find_task(task.id) is None
    assert storage.load_board(board.id).column_holding(task.id) is None


def test_delete_board_clears_task_back_references(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    coordinator.delete_board(board.id)
    stored = storage.get_task(task.id)
    assert (stored.board_id, stored.column_id) == (None, None)
    with pytest.raises(BoardNotFound):
        storage.load_board(board.id)


def test_task_cannot_be_placed_on_another_organizations_board(storage, coordinator, org_board, owner):
    outsider = make_user(storage, "Eve", "eve@example.com")
    _, foreign = make_organization(storage, coordinator, outsider, name="Other Co")
    foreign_todo = column_named(foreign, "To Do")

    with pytest.raises(ColumnNotFound):
        coordinator.create_task(
            title="Sneaky",
            organization_id=org_board[0].id,
            assignee=owner,
            reporter=owner,
            board_id=foreign.id,
            column_id=foreign_todo.id,
        )
    storage.session.rollback()
    assert storage.load_board(foreign.id).column(foreign_todo.id).tasks == []

    task = _task(coordinator, org_board, owner)
    with pytest.raises(ColumnNotFound):
        coordinator.update_task(task.id, board_id=foreign.id, column_id=foreign_todo.id)
    storage.session.rollback()
    assert storage.load_board(foreign.id).column(foreign_todo.id).tasks == []


# === Reads ===


def test_assemble_board_resolves_tasks_and_keeps_dangling_ids(storage, coordinator, org_board, owner):
    organization, board = org_board
    task = _task(coordinator, org_board, owner)
    doc = storage.load_board(board.id)
    doc.column(column_named(board, "Done").id).tasks.append("ghost")
    storage.save_board(doc)
    storage.commit()

    view = coordinator.get_board_by_id(board.id)
    assert view["organization"] == {"id": organization.id, "name": "Acme"}
    assert [c["order"] for c in view["columns"]] == [0, 1, 2, 3]
    todo_tasks = view["columns"][0]["tasks"]
    assert todo_tasks[0]["id"] == task.id
    assert todo_tasks[0]["assignee"] == {"id": owner.id, "name": "Ada", "email": "ada@example.com"}
    assert view["columns"][3]["tasks"] == ["ghost"]


def test_relocate_task_pulls_from_current_column(storage, coordinator, org_board, owner):
    board = org_board[1]
    task = _task(coordinator, org_board, owner)
    review = column_named(board, "Review")
    result = coordinator.relocate_task(task.id, review.id)
    assert result.from_column_id == column_named(board, "To Do").id
    assert result.applied == ["columns", "status"]
    after = storage.load_board(board.id)
    assert [c.name for c in after.columns if task.id in c.tasks] == ["Review"]
    assert storage.get_task(task.id).status == "review"
