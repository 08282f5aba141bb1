import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("TASKBOARD_SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from taskboard.auth import create_token
from taskboard.coordinator import BoardCoordinator
from taskboard.db import Base, OrganizationRecord, SessionLocal, UserRecord, engine
from taskboard.main import app
from taskboard.storage import Storage
from taskboard.utils import hash_password


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def session() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def storage(session: Session) -> Storage:
    return Storage(session)


@pytest.fixture()
def coordinator(storage: Storage) -> BoardCoordinator:
    return BoardCoordinator(storage, strict_column_status=False)


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


def make_user(storage: Storage, name: str = "Ada", email: str = "ada@example.com", role: str = "member") -> UserRecord:
    user = storage.add_user(
        UserRecord(name=name, email=email, password_hash=hash_password("secret123"), role=role)
    )
    storage.commit(["user"])
    return user


def make_organization(storage: Storage, coordinator: BoardCoordinator, owner: UserRecord, name: str = "Acme"):
    """Organization with ``owner`` as its only member and one default board."""
    organization = storage.add_organization(OrganizationRecord(name=name, members=[owner]))
    board = coordinator.create_board(organization, "Default Board")
    storage.commit(["organization", "board"])
    return organization, board


def auth_header(user: UserRecord) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_token(user.id)}"}


def column_named(board, name: str):
    for column in board.columns:
        if column.name == name:
            return column
    raise AssertionError(f"no column named {name!r}")
