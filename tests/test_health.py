from fastapi.testclient import TestClient

from taskboard.main import app


def test_health():
    client = TestClient(app)
    assert client.get("/api/health").json() == {"status": "ok"}


def test_version():
    client = TestClient(app)
    assert client.get("/api/version").json() == {"version": "1.0.0"}
