from __future__ import annotations

import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


APP_NAME = "Taskboard API"
VERSION = "1.0.0"

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./taskboard.db")
SECRET_KEY = os.getenv("TASKBOARD_SECRET_KEY", "dev-secret-change-me")
LOG_LEVEL = os.getenv("TASKBOARD_LOG_LEVEL", "INFO")

# Reject columns whose name does not map to a task status instead of
# falling back to "todo".
STRICT_COLUMN_STATUS = _env_flag("TASKBOARD_STRICT_COLUMN_STATUS")

RESET_TOKEN_TTL_SECONDS = int(os.getenv("TASKBOARD_RESET_TOKEN_TTL", "3600"))
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173").split(",")
    if origin.strip()
]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
