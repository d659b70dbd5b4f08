"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import of ``feedback_core`` so the
module-level settings never pick up a developer's .env file or DB_* vars.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-that-is-long-enough-for-hs256")
for _var in ("DB_TYPE", "DB_HOST", "DB_PORT", "DB_USER", "DB_PASSWORD", "DB_PASS", "DB_NAME", "LLM_API_KEY"):
    os.environ.pop(_var, None)

from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from feedback_core.adapters.db.schema import ensure_core_tables  # noqa: E402
from feedback_core.adapters.db.sqlite import SQLiteBackend  # noqa: E402
from feedback_core.core.config import StorageSettings  # noqa: E402

# Minimal versions of the installer-owned tables the services join against
TICKET_TABLES_DDL = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL,
        email TEXT,
        email_notification_enabled INTEGER DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tickets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER,
        type TEXT NOT NULL,
        content TEXT,
        location TEXT,
        status TEXT DEFAULT 'pending',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
)


@pytest.fixture
def storage_settings(tmp_path: Path) -> StorageSettings:
    return StorageSettings(
        config_path=tmp_path / "config" / "db_config.json",
        data_dir=tmp_path / "data",
    )


@pytest_asyncio.fixture
async def sqlite_backend(tmp_path: Path):
    """A real SQLite backend with the core tables, closed after the test."""
    backend = await SQLiteBackend.open(tmp_path / "core.sqlite")
    await ensure_core_tables(backend)
    try:
        yield backend
    finally:
        await backend.close()


@pytest_asyncio.fixture
async def app_backend(sqlite_backend: SQLiteBackend):
    """SQLite backend that also has the ticket and user tables."""
    for ddl in TICKET_TABLES_DDL:
        await sqlite_backend.execute(ddl)
    return sqlite_backend
