"""SQLite backend over a single aiosqlite connection.

SQLite has no pool: every caller shares one connection, serialized by a
backend lock. ``acquire`` holds the lock until ``release`` and the
backend-level ``query``/``fetch_all``/``execute`` take it per statement, so
statements from other tasks never land inside an open transaction. The
connection runs in autocommit mode (``isolation_level=None``) so that the
facade's transaction verbs are the literal ``BEGIN``/``COMMIT``/``ROLLBACK``
statements and nothing is left in an implicit transaction.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiosqlite

from feedback_core.adapters.db.base import (
    AbstractDatabaseBackend,
    BackendKind,
    Params,
    QueryResult,
    Row,
    ScopedConnection,
    WriteSummary,
)

logger = logging.getLogger(__name__)


async def _run(db: aiosqlite.Connection, sql: str, params: Params) -> QueryResult:
    async with db.execute(sql, tuple(params)) as cursor:
        # A result set (SELECT, PRAGMA, WITH ... SELECT, RETURNING) has a description
        if cursor.description is not None:
            rows = await cursor.fetchall()
            return QueryResult([dict(row) for row in rows])
        return QueryResult(
            WriteSummary(
                affected_count=max(cursor.rowcount, 0),
                inserted_id=cursor.lastrowid,
            )
        )


class SQLiteConnection:
    """Connection-shaped facade over the shared SQLite connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def query(self, sql: str, params: Params = ()) -> QueryResult:
        return await _run(self._db, sql, params)

    async def fetch_all(self, sql: str, params: Params = ()) -> list[Row]:
        result = await _run(self._db, sql, params)
        return result.data if result.is_read else []

    async def execute(self, sql: str, params: Params = ()) -> WriteSummary:
        result = await _run(self._db, sql, params)
        if result.is_read:
            return WriteSummary(affected_count=0, inserted_id=None)
        return result.data

    async def begin(self) -> None:
        await self._db.execute("BEGIN")

    async def commit(self) -> None:
        await self._db.execute("COMMIT")

    async def rollback(self) -> None:
        await self._db.execute("ROLLBACK")


class SQLiteBackend(AbstractDatabaseBackend):
    """Embedded single-file backend.

    Build instances with ``SQLiteBackend.open(path)``.
    """

    kind = BackendKind.SQLITE
    connection_limit = 1

    def __init__(self, db: aiosqlite.Connection, path: Path) -> None:
        self._db = db
        self._facade = SQLiteConnection(db)
        self._lock = asyncio.Lock()
        self.path = path
        self._closed = False

    @classmethod
    async def open(cls, path: Path | str) -> "SQLiteBackend":
        """Open (creating if needed) the database file at ``path``.

        The parent directory must already exist.
        """
        path = Path(path)
        db = await aiosqlite.connect(str(path), isolation_level=None)
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON")
        return cls(db, path)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def query(self, sql: str, params: Params = ()) -> QueryResult:
        async with self._lock:
            return await self._facade.query(sql, params)

    async def fetch_all(self, sql: str, params: Params = ()) -> list[Row]:
        async with self._lock:
            return await self._facade.fetch_all(sql, params)

    async def execute(self, sql: str, params: Params = ()) -> WriteSummary:
        async with self._lock:
            return await self._facade.execute(sql, params)

    async def acquire(self) -> ScopedConnection:
        # Held until release; do not call backend-level methods while checked out
        await self._lock.acquire()
        return self._facade

    async def release(self, connection: ScopedConnection) -> None:
        if self._lock.locked():
            self._lock.release()

    async def close(self) -> None:
        if self._closed:
            return
        await self._db.close()
        self._closed = True
        logger.info("db.sqlite.closed", extra={"db_path": str(self.path)})


async def check_writable(data_dir: Path | str) -> None:
    """Prove a database file can be created in ``data_dir``.

    Creates the directory if needed, opens a scratch database and removes it.
    """
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    scratch = data_dir / "test_connection.db"
    db = await aiosqlite.connect(str(scratch))
    try:
        await db.execute("SELECT 1")
    finally:
        await db.close()
        scratch.unlink(missing_ok=True)
