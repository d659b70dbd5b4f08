"""MySQL backend over an aiomysql connection pool.

Callers write ``?`` placeholders for both backends; this adapter rewrites
them to the ``%s`` paramstyle expected by aiomysql. Rows come back as dicts
(``DictCursor``) and the pool runs in autocommit mode, so explicit
transactions go through ``ScopedConnection.begin``.
"""

from __future__ import annotations

import logging

import aiomysql

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

# Every session opened through the pool runs on Beijing time
SESSION_TIME_ZONE = "+08:00"


def translate_placeholders(sql: str) -> str:
    """Rewrite ``?`` placeholders to ``%s`` outside quoted literals and comments.

    Literal ``%`` characters are doubled everywhere because aiomysql always
    applies ``%``-formatting when parameters are passed. ``--``/``#`` line
    comments and ``/* */`` blocks are copied through untouched.

    Examples:
        >>> translate_placeholders("SELECT * FROM t WHERE a = ? AND b LIKE '50%?'")
        "SELECT * FROM t WHERE a = %s AND b LIKE '50%%?'"
    """

    out: list[str] = []
    quote: str | None = None
    comment_end: str | None = None
    i = 0
    while i < len(sql):
        ch = sql[i]
        if ch == "%":
            out.append("%%")
        elif comment_end:
            out.append(ch)
            if sql.startswith(comment_end, i):
                out.append(comment_end[1:])
                i += len(comment_end) - 1
                comment_end = None
        elif quote:
            out.append(ch)
            if ch == "\\" and i + 1 < len(sql):
                i += 1
                out.append("%%" if sql[i] == "%" else sql[i])
            elif ch == quote:
                quote = None
        elif ch in ("'", '"', "`"):
            quote = ch
            out.append(ch)
        elif sql.startswith("--", i) or ch == "#":
            comment_end = "\n"
            out.append(ch)
        elif sql.startswith("/*", i):
            comment_end = "*/"
            out.append("/*")
            i += 1
        elif ch == "?":
            out.append("%s")
        else:
            out.append(ch)
        i += 1
    return "".join(out)


class MySQLConnection:
    """A connection checked out of the pool."""

    def __init__(self, conn: aiomysql.Connection) -> None:
        self.raw = conn

    async def query(self, sql: str, params: Params = ()) -> QueryResult:
        async with self.raw.cursor(aiomysql.DictCursor) as cur:
            await cur.execute(translate_placeholders(sql), tuple(params))
            if cur.description is not None:
                rows = await cur.fetchall()
                return QueryResult(list(rows))
            return QueryResult(
                WriteSummary(
                    affected_count=max(cur.rowcount, 0),
                    inserted_id=cur.lastrowid,
                )
            )

    async def fetch_all(self, sql: str, params: Params = ()) -> list[Row]:
        result = await self.query(sql, params)
        return result.data if result.is_read else []

    async def execute(self, sql: str, params: Params = ()) -> WriteSummary:
        result = await self.query(sql, params)
        if result.is_read:
            return WriteSummary(affected_count=0, inserted_id=None)
        return result.data

    async def begin(self) -> None:
        await self.raw.begin()

    async def commit(self) -> None:
        await self.raw.commit()

    async def rollback(self) -> None:
        await self.raw.rollback()


class MySQLBackend(AbstractDatabaseBackend):
    """Pooled relational backend.

    Build instances with ``MySQLBackend.create(...)``; the constructor only
    wraps an existing pool.
    """

    kind = BackendKind.MYSQL

    def __init__(self, pool: aiomysql.Pool, *, connection_limit: int) -> None:
        self._pool = pool
        self.connection_limit = connection_limit
        self._closed = False

    @classmethod
    async def create(
        cls,
        *,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        connection_limit: int,
        connect_timeout: float,
        recycle_seconds: int,
    ) -> "MySQLBackend":
        """Create the pool. Connection errors from aiomysql propagate."""
        pool = await aiomysql.create_pool(
            host=host,
            port=port,
            user=user,
            password=password,
            db=database,
            minsize=1,
            maxsize=connection_limit,
            connect_timeout=connect_timeout,
            pool_recycle=recycle_seconds,
            autocommit=True,
            charset="utf8mb4",
            init_command=f"SET time_zone = '{SESSION_TIME_ZONE}'",
        )
        return cls(pool, connection_limit=connection_limit)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def probe(self) -> None:
        """Check out one connection, ping it and give it back."""
        async with self.connection() as conn:
            await conn.raw.ping(reconnect=False)

    async def query(self, sql: str, params: Params = ()) -> QueryResult:
        async with self.connection() as conn:
            return await conn.query(sql, params)

    async def fetch_all(self, sql: str, params: Params = ()) -> list[Row]:
        async with self.connection() as conn:
            return await conn.fetch_all(sql, params)

    async def execute(self, sql: str, params: Params = ()) -> WriteSummary:
        async with self.connection() as conn:
            return await conn.execute(sql, params)

    async def acquire(self) -> MySQLConnection:
        return MySQLConnection(await self._pool.acquire())

    async def release(self, connection: ScopedConnection) -> None:
        # Pool.release is not a coroutine; it returns an already-resolved future
        self._pool.release(connection.raw)

    async def close(self) -> None:
        if self._closed:
            return
        self._pool.close()
        await self._pool.wait_closed()
        self._closed = True
        logger.info("db.mysql.closed")


async def ensure_database(
    *,
    host: str,
    port: int,
    user: str,
    password: str,
    database: str,
    connect_timeout: float,
) -> None:
    """Connect without a schema and create ``database`` if it is missing.

    Used as the connectivity test before a descriptor is persisted.
    """
    if "`" in database:
        raise ValueError("database name must not contain a backtick")
    conn = await aiomysql.connect(
        host=host,
        port=port,
        user=user,
        password=password,
        connect_timeout=connect_timeout,
        autocommit=True,
        charset="utf8mb4",
    )
    try:
        async with conn.cursor() as cur:
            await cur.execute(f"CREATE DATABASE IF NOT EXISTS `{database}`")
    finally:
        conn.close()
