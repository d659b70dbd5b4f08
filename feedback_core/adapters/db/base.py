"""Backend adapter interfaces.

Route code depends on ``AbstractDatabaseBackend`` only; the concrete SQLite
and MySQL adapters normalize their drivers to the same shapes:

- reads produce ``list[dict[str, Any]]`` (column name -> value, in order)
- writes produce a ``WriteSummary``
- ``query`` wraps either in a two-element ``QueryResult`` whose second
  element is always ``None``

SQL is always written with ``?`` placeholders.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, NamedTuple, Protocol, Sequence, Union

Row = dict[str, Any]
Params = Sequence[Any]


class BackendKind(str, enum.Enum):
    """Storage engine behind the active backend."""

    MYSQL = "mysql"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: "str | BackendKind") -> "BackendKind":
        """Parse a backend kind, accepting the generic aliases.

        ``relational`` maps to MySQL and ``embedded`` to SQLite.
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        aliases = {"relational": cls.MYSQL, "embedded": cls.SQLITE}
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


@dataclass(frozen=True)
class WriteSummary:
    """Outcome of a statement that produced no result set.

    Attributes:
        affected_count: Rows changed by the statement (0 for DDL).
        inserted_id: Last inserted row id reported by the driver.
        warning_count: Always 0; neither driver surfaces it portably.
    """

    affected_count: int
    inserted_id: int | None
    warning_count: int = 0


class QueryResult(NamedTuple):
    """Two-element query outcome, identical for every backend.

    Unpacks as ``rows, _ = await backend.query(...)``.
    """

    data: Union[list[Row], WriteSummary]
    fields: None = None

    @property
    def is_read(self) -> bool:
        return not isinstance(self.data, WriteSummary)


class ScopedConnection(Protocol):
    """A checked-out connection; must be released by whoever acquired it."""

    async def query(self, sql: str, params: Params = ()) -> QueryResult: ...

    async def fetch_all(self, sql: str, params: Params = ()) -> list[Row]: ...

    async def execute(self, sql: str, params: Params = ()) -> WriteSummary: ...

    async def begin(self) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class AbstractDatabaseBackend(ABC):
    """Uniform async query contract over one storage engine."""

    kind: BackendKind
    connection_limit: int

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Whether ``close`` has completed."""

    @abstractmethod
    async def query(self, sql: str, params: Params = ()) -> QueryResult:
        """Run one statement and normalize its outcome.

        A statement that yields a result set is returned as rows; anything
        else as a ``WriteSummary``. Driver errors propagate unchanged.
        """

    @abstractmethod
    async def fetch_all(self, sql: str, params: Params = ()) -> list[Row]:
        """Run a read statement and return every row."""

    @abstractmethod
    async def execute(self, sql: str, params: Params = ()) -> WriteSummary:
        """Run a write/DDL statement and return its summary."""

    @abstractmethod
    async def acquire(self) -> ScopedConnection:
        """Check out a connection. Pair every call with ``release``."""

    @abstractmethod
    async def release(self, connection: ScopedConnection) -> None:
        """Return a connection obtained from ``acquire``."""

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying connection or drain the pool."""

    async def fetch_one(self, sql: str, params: Params = ()) -> Row | None:
        """Run a read statement and return the first row, or ``None``."""
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[ScopedConnection]:
        """Acquire a connection and release it on every exit path."""
        conn = await self.acquire()
        try:
            yield conn
        finally:
            await self.release(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ScopedConnection]:
        """Run the block inside BEGIN/COMMIT, rolling back on any error.

        The original exception is re-raised after the rollback.
        """
        async with self.connection() as conn:
            await conn.begin()
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()
