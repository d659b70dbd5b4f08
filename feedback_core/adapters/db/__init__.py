"""Database backend adapters: one query contract over SQLite and MySQL."""

from feedback_core.adapters.db.base import (
    AbstractDatabaseBackend,
    BackendKind,
    QueryResult,
    ScopedConnection,
    WriteSummary,
)
from feedback_core.adapters.db.mysql import MySQLBackend
from feedback_core.adapters.db.sqlite import SQLiteBackend

__all__ = [
    "AbstractDatabaseBackend",
    "BackendKind",
    "MySQLBackend",
    "QueryResult",
    "SQLiteBackend",
    "ScopedConnection",
    "WriteSummary",
]
