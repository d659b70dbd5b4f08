"""Connection lifecycle manager.

``DatabaseManager`` owns the single live backend of the process. The FastAPI
app creates one in its lifespan and stores it on ``app.state``; everything
else receives it by injection instead of reaching for a module global.

Lifecycle:
- ``initialize`` tears down the current backend (teardown errors are logged
  and swallowed) and builds a new one from a descriptor
- ``get_active`` returns the live backend or raises ``NotInitializedError``
- ``close`` tears the backend down at shutdown

Re-initializations are serialized with an ``asyncio.Lock``. Queries already
running against a replaced backend are not drained: they may fail with the
driver's "connection closed" error, which is acceptable for a deployment
that is reconfigured only during first-run setup.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from pathlib import Path

from feedback_core.adapters.db.base import AbstractDatabaseBackend, BackendKind
from feedback_core.adapters.db.mysql import MySQLBackend
from feedback_core.adapters.db.sqlite import SQLiteBackend
from feedback_core.core.config import StorageSettings, settings
from feedback_core.core.errors import InitializationError, NotInitializedError
from feedback_core.schemas.database import DatabaseDescriptor, DatabaseStatus

logger = logging.getLogger(__name__)

SERVERLESS_MARKERS = ("VERCEL", "AWS_LAMBDA_FUNCTION_NAME", "NETLIFY", "SERVERLESS")

SERVERLESS_POOL_SIZE = 3
DEFAULT_POOL_SIZE = 10
CONNECT_TIMEOUT_SECONDS = 10.0
POOL_RECYCLE_SECONDS = 30 * 60


def is_serverless(environ: Mapping[str, str] | None = None) -> bool:
    """Whether the process runs in a short-lived serverless context.

    Only affects pool sizing.
    """

    env = os.environ if environ is None else environ
    return any(env.get(marker) for marker in SERVERLESS_MARKERS)


def pool_size_for(environ: Mapping[str, str] | None = None) -> int:
    return SERVERLESS_POOL_SIZE if is_serverless(environ) else DEFAULT_POOL_SIZE


class DatabaseManager:
    """Owner of the process-wide backend handle."""

    def __init__(
        self,
        storage: StorageSettings | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._storage = storage or settings.storage
        self._environ = environ
        self._backend: AbstractDatabaseBackend | None = None
        self._descriptor: DatabaseDescriptor | None = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._backend is not None

    @property
    def generation(self) -> int:
        """Incremented on every successful ``initialize``."""
        return self._generation

    @property
    def descriptor(self) -> DatabaseDescriptor | None:
        return self._descriptor

    @property
    def sqlite_path(self) -> Path:
        return self._storage.data_dir / self._storage.sqlite_filename

    def get_active(self) -> AbstractDatabaseBackend:
        """Return the live backend.

        Raises:
            NotInitializedError: If no backend is live.
        """
        if self._backend is None:
            raise NotInitializedError(
                code="database_not_initialized",
                message="Database not initialized",
                details={"hint": "Complete setup or set DB_HOST/DB_USER/DB_NAME"},
            )
        return self._backend

    def status(self, *, configured: bool) -> DatabaseStatus:
        backend = self._backend
        return DatabaseStatus(
            configured=configured,
            initialized=backend is not None,
            backend=backend.kind if backend else None,
            connection_limit=backend.connection_limit if backend else None,
            generation=self._generation,
        )

    async def initialize(self, descriptor: DatabaseDescriptor) -> AbstractDatabaseBackend:
        """Replace the live backend with one built from ``descriptor``.

        Raises:
            InitializationError: If the backend cannot be built or probed.
                No backend is live afterwards.
        """
        async with self._lock:
            await self._teardown()
            backend = await self._build(descriptor)
            self._backend = backend
            self._descriptor = descriptor
            self._generation += 1
            logger.info(
                "db.initialized",
                extra={
                    "backend": backend.kind.value,
                    "connection_limit": backend.connection_limit,
                    "generation": self._generation,
                },
            )
            return backend

    async def close(self) -> None:
        """Tear down the live backend, if any."""
        async with self._lock:
            await self._teardown()

    async def _teardown(self) -> None:
        backend, self._backend = self._backend, None
        self._descriptor = None
        if backend is None:
            return
        try:
            await backend.close()
        except Exception as exc:
            logger.warning(
                "db.teardown_failed",
                extra={"backend": backend.kind.value, "error_type": type(exc).__name__},
            )

    async def _build(self, descriptor: DatabaseDescriptor) -> AbstractDatabaseBackend:
        if descriptor.type is BackendKind.SQLITE:
            return await self._build_sqlite()
        return await self._build_mysql(descriptor)

    async def _build_sqlite(self) -> SQLiteBackend:
        if is_serverless(self._environ):
            logger.warning(
                "db.sqlite_in_serverless",
                extra={"hint": "SQLite files do not persist in serverless; configure MySQL"},
            )
        path = self.sqlite_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return await SQLiteBackend.open(path)
        except Exception as exc:
            logger.error(
                "db.init_failed",
                extra={"backend": "sqlite", "error_type": type(exc).__name__},
            )
            raise InitializationError(
                code="database_init_failed",
                message=f"Could not open SQLite database: {exc}",
                details={"backend": "sqlite", "driver_error": str(exc)},
            ) from exc

    async def _build_mysql(self, descriptor: DatabaseDescriptor) -> MySQLBackend:
        limit = pool_size_for(self._environ)
        try:
            backend = await MySQLBackend.create(
                host=descriptor.host or "",
                port=descriptor.port,
                user=descriptor.user or "",
                password=descriptor.password,
                database=descriptor.database or "",
                connection_limit=limit,
                connect_timeout=CONNECT_TIMEOUT_SECONDS,
                recycle_seconds=POOL_RECYCLE_SECONDS,
            )
        except Exception as exc:
            logger.error(
                "db.init_failed",
                extra={"backend": "mysql", "stage": "pool", "error_type": type(exc).__name__},
            )
            raise InitializationError(
                code="database_init_failed",
                message=f"Database connection failed: {exc}",
                details={"backend": "mysql", "driver_error": str(exc)},
            ) from exc

        try:
            await backend.probe()
        except Exception as exc:
            logger.error(
                "db.init_failed",
                extra={"backend": "mysql", "stage": "probe", "error_type": type(exc).__name__},
            )
            try:
                await backend.close()
            except Exception:
                logger.debug("db.probe_cleanup_failed", exc_info=True)
            raise InitializationError(
                code="database_init_failed",
                message=f"Database connection failed: {exc}",
                details={"backend": "mysql", "driver_error": str(exc)},
            ) from exc
        return backend
