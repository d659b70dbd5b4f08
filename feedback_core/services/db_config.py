"""Database descriptor resolution and persistence.

Two sources, in order of precedence:
1. ``DB_*`` environment variables, when DB_HOST, DB_USER and DB_NAME are set
   (container deployments configure themselves this way)
2. The JSON descriptor written by first-run setup

``save_config`` never persists a descriptor that failed its connectivity
test, and re-initializes the connection manager only after the file is
written.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from feedback_core.adapters.db.base import BackendKind
from feedback_core.adapters.db.mysql import ensure_database
from feedback_core.adapters.db.schema import ensure_core_tables
from feedback_core.adapters.db.sqlite import check_writable
from feedback_core.core.config import DatabaseEnvSettings, settings
from feedback_core.core.errors import ConfigValidationError
from feedback_core.schemas.database import DEFAULT_MYSQL_PORT, DatabaseDescriptor
from feedback_core.services.database import CONNECT_TIMEOUT_SECONDS, DatabaseManager

logger = logging.getLogger(__name__)


# Presence of all three switches configuration to the environment
ENV_REQUIRED = ("DB_HOST", "DB_USER", "DB_NAME")


def env_configured() -> bool:
    return all(os.environ.get(name) for name in ENV_REQUIRED)


class DatabaseConfigStore:
    """Resolve, validate and persist the database descriptor."""

    def __init__(
        self,
        manager: DatabaseManager,
        *,
        config_path: Path | None = None,
        data_dir: Path | None = None,
    ) -> None:
        self._manager = manager
        self.config_path = Path(config_path or settings.storage.config_path)
        self.data_dir = Path(data_dir or settings.storage.data_dir)

    def is_configured(self) -> bool:
        """Whether a descriptor is available from the environment or disk."""
        return env_configured() or self.config_path.is_file()

    def load_config(self) -> DatabaseDescriptor | None:
        """Return the authoritative descriptor, or ``None`` if unconfigured.

        Raises:
            ConfigValidationError: If the environment or the persisted file
                holds an invalid descriptor.
        """
        if env_configured():
            try:
                env = DatabaseEnvSettings()  # type: ignore[call-arg]
                return DatabaseDescriptor(
                    type=env.type or BackendKind.MYSQL,
                    host=env.host,
                    port=env.port or DEFAULT_MYSQL_PORT,
                    user=env.user,
                    password=env.password or "",
                    database=env.name,
                )
            except ValidationError as exc:
                logger.error("db_config.env_invalid", extra={"error_type": type(exc).__name__})
                raise ConfigValidationError(
                    code="db_env_invalid",
                    message=f"Database environment variables are invalid: {exc}",
                    details={"hint": "Check DB_TYPE and DB_PORT"},
                ) from exc

        if not self.config_path.is_file():
            return None

        try:
            payload = json.loads(self.config_path.read_text(encoding="utf-8"))
            return DatabaseDescriptor.model_validate(payload)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.error(
                "db_config.file_invalid",
                extra={"config_path": str(self.config_path), "error_type": type(exc).__name__},
            )
            raise ConfigValidationError(
                code="db_config_invalid",
                message=f"Stored database configuration is invalid: {exc}",
                details={"hint": f"Fix or remove {self.config_path}"},
            ) from exc

    async def test_connection(self, descriptor: DatabaseDescriptor) -> None:
        """Prove the descriptor works, creating the MySQL schema if missing.

        Raises:
            ConfigValidationError: If the backend is unreachable.
        """
        try:
            if descriptor.type is BackendKind.SQLITE:
                await check_writable(self.data_dir)
            else:
                await ensure_database(
                    host=descriptor.host or "",
                    port=descriptor.port,
                    user=descriptor.user or "",
                    password=descriptor.password,
                    database=descriptor.database or "",
                    connect_timeout=CONNECT_TIMEOUT_SECONDS,
                )
        except Exception as exc:
            logger.warning(
                "db_config.connection_test_failed",
                extra={"descriptor": descriptor.redacted(), "error_type": type(exc).__name__},
            )
            raise ConfigValidationError(
                code="db_connection_test_failed",
                message=f"Database connection test failed: {exc}",
                details={"backend": descriptor.type.value, "driver_error": str(exc)},
            ) from exc

    async def save_config(self, descriptor: DatabaseDescriptor) -> None:
        """Test, persist, then activate a descriptor.

        Raises:
            ConfigValidationError: Connectivity test failed; nothing written.
            InitializationError: The descriptor was saved but the backend
                could not be initialized.
        """
        await self.test_connection(descriptor)

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(
            json.dumps(descriptor.to_file_payload(), indent=2),
            encoding="utf-8",
        )
        logger.info(
            "db_config.saved",
            extra={"config_path": str(self.config_path), "descriptor": descriptor.redacted()},
        )

        backend = await self._manager.initialize(descriptor)
        await ensure_core_tables(backend)
