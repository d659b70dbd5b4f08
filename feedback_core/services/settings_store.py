"""Key/value runtime settings persisted in ``system_settings``.

Values are stored as JSON text. Reads decode JSON when possible and fall
back to the raw string, so values written by hand (``true``, ``smtp.example``)
still come back usable.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from feedback_core.adapters.db.base import AbstractDatabaseBackend, BackendKind

logger = logging.getLogger(__name__)

_UPSERT = {
    BackendKind.SQLITE: (
        "INSERT INTO system_settings (setting_key, setting_value) VALUES (?, ?) "
        "ON CONFLICT(setting_key) DO UPDATE SET "
        "setting_value = excluded.setting_value, updated_at = CURRENT_TIMESTAMP"
    ),
    BackendKind.MYSQL: (
        "INSERT INTO system_settings (setting_key, setting_value) VALUES (?, ?) "
        "ON DUPLICATE KEY UPDATE "
        "setting_value = VALUES(setting_value), updated_at = CURRENT_TIMESTAMP"
    ),
}


def _decode(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def is_enabled(value: Any) -> bool:
    """Interpret a stored flag: ``True`` or the string ``"true"``."""
    return value is True or value == "true"


class SettingsStore:
    def __init__(self, backend_provider: Callable[[], AbstractDatabaseBackend]) -> None:
        self._backend_provider = backend_provider

    async def get_setting(self, key: str) -> Any:
        """Return the decoded value for ``key``; ``None`` if missing or unreadable."""
        try:
            row = await self._backend_provider().fetch_one(
                "SELECT setting_value FROM system_settings WHERE setting_key = ?",
                (key,),
            )
        except Exception as exc:
            logger.error(
                "settings.read_failed",
                extra={"setting_key": key, "error_type": type(exc).__name__},
            )
            return None
        if row is None:
            return None
        return _decode(row["setting_value"])

    async def get_many(self, *keys: str) -> dict[str, Any]:
        return {key: await self.get_setting(key) for key in keys}

    async def set_setting(self, key: str, value: Any) -> None:
        """Insert or overwrite ``key``. Errors propagate."""
        db = self._backend_provider()
        payload = json.dumps(value, ensure_ascii=False)
        await db.execute(_UPSERT[db.kind], (key, payload))
        logger.info("settings.updated", extra={"setting_key": key})

    async def get_all_settings(self) -> dict[str, Any]:
        rows = await self._backend_provider().fetch_all(
            "SELECT setting_key, setting_value FROM system_settings"
        )
        return {row["setting_key"]: _decode(row["setting_value"]) for row in rows}
