"""Tests for descriptor resolution and persistence."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from feedback_core.adapters.db.base import BackendKind
from feedback_core.core.config import StorageSettings
from feedback_core.core.errors import ConfigValidationError
from feedback_core.schemas.database import DatabaseDescriptor
from feedback_core.services import db_config as db_config_module
from feedback_core.services.database import DatabaseManager
from feedback_core.services.db_config import DatabaseConfigStore


@pytest.fixture
def manager(storage_settings: StorageSettings) -> DatabaseManager:
    return DatabaseManager(storage_settings, environ={})


@pytest.fixture
def store(manager: DatabaseManager, storage_settings: StorageSettings) -> DatabaseConfigStore:
    return DatabaseConfigStore(
        manager,
        config_path=storage_settings.config_path,
        data_dir=storage_settings.data_dir,
    )


def test_unconfigured_without_env_or_file(store: DatabaseConfigStore) -> None:
    assert store.is_configured() is False
    assert store.load_config() is None


def test_env_descriptor_with_defaults(store: DatabaseConfigStore, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_USER", "lib")
    monkeypatch.setenv("DB_NAME", "feedback")

    descriptor = store.load_config()

    assert store.is_configured() is True
    assert descriptor == DatabaseDescriptor(
        type=BackendKind.MYSQL, host="db.internal", port=3306, user="lib", password="", database="feedback"
    )


def test_env_accepts_db_pass_alias(store: DatabaseConfigStore, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_HOST", "db")
    monkeypatch.setenv("DB_USER", "lib")
    monkeypatch.setenv("DB_NAME", "feedback")
    monkeypatch.setenv("DB_PASS", "s3cret")
    monkeypatch.setenv("DB_PORT", "3307")

    descriptor = store.load_config()

    assert descriptor is not None
    assert descriptor.password == "s3cret"
    assert descriptor.port == 3307


def test_partial_env_is_ignored(store: DatabaseConfigStore, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_HOST", "db")
    monkeypatch.setenv("DB_USER", "lib")

    assert store.is_configured() is False
    assert store.load_config() is None


def test_env_takes_precedence_over_file(store: DatabaseConfigStore, monkeypatch: pytest.MonkeyPatch) -> None:
    store.config_path.parent.mkdir(parents=True)
    store.config_path.write_text(json.dumps({"type": "sqlite"}), encoding="utf-8")
    monkeypatch.setenv("DB_HOST", "db")
    monkeypatch.setenv("DB_USER", "lib")
    monkeypatch.setenv("DB_NAME", "feedback")

    descriptor = store.load_config()

    assert descriptor is not None
    assert descriptor.type is BackendKind.MYSQL


def test_file_descriptor_is_loaded(store: DatabaseConfigStore) -> None:
    store.config_path.parent.mkdir(parents=True)
    store.config_path.write_text(
        json.dumps({"type": "mysql", "host": "h", "user": "u", "password": "p", "database": "d"}),
        encoding="utf-8",
    )

    descriptor = store.load_config()

    assert descriptor is not None
    assert descriptor.host == "h"
    assert descriptor.port == 3306


def test_invalid_file_raises(store: DatabaseConfigStore) -> None:
    store.config_path.parent.mkdir(parents=True)
    store.config_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigValidationError) as exc_info:
        store.load_config()

    assert exc_info.value.code == "db_config_invalid"


@pytest.mark.asyncio
async def test_save_sqlite_writes_file_and_initializes(
    store: DatabaseConfigStore, manager: DatabaseManager
) -> None:
    await store.save_config(DatabaseDescriptor(type="sqlite"))
    try:
        assert json.loads(store.config_path.read_text(encoding="utf-8")) == {"type": "sqlite"}
        backend = manager.get_active()
        assert backend.kind is BackendKind.SQLITE
        tables = await backend.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
        assert "rate_limits" in {row["name"] for row in tables}
        assert not (store.data_dir / "test_connection.db").exists()
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_failed_connection_test_writes_nothing(
    store: DatabaseConfigStore, manager: DatabaseManager
) -> None:
    descriptor = DatabaseDescriptor(type="mysql", host="nowhere", user="u", password="p", database="d")

    with patch.object(db_config_module, "ensure_database", AsyncMock(side_effect=OSError("refused"))):
        with pytest.raises(ConfigValidationError) as exc_info:
            await store.save_config(descriptor)

    assert exc_info.value.code == "db_connection_test_failed"
    assert not store.config_path.exists()
    assert manager.is_initialized is False


@pytest.mark.asyncio
async def test_mysql_save_runs_create_database_then_initializes(
    store: DatabaseConfigStore, manager: DatabaseManager
) -> None:
    descriptor = DatabaseDescriptor(type="mysql", host="db", user="u", password="p", database="d")
    ensure = AsyncMock()
    backend = AsyncMock()

    with patch.object(db_config_module, "ensure_database", ensure), patch.object(
        manager, "initialize", AsyncMock(return_value=backend)
    ) as initialize, patch.object(db_config_module, "ensure_core_tables", AsyncMock()) as ensure_tables:
        await store.save_config(descriptor)

    ensure.assert_awaited_once()
    assert ensure.await_args.kwargs["database"] == "d"
    initialize.assert_awaited_once_with(descriptor)
    ensure_tables.assert_awaited_once_with(backend)
    saved = json.loads(store.config_path.read_text(encoding="utf-8"))
    assert saved["host"] == "db"
    assert saved["password"] == "p"


def test_malformed_port_still_reports_configured(store: DatabaseConfigStore, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_HOST", "db")
    monkeypatch.setenv("DB_USER", "lib")
    monkeypatch.setenv("DB_NAME", "feedback")
    monkeypatch.setenv("DB_PORT", "not-a-port")

    assert store.is_configured() is True
    with pytest.raises(ConfigValidationError) as exc_info:
        store.load_config()

    assert exc_info.value.code == "db_env_invalid"


def test_unknown_env_backend_type_raises(store: DatabaseConfigStore, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DB_HOST", "db")
    monkeypatch.setenv("DB_USER", "lib")
    monkeypatch.setenv("DB_NAME", "feedback")
    monkeypatch.setenv("DB_TYPE", "oracle")

    with pytest.raises(ConfigValidationError) as exc_info:
        store.load_config()

    assert exc_info.value.code == "db_env_invalid"


def test_malformed_port_without_env_config_falls_back_to_file(
    store: DatabaseConfigStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DB_PORT", "not-a-port")

    assert store.is_configured() is False
    assert store.load_config() is None


@pytest.mark.asyncio
async def test_failed_save_keeps_live_backend(store: DatabaseConfigStore, manager: DatabaseManager) -> None:
    await manager.initialize(DatabaseDescriptor(type="sqlite"))
    live = manager.get_active()
    generation = manager.generation
    descriptor = DatabaseDescriptor(type="mysql", host="nowhere", user="u", password="p", database="d")

    try:
        with patch.object(db_config_module, "ensure_database", AsyncMock(side_effect=OSError("refused"))):
            with pytest.raises(ConfigValidationError):
                await store.save_config(descriptor)

        assert manager.get_active() is live
        assert manager.generation == generation
        assert live.is_closed is False
        assert not store.config_path.exists()
    finally:
        await manager.close()
