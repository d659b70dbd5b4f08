"""Tests for AI trend analysis (cache, quota, retention)."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from feedback_core.adapters.db.base import BackendKind
from feedback_core.adapters.db.sqlite import SQLiteBackend
from feedback_core.core.errors import (
    AIFeatureDisabledError,
    AIHistoryNotFoundError,
    AIQuotaExceededError,
    AIUnavailableError,
    LLMAppError,
)
from feedback_core.services.ai_trends_service import AITrendsService, storage_timestamp
from feedback_core.services.settings_store import SettingsStore

LLM_RESPONSE = {
    "trends": [{"category": "设施报修", "trend": "上升", "description": "more lights"}],
    "insights": ["Lighting complaints doubled"],
    "recommendations": ["Audit third-floor lighting"],
    "topIssues": [{"issue": "lights", "count": 3, "severity": "medium"}],
}


@pytest.fixture
def llm() -> MagicMock:
    client = MagicMock()
    client.model = "gpt-4o-mini"
    client.generate_json = AsyncMock(return_value=dict(LLM_RESPONSE))
    return client


@pytest.fixture
def service(app_backend: SQLiteBackend, llm: MagicMock) -> AITrendsService:
    return AITrendsService(lambda: app_backend, llm, SettingsStore(lambda: app_backend))


async def _add_tickets(backend: SQLiteBackend, count: int) -> None:
    for i in range(count):
        await backend.execute(
            "INSERT INTO tickets (user_id, type, content) VALUES (?, ?, ?)",
            (1, "facility", f"Light {i} is broken"),
        )


def test_storage_timestamp_per_dialect() -> None:
    moment = datetime(2026, 1, 1, 20, 30, tzinfo=timezone.utc)

    assert storage_timestamp(moment, BackendKind.SQLITE) == "2026-01-01 20:30:00"
    assert storage_timestamp(moment, BackendKind.MYSQL) == "2026-01-02 04:30:00"


@pytest.mark.asyncio
async def test_unavailable_without_llm(app_backend: SQLiteBackend) -> None:
    service = AITrendsService(lambda: app_backend, None, SettingsStore(lambda: app_backend))

    assert service.is_available is False
    with pytest.raises(AIUnavailableError):
        await service.get_trends(1, "admin")


@pytest.mark.asyncio
async def test_refresh_without_llm_raises_unavailable(app_backend: SQLiteBackend) -> None:
    await _add_tickets(app_backend, 2)
    service = AITrendsService(lambda: app_backend, None, SettingsStore(lambda: app_backend))

    with pytest.raises(AIUnavailableError) as exc_info:
        await service.get_trends(1, "admin", refresh=True)

    assert exc_info.value.code == "ai_unavailable"
    assert await app_backend.fetch_all("SELECT * FROM ai_usage_logs") == []


@pytest.mark.asyncio
async def test_disabled_by_setting(service: AITrendsService, app_backend: SQLiteBackend) -> None:
    await SettingsStore(lambda: app_backend).set_setting("ai_analysis_enabled", False)

    with pytest.raises(AIFeatureDisabledError):
        await service.get_trends(1, "admin")


@pytest.mark.asyncio
async def test_without_cache_asks_for_generation(service: AITrendsService, llm: MagicMock) -> None:
    result = await service.get_trends(1, "admin")

    assert result.needs_generation is True
    assert result.cached is False
    llm.generate_json.assert_not_awaited()


@pytest.mark.asyncio
async def test_refresh_without_tickets_returns_placeholder(service: AITrendsService, llm: MagicMock) -> None:
    result = await service.get_trends(1, "admin", refresh=True)

    assert result.insights == ["暂无足够数据进行趋势分析"]
    assert result.trends == []
    llm.generate_json.assert_not_awaited()


@pytest.mark.asyncio
async def test_refresh_generates_caches_and_records_usage(
    service: AITrendsService, app_backend: SQLiteBackend, llm: MagicMock
) -> None:
    await _add_tickets(app_backend, 3)

    generated = await service.get_trends(1, "super_admin", refresh=True)

    assert generated.ticket_count == 3
    assert generated.cached is False
    assert generated.top_issues[0]["issue"] == "lights"
    prompt = llm.generate_json.await_args.args[0]
    assert "Light 0 is broken" in prompt

    cached = await service.get_trends(1, "super_admin")
    assert cached.cached is True
    assert cached.cached_at is not None
    assert cached.insights == ["Lighting complaints doubled"]

    usage = await app_backend.fetch_one("SELECT COUNT(*) AS n FROM ai_usage_logs WHERE user_id = 1")
    assert usage == {"n": 1}


@pytest.mark.asyncio
async def test_admin_daily_quota(service: AITrendsService, app_backend: SQLiteBackend) -> None:
    await _add_tickets(app_backend, 1)
    await service.get_trends(2, "admin", refresh=True)

    with pytest.raises(AIQuotaExceededError) as exc_info:
        await service.get_trends(2, "admin", refresh=True)

    assert exc_info.value.details == {"limit": 1, "used": 1}


@pytest.mark.asyncio
async def test_admin_retention_keeps_two(service: AITrendsService, app_backend: SQLiteBackend) -> None:
    await _add_tickets(app_backend, 1)
    for _ in range(3):
        await service.get_trends(5, "super_admin", refresh=True)
    # Same user later demoted: retention follows the role at save time
    await app_backend.execute("DELETE FROM ai_usage_logs")
    await service.get_trends(5, "admin", refresh=True)

    history = await service.list_history(5)

    assert len(history) == 2


@pytest.mark.asyncio
async def test_history_lookup(service: AITrendsService, app_backend: SQLiteBackend) -> None:
    await _add_tickets(app_backend, 1)
    await service.get_trends(1, "super_admin", refresh=True)
    [item] = await service.list_history(1)

    result = await service.get_trends(1, "super_admin", history_id=item.id)

    assert result.is_history is True
    assert result.cached is True


@pytest.mark.asyncio
async def test_history_of_other_user_not_found(service: AITrendsService, app_backend: SQLiteBackend) -> None:
    await _add_tickets(app_backend, 1)
    await service.get_trends(1, "super_admin", refresh=True)
    [item] = await service.list_history(1)

    with pytest.raises(AIHistoryNotFoundError):
        await service.get_trends(2, "super_admin", history_id=item.id)


@pytest.mark.asyncio
async def test_llm_schema_mismatch_raises(service: AITrendsService, app_backend: SQLiteBackend, llm: MagicMock) -> None:
    await _add_tickets(app_backend, 1)
    llm.generate_json.return_value = {"insights": "not a list"}

    with pytest.raises(LLMAppError):
        await service.get_trends(1, "super_admin", refresh=True)

    usage = await app_backend.fetch_one("SELECT COUNT(*) AS n FROM ai_usage_logs")
    assert usage == {"n": 0}
