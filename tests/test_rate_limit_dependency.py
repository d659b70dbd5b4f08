"""Tests for the request throttling dependency."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from feedback_core.adapters.rate_limit.base import IncrementResult
from feedback_core.core import rate_limit as rate_limit_module
from feedback_core.core.rate_limit import enforce_rate_limit


def _result(hits: int, *, fallback: bool = False) -> IncrementResult:
    return IncrementResult(
        total_hits=hits,
        reset_time=datetime.now(timezone.utc) + timedelta(seconds=120),
        fallback=fallback,
    )


@pytest.fixture
def store() -> MagicMock:
    store = MagicMock()
    store.increment = AsyncMock(return_value=_result(1))
    return store


@pytest.fixture
def client(store: MagicMock, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_enabled", True)
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_requests", 2)
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_include_headers", True)

    app = FastAPI()
    app.state.rate_limit_store = store

    @app.get("/limited", dependencies=[Depends(enforce_rate_limit)])
    async def limited() -> dict:
        return {"ok": True}

    return TestClient(app)


def test_allows_requests_up_to_limit(client: TestClient, store: MagicMock) -> None:
    store.increment.return_value = _result(2)

    response = client.get("/limited")

    assert response.status_code == 200
    store.increment.assert_awaited_once_with("ip:testclient")


def test_rejects_when_over_limit(client: TestClient, store: MagicMock) -> None:
    store.increment.return_value = _result(3)

    response = client.get("/limited")

    assert response.status_code == 429
    assert response.headers["X-RateLimit-Limit"] == "2"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert 0 < int(response.headers["Retry-After"]) <= 120
    assert "X-RateLimit-Reset" in response.headers


def test_store_failure_allows_request(client: TestClient, store: MagicMock) -> None:
    store.increment.return_value = _result(0, fallback=True)

    response = client.get("/limited")

    assert response.status_code == 200


def test_headers_can_be_disabled(client: TestClient, store: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_include_headers", False)
    store.increment.return_value = _result(5)

    response = client.get("/limited")

    assert response.status_code == 429
    assert "Retry-After" not in response.headers


def test_disabled_limiter_skips_store(client: TestClient, store: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit_module.settings.app, "rate_limit_enabled", False)

    response = client.get("/limited")

    assert response.status_code == 200
    store.increment.assert_not_awaited()


def test_ipv4_mapped_address_is_normalized() -> None:
    request = MagicMock()
    request.client.host = "::ffff:10.0.0.8"

    assert rate_limit_module._build_rate_limit_key(request) == "ip:10.0.0.8"
