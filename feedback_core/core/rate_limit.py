"""Rate limiting dependency for FastAPI routes.

This module wires the database-backed counter store into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- The store lives on ``app.state.rate_limit_store`` (built in the app
  lifespan) so every worker shares counters through the database.
- Fail-open: a fallback result from the store always allows the request.

Rate limiting strategy:
- Fixed window per client IP (IPv4-mapped IPv6 prefix stripped).
"""

from __future__ import annotations

import hashlib
import logging
import math
from datetime import datetime, timezone

from fastapi import HTTPException, Request, status

from feedback_core.adapters.rate_limit.base import AbstractRateLimitStore
from feedback_core.core.config import settings
from feedback_core.services.audit_service import clean_ip_address

logger = logging.getLogger(__name__)


def get_rate_limit_store(request: Request) -> AbstractRateLimitStore:
    """Return the store owned by the running application."""
    return request.app.state.rate_limit_store


def _build_rate_limit_key(request: Request) -> str:
    client_host = request.client.host if request.client else None
    return f"ip:{clean_ip_address(client_host) or 'unknown'}"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing rate limits.

    When enabled, records one hit for the requester. If the requester has
    exceeded the configured limit in the current window, raises HTTP 429.

    Raises:
        HTTPException: 429 Too Many Requests when rate limit is exceeded.
    """

    if not settings.app.rate_limit_enabled:
        return

    store = get_rate_limit_store(request)
    key = _build_rate_limit_key(request)
    key_hash = _hash_limiter_key(key)
    limit = settings.app.rate_limit_requests

    result = await store.increment(key)
    remaining = max(limit - result.total_hits, 0)

    if result.fallback:
        logger.warning("rate_limit.store_unavailable", extra={"key_hash": key_hash})
        return

    if result.total_hits <= limit:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": limit,
                "remaining": remaining,
                "window_s": settings.app.rate_limit_window_seconds,
            },
        )
        return

    now = datetime.now(timezone.utc)
    retry_after = max(math.ceil((result.reset_time - now).total_seconds()), 0)
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": limit,
            "total_hits": result.total_hits,
            "window_s": settings.app.rate_limit_window_seconds,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if settings.app.rate_limit_include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Limit"] = str(limit)
        headers["X-RateLimit-Remaining"] = str(remaining)
        headers["X-RateLimit-Reset"] = str(int(result.reset_time.timestamp()))

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests, please try again later.",
        headers=headers or None,
    )
