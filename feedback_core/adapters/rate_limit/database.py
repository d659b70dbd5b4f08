"""Database-backed windowed hit counter.

One ``rate_limits`` row per client key: ``hit_count`` and ``reset_time``
(epoch milliseconds). A row whose reset time has passed is logically
expired and is overwritten, not incremented, on the next hit.

Failure policy is fail-open: if the database is unreachable (or not yet
initialized) ``increment`` returns a fallback result and the request is
allowed. ``decrement`` and ``reset_key`` log and swallow errors.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from feedback_core.adapters.db.base import AbstractDatabaseBackend
from feedback_core.adapters.rate_limit.base import AbstractRateLimitStore, IncrementResult

logger = logging.getLogger(__name__)

BackendProvider = Callable[[], AbstractDatabaseBackend]


def _to_datetime(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)


class DatabaseRateLimitStore(AbstractRateLimitStore):
    """Counter store persisted through the active database backend.

    The read-then-write sequence is not atomic: two concurrent first hits
    for the same key can race on the INSERT. The loser fails on the primary
    key and is treated like any other store error (allowed, logged).
    """

    def __init__(
        self,
        backend_provider: BackendProvider,
        *,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            backend_provider: Returns the live backend; raising is treated
                as a store failure.
            window_seconds: Length of a counting window.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If window_seconds is invalid.
        """
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._backend_provider = backend_provider
        self._window_ms = window_seconds * 1000
        self._clock = clock

    @property
    def window_seconds(self) -> int:
        return self._window_ms // 1000

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def increment(self, key: str) -> IncrementResult:
        now = self._now_ms()
        expiration = now + self._window_ms

        try:
            db = self._backend_provider()
            record = await db.fetch_one(
                "SELECT hit_count, reset_time FROM rate_limits WHERE key_id = ?",
                (key,),
            )

            if record is None:
                hits, reset_ms = 1, expiration
                await db.execute(
                    "INSERT INTO rate_limits (key_id, hit_count, reset_time) VALUES (?, ?, ?)",
                    (key, hits, reset_ms),
                )
            elif int(record["reset_time"]) <= now:
                hits, reset_ms = 1, expiration
                await db.execute(
                    "UPDATE rate_limits SET hit_count = ?, reset_time = ? WHERE key_id = ?",
                    (hits, reset_ms, key),
                )
            else:
                hits, reset_ms = int(record["hit_count"]) + 1, int(record["reset_time"])
                await db.execute(
                    "UPDATE rate_limits SET hit_count = ? WHERE key_id = ?",
                    (hits, key),
                )
        except Exception as exc:
            logger.error(
                "rate_limit_store.increment_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return IncrementResult(
                total_hits=0,
                reset_time=_to_datetime(expiration),
                fallback=True,
            )

        return IncrementResult(total_hits=hits, reset_time=_to_datetime(reset_ms))

    async def decrement(self, key: str) -> None:
        try:
            db = self._backend_provider()
            await db.execute(
                "UPDATE rate_limits SET hit_count = hit_count - 1 WHERE key_id = ? AND hit_count > 0",
                (key,),
            )
        except Exception as exc:
            logger.error(
                "rate_limit_store.decrement_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )

    async def reset_key(self, key: str) -> None:
        try:
            db = self._backend_provider()
            await db.execute("DELETE FROM rate_limits WHERE key_id = ?", (key,))
        except Exception as exc:
            logger.error(
                "rate_limit_store.reset_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
