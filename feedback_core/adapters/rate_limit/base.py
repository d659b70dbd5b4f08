"""Rate limit store interfaces.

The HTTP layer depends on this abstraction (not the concrete store) so the
counter persistence can change without touching the throttling dependency.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class IncrementResult:
    """Counter state after one hit.

    Attributes:
        total_hits: Hits recorded in the current window, including this one.
        reset_time: When the current window ends (aware UTC datetime).
        fallback: True when the store failed and ``total_hits`` is not a
            real count; the caller must let the request through.
    """

    total_hits: int
    reset_time: datetime
    fallback: bool = False


class AbstractRateLimitStore(ABC):
    """Interface for windowed hit counters keyed by client identity."""

    @abstractmethod
    async def increment(self, key: str) -> IncrementResult:
        """Record one hit for ``key`` and return the resulting count."""
        raise NotImplementedError

    @abstractmethod
    async def decrement(self, key: str) -> None:
        """Undo one hit for ``key``; never drops below zero."""
        raise NotImplementedError

    @abstractmethod
    async def reset_key(self, key: str) -> None:
        """Forget every hit recorded for ``key``."""
        raise NotImplementedError
