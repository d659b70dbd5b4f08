"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Driver errors raised by aiosqlite/aiomysql are deliberately not wrapped
here: query callers receive them unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    backend: str
    driver_error: str
    limit: int
    used: int
    retry_after: float
    history_id: int
    model: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation fails."""


class ConfigValidationError(AppError):
    """Raised when a database descriptor fails its connectivity test.

    Nothing is persisted when this is raised.
    """


class InitializationError(AppError):
    """Raised when the backend (pool or file) cannot be built or probed.

    No backend is left live when this is raised.
    """


class NotInitializedError(AppError):
    """Raised when the active backend is requested before initialization."""


class NotificationError(AppError):
    """Raised by email/webhook senders on delivery or configuration failure."""


class LLMAppError(AppError):
    """Raised when LLM provider/client operations fail."""


class AIUnavailableError(AppError):
    """Raised when AI features are requested but no LLM is configured."""


class AIQuotaExceededError(AppError):
    """Raised when a user has used up the daily AI analysis quota."""


class AIHistoryNotFoundError(AppError):
    """Raised when a requested AI analysis history record does not exist."""


class AIFeatureDisabledError(AppError):
    """Raised when AI analysis has been switched off in system settings."""
