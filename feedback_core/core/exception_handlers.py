"""Global exception handlers for consistent error responses.

Every error body has the shape ``{"error": {code, message, request_id,
details?}}``.

Status mapping for domain errors:
- ValidationAppError, ConfigValidationError -> 400
- AIFeatureDisabledError -> 403
- AIHistoryNotFoundError -> 404
- AIQuotaExceededError -> 429
- NotInitializedError, AIUnavailableError -> 503
- anything else (InitializationError, LLMAppError, ...) -> 500

Driver errors and other unexpected exceptions fall through to the generic
500 handler, which never leaks their text to the client.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from feedback_core.core.errors import (
    AIFeatureDisabledError,
    AIHistoryNotFoundError,
    AIQuotaExceededError,
    AIUnavailableError,
    AppError,
    ConfigValidationError,
    NotInitializedError,
    ValidationAppError,
)
from feedback_core.core.logging import get_request_id

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (ValidationAppError, 400),
    (ConfigValidationError, 400),
    (AIFeatureDisabledError, 403),
    (AIHistoryNotFoundError, 404),
    (AIQuotaExceededError, 429),
    (NotInitializedError, 503),
    (AIUnavailableError, 503),
)


def status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with its mapped status code."""
    status_code = status_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for unexpected errors; logs the cause, returns a generic body."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers on ``app``."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
