"""HTTP middleware for request ID propagation and correlation.

The middleware:
- Accepts the incoming request-id header (LOG_REQUEST_ID_HEADER) or
  generates a UUID
- Stores it in contextvars so every log line of the request carries it
- Echoes it in the response headers along with the request duration
- Clears the context afterwards

Background side effects spawned during the request copy the context when
they are created, so their log lines keep the request id too.
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from feedback_core.core.config import settings
from feedback_core.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id and duration header to every response."""

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "http.request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
