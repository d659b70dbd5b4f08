from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from feedback_core.adapters.db.base import AbstractDatabaseBackend
from feedback_core.api.dependencies import get_active_backend
from feedback_core.core.rate_limit import enforce_rate_limit

router = APIRouter(tags=["Status"])


@router.get("/status", dependencies=[Depends(enforce_rate_limit)])
async def service_status(
    backend: Annotated[AbstractDatabaseBackend, Depends(get_active_backend)],
) -> dict:
    """Round-trip to the active backend, throttled per client IP.

    Responds 503 until the database has been configured.
    """

    row = await backend.fetch_one("SELECT 1 AS ok")
    return {
        "status": "ok" if row and row["ok"] == 1 else "degraded",
        "backend": backend.kind.value,
        "connection_limit": backend.connection_limit,
    }
