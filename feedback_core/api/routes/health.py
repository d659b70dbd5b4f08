from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from feedback_core.api.dependencies import get_config_store, get_database_manager
from feedback_core.schemas.database import DatabaseStatus
from feedback_core.services.database import DatabaseManager
from feedback_core.services.db_config import DatabaseConfigStore

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe. Does not touch the database."""

    return {"status": "ok"}


@router.get("/health/database", response_model=DatabaseStatus)
def database_health(
    manager: Annotated[DatabaseManager, Depends(get_database_manager)],
    config_store: Annotated[DatabaseConfigStore, Depends(get_config_store)],
) -> DatabaseStatus:
    """Whether a descriptor exists and a backend is live (no query is run)."""

    return manager.status(configured=config_store.is_configured())
