from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from feedback_core.api.dependencies import get_ai_trends_service
from feedback_core.core.auth import ADMIN_ROLES, CurrentUser, get_current_user, require_roles
from feedback_core.schemas.ai_trends import TrendsResponse
from feedback_core.services.ai_trends_service import AITrendsService

router = APIRouter(prefix="/tickets", tags=["AI Trends"])


@router.get("/ai-trends/history")
async def trends_history(
    user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[AITrendsService, Depends(get_ai_trends_service)],
) -> dict:
    history = await service.list_history(user.id)
    return {"success": True, "history": [item.model_dump(mode="json") for item in history]}


@router.get("/ai-trends", response_model=TrendsResponse, response_model_by_alias=True)
async def trends(
    user: Annotated[CurrentUser, Depends(require_roles(*ADMIN_ROLES))],
    service: Annotated[AITrendsService, Depends(get_ai_trends_service)],
    days: Annotated[int, Query(ge=1, le=365)] = 30,
    refresh: bool = False,
    history_id: Annotated[int | None, Query(alias="historyId")] = None,
) -> TrendsResponse:
    """Cached trend analysis; ``refresh=true`` generates a new one within the daily quota."""

    return await service.get_trends(user.id, user.role, days=days, refresh=refresh, history_id=history_id)
