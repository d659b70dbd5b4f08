from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from feedback_core.api.dependencies import get_audit_service
from feedback_core.core.auth import require_roles
from feedback_core.schemas.audit import AuditLogPage
from feedback_core.services.audit_service import AuditService

router = APIRouter(
    prefix="/audit",
    tags=["Audit"],
    dependencies=[Depends(require_roles("super_admin"))],
)


@router.get("", response_model=AuditLogPage)
async def list_audit_logs(
    audit: Annotated[AuditService, Depends(get_audit_service)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 20,
    action: str | None = None,
    target_type: str | None = None,
) -> AuditLogPage:
    """Audit entries, newest first (super_admin only)."""

    return await audit.list_audit_logs(page=page, limit=limit, action=action, target_type=target_type)


@router.get("/actions")
async def list_audit_actions(audit: Annotated[AuditService, Depends(get_audit_service)]) -> dict:
    return {"actions": await audit.list_actions()}
