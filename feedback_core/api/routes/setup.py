from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from feedback_core.api.dependencies import (
    client_ip,
    get_audit_service,
    get_config_store,
    get_database_manager,
    get_dispatcher,
)
from feedback_core.core.errors import ValidationAppError
from feedback_core.schemas.database import DatabaseDescriptor, DatabaseStatus
from feedback_core.services.audit_service import AuditService
from feedback_core.services.database import DatabaseManager
from feedback_core.services.db_config import DatabaseConfigStore
from feedback_core.services.dispatcher import SideEffectDispatcher

router = APIRouter(prefix="/setup", tags=["Setup"])


@router.post("/install", response_model=DatabaseStatus)
async def install(
    descriptor: DatabaseDescriptor,
    request: Request,
    manager: Annotated[DatabaseManager, Depends(get_database_manager)],
    config_store: Annotated[DatabaseConfigStore, Depends(get_config_store)],
    dispatcher: Annotated[SideEffectDispatcher, Depends(get_dispatcher)],
    audit: Annotated[AuditService, Depends(get_audit_service)],
) -> DatabaseStatus:
    """First-run database setup.

    Tests connectivity, persists the descriptor and brings the backend up.
    Refused once a descriptor exists (from the file or the environment).
    """

    if config_store.is_configured():
        raise ValidationAppError(code="already_configured", message="System already configured")

    await config_store.save_config(descriptor)
    dispatcher.spawn(
        audit.create_audit_log(
            None, None, "system.install", "database", None, descriptor.redacted(), client_ip(request)
        ),
        name="audit.system_install",
    )
    return manager.status(configured=True)
