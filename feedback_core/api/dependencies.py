"""FastAPI dependencies exposing the services owned by the application.

Everything here is built once in the app lifespan and stored on
``app.state``; routes receive it through ``Depends`` instead of importing
module globals.
"""

from __future__ import annotations

from fastapi import Request

from feedback_core.adapters.db.base import AbstractDatabaseBackend
from feedback_core.services.ai_trends_service import AITrendsService
from feedback_core.services.audit_service import AuditService
from feedback_core.services.database import DatabaseManager
from feedback_core.services.db_config import DatabaseConfigStore
from feedback_core.services.dispatcher import SideEffectDispatcher
from feedback_core.services.notification_service import NotificationService


def get_database_manager(request: Request) -> DatabaseManager:
    return request.app.state.database


def get_active_backend(request: Request) -> AbstractDatabaseBackend:
    """The live backend; raises ``NotInitializedError`` (503) before setup."""
    return get_database_manager(request).get_active()


def get_config_store(request: Request) -> DatabaseConfigStore:
    return request.app.state.config_store


def get_dispatcher(request: Request) -> SideEffectDispatcher:
    return request.app.state.dispatcher


def get_audit_service(request: Request) -> AuditService:
    return request.app.state.audit


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notifications


def get_ai_trends_service(request: Request) -> AITrendsService:
    return request.app.state.ai_trends


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None
