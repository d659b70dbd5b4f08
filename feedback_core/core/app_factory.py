"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
the lifespan that owns the database manager and the services built on it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from feedback_core.adapters.llm.factory import create_llm_client
from feedback_core.adapters.db.schema import ensure_core_tables
from feedback_core.adapters.rate_limit.database import DatabaseRateLimitStore
from feedback_core.api.routes import (
    ai_trends_router,
    audit_router,
    health_router,
    notifications_router,
    setup_router,
    status_router,
)
from feedback_core.core.config import settings
from feedback_core.core.errors import AppError
from feedback_core.core.exception_handlers import setup_exception_handlers
from feedback_core.core.logging import configure_logging
from feedback_core.core.middleware import request_id_middleware
from feedback_core.core.security import JwtTokenService
from feedback_core.services.ai_trends_service import AITrendsService
from feedback_core.services.audit_service import AuditService
from feedback_core.services.database import DatabaseManager
from feedback_core.services.db_config import DatabaseConfigStore
from feedback_core.services.dispatcher import SideEffectDispatcher
from feedback_core.services.notification_service import NotificationService
from feedback_core.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)


async def _initialize_if_configured(config_store: DatabaseConfigStore, manager: DatabaseManager) -> None:
    """Bring the backend up at startup when a descriptor exists.

    Failures are logged, not raised: the process must still start so the
    setup flow can fix the configuration.
    """
    try:
        descriptor = config_store.load_config()
        if descriptor is None:
            logger.info("db.not_configured")
            return
        backend = await manager.initialize(descriptor)
        await ensure_core_tables(backend)
    except AppError as exc:
        logger.error("db.startup_init_failed", extra={"error_code": exc.code, "error_message": exc.message})
    except Exception as exc:
        logger.error(
            "db.startup_init_failed",
            extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    manager = DatabaseManager(settings.storage)
    config_store = DatabaseConfigStore(manager)
    settings_store = SettingsStore(manager.get_active)
    dispatcher = SideEffectDispatcher()
    token_service = JwtTokenService.from_settings()
    audit = AuditService(manager.get_active)

    app.state.database = manager
    app.state.config_store = config_store
    app.state.dispatcher = dispatcher
    app.state.settings_store = settings_store
    app.state.token_service = token_service
    app.state.rate_limit_store = DatabaseRateLimitStore(
        manager.get_active,
        window_seconds=settings.app.rate_limit_window_seconds,
    )
    app.state.audit = audit
    app.state.notifications = NotificationService(manager.get_active, settings_store, token_service=token_service)
    app.state.ai_trends = AITrendsService(manager.get_active, create_llm_client(), settings_store)

    await _initialize_if_configured(config_store, manager)
    if manager.is_initialized:
        dispatcher.spawn(
            audit.create_audit_log(
                None,
                None,
                "db.initialized",
                "database",
                None,
                {"backend": manager.get_active().kind.value, "trigger": "startup"},
                None,
            ),
            name="audit.db_initialized",
        )
    logger.info("app.started", extra={"app_env": settings.app_env})
    try:
        yield
    finally:
        await dispatcher.drain()
        await manager.close()
        logger.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Library Feedback Core",
        description=(
            "Persistence and side-effect core of the university library feedback "
            "system: database setup, per-IP rate limiting, audit trail and "
            "ticket notifications."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(status_router, prefix="/v1")
    app.include_router(setup_router, prefix="/v1")
    app.include_router(audit_router, prefix="/v1")
    app.include_router(ai_trends_router, prefix="/v1")
    app.include_router(notifications_router, prefix="/v1")

    return app
