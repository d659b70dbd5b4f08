from __future__ import annotations

from feedback_core.api.routes.ai_trends import router as ai_trends_router
from feedback_core.api.routes.audit import router as audit_router
from feedback_core.api.routes.health import router as health_router
from feedback_core.api.routes.notifications import router as notifications_router
from feedback_core.api.routes.setup import router as setup_router
from feedback_core.api.routes.status import router as status_router

__all__ = [
    "ai_trends_router",
    "audit_router",
    "health_router",
    "notifications_router",
    "setup_router",
    "status_router",
]
