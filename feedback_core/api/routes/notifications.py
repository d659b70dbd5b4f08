from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from feedback_core.api.dependencies import get_notification_service
from feedback_core.core.auth import require_roles
from feedback_core.services.notification_service import NotificationService

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    dependencies=[Depends(require_roles("super_admin"))],
)


@router.post("/dingtalk/test")
async def send_dingtalk_test(
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
) -> dict:
    """Send a test message through the configured DingTalk robot."""

    result = await notifications.test_dingtalk()
    return {"success": True, "result": result}
