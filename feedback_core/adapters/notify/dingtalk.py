"""DingTalk custom-robot webhook client.

Robots with "additional signature" security require ``timestamp`` and
``sign`` query parameters, where ``sign`` is the URL-encoded base64 of
HMAC-SHA256(secret, f"{timestamp}\\n{secret}") and ``timestamp`` is epoch
milliseconds.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from typing import Any
from urllib.parse import quote_plus

import httpx

from feedback_core.core.errors import NotificationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
TEST_MESSAGE = "VanceFeedback: 钉钉通知测试成功 ✅"


def sign_webhook_url(url: str, secret: str, timestamp_ms: int | None = None) -> str:
    """Append ``timestamp`` and ``sign`` to a webhook URL."""

    timestamp = str(timestamp_ms if timestamp_ms is not None else int(time.time() * 1000))
    string_to_sign = f"{timestamp}\n{secret}"
    digest = hmac.new(
        secret.encode("utf-8"),
        string_to_sign.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).digest()
    sign = quote_plus(base64.b64encode(digest))
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}timestamp={timestamp}&sign={sign}"


class DingTalkClient:
    """Post messages to a robot webhook."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def post(self, webhook: str, payload: dict[str, Any], secret: str | None = None) -> dict[str, Any]:
        """Send ``payload`` and return DingTalk's JSON reply.

        Raises:
            NotificationError: On transport errors, non-2xx responses or a
                non-zero ``errcode`` in the reply.
        """
        url = sign_webhook_url(webhook, secret) if secret else webhook
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "dingtalk.post_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise NotificationError(
                code="dingtalk_request_failed",
                message=f"DingTalk request failed: {exc}",
            ) from exc

        if body.get("errcode", 0) != 0:
            logger.error(
                "dingtalk.rejected",
                extra={"errcode": body.get("errcode"), "errmsg": body.get("errmsg")},
            )
            raise NotificationError(
                code="dingtalk_rejected",
                message=f"DingTalk rejected the message: {body.get('errmsg')}",
            )
        return body

    async def post_markdown(
        self,
        webhook: str,
        *,
        title: str,
        text: str,
        secret: str | None = None,
    ) -> dict[str, Any]:
        payload = {"msgtype": "markdown", "markdown": {"title": title, "text": text}}
        return await self.post(webhook, payload, secret)

    async def test_connection(self, webhook: str, secret: str | None = None) -> dict[str, Any]:
        """Send a plain-text test message; errors propagate to the caller."""
        payload = {"msgtype": "text", "text": {"content": TEST_MESSAGE}}
        return await self.post(webhook, payload, secret)
