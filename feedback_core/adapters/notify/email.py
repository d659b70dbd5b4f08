"""SMTP email sender.

SMTP settings are runtime-editable and live in the settings store
(``smtp_host``, ``smtp_port``, ``smtp_user``, ``smtp_pass``, ``smtp_secure``,
``smtp_from``), so they are read on every send. ``smtplib`` is blocking and
runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import TYPE_CHECKING

from feedback_core.core.errors import NotificationError
from feedback_core.core.logging import mask_email
from feedback_core.services.settings_store import is_enabled

if TYPE_CHECKING:
    from feedback_core.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10
SENDER_DISPLAY_NAME = "图书馆反馈系统"


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    user: str
    password: str
    secure: bool
    from_address: str


@dataclass(frozen=True)
class EmailMessagePayload:
    to: str
    subject: str
    html: str


class SmtpEmailSender:
    """Send HTML mail through the SMTP server configured in system settings."""

    def __init__(self, settings_store: "SettingsStore") -> None:
        self._settings_store = settings_store

    async def load_config(self) -> SmtpConfig:
        """Read SMTP settings.

        Raises:
            NotificationError: If host, user or password is missing.
        """
        values = await self._settings_store.get_many(
            "smtp_host", "smtp_port", "smtp_user", "smtp_pass", "smtp_secure", "smtp_from"
        )
        if not (values["smtp_host"] and values["smtp_user"] and values["smtp_pass"]):
            raise NotificationError(code="smtp_not_configured", message="SMTP not configured")

        secure = is_enabled(values["smtp_secure"])
        return SmtpConfig(
            host=str(values["smtp_host"]),
            port=int(values["smtp_port"] or (465 if secure else 587)),
            user=str(values["smtp_user"]),
            password=str(values["smtp_pass"]),
            secure=secure,
            from_address=str(values["smtp_from"] or values["smtp_user"]),
        )

    async def send(self, message: EmailMessagePayload) -> None:
        """Deliver one message.

        Raises:
            NotificationError: On missing configuration or any SMTP failure.
        """
        config = await self.load_config()
        try:
            await asyncio.to_thread(self._send_blocking, config, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "email.send_failed",
                extra={
                    "recipient": mask_email(message.to),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            raise NotificationError(
                code="email_send_failed",
                message=f"Failed to send email: {exc}",
            ) from exc

        logger.info(
            "email.sent",
            extra={"recipient": mask_email(message.to), "subject": message.subject},
        )

    @staticmethod
    def _send_blocking(config: SmtpConfig, message: EmailMessagePayload) -> None:
        msg = MIMEText(message.html, "html", "utf-8")
        msg["Subject"] = message.subject
        msg["From"] = formataddr((SENDER_DISPLAY_NAME, config.from_address))
        msg["To"] = message.to

        smtp_cls = smtplib.SMTP_SSL if config.secure else smtplib.SMTP
        with smtp_cls(config.host, config.port, timeout=SMTP_TIMEOUT_SECONDS) as server:
            if not config.secure:
                server.starttls()
            server.login(config.user, config.password)
            server.send_message(msg)
