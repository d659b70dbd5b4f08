"""Email and DingTalk notifications for ticket events.

``notify_new_ticket`` and ``notify_ticket_reply`` are best-effort: they are
normally spawned on the side-effect dispatcher, log every failure and never
raise. ``send_verification_code`` is user-facing (the caller must know the
code was not delivered) and propagates errors.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Any, Callable

from feedback_core.adapters.db.base import AbstractDatabaseBackend
from feedback_core.adapters.notify.dingtalk import DingTalkClient
from feedback_core.adapters.notify.email import EmailMessagePayload, SmtpEmailSender
from feedback_core.core.config import settings
from feedback_core.core.errors import ValidationAppError
from feedback_core.core.logging import mask_email
from feedback_core.core.security import JwtTokenService
from feedback_core.schemas.tickets import TicketNotice
from feedback_core.services.settings_store import SettingsStore, is_enabled
from feedback_core.services.templates import (
    DEFAULT_DINGTALK_TEMPLATE,
    DINGTALK_TOKEN,
    VERIFICATION_PURPOSE_LABELS,
    EmailTemplate,
    fallback_feedback_email,
    fallback_reply_email,
    fallback_verification_email,
    load_email_template,
    render_email,
    render_template,
    ticket_type_label,
)

logger = logging.getLogger(__name__)

VERIFICATION_CODE_LENGTH = 6


def generate_verification_code() -> str:
    """Six random decimal digits."""
    return "".join(secrets.choice("0123456789") for _ in range(VERIFICATION_CODE_LENGTH))


def build_dingtalk_markdown(ticket: TicketNotice, template: str | None = None) -> str:
    label = ticket_type_label(ticket.type)
    location_block = f"**位置**: {ticket.location}\n\n" if ticket.location else ""
    contact_block = f"**联系**: {ticket.contact}\n\n" if ticket.contact else ""
    values = {
        "type": label,
        "content": ticket.content or "无内容",
        "location": ticket.location or "未提供",
        "contact": ticket.contact or "未提供",
        "id": ticket.id,
        "location_block": location_block,
        "contact_block": contact_block,
        "title": ticket.title or "新反馈",
    }
    return render_template(template or DEFAULT_DINGTALK_TEMPLATE, values, token=DINGTALK_TOKEN)


class NotificationService:
    """Fan out ticket events to administrators and submitters."""

    def __init__(
        self,
        backend_provider: Callable[[], AbstractDatabaseBackend],
        settings_store: SettingsStore,
        *,
        email_sender: SmtpEmailSender | None = None,
        dingtalk: DingTalkClient | None = None,
        token_service: JwtTokenService | None = None,
    ) -> None:
        self._backend_provider = backend_provider
        self._settings_store = settings_store
        self._email = email_sender or SmtpEmailSender(settings_store)
        self._dingtalk = dingtalk or DingTalkClient()
        self._tokens = token_service or JwtTokenService.from_settings()

    async def _template(self, key: str, fallback: EmailTemplate, values: dict[str, Any]) -> EmailTemplate:
        stored = await load_email_template(self._backend_provider(), key)
        return render_email(stored, values) if stored else fallback

    async def send_verification_code(self, email: str, code: str, purpose: str = "register") -> None:
        """Email a verification code.

        Raises:
            NotificationError: If SMTP is not configured or delivery fails.
        """
        label = VERIFICATION_PURPOSE_LABELS.get(purpose, purpose)
        values = {"code": code, "type_label": label}
        message = await self._template(
            "verification_code",
            fallback_verification_email(code, label),
            values,
        )
        await self._email.send(EmailMessagePayload(to=email, subject=message.subject, html=message.content))
        logger.info("verification_code.sent", extra={"recipient": mask_email(email), "purpose": purpose})

    async def test_dingtalk(self) -> dict[str, Any]:
        """Post the test message to the stored webhook and return DingTalk's reply.

        Raises:
            ValidationAppError: No webhook is configured.
            NotificationError: The request failed or DingTalk rejected it.
        """
        config = await self._settings_store.get_many("dingtalk_webhook", "dingtalk_secret")
        if not config["dingtalk_webhook"]:
            raise ValidationAppError(
                code="dingtalk_not_configured",
                message="DingTalk webhook is not configured",
            )
        return await self._dingtalk.test_connection(config["dingtalk_webhook"], config["dingtalk_secret"] or None)

    async def notify_new_ticket(self, ticket: TicketNotice) -> None:
        """Notify administrators by email and DingTalk. Never raises."""
        await self._email_admins(ticket)
        await self._post_dingtalk(ticket)

    async def _email_admins(self, ticket: TicketNotice) -> None:
        try:
            rows = await self._backend_provider().fetch_all(
                "SELECT DISTINCT email FROM admin_notification_emails"
            )
        except Exception as exc:
            logger.error(
                "notify.admin_emails_lookup_failed",
                extra={"ticket_id": ticket.id, "error_type": type(exc).__name__},
            )
            return
        if not rows:
            return

        values = {
            "type_label": ticket_type_label(ticket.type),
            "ticket_id": ticket.id,
            "content": ticket.content or "",
            "location": ticket.location or "无",
            "contact": ticket.contact or "无",
        }
        try:
            message = await self._template("feedback_notification", fallback_feedback_email(values), values)
        except Exception as exc:
            logger.error("notify.template_failed", extra={"ticket_id": ticket.id, "error_type": type(exc).__name__})
            return

        for row in rows:
            recipient = (row["email"] or "").strip()
            if not recipient:
                continue
            try:
                await self._email.send(
                    EmailMessagePayload(to=recipient, subject=message.subject, html=message.content)
                )
            except Exception as exc:
                logger.warning(
                    "notify.admin_email_failed",
                    extra={
                        "ticket_id": ticket.id,
                        "recipient": mask_email(recipient),
                        "error_type": type(exc).__name__,
                        "error_msg": str(exc),
                    },
                )

    async def _post_dingtalk(self, ticket: TicketNotice) -> None:
        try:
            config = await self._settings_store.get_many(
                "dingtalk_enabled", "dingtalk_webhook", "dingtalk_secret", "dingtalk_template"
            )
            if not is_enabled(config["dingtalk_enabled"]) or not config["dingtalk_webhook"]:
                return
            text = build_dingtalk_markdown(ticket, config["dingtalk_template"] or None)
            await self._dingtalk.post_markdown(
                config["dingtalk_webhook"],
                title=f"新反馈通知: {ticket_type_label(ticket.type)}",
                text=text,
                secret=config["dingtalk_secret"] or None,
            )
            logger.info("notify.dingtalk_sent", extra={"ticket_id": ticket.id})
        except Exception as exc:
            logger.warning(
                "notify.dingtalk_failed",
                extra={"ticket_id": ticket.id, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )

    async def notify_ticket_reply(self, ticket_id: int, reply_content: str) -> None:
        """Email the ticket owner about a new reply. Never raises.

        Skipped unless both the feature flag and the global switch are on,
        the owner has an email address and has not opted out.
        """
        try:
            await self._send_reply_email(ticket_id, reply_content)
        except Exception as exc:
            logger.warning(
                "notify.reply_failed",
                extra={"ticket_id": ticket_id, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )

    async def _send_reply_email(self, ticket_id: int, reply_content: str) -> None:
        flags = await self._settings_store.get_many(
            "email_notifications_feature_enabled",
            "email_notifications_global_enabled",
        )
        if not all(is_enabled(value) for value in flags.values()):
            logger.debug("notify.reply_disabled", extra={"ticket_id": ticket_id})
            return

        row = await self._backend_provider().fetch_one(
            "SELECT t.id, t.type, t.content, t.user_id, u.email, "
            "u.email_notification_enabled, u.username "
            "FROM tickets t JOIN users u ON t.user_id = u.id WHERE t.id = ?",
            (ticket_id,),
        )
        if row is None or not row["email"]:
            return
        if row["email_notification_enabled"] == 0:
            logger.debug("notify.reply_opted_out", extra={"ticket_id": ticket_id})
            return

        token = self._tokens.issue(
            {"userId": row["user_id"], "type": "unsubscribe"},
            expires_in=timedelta(days=settings.auth.unsubscribe_token_days),
        )
        site_url = str(await self._settings_store.get_setting("site_url") or "").rstrip("/")
        values = {
            "type_label": ticket_type_label(row["type"]),
            "ticket_id": row["id"],
            "reply_content": reply_content,
            "ticket_link": f"{site_url}/dashboard/my",
            "unsubscribe_link": f"{site_url}/api/users/unsubscribe?token={token}",
        }
        message = await self._template("ticket_reply_notification", fallback_reply_email(values), values)
        await self._email.send(EmailMessagePayload(to=row["email"], subject=message.subject, html=message.content))
        logger.info("notify.reply_sent", extra={"ticket_id": ticket_id, "recipient": mask_email(row["email"])})
