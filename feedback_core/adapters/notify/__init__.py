"""Outbound notification channels (SMTP email, DingTalk robot webhook)."""

from feedback_core.adapters.notify.dingtalk import DingTalkClient, sign_webhook_url
from feedback_core.adapters.notify.email import EmailMessagePayload, SmtpConfig, SmtpEmailSender

__all__ = [
    "DingTalkClient",
    "EmailMessagePayload",
    "SmtpConfig",
    "SmtpEmailSender",
    "sign_webhook_url",
]
