"""Placeholder substitution and built-in message templates.

Email templates use ``{{key}}`` tokens and may be overridden per key in the
``email_templates`` table. DingTalk templates use single-brace ``{key}``
tokens. Substitution is literal string replacement in the order the values
are given; unknown tokens are left as they are.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from feedback_core.adapters.db.base import AbstractDatabaseBackend

logger = logging.getLogger(__name__)

EMAIL_TOKEN = "{{{{{key}}}}}"
DINGTALK_TOKEN = "{{{key}}}"

TICKET_TYPE_LABELS = {
    "facility": "设施报修",
    "books": "图书借阅",
    "system": "数字资源",
    "environment": "环境卫生",
    "other": "其他",
}

VERIFICATION_PURPOSE_LABELS = {
    "register": "注册账号",
    "email_change": "修改邮箱",
    "password_reset": "重置密码",
}

DEFAULT_DINGTALK_TEMPLATE = (
    "### 📩 新反馈通知\n\n"
    "**类型**: {type}\n\n"
    "**内容**: {content}\n\n"
    "{location_block}{contact_block}"
    "> [VanceFeedback] #{id}"
)


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    content: str


def ticket_type_label(ticket_type: str | None) -> str:
    return TICKET_TYPE_LABELS.get(ticket_type or "", ticket_type or "")


def render_template(text: str, values: Mapping[str, Any], token: str = EMAIL_TOKEN) -> str:
    """Replace every ``token.format(key=k)`` in ``text`` with ``str(values[k])``.

    Examples:
        >>> render_template("Hi {{name}}", {"name": "Ada"})
        'Hi Ada'
        >>> render_template("#{id}", {"id": 7}, token=DINGTALK_TOKEN)
        '#7'
    """

    for key, value in values.items():
        text = text.replace(token.format(key=key), "" if value is None else str(value))
    return text


def render_email(template: EmailTemplate, values: Mapping[str, Any]) -> EmailTemplate:
    return EmailTemplate(
        subject=render_template(template.subject, values),
        content=render_template(template.content, values),
    )


async def load_email_template(
    backend: AbstractDatabaseBackend, template_key: str
) -> EmailTemplate | None:
    """Return the stored template for ``template_key``, or ``None``.

    Lookup failures are logged and treated as "no template" so callers fall
    back to the built-in text.
    """

    try:
        row = await backend.fetch_one(
            "SELECT subject, content FROM email_templates WHERE template_key = ?",
            (template_key,),
        )
    except Exception as exc:
        logger.error(
            "email_template.read_failed",
            extra={"template_key": template_key, "error_type": type(exc).__name__},
        )
        return None
    if row is None:
        return None
    return EmailTemplate(subject=row["subject"], content=row["content"])


# Built-in fallbacks, used when no template row exists.

def fallback_verification_email(code: str, purpose_label: str) -> EmailTemplate:
    return EmailTemplate(
        subject=f"【图书馆反馈系统】{purpose_label}验证码",
        content=(
            f"<p>您正在进行<strong>{purpose_label}</strong>操作，验证码为：</p>"
            f"<h2>{code}</h2>"
            "<p>验证码 10 分钟内有效，请勿泄露给他人。</p>"
        ),
    )


def fallback_feedback_email(values: Mapping[str, Any]) -> EmailTemplate:
    return EmailTemplate(
        subject=f"【新反馈】{values['type_label']} - #{values['ticket_id']}",
        content=(
            f"<h3>收到新的反馈 #{values['ticket_id']}</h3>"
            f"<p><strong>类型：</strong>{values['type_label']}</p>"
            f"<p><strong>内容：</strong>{values['content']}</p>"
            f"<p><strong>位置：</strong>{values['location']}</p>"
            f"<p><strong>联系方式：</strong>{values['contact']}</p>"
        ),
    )


def fallback_reply_email(values: Mapping[str, Any]) -> EmailTemplate:
    return EmailTemplate(
        subject=f"【工单回复】您的工单 #{values['ticket_id']} 有新回复",
        content=(
            f"<p>您提交的{values['type_label']}工单 #{values['ticket_id']} 有新的回复：</p>"
            f"<blockquote>{values['reply_content']}</blockquote>"
            f"<p><a href=\"{values['ticket_link']}\">查看工单</a></p>"
            f"<p style=\"font-size:12px;color:#999\">"
            f"<a href=\"{values['unsubscribe_link']}\">退订邮件通知</a></p>"
        ),
    )
