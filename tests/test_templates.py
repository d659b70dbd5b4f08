"""Tests for placeholder rendering and template lookup."""

from __future__ import annotations

import pytest

from feedback_core.adapters.db.sqlite import SQLiteBackend
from feedback_core.services.templates import (
    DINGTALK_TOKEN,
    EmailTemplate,
    load_email_template,
    render_email,
    render_template,
    ticket_type_label,
)


def test_render_replaces_every_occurrence() -> None:
    assert render_template("{{id}} / #{{id}}", {"id": 12}) == "12 / #12"


def test_render_leaves_unknown_tokens() -> None:
    assert render_template("{{a}} {{b}}", {"a": "x"}) == "x {{b}}"


def test_render_none_as_empty() -> None:
    assert render_template("[{{a}}]", {"a": None}) == "[]"


def test_dingtalk_tokens_are_single_brace() -> None:
    text = render_template("**类型**: {type} #{id} {{id}}", {"type": "其他", "id": 3}, token=DINGTALK_TOKEN)

    assert text == "**类型**: 其他 #3 {3}"


def test_ticket_type_labels() -> None:
    assert ticket_type_label("facility") == "设施报修"
    assert ticket_type_label("books") == "图书借阅"
    assert ticket_type_label("custom") == "custom"


def test_render_email_applies_to_subject_and_content() -> None:
    rendered = render_email(EmailTemplate("#{{ticket_id}}", "<p>{{content}}</p>"), {"ticket_id": 5, "content": "hi"})

    assert rendered == EmailTemplate("#5", "<p>hi</p>")


@pytest.mark.asyncio
async def test_load_email_template(sqlite_backend: SQLiteBackend) -> None:
    await sqlite_backend.execute(
        "INSERT INTO email_templates (template_key, subject, content) VALUES (?, ?, ?)",
        ("feedback_notification", "New #{{ticket_id}}", "{{content}}"),
    )

    template = await load_email_template(sqlite_backend, "feedback_notification")

    assert template == EmailTemplate("New #{{ticket_id}}", "{{content}}")
    assert await load_email_template(sqlite_backend, "missing") is None


@pytest.mark.asyncio
async def test_load_email_template_failure_means_no_template(sqlite_backend: SQLiteBackend) -> None:
    await sqlite_backend.execute("DROP TABLE email_templates")

    assert await load_email_template(sqlite_backend, "feedback_notification") is None
