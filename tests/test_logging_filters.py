"""Tests for sensitive data filtering and request correlation in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

from feedback_core.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    mask_email,
    set_request_id,
)


def _capture(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_credentials():
    """Ensure database, SMTP and webhook secrets never reach the sink."""

    logger, stream = _capture("test_redaction")

    logger.info(
        "settings_event",
        extra={
            "password": "db-pass-123",
            "smtp_pass": "smtp-pass-456",
            "dingtalk_secret": "SECxyz",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()

    assert "db-pass-123" not in output
    assert "smtp-pass-456" not in output
    assert "SECxyz" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_nested_dicts():
    """Ensure a descriptor logged as a dict loses its password."""

    logger, stream = _capture("test_nested")

    logger.info(
        "db_event",
        extra={
            "descriptor": {"type": "mysql", "host": "db", "password": "hunter2"},
            "headers": {"Authorization": "Bearer abc", "user-agent": "pytest"},
        },
    )

    output = stream.getvalue()

    assert "hunter2" not in output
    assert "Bearer abc" not in output
    assert "pytest" in output
    assert '"host": "db"' in output


def test_verification_code_is_redacted():
    logger, stream = _capture("test_code")

    logger.info("verification_code.sent", extra={"code": "123456", "purpose": "register"})

    output = stream.getvalue()
    assert "123456" not in output
    assert "register" in output


def test_non_ascii_is_kept_readable():
    logger, stream = _capture("test_unicode")

    logger.info("notify.sent", extra={"type_label": "设施报修"})

    assert "设施报修" in stream.getvalue()


def test_request_id_is_attached_from_context():
    logger, stream = _capture("test_request_id")

    set_request_id("req-abc")
    try:
        logger.info("inside_request")
    finally:
        clear_request_id()
    logger.info("outside_request")

    first, second = (json.loads(line) for line in stream.getvalue().splitlines())
    assert first["request_id"] == "req-abc"
    assert "request_id" not in second


def test_mask_email():
    assert mask_email("librarian@example.edu") == "l***n@example.edu"
    assert mask_email("ab@example.edu") == "a***@example.edu"
    assert mask_email(None) is None


def test_redaction_applies_to_plain_format():
    logger = logging.getLogger("test_plain")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(logging.Formatter("%(message)s %(smtp_pass)s"))
    logger.addHandler(handler)

    logger.info("smtp.configured", extra={"smtp_pass": "hunter2"})

    assert stream.getvalue().strip() == "smtp.configured [REDACTED]"
