"""Audit trail writes and reads.

``create_audit_log`` is best-effort: a failed insert is logged and never
fails the request that triggered it. Reads (listing, action filter values)
propagate errors like any other query.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from feedback_core.adapters.db.base import AbstractDatabaseBackend
from feedback_core.schemas.audit import AuditLogEntry, AuditLogPage, Pagination

logger = logging.getLogger(__name__)

IPV4_MAPPED_PREFIX = "::ffff:"
MAX_PAGE_SIZE = 100


def clean_ip_address(ip_address: str | None) -> str | None:
    """Strip the IPv4-mapped IPv6 prefix from an address.

    Examples:
        >>> clean_ip_address("::ffff:192.0.2.1")
        '192.0.2.1'
        >>> clean_ip_address("192.0.2.1")
        '192.0.2.1'
    """

    if ip_address and ip_address.startswith(IPV4_MAPPED_PREFIX):
        return ip_address[len(IPV4_MAPPED_PREFIX):]
    return ip_address


def _decode_details(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class AuditService:
    """Append-only audit log over the active backend."""

    def __init__(self, backend_provider: Callable[[], AbstractDatabaseBackend]) -> None:
        self._backend_provider = backend_provider

    async def create_audit_log(
        self,
        user_id: int | None,
        username: str | None,
        action: str,
        target_type: str | None,
        target_id: int | None,
        details: Any,
        ip_address: str | None,
    ) -> None:
        """Insert one audit entry. Never raises."""
        try:
            db = self._backend_provider()
            await db.execute(
                "INSERT INTO audit_logs "
                "(user_id, username, action, target_type, target_id, details, ip_address) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    user_id,
                    username,
                    action,
                    target_type,
                    target_id,
                    json.dumps(details, ensure_ascii=False, default=str),
                    clean_ip_address(ip_address),
                ),
            )
        except Exception as exc:
            logger.error(
                "audit.write_failed",
                extra={
                    "action": action,
                    "target_type": target_type,
                    "target_id": target_id,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )

    async def list_audit_logs(
        self,
        *,
        page: int = 1,
        limit: int = 20,
        action: str | None = None,
        target_type: str | None = None,
    ) -> AuditLogPage:
        """Return one page of audit entries, newest first."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        offset = (page - 1) * limit

        conditions: list[str] = []
        params: list[Any] = []
        if action:
            conditions.append("action = ?")
            params.append(action)
        if target_type:
            conditions.append("target_type = ?")
            params.append(target_type)
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""

        db = self._backend_provider()
        rows = await db.fetch_all(
            f"SELECT * FROM audit_logs{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )
        count_row = await db.fetch_one(
            f"SELECT COUNT(*) AS total FROM audit_logs{where}",
            tuple(params),
        )
        total = int(count_row["total"]) if count_row else 0

        logs = [AuditLogEntry(**{**row, "details": _decode_details(row.get("details"))}) for row in rows]
        return AuditLogPage(
            logs=logs,
            pagination=Pagination.build(page=page, limit=limit, total=total),
        )

    async def list_actions(self) -> list[str]:
        """Distinct action names, for filter drop-downs."""
        db = self._backend_provider()
        rows = await db.fetch_all("SELECT DISTINCT action FROM audit_logs ORDER BY action")
        return [row["action"] for row in rows]
