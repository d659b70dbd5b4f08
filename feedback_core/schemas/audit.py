"""Pydantic schemas for audit log reads."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, Field


class AuditLogEntry(BaseModel):
    """One row of the append-only audit trail."""

    id: int
    user_id: int | None = None
    username: str | None = None
    action: str
    target_type: str | None = None
    target_id: int | None = None
    details: Any = Field(
        default=None,
        description="Decoded JSON details; the raw text if it is not valid JSON.",
    )
    ip_address: str | None = None
    created_at: datetime | str | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


class AuditLogPage(BaseModel):
    logs: List[AuditLogEntry] = Field(default_factory=list)
    pagination: Pagination
