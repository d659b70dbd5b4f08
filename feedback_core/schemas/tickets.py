"""Ticket views consumed by the notification and AI trend services."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TicketNotice(BaseModel):
    """The fields of a freshly submitted ticket that notifications show."""

    id: int
    type: str
    title: str | None = None
    content: str | None = None
    location: str | None = None
    contact: str | None = Field(
        default=None,
        description="Free-form contact info left by the submitter",
    )


class TicketSample(BaseModel):
    """One ticket row fed to trend analysis."""

    id: int
    type: str
    content: str | None = None
    location: str | None = None
    status: str | None = None
    created_at: datetime | str | None = None
