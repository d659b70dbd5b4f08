"""Pydantic schemas for AI ticket trend analysis."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TrendAnalysis(BaseModel):
    """Structured output expected from the model (and stored in the cache)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    trends: list[Any] = Field(
        default_factory=list,
        description="Notable movements in ticket volume or categories.",
    )
    insights: list[str] = Field(
        default_factory=list,
        description="Short observations an administrator should know about.",
    )
    recommendations: list[str] = Field(
        default_factory=list,
        description="Concrete actions the library could take.",
    )
    top_issues: list[Any] = Field(
        default_factory=list,
        alias="topIssues",
        description="Most frequent or most serious recurring problems.",
    )
    ticket_count: int | None = Field(
        default=None,
        alias="ticketCount",
        description="Number of tickets the analysis was built from.",
    )


class TrendsResponse(TrendAnalysis):
    """What ``get_trends`` returns: an analysis plus where it came from."""

    cached: bool = False
    cached_at: datetime | str | None = Field(default=None, alias="cachedAt")
    is_history: bool = Field(default=False, alias="isHistory")
    needs_generation: bool = Field(default=False, alias="needsGeneration")


class TrendsHistoryItem(BaseModel):
    id: int
    created_at: datetime | str | None = None
