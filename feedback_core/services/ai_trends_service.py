"""AI trend analysis over recent tickets.

Analyses are expensive, so they are generated only on explicit refresh and
cached per user in ``ai_analysis_cache``:
- a plain request returns the user's latest cached analysis (or asks the
  client to trigger generation)
- a refresh is charged against a daily quota recorded in ``ai_usage_logs``
- only the newest few analyses are kept per user

Quota days follow library local time (UTC+8), whatever the server clock.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import ValidationError

from feedback_core.adapters.db.base import AbstractDatabaseBackend, BackendKind
from feedback_core.adapters.llm.base import AbstractLLMClient
from feedback_core.core.errors import (
    AIFeatureDisabledError,
    AIHistoryNotFoundError,
    AIQuotaExceededError,
    AIUnavailableError,
    LLMAppError,
)
from feedback_core.schemas.ai_trends import TrendAnalysis, TrendsHistoryItem, TrendsResponse
from feedback_core.schemas.tickets import TicketSample
from feedback_core.services.settings_store import SettingsStore
from feedback_core.services.templates import ticket_type_label

logger = logging.getLogger(__name__)

USAGE_ACTION = "ai_trends_analysis"
LOCAL_TZ = timezone(timedelta(hours=8))
MAX_TICKETS = 100
MAX_CONTENT_CHARS = 200

SUPER_ADMIN = "super_admin"
DAILY_QUOTA = {SUPER_ADMIN: 10}
DEFAULT_DAILY_QUOTA = 1
RETENTION = {SUPER_ADMIN: 10}
DEFAULT_RETENTION = 2

NO_DATA_INSIGHT = "暂无足够数据进行趋势分析"

SYSTEM_PROMPT = (
    "你是一名高校图书馆的服务质量分析师。只输出 JSON 对象，不要输出任何额外文字或 Markdown。"
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def storage_timestamp(moment: datetime, kind: BackendKind) -> str:
    """Format ``moment`` the way ``CURRENT_TIMESTAMP`` values are stored.

    SQLite stores UTC; MySQL sessions run at +08:00, so TIMESTAMP columns
    read back in local time.
    """
    tz = LOCAL_TZ if kind is BackendKind.MYSQL else timezone.utc
    return moment.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


def build_prompt(tickets: list[TicketSample], days: int) -> str:
    lines = []
    for ticket in tickets:
        content = (ticket.content or "").replace("\n", " ")[:MAX_CONTENT_CHARS]
        location = f" @{ticket.location}" if ticket.location else ""
        lines.append(
            f"- #{ticket.id} [{ticket_type_label(ticket.type)}]{location} "
            f"({ticket.status or 'unknown'}, {ticket.created_at}): {content}"
        )
    joined = "\n".join(lines)
    return f"""
以下是图书馆最近 {days} 天内收到的 {len(tickets)} 条读者反馈工单。请分析其中的趋势。

返回如下结构的 JSON：
{{
  "trends": [{{"category": "类别", "trend": "上升/下降/持平", "description": "说明"}}],
  "insights": ["洞察 1", "洞察 2"],
  "recommendations": ["建议 1", "建议 2"],
  "topIssues": [{{"issue": "问题", "count": 3, "severity": "high/medium/low"}}]
}}

工单列表：
{joined}
""".strip()


class AITrendsService:
    """Generate, cache and serve ticket trend analyses for administrators."""

    def __init__(
        self,
        backend_provider: Callable[[], AbstractDatabaseBackend],
        llm: AbstractLLMClient | None,
        settings_store: SettingsStore,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._backend_provider = backend_provider
        self._llm = llm
        self._settings_store = settings_store
        self._clock = clock

    @property
    def is_available(self) -> bool:
        return self._llm is not None

    async def _ensure_enabled(self) -> AbstractLLMClient:
        if self._llm is None:
            raise AIUnavailableError(
                code="ai_unavailable",
                message="AI service is not configured",
                details={"hint": "Set LLM_API_KEY to enable AI features"},
            )
        # Only an explicit ``false`` disables; unset means enabled
        if await self._settings_store.get_setting("ai_enabled") is False:
            raise AIFeatureDisabledError(code="ai_disabled", message="AI features are disabled")
        if await self._settings_store.get_setting("ai_analysis_enabled") is False:
            raise AIFeatureDisabledError(
                code="ai_analysis_disabled",
                message="AI trend analysis is disabled",
            )
        return self._llm

    async def get_trends(
        self,
        user_id: int,
        role: str,
        *,
        days: int = 30,
        refresh: bool = False,
        history_id: int | None = None,
    ) -> TrendsResponse:
        """Return a stored analysis, or generate a new one when ``refresh``.

        Raises:
            AIUnavailableError: No LLM client is configured.
            AIFeatureDisabledError: AI is switched off in system settings.
            AIHistoryNotFoundError: ``history_id`` is not one of the user's records.
            AIQuotaExceededError: The daily generation quota is used up.
            LLMAppError: The model call failed or returned unusable output.
        """
        llm = await self._ensure_enabled()
        db = self._backend_provider()

        if history_id is not None:
            row = await db.fetch_one(
                "SELECT * FROM ai_analysis_cache WHERE id = ? AND user_id = ?",
                (history_id, user_id),
            )
            if row is None:
                raise AIHistoryNotFoundError(
                    code="ai_history_not_found",
                    message="History record not found",
                    details={"history_id": history_id},
                )
            return self._from_cache_row(row, is_history=True)

        if not refresh:
            row = await db.fetch_one(
                "SELECT * FROM ai_analysis_cache WHERE user_id = ? "
                "ORDER BY created_at DESC, id DESC LIMIT 1",
                (user_id,),
            )
            if row is None:
                return TrendsResponse(needs_generation=True)
            return self._from_cache_row(row)

        await self._check_quota(db, user_id, role)

        since = self._clock() - timedelta(days=max(days, 1))
        rows = await db.fetch_all(
            "SELECT * FROM tickets WHERE created_at >= ? ORDER BY created_at DESC LIMIT ?",
            (storage_timestamp(since, db.kind), MAX_TICKETS),
        )
        if not rows:
            return TrendsResponse(insights=[NO_DATA_INSIGHT])

        tickets = [TicketSample.model_validate(row) for row in rows]
        analysis = await self._analyze(llm, tickets, days)
        analysis.ticket_count = len(tickets)

        await self._save_and_prune(db, user_id, role, analysis)
        await db.execute(
            "INSERT INTO ai_usage_logs (user_id, action_type) VALUES (?, ?)",
            (user_id, USAGE_ACTION),
        )
        logger.info(
            "ai_trends.generated",
            extra={"user_id": user_id, "ticket_count": len(tickets), "days": days},
        )
        return TrendsResponse(**analysis.model_dump(by_alias=True))

    async def list_history(self, user_id: int) -> list[TrendsHistoryItem]:
        rows = await self._backend_provider().fetch_all(
            "SELECT id, created_at FROM ai_analysis_cache WHERE user_id = ? "
            "ORDER BY created_at DESC, id DESC",
            (user_id,),
        )
        return [TrendsHistoryItem.model_validate(row) for row in rows]

    async def _check_quota(self, db: AbstractDatabaseBackend, user_id: int, role: str) -> int:
        limit = DAILY_QUOTA.get(role, DEFAULT_DAILY_QUOTA)
        local_now = self._clock().astimezone(LOCAL_TZ)
        day_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

        row = await db.fetch_one(
            "SELECT COUNT(*) AS used FROM ai_usage_logs "
            "WHERE user_id = ? AND action_type = ? AND created_at >= ?",
            (user_id, USAGE_ACTION, storage_timestamp(day_start, db.kind)),
        )
        used = int(row["used"]) if row else 0
        if used >= limit:
            logger.info("ai_trends.quota_exceeded", extra={"user_id": user_id, "limit": limit, "used": used})
            message = (
                f"今日AI分析次数已达上限（{limit}次/天）"
                if role == SUPER_ADMIN
                else "普通管理员每日仅可使用1次AI分析，请联系超级管理员升级或明日再试"
            )
            raise AIQuotaExceededError(
                code="ai_quota_exceeded",
                message=message,
                details={"limit": limit, "used": used},
            )
        return limit - used

    async def _analyze(self, llm: AbstractLLMClient, tickets: list[TicketSample], days: int) -> TrendAnalysis:
        payload = await llm.generate_json(build_prompt(tickets, days), system_prompt=SYSTEM_PROMPT)
        try:
            return TrendAnalysis.model_validate(payload)
        except ValidationError as exc:
            raise LLMAppError(
                code="llm_invalid_schema",
                message="LLM output does not match the trend analysis schema",
                details={"model": llm.model},
            ) from exc

    async def _save_and_prune(
        self,
        db: AbstractDatabaseBackend,
        user_id: int,
        role: str,
        analysis: TrendAnalysis,
    ) -> None:
        retention = RETENTION.get(role, DEFAULT_RETENTION)
        await db.execute(
            "INSERT INTO ai_analysis_cache (user_id, content) VALUES (?, ?)",
            (user_id, json.dumps(analysis.model_dump(by_alias=True), ensure_ascii=False)),
        )
        keep = await db.fetch_all(
            "SELECT id FROM ai_analysis_cache WHERE user_id = ? "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (user_id, retention),
        )
        keep_ids = [row["id"] for row in keep]
        if not keep_ids:
            return
        placeholders = ", ".join("?" for _ in keep_ids)
        summary = await db.execute(
            f"DELETE FROM ai_analysis_cache WHERE user_id = ? AND id NOT IN ({placeholders})",
            (user_id, *keep_ids),
        )
        if summary.affected_count:
            logger.debug("ai_trends.pruned", extra={"user_id": user_id, "removed": summary.affected_count})

    @staticmethod
    def _from_cache_row(row: dict[str, Any], *, is_history: bool = False) -> TrendsResponse:
        content = json.loads(row["content"])
        return TrendsResponse(
            **content,
            cached=True,
            cachedAt=row["created_at"],
            isHistory=is_history,
        )
