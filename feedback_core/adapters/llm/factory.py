"""Factory for the configured LLM client."""

from __future__ import annotations

import logging

from feedback_core.adapters.llm.base import AbstractLLMClient
from feedback_core.adapters.llm.openai_client import OpenAIClient
from feedback_core.core.config import LLMSettings, settings
from feedback_core.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def create_llm_client(llm_settings: LLMSettings | None = None) -> AbstractLLMClient | None:
    """Build the client for ``LLM_PROVIDER``.

    AI features are optional, so a missing API key is not an error: the
    factory returns ``None`` and the trend service reports itself
    unavailable.

    Raises:
        ValidationAppError: If the provider name is unknown.
    """
    llm = llm_settings or settings.llm
    if not llm.api_key:
        logger.info("llm.disabled", extra={"reason": "missing_api_key"})
        return None

    provider = llm.provider.lower()
    if provider == "openai":
        return OpenAIClient(
            api_key=llm.api_key,
            model=llm.model,
            base_url=llm.base_url,
            timeout_seconds=llm.timeout_seconds,
        )

    raise ValidationAppError(
        code="llm_unknown_provider",
        message=f"Unknown LLM provider: '{provider}'. Supported providers: openai",
    )
