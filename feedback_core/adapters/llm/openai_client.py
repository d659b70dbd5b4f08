"""OpenAI (and OpenAI-compatible) chat completion adapter."""

import json
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from feedback_core.adapters.llm.base import AbstractLLMClient
from feedback_core.core.errors import LLMAppError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "Output JSON only. No extra text or markdown formatting."


class OpenAIClient(AbstractLLMClient):
    """Calls chat completions in JSON mode through the async SDK."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model

    async def generate_json(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        messages = [
            {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": kwargs.pop("temperature", 0.3),
            "response_format": {"type": "json_object"},
        }
        if "max_tokens" in kwargs:
            request_params["max_tokens"] = kwargs["max_tokens"]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except OpenAIError as exc:
            logger.error(
                "llm.request_failed",
                extra={"model": self.model, "error_type": type(exc).__name__},
            )
            raise LLMAppError(
                code="llm_request_failed",
                message=f"OpenAI API error: {exc}",
                details={"model": self.model},
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMAppError(code="llm_empty_response", message="LLM returned empty response")

        try:
            parsed = json.loads(content.strip())
        except json.JSONDecodeError as exc:
            raise LLMAppError(
                code="llm_invalid_json",
                message=f"LLM returned invalid JSON: {exc}",
                details={"model": self.model},
            ) from exc
        if not isinstance(parsed, dict):
            raise LLMAppError(code="llm_invalid_json", message="LLM returned a non-object JSON value")
        return parsed
