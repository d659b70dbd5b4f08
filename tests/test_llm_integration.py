"""Tests for the LLM factory and OpenAI adapter (SDK mocked)."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from openai import APIConnectionError

from feedback_core.adapters.llm.factory import create_llm_client
from feedback_core.adapters.llm.openai_client import OpenAIClient
from feedback_core.core.config import LLMSettings
from feedback_core.core.errors import LLMAppError, ValidationAppError


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_factory_returns_none_without_api_key() -> None:
    assert create_llm_client(LLMSettings(api_key=None)) is None


def test_factory_builds_openai_client() -> None:
    client = create_llm_client(LLMSettings(api_key="sk-test", model="gpt-4o-mini"))

    assert isinstance(client, OpenAIClient)
    assert client.model == "gpt-4o-mini"


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        create_llm_client(LLMSettings(api_key="k", provider="mystery"))

    assert exc_info.value.code == "llm_unknown_provider"


@pytest.mark.asyncio
async def test_generate_json_parses_object() -> None:
    client = OpenAIClient(api_key="sk-test", model="gpt-4o-mini")
    create = AsyncMock(return_value=_completion('{"insights": ["a"]}'))
    client.client.chat.completions.create = create

    result = await client.generate_json("prompt", system_prompt="system")

    assert result == {"insights": ["a"]}
    kwargs = create.await_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [None, "not json", "[1, 2]"])
async def test_generate_json_rejects_bad_output(content: str | None) -> None:
    client = OpenAIClient(api_key="sk-test", model="gpt-4o-mini")
    client.client.chat.completions.create = AsyncMock(return_value=_completion(content))

    with pytest.raises(LLMAppError):
        await client.generate_json("prompt")


@pytest.mark.asyncio
async def test_sdk_errors_are_wrapped() -> None:
    client = OpenAIClient(api_key="sk-test", model="gpt-4o-mini")
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    client.client.chat.completions.create = AsyncMock(side_effect=APIConnectionError(request=request))

    with pytest.raises(LLMAppError) as exc_info:
        await client.generate_json("prompt")

    assert exc_info.value.code == "llm_request_failed"
