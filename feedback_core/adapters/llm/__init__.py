"""LLM adapter layer used by AI trend analysis."""

from feedback_core.adapters.llm.base import AbstractLLMClient
from feedback_core.adapters.llm.factory import create_llm_client
from feedback_core.adapters.llm.openai_client import OpenAIClient

__all__ = [
    "AbstractLLMClient",
    "OpenAIClient",
    "create_llm_client",
]
