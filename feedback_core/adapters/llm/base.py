from abc import ABC, abstractmethod
from typing import Any


class AbstractLLMClient(ABC):
    """Interface for LLM clients that answer with a JSON object."""

    model: str

    @abstractmethod
    async def generate_json(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send ``prompt`` and return the parsed JSON object.

        Args:
            prompt: User message.
            system_prompt: Overrides the default "JSON only" instruction.
            **kwargs: Provider options (temperature, max_tokens).

        Raises:
            LLMAppError: If the call fails or the reply is not a JSON object.
        """
        ...
