"""
Base LLM Provider

Abstract base class defining the provider contract used by the agent loop:
given a system prompt, a message history and declared tools, return either
text or a set of tool calls.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from querypilot.llm.models import LLMRequest, LLMResponse, ModelInfo

logger = logging.getLogger(__name__)


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Attributes:
        provider_name: Unique identifier for this provider
        temperature: Default sampling temperature
        max_tokens: Default maximum tokens to generate
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 60,
    ):
        self.provider_name = provider_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        logger.info(
            f"Initialized {provider_name} provider",
            extra={
                "provider": provider_name,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate a completion, possibly requesting tool calls.

        Raises:
            Exception: Provider-specific errors (API errors, timeouts, etc.)
        """
        pass  # pragma: no cover - abstract method

    @abstractmethod
    def get_model_info(self, model_name: str | None = None) -> ModelInfo:
        """Get information about a model (None = default model)."""
        pass  # pragma: no cover - abstract method

    def count_tokens(self, text: str) -> int:
        """Rough token estimate (~4 characters per token)."""
        return max(1, len(text) // 4) if text else 0

    def _apply_defaults(self, request: LLMRequest) -> LLMRequest:
        if request.temperature is None:
            request.temperature = self.temperature
        if request.max_tokens is None:
            request.max_tokens = self.max_tokens
        return request

    @staticmethod
    def _decode_arguments(raw: str | dict[str, Any] | None) -> dict[str, Any]:
        """Decode tool-call arguments, keeping malformed payloads visible."""
        if raw is None or raw == "":
            return {}
        if isinstance(raw, dict):
            return raw
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            return {"__raw__": raw}
        if not isinstance(decoded, dict):
            return {"__raw__": raw}
        return decoded

    def _log_request(self, request: LLMRequest) -> None:
        logger.debug(
            f"{self.provider_name} request",
            extra={
                "provider": self.provider_name,
                "message_count": len(request.messages),
                "tool_count": len(request.tools),
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
            },
        )

    def _log_response(self, response: LLMResponse) -> None:
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "total_tokens": response.usage.total_tokens,
                "tool_calls": [call.name for call in response.tool_calls],
                "finish_reason": response.finish_reason,
            },
        )
