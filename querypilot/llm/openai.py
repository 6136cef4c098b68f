"""
OpenAI LLM Provider

Chat completions with function tools through the official async SDK.
"""

import json
import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import (
    LLMMessage,
    LLMRequest,
    LLMResponse,
    LLMUsage,
    ModelInfo,
    ToolCall,
    ToolSpec,
)

logger = logging.getLogger(__name__)

_MODEL_INFO = {
    "gpt-4o": ModelInfo(name="gpt-4o", provider="openai", context_window=128000, max_output=16384),
    "gpt-4o-mini": ModelInfo(
        name="gpt-4o-mini", provider="openai", context_window=128000, max_output=16384
    ),
}


class OpenAIProvider(BaseLLMProvider):
    """OpenAI provider for GPT chat models."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 60,
        base_url: str | None = None,
    ):
        super().__init__(
            provider_name="openai",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key, timeout=float(timeout), base_url=base_url)

        logger.info(f"OpenAI provider initialized with model: {model}", extra={"model": model})

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate a completion using the OpenAI API.

        Raises:
            openai.APIError: On API errors
            openai.APITimeoutError: On timeout
        """
        request = self._apply_defaults(request)
        self._log_request(request)

        params: dict[str, Any] = {
            "model": request.model or self.model,
            "messages": [to_openai_message(msg) for msg in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            **request.metadata,
        }
        if request.tools:
            params["tools"] = [to_openai_tool(spec) for spec in request.tools]

        try:
            response = await self.client.chat.completions.create(**params)
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            raise
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        choice = response.choices[0]
        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=self._decode_arguments(call.function.arguments),
            )
            for call in (choice.message.tool_calls or [])
        ]
        usage = response.usage
        llm_response = LLMResponse(
            content=choice.message.content or "",
            tool_calls=tool_calls,
            model=response.model,
            usage=LLMUsage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            finish_reason=self._map_finish_reason(choice.finish_reason),
            provider="openai",
            metadata={"id": response.id},
        )

        self._log_response(llm_response)
        return llm_response

    def get_model_info(self, model_name: str | None = None) -> ModelInfo:
        model = model_name or self.model
        return _MODEL_INFO.get(
            model,
            ModelInfo(name=model, provider="openai", context_window=128000, max_output=4096),
        )

    def _map_finish_reason(self, reason: str | None) -> str:
        if reason in ("stop", "length", "content_filter", "tool_calls"):
            return reason
        if reason == "function_call":
            return "tool_calls"
        return "stop"


def to_openai_message(message: LLMMessage) -> dict[str, Any]:
    """Convert a message to the chat-completions wire format."""
    if message.role == "tool":
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id,
            "content": message.content,
        }
    payload: dict[str, Any] = {"role": message.role, "content": message.content}
    if message.role == "assistant" and message.tool_calls:
        payload["content"] = message.content or None
        payload["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {
                    "name": call.name,
                    "arguments": json.dumps(call.arguments, ensure_ascii=False),
                },
            }
            for call in message.tool_calls
        ]
    return payload


def to_openai_tool(spec: ToolSpec) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": spec.parameters,
        },
    }
