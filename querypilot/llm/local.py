"""
Local LLM Provider

Talks to a self-hosted model server (Ollama, vLLM, llama.cpp) through its
OpenAI-compatible ``/v1/chat/completions`` endpoint using httpx.
"""

import logging
import uuid

import httpx

from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import LLMRequest, LLMResponse, LLMUsage, ModelInfo, ToolCall
from querypilot.llm.openai import to_openai_message, to_openai_tool

logger = logging.getLogger(__name__)


class LocalProvider(BaseLLMProvider):
    """Provider for local OpenAI-compatible model servers."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 60,
    ):
        super().__init__(
            provider_name="local",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=float(timeout))

        logger.info(
            f"Local provider initialized: {base_url} with model: {model}",
            extra={"base_url": base_url, "model": model},
        )

    async def generate(self, request: LLMRequest) -> LLMResponse:
        request = self._apply_defaults(request)
        self._log_request(request)

        payload = {
            "model": request.model or self.model,
            "messages": [to_openai_message(msg) for msg in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.tools:
            payload["tools"] = [to_openai_tool(spec) for spec in request.tools]

        response = await self.client.post(f"{self.base_url}/v1/chat/completions", json=payload)
        response.raise_for_status()
        data = response.json()

        choice = (data.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        tool_calls = [
            ToolCall(
                id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                name=call.get("function", {}).get("name", ""),
                arguments=self._decode_arguments(call.get("function", {}).get("arguments")),
            )
            for call in message.get("tool_calls") or []
        ]
        usage = data.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)

        llm_response = LLMResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            model=data.get("model", self.model),
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason="tool_calls" if tool_calls else "stop",
            provider="local",
            metadata={"base_url": self.base_url},
        )

        self._log_response(llm_response)
        return llm_response

    def get_model_info(self, model_name: str | None = None) -> ModelInfo:
        return ModelInfo(
            name=model_name or self.model,
            provider="local",
            context_window=8192,
            max_output=2048,
        )

    async def aclose(self) -> None:
        await self.client.aclose()
