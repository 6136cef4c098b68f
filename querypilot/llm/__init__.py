"""
LLM provider layer.

Provider-agnostic chat models with tool calling, plus OpenAI, Anthropic and
local (OpenAI-compatible) implementations.
"""

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

__all__ = [
    "BaseLLMProvider",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "ModelInfo",
    "ToolCall",
    "ToolSpec",
]
