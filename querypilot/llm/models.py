"""
LLM Request and Response Models

Provider-agnostic pydantic models for chat completions with tool calling.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str = Field(..., description="Provider-issued call identifier")
    name: str = Field(..., description="Tool name")
    arguments: dict[str, Any] = Field(
        default_factory=dict,
        description="Decoded arguments; undecodable JSON is kept under '__raw__'",
    )


class ToolSpec(BaseModel):
    """Tool declaration sent to the model."""

    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the arguments object",
    )


class LLMMessage(BaseModel):
    """Single message in an LLM conversation."""

    role: Literal["system", "user", "assistant", "tool"] = Field(..., description="Message role")
    content: str = Field(default="", description="Message content")
    tool_calls: list[ToolCall] = Field(
        default_factory=list, description="Tool calls made by an assistant message"
    )
    tool_call_id: str | None = Field(None, description="Call answered by a tool message")
    name: str | None = Field(None, description="Tool name for tool messages")


class LLMRequest(BaseModel):
    """Request to an LLM provider."""

    messages: list[LLMMessage] = Field(..., description="Conversation messages", min_length=1)
    tools: list[ToolSpec] = Field(default_factory=list, description="Declared tools")
    temperature: float | None = Field(
        None, ge=0.0, le=2.0, description="Sampling temperature (overrides default)"
    )
    max_tokens: int | None = Field(None, gt=0, description="Max tokens (overrides default)")
    model: str | None = Field(None, description="Specific model to use (overrides default)")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Additional provider-specific parameters"
    )

    @property
    def system_prompt(self) -> str | None:
        parts = [message.content for message in self.messages if message.role == "system"]
        return "\n\n".join(parts) if parts else None


class LLMUsage(BaseModel):
    """Token usage information."""

    prompt_tokens: int = Field(0, ge=0)
    completion_tokens: int = Field(0, ge=0)
    total_tokens: int = Field(0, ge=0)


class LLMResponse(BaseModel):
    """Response from an LLM provider: plain text, tool calls, or both."""

    content: str = Field(default="", description="Generated text content")
    tool_calls: list[ToolCall] = Field(default_factory=list, description="Requested tool calls")
    model: str = Field(..., description="Model that generated the response")
    usage: LLMUsage = Field(default_factory=LLMUsage)
    finish_reason: Literal["stop", "length", "tool_calls", "content_filter", "error"] = Field(
        "stop", description="Reason the generation stopped"
    )
    provider: str = Field(..., description="Provider that handled the request")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class ModelInfo(BaseModel):
    """Information about a specific model."""

    name: str
    provider: str
    context_window: int = Field(..., gt=0)
    max_output: int = Field(..., gt=0)
    supports_tools: bool = True
