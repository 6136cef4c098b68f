"""
Tests for OpenAI Provider.

Tests OpenAI provider implementation with mocked API calls, including
tool declarations and tool-call decoding.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from querypilot.llm.models import LLMMessage, LLMRequest, ToolCall, ToolSpec
from querypilot.llm.openai import OpenAIProvider, to_openai_message, to_openai_tool


@pytest.fixture
def provider():
    """Create OpenAI provider instance."""
    return OpenAIProvider(
        api_key="sk-test-key-1234567890abcdefghij",
        model="gpt-4o",
        temperature=0.0,
        max_tokens=2000,
        timeout=30,
    )


def make_response(content="Test", finish_reason="stop", tool_calls=None):
    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = content
    mock_response.choices[0].message.tool_calls = tool_calls
    mock_response.choices[0].finish_reason = finish_reason
    mock_response.model = "gpt-4o"
    mock_response.usage.prompt_tokens = 10
    mock_response.usage.completion_tokens = 5
    mock_response.usage.total_tokens = 15
    mock_response.id = "chatcmpl-123"
    return mock_response


def make_tool_call(call_id, name, arguments):
    call = MagicMock()
    call.id = call_id
    call.function.name = name
    call.function.arguments = arguments
    return call


class TestOpenAIProviderInit:
    """Test OpenAI provider initialization."""

    def test_initialization(self, provider):
        """Test provider initializes correctly."""
        assert provider.model == "gpt-4o"
        assert provider.temperature == 0.0
        assert provider.max_tokens == 2000
        assert provider.timeout == 30
        assert provider.provider_name == "openai"

    def test_client_created(self, provider):
        assert provider.client is not None


class TestGenerate:
    """Test generate method."""

    @pytest.mark.asyncio
    async def test_successful_generation(self, provider):
        """Test successful completion generation."""
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=make_response("Hello! How can I help?"),
        ):
            request = LLMRequest(messages=[LLMMessage(role="user", content="Hello!")])
            response = await provider.generate(request)

        assert response.content == "Hello! How can I help?"
        assert response.tool_calls == []
        assert response.usage.total_tokens == 15
        assert response.finish_reason == "stop"
        assert response.provider == "openai"

    @pytest.mark.asyncio
    async def test_applies_defaults(self, provider):
        """Test request defaults are applied."""
        mock_create = AsyncMock(return_value=make_response())

        with patch.object(provider.client.chat.completions, "create", mock_create):
            await provider.generate(LLMRequest(messages=[LLMMessage(role="user", content="Test")]))

        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["temperature"] == 0.0
        assert call_kwargs["max_tokens"] == 2000
        assert "tools" not in call_kwargs

    @pytest.mark.asyncio
    async def test_request_overrides_defaults(self, provider):
        mock_create = AsyncMock(return_value=make_response())

        with patch.object(provider.client.chat.completions, "create", mock_create):
            request = LLMRequest(
                messages=[LLMMessage(role="user", content="Test")],
                temperature=0.7,
                max_tokens=500,
            )
            await provider.generate(request)

        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["temperature"] == 0.7
        assert call_kwargs["max_tokens"] == 500

    @pytest.mark.asyncio
    async def test_tool_calls_are_decoded(self, provider):
        """Test tool declarations go out and tool calls come back."""
        mock_create = AsyncMock(
            return_value=make_response(
                content=None,
                finish_reason="tool_calls",
                tool_calls=[
                    make_tool_call("call_a", "get_entity_schema", '{"entity": "orders"}'),
                    make_tool_call("call_b", "list_entities", ""),
                    make_tool_call("call_c", "find_join_path", "{not json"),
                ],
            )
        )
        spec = ToolSpec(name="get_entity_schema", description="Columns of a table")

        with patch.object(provider.client.chat.completions, "create", mock_create):
            response = await provider.generate(
                LLMRequest(messages=[LLMMessage(role="user", content="orders?")], tools=[spec])
            )

        assert mock_create.call_args.kwargs["tools"][0]["function"]["name"] == "get_entity_schema"
        assert response.content == ""
        assert response.finish_reason == "tool_calls"
        assert [call.arguments for call in response.tool_calls] == [
            {"entity": "orders"},
            {},
            {"__raw__": "{not json"},
        ]


class TestConversion:
    """Test chat-completions wire format."""

    def test_assistant_tool_calls(self):
        message = LLMMessage(
            role="assistant",
            tool_calls=[ToolCall(id="call_1", name="search_column_values", arguments={"keyword": "华东"})],
        )
        payload = to_openai_message(message)

        assert payload["content"] is None
        function = payload["tool_calls"][0]["function"]
        assert function["name"] == "search_column_values"
        assert function["arguments"] == '{"keyword": "华东"}'

    def test_tool_result(self):
        payload = to_openai_message(
            LLMMessage(role="tool", content="| id |", tool_call_id="call_1", name="list_entities")
        )
        assert payload == {"role": "tool", "tool_call_id": "call_1", "content": "| id |"}

    def test_tool_spec(self):
        spec = ToolSpec(name="list_entities", description="List tables")
        assert to_openai_tool(spec) == {
            "type": "function",
            "function": {
                "name": "list_entities",
                "description": "List tables",
                "parameters": {"type": "object", "properties": {}},
            },
        }
