"""
Tests for LLM Provider Factory.

Tests provider creation, configuration, and per-agent overrides.
"""

import httpx
import pytest

from querypilot.config import LLMSettings
from querypilot.llm.anthropic import AnthropicProvider
from querypilot.llm.factory import LLMProviderFactory
from querypilot.llm.local import LocalProvider
from querypilot.llm.models import LLMMessage, LLMRequest
from querypilot.llm.openai import OpenAIProvider


@pytest.fixture
def mock_config():
    """Mock LLM configuration with all providers configured."""
    return LLMSettings(
        default_provider="openai",
        supervisor_provider="anthropic",
        agent_provider=None,
        openai_api_key="sk-test-openai-key-1234567890",
        openai_model="gpt-4o",
        openai_model_mini="gpt-4o-mini",
        anthropic_api_key="sk-ant-REDACTED",
        anthropic_model="claude-3-5-sonnet-20241022",
        anthropic_model_mini="claude-3-5-haiku-20241022",
        local_base_url="http://localhost:11434",
        local_model="llama3.1:8b",
        temperature=0.0,
        max_tokens=2000,
        timeout=30,
    )


class TestProviderRegistry:
    def test_provider_classes(self):
        """Test provider classes are correct."""
        assert LLMProviderFactory.PROVIDERS == {
            "openai": OpenAIProvider,
            "anthropic": AnthropicProvider,
            "local": LocalProvider,
        }


class TestCreateProvider:
    """Test create_provider method."""

    def test_create_openai_provider(self, mock_config):
        provider = LLMProviderFactory.create_provider("openai", mock_config)
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o"
        assert provider.temperature == 0.0

    def test_create_openai_mini(self, mock_config):
        provider = LLMProviderFactory.create_provider("openai", mock_config, model_type="mini")
        assert provider.model == "gpt-4o-mini"

    def test_create_anthropic_mini(self, mock_config):
        """Test creating Anthropic provider with mini model."""
        provider = LLMProviderFactory.create_provider("anthropic", mock_config, model_type="mini")
        assert isinstance(provider, AnthropicProvider)
        assert provider.model == "claude-3-5-haiku-20241022"

    def test_create_local_provider(self, mock_config):
        provider = LLMProviderFactory.create_provider("local", mock_config)
        assert isinstance(provider, LocalProvider)
        assert provider.model == "llama3.1:8b"
        assert provider.base_url == "http://localhost:11434"

    def test_unknown_provider(self, mock_config):
        """Test unknown provider raises ValueError."""
        with pytest.raises(ValueError, match="Unknown provider type"):
            LLMProviderFactory.create_provider("unknown", mock_config)

    def test_missing_openai_api_key(self, mock_config):
        mock_config.openai_api_key = None
        with pytest.raises(ValueError, match="OpenAI API key is required"):
            LLMProviderFactory.create_provider("openai", mock_config)

    def test_missing_anthropic_api_key(self, mock_config):
        mock_config.anthropic_api_key = None
        with pytest.raises(ValueError, match="Anthropic API key is required"):
            LLMProviderFactory.create_provider("anthropic", mock_config)


class TestCreateAgentProvider:
    """Test create_agent_provider method."""

    def test_supervisor_uses_override(self, mock_config):
        provider = LLMProviderFactory.create_agent_provider("supervisor", mock_config)
        assert isinstance(provider, AnthropicProvider)

    def test_agent_falls_back_to_default(self, mock_config):
        provider = LLMProviderFactory.create_agent_provider("agent", mock_config)
        assert isinstance(provider, OpenAIProvider)

    def test_override_with_mini_model(self, mock_config):
        provider = LLMProviderFactory.create_agent_provider(
            "supervisor", mock_config, model_type="mini"
        )
        assert provider.model == "claude-3-5-haiku-20241022"

    def test_respects_default_provider_setting(self, mock_config):
        mock_config.default_provider = "local"
        provider = LLMProviderFactory.create_agent_provider("agent", mock_config)
        assert isinstance(provider, LocalProvider)


class TestLocalProvider:
    """Test the OpenAI-compatible local provider over a mock transport."""

    @pytest.mark.asyncio
    async def test_tool_call_response(self, mock_config):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            return httpx.Response(
                200,
                json={
                    "model": "llama3.1:8b",
                    "choices": [
                        {
                            "message": {
                                "content": None,
                                "tool_calls": [
                                    {
                                        "id": "call_1",
                                        "function": {
                                            "name": "list_entities",
                                            "arguments": "{}",
                                        },
                                    }
                                ],
                            }
                        }
                    ],
                    "usage": {"prompt_tokens": 12, "completion_tokens": 3},
                },
            )

        provider = LLMProviderFactory.create_provider("local", mock_config)
        provider.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        response = await provider.generate(
            LLMRequest(messages=[LLMMessage(role="user", content="有哪些表")])
        )
        await provider.aclose()

        assert captured["url"] == "http://localhost:11434/v1/chat/completions"
        assert response.finish_reason == "tool_calls"
        assert response.tool_calls[0].name == "list_entities"
        assert response.usage.total_tokens == 15
