"""
LLM Provider Factory

Creates provider instances from configuration, with per-agent overrides.
"""

import logging
from typing import Literal

from querypilot.config import LLMSettings
from querypilot.llm.anthropic import AnthropicProvider
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.local import LocalProvider
from querypilot.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)


class LLMProviderFactory:
    """Factory for creating LLM provider instances."""

    PROVIDERS = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "local": LocalProvider,
    }

    @staticmethod
    def create_provider(
        provider_type: Literal["openai", "anthropic", "local"],
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """
        Create an LLM provider instance.

        Raises:
            ValueError: If provider type is unknown or required config is missing
        """
        if provider_type not in LLMProviderFactory.PROVIDERS:
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {list(LLMProviderFactory.PROVIDERS.keys())}"
            )

        logger.info(
            f"Creating {provider_type} provider with {model_type} model",
            extra={"provider": provider_type, "model_type": model_type},
        )

        if provider_type == "openai":
            if not config.openai_api_key:
                raise ValueError("OpenAI API key is required but not configured")
            return OpenAIProvider(
                api_key=config.openai_api_key,
                model=config.openai_model if model_type == "main" else config.openai_model_mini,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )
        if provider_type == "anthropic":
            if not config.anthropic_api_key:
                raise ValueError("Anthropic API key is required but not configured")
            return AnthropicProvider(
                api_key=config.anthropic_api_key,
                model=(
                    config.anthropic_model if model_type == "main" else config.anthropic_model_mini
                ),
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )
        return LocalProvider(
            base_url=config.local_base_url,
            model=config.local_model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )

    @staticmethod
    def create_default_provider(
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        return LLMProviderFactory.create_provider(config.default_provider, config, model_type)

    @staticmethod
    def create_agent_provider(
        agent_name: Literal["supervisor", "agent"],
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """Create the provider for ``supervisor`` or ``agent``, honouring overrides."""
        override = getattr(config, f"{agent_name}_provider", None)
        provider_type = override or config.default_provider

        logger.info(
            f"Creating provider for {agent_name}",
            extra={"agent": agent_name, "provider": provider_type, "has_override": bool(override)},
        )
        return LLMProviderFactory.create_provider(provider_type, config, model_type)
