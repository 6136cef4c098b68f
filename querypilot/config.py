"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from querypilot.config import get_settings

    settings = get_settings()
    print(settings.llm.default_provider)
    print(settings.agent.max_iterations)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, PostgresDsn, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["openai", "anthropic", "local"]


class LLMSettings(BaseSettings):
    """LLM provider configuration."""

    # Provider selection
    default_provider: ProviderName = Field(default="openai", description="Default LLM provider")
    supervisor_provider: ProviderName | None = Field(
        None, description="Provider for the supervisor (defaults to default_provider)"
    )
    agent_provider: ProviderName | None = Field(
        None, description="Provider for the agent nodes (defaults to default_provider)"
    )

    # OpenAI configuration
    openai_api_key: str | None = Field(None, description="OpenAI API key", min_length=20)
    openai_model: str = Field(default="gpt-4o", description="OpenAI model for agent loops")
    openai_model_mini: str = Field(
        default="gpt-4o-mini", description="OpenAI lightweight model (supervisor)"
    )

    # Anthropic configuration
    anthropic_api_key: str | None = Field(None, description="Anthropic API key", min_length=20)
    anthropic_model: str = Field(
        default="claude-3-5-sonnet-20241022", description="Anthropic model for agent loops"
    )
    anthropic_model_mini: str = Field(
        default="claude-3-5-haiku-20241022", description="Anthropic lightweight model"
    )

    # Local model configuration
    local_base_url: str = Field(
        default="http://localhost:11434",
        description="Base URL for an OpenAI-compatible local server (Ollama, vLLM, etc.)",
    )
    local_model: str = Field(default="llama3.1:8b", description="Local model name")

    # Common settings
    temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=2000, gt=0, le=16000, description="Max tokens per response")
    timeout: int = Field(default=60, gt=0, description="Request timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_key(cls, v: str | None) -> str | None:
        """Validate OpenAI API key format."""
        if v and not v.startswith("sk-"):
            raise ValueError("OpenAI API key must start with 'sk-'")
        return v

    @field_validator("anthropic_api_key")
    @classmethod
    def validate_anthropic_key(cls, v: str | None) -> str | None:
        """Validate Anthropic API key format."""
        if v and not v.startswith("sk-ant-"):
            raise ValueError("Anthropic API key must start with 'sk-ant-'")
        return v

    @model_validator(mode="after")
    def validate_provider_keys(self) -> "LLMSettings":
        """Ensure an API key is set for every selected hosted provider."""
        provider_key_map = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }
        selected = {self.default_provider, self.supervisor_provider, self.agent_provider}
        for provider in selected:
            if provider in provider_key_map and not provider_key_map[provider]:
                raise ValueError(
                    f"API key required for {provider} provider. Set LLM_{provider.upper()}_API_KEY"
                )
        return self


class AgentSettings(BaseSettings):
    """Agent loop and supervisor behaviour."""

    max_iterations: int = Field(
        default=25, ge=1, le=200, description="Maximum model round-trips per turn"
    )
    provider_max_retries: int = Field(
        default=2, ge=0, le=5, description="Retries for a failed model call before giving up"
    )
    provider_retry_backoff_seconds: float = Field(
        default=0.5, ge=0.0, description="Linear backoff between provider retries"
    )
    turn_timeout_seconds: float = Field(
        default=180.0, gt=0, description="Wall-clock budget for one turn"
    )
    history_window: int = Field(
        default=20, ge=0, description="Prior-turn messages replayed to the model"
    )
    parallel_tool_calls: bool = Field(
        default=True, description="Run independent tool calls from one response concurrently"
    )
    supervisor_mode: Literal["llm", "keyword"] = Field(
        default="llm", description="Classify intent with the LLM or with keyword rules only"
    )

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file=".env",
        extra="ignore",
    )


class DiscoverySettings(BaseSettings):
    """Schema discovery limits."""

    cross_search_limit_per_table: int = Field(default=3, ge=1, le=100)
    cross_search_timeout_seconds: float = Field(default=20.0, gt=0)
    cross_search_concurrency: int = Field(default=4, ge=1, le=64)
    sample_limit_max: int = Field(default=20, ge=1, le=1000)
    column_value_limit_max: int = Field(default=50, ge=1, le=1000)
    statistics_max_columns: int = Field(
        default=40, ge=1, le=500, description="Columns profiled by get_entity_statistics"
    )
    statistics_top_value_columns: int = Field(
        default=10, ge=0, le=100, description="Text columns that get a top-values breakdown"
    )
    sensitive_keywords: list[str] = Field(
        default_factory=lambda: [
            "password",
            "pwd",
            "secret",
            "token",
            "key",
            "iv",
            "salt",
            "recovery",
            "2fa",
            "two_factor",
            "api_key",
            "access_token",
        ],
        description="Column-name fragments flagged as sensitive in schema output",
    )

    model_config = SettingsConfigDict(
        env_prefix="DISCOVERY_",
        env_file=".env",
        extra="ignore",
    )


class SecuritySettings(BaseSettings):
    """SQL safety validation."""

    allow_write: bool = Field(
        default=False, description="Permit DDL/DML statements (write mode)"
    )
    large_table_row_threshold: int = Field(
        default=100_000, ge=0, description="Row estimate above which SELECT * warns loudly"
    )

    model_config = SettingsConfigDict(
        env_prefix="SECURITY_",
        env_file=".env",
        extra="ignore",
    )


class DataSourceSettings(BaseSettings):
    """Data source registry and driver configuration."""

    registry_path: Path = Field(
        default=Path("config/datasources.yaml"),
        description="YAML file listing configured data sources",
    )
    pool_size: int = Field(default=5, gt=0, le=20, description="Connection pool size")
    query_timeout: int = Field(default=30, gt=0, description="Query timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="DATASOURCES_",
        env_file=".env",
        extra="ignore",
    )


class ChromaSettings(BaseSettings):
    """Chroma table index and knowledge base configuration."""

    enabled: bool = Field(default=False, description="Index tables for semantic lookup")
    persist_dir: Path = Field(
        default=Path("./chroma_data"),
        description="Directory for Chroma persistence",
    )
    collection_name: str = Field(default="querypilot_tables", description="Chroma collection")
    embedding_model: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    top_k: int = Field(default=5, gt=0, le=20, description="Tables returned per lookup")
    knowledge_collection_name: str = Field(
        default="querypilot_knowledge", description="Chroma collection for business knowledge"
    )
    knowledge_path: Path | None = Field(
        default=Path("config/knowledge.yaml"),
        description="YAML file of definitions and reference queries loaded at startup",
    )

    model_config = SettingsConfigDict(
        env_prefix="CHROMA_",
        env_file=".env",
        extra="ignore",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stdout only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=getattr(logging, self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,
        )


class ToolsSettings(BaseSettings):
    """Tooling configuration."""

    policy_path: str = Field(
        default="config/tools.yaml",
        description="Path to tool policy overrides",
    )

    model_config = SettingsConfigDict(
        env_prefix="TOOLS_",
        env_file=".env",
        extra="ignore",
    )


class ConversationSettings(BaseSettings):
    """Conversation history persistence."""

    database_url: PostgresDsn | None = Field(
        None,
        description="PostgreSQL DSN for conversation history (None = in-memory)",
    )

    model_config = SettingsConfigDict(
        env_prefix="CONVERSATIONS_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_url(cls, v):
        """Treat empty strings as missing."""
        if v == "":
            return None
        return v


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Settings are nested by domain.

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, staging, production)
        APP_NAME: Application name for logging
        API_HOST / API_PORT: API server bind address
        LLM_*: LLM provider configuration (see LLMSettings)
        AGENT_*: Agent loop configuration (see AgentSettings)
        DISCOVERY_*: Discovery limits (see DiscoverySettings)
        SECURITY_*: SQL safety (see SecuritySettings)
        DATASOURCES_*: Data source registry (see DataSourceSettings)
        CHROMA_*: Table index (see ChromaSettings)
        LOG_*: Logging configuration (see LoggingSettings)
        CONVERSATIONS_*: History persistence (see ConversationSettings)
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(default="QueryPilot", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, gt=0, le=65535, description="API server port")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    datasources: DataSourceSettings = Field(default_factory=DataSourceSettings)
    chroma: ChromaSettings = Field(default_factory=ChromaSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    tools: ToolsSettings = Field(default_factory=ToolsSettings)
    conversations: ConversationSettings = Field(default_factory=ConversationSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        """Configure logging when settings are loaded."""
        self.logging.configure()
        return self

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "llm_provider": self.llm.default_provider,
                "max_iterations": self.agent.max_iterations,
                "supervisor_mode": self.agent.supervisor_mode,
                "write_mode": self.security.allow_write,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("QUERYPILOT_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses functools.lru_cache so settings are loaded only once per process.

    Example:
        >>> from querypilot.config import get_settings
        >>> settings = get_settings()
        >>> settings.agent.max_iterations
        25
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (tests reload settings with new env vars)."""
    get_settings.cache_clear()
