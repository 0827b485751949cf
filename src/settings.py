"""Application settings using pydantic-settings.

Loads configuration from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,  # Allow both field name and alias
    )

    # Environment
    environment: Literal["development", "staging", "production", "testing"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Upstream Responses API
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key for the Responses API (empty = AI replies stubbed)",
        validation_alias=AliasChoices("openai_api_key", "llm_api_key"),
    )
    responses_api_url: str = Field(
        default="https://api.openai.com/v1/responses",
        description="Base URL of the streaming Responses API",
    )
    default_model: str = Field(
        default="gpt-4o-mini",
        description="Model used when the reply config does not pick one",
    )
    stream_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Read timeout for the upstream event stream",
    )

    # Tool execution
    tool_timeout_seconds: float = Field(
        default=15.0,
        ge=0.0,
        description="Per-attempt tool timeout (0 = no timeout)",
    )
    tool_max_retries: int = Field(
        default=1,
        ge=0,
        le=10,
        description="Extra attempts after a failed or timed out tool call",
    )
    tool_max_concurrency: int = Field(
        default=2,
        ge=1,
        le=32,
        description="Maximum tool calls executing at once per reply",
    )
    tool_retry_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Pause between tool attempts",
    )

    @property
    def ai_enabled(self) -> bool:
        """Whether a Responses API key is configured."""
        return bool(self.openai_api_key.get_secret_value())


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance (cached after first call)
    """
    return Settings()
