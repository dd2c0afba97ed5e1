"""Application configuration via pydantic-settings."""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Both Slack tokens are required. Construction raises ``ValidationError``
    when either is missing, which the entry point treats as fatal.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Slack
    slack_app_token: str = Field(min_length=1)
    slack_bot_token: str = Field(
        min_length=1,
        validation_alias=AliasChoices("slack_bot_token", "slack_oauth_token"),
    )

    # Duplicate suppression
    ledger_ttl_seconds: float = Field(default=86400.0, gt=0)
    ledger_max_entries: int = Field(default=10000, gt=0)

    # Author display lookups
    user_cache_ttl_seconds: float = Field(default=86400.0, gt=0)
    user_cache_max_entries: int = Field(default=1000, gt=0)
    fallback_display_name: str = "Slack user"

    # Publishing
    publish_max_attempts: int = Field(default=4, ge=1)
    publish_initial_wait_seconds: float = Field(default=1.0, ge=0)
    publish_max_wait_seconds: float = Field(default=30.0, ge=0)

    # Workers
    worker_count: int = Field(default=4, ge=1)
    queue_max_size: int = Field(default=1000, ge=1)
    shutdown_timeout_seconds: float = Field(default=10.0, ge=0)

    # App
    log_level: str = "INFO"
    port: int = 8080

    @field_validator("slack_app_token")
    @classmethod
    def _check_app_token(cls, value: str) -> str:
        if not value.startswith("xapp-"):
            raise ValueError("SLACK_APP_TOKEN must be an app-level token (xapp-...)")
        return value

    @field_validator("slack_bot_token")
    @classmethod
    def _check_bot_token(cls, value: str) -> str:
        if not value.startswith("xoxb-"):
            raise ValueError("SLACK_BOT_TOKEN must be a bot token (xoxb-...)")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings. Lazy initialization to avoid import-time errors."""
    return Settings()
