"""Configuration management for Turnstile."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from turnstile.logging_utils import configure_logging


class Settings(BaseSettings):
    """Application settings."""

    # Channel credentials
    app_id: str | None = Field(None, description="App id the channel authenticates against")
    app_password: SecretStr | None = Field(None, description="Shared secret expected as bearer token")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_profile: Literal["default", "console"] = Field(default="default", description="Log sink profile")

    # Console adapter identities
    channel_id: str = Field(default="console", description="Channel id used by the console adapter")
    user_name: str = Field(default="user", description="User account name for console turns")
    bot_name: str = Field(default="bot", description="Bot account name for console turns")

    model_config = SettingsConfigDict(
        env_prefix="TURNSTILE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def get_settings(**overrides: object) -> Settings:
    """Get application settings and configure logging for them."""

    settings = Settings(**overrides)  # type: ignore[arg-type]
    configure_logging(profile=settings.log_profile, level=settings.log_level)
    return settings
