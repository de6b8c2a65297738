"""Settings for chatstream."""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatstream.errors import ConfigurationError
from chatstream.models import DEFAULT_MODEL

DEFAULT_ENDPOINT_URL = "https://chat.openai.com/backend-api/conversation"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/105.0.0.0 Safari/537.36"
)
DEFAULT_REFERER = "https://chat.openai.com/chat"


class Settings(BaseSettings):
    """Client settings loaded from ``CHATSTREAM_*`` variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="CHATSTREAM_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    endpoint_url: str = Field(default=DEFAULT_ENDPOINT_URL, description="Conversation endpoint URL")
    access_token: str | None = Field(default=None, description="Bearer token for the endpoint")
    model: str = Field(default=DEFAULT_MODEL, description="Model identifier sent with each turn")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent header")
    referer: str = Field(default=DEFAULT_REFERER, description="Referer header")
    accept_language: str = Field(default="en-US,en;q=0.9", description="Accept-Language header")

    turn_timeout_seconds: float = Field(default=200.0, gt=0, description="Deadline for one whole turn")
    connect_timeout_seconds: float = Field(default=30.0, gt=0, description="Connection timeout")
    bus_buffer_size: int = Field(default=64, ge=1, description="Queued notifications per consumer")

    log_level: str = Field(default="INFO", description="Log level")

    def require_endpoint(self) -> str:
        endpoint = self.endpoint_url.strip()
        if not endpoint:
            raise ConfigurationError("endpoint_url is not configured")
        return endpoint


def load_settings(**overrides: Any) -> Settings:
    """Load settings from the environment and apply non-empty overrides."""

    settings = Settings()
    updates = {key: value for key, value in overrides.items() if value is not None}
    if updates:
        settings = settings.model_copy(update=updates)
    return settings
