"""Configuration settings for replicate_mcp.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import json
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Official Replicate HTTP API base URL
REPLICATE_API_BASE = "https://api.replicate.com/v1"

SECRET_MASK = "********"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from unprefixed environment variables (``API_KEY``,
    ``REPLICATE_API_TOKEN``, ...). CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Interface to bind")
    port: int = Field(default=3000, ge=1, le=65535, description="Port to bind")
    environment: Literal["development", "production", "test"] = Field(
        default="development",
        description="Deployment environment",
    )

    # MCP metadata
    mcp_title: str = Field(
        default="Replicate MCP Server",
        description="Server title reported to MCP clients",
    )
    mcp_version: str = Field(
        default="1.0.0",
        description="Server version reported to MCP clients",
    )

    # Secrets
    api_key: str | None = Field(
        default=None,
        description="Key clients must present; auth is disabled when unset",
    )
    replicate_api_token: str | None = Field(
        default=None,
        description="Replicate API token, kept server-side",
    )

    # Upstream
    replicate_base_url: str = Field(
        default=REPLICATE_API_BASE,
        description="Replicate API base URL",
    )
    replicate_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for a single Replicate HTTP call (seconds)",
    )
    replicate_poll_interval: float = Field(
        default=1.0,
        ge=0,
        description="Delay between prediction status polls (seconds)",
    )
    search_limit: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum number of models returned by search_models",
    )

    # Request context bookkeeping
    context_max_age: float = Field(
        default=600.0,
        gt=0,
        description="Age after which abandoned request contexts are swept (seconds)",
    )
    context_sweep_interval: float = Field(
        default=60.0,
        gt=0,
        description="Period of the request context sweep (seconds)",
    )

    # HTTP
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by CORS",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.upper()
            return "WARNING" if value == "WARN" else value
        return value

    @property
    def auth_enabled(self) -> bool:
        """Whether clients must present ``API_KEY``."""
        return bool(self.api_key)


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON with secrets masked.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    data = settings.model_dump(mode="json")
    for key in ("api_key", "replicate_api_token"):
        if data.get(key):
            data[key] = SECRET_MASK
    return json.dumps(data, indent=2)


__all__ = [
    "REPLICATE_API_BASE",
    "SECRET_MASK",
    "Settings",
    "get_settings",
    "print_settings_json",
]
