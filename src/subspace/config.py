"""Configuration management for Subspace."""

from __future__ import annotations

from typing import Literal
from urllib.parse import urlsplit

from pydantic import AliasChoices, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from subspace.errors import ConfigurationError

Environment = Literal["development", "staging", "production"]

DEFAULT_API_BASE_URLS: dict[str, str] = {
    "development": "http://localhost:8080/api/v1",
    "staging": "https://staging-api.subspace.app/api/v1",
    "production": "https://api.subspace.app/api/v1",
}
DEFAULT_WEBSOCKET_URLS: dict[str, str] = {
    "development": "ws://localhost:8080/ws",
    "staging": "wss://staging-api.subspace.app/ws",
    "production": "wss://api.subspace.app/ws",
}


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SUBSPACE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Environment = Field(default="development", description="Deployment environment")

    # Endpoints
    api_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUBSPACE_API_BASE_URL", "API_BASE_URL", "api_base_url"),
        description="Base URL for the REST API",
    )
    websocket_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SUBSPACE_WEBSOCKET_URL", "WEBSOCKET_URL", "websocket_url"),
        description="Endpoint for realtime connections",
    )

    # Timeouts
    request_timeout: float = Field(default=30.0, gt=0, description="Per-attempt HTTP timeout in seconds")
    ws_ping_interval: float = Field(default=30.0, gt=0, description="Realtime heartbeat interval in seconds")
    ws_reconnect_delay: float = Field(default=3.0, ge=0, description="Fixed realtime reconnect delay in seconds")

    # Cache
    cache_expiration: float = Field(default=300.0, gt=0, description="Default cache entry lifetime in seconds")

    # Credentials
    access_token: str | None = Field(default=None, description="Static bearer token for developer tooling")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @model_validator(mode="after")
    def _resolve_urls(self) -> Settings:
        if not self.api_base_url:
            self.api_base_url = DEFAULT_API_BASE_URLS[self.environment]
        if not self.websocket_url:
            self.websocket_url = DEFAULT_WEBSOCKET_URLS[self.environment]
        _check_url(self.api_base_url, schemes={"http", "https"}, label="API base URL")
        _check_url(self.websocket_url, schemes={"ws", "wss"}, label="WebSocket URL")
        return self

    @property
    def api_endpoint(self) -> str:
        """API base URL with the environment default applied."""
        if self.api_base_url is None:
            raise ConfigurationError("API base URL is not resolved")
        return self.api_base_url

    @property
    def websocket_endpoint(self) -> str:
        """WebSocket URL with the environment default applied."""
        if self.websocket_url is None:
            raise ConfigurationError("WebSocket URL is not resolved")
        return self.websocket_url


def _check_url(raw: str, *, schemes: set[str], label: str) -> None:
    try:
        parts = urlsplit(raw.strip())
        # Reading the port validates it.
        _ = parts.port
    except ValueError as exc:
        raise ValueError(f"Invalid {label}: {raw!r} ({exc})") from exc
    if parts.scheme not in schemes or not parts.hostname:
        raise ValueError(f"Invalid {label}: {raw!r}")


def get_settings(**overrides: object) -> Settings:
    """Load settings from the environment.

    Args:
        **overrides: Field values that take precedence over the environment

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If any value, including a base URL, is invalid
    """
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
