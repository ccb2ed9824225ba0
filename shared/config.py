"""
Shared configuration management for the Recipe Access Layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


DEFAULT_SAME_ORIGIN = "http://localhost:3000"


class ClientConfig(BaseSettings):
    """Client configuration, read from ``RECIPES_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="RECIPES_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # API origin; empty means same-origin
    api_url: Optional[str] = Field(default=None)
    same_origin: str = Field(default=DEFAULT_SAME_ORIGIN)

    # Identity provider
    identity_publishable_key: Optional[str] = Field(default=None)

    # Request layer
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Cache; None keeps entries fresh until invalidated
    cache_stale_after_seconds: Optional[float] = Field(default=None, ge=0)
    # Unused entries are evicted after this many idle seconds
    cache_gc_after_seconds: float = Field(default=300.0, ge=0)

    @property
    def base_url(self) -> str:
        """Resolved API origin with the trailing slash removed."""
        origin = self.api_url or self.same_origin
        return origin.rstrip("/")


def validate_config(config: ClientConfig) -> ClientConfig:
    """Reject configurations the client cannot start with."""
    if not config.identity_publishable_key:
        raise ConfigurationError(
            "Missing identity publishable key. Set RECIPES_IDENTITY_PUBLISHABLE_KEY in your environment or .env file.",
            details={"setting": "identity_publishable_key"}
        )
    return config


def get_config(**overrides) -> ClientConfig:
    """Load and validate the client configuration."""
    return validate_config(ClientConfig(**overrides))
