"""Application configuration settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    allow_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        alias="GATEWAY_ALLOW_ORIGINS",
        description="Comma separated list of origins authorised for CORS.",
    )
    rate_limit_default: str = Field(
        default="120/minute",
        alias="GATEWAY_RATE_LIMIT",
        description="Coarse per-IP limit applied to every incoming request.",
    )
    rate_limit_enabled: bool = Field(
        default=True,
        alias="GATEWAY_RATE_LIMIT_ENABLED",
        description="Toggle to disable the per-IP throttling altogether.",
    )
    rate_limit_headers_enabled: bool = Field(
        default=True,
        alias="GATEWAY_RATE_LIMIT_HEADERS_ENABLED",
        description="Expose rate limit headers on throttled responses.",
    )

    user_rate_limit: int = Field(
        default=30,
        alias="GATEWAY_USER_RATE_LIMIT",
        ge=1,
        description="Generations allowed per user inside the sliding window.",
    )
    user_rate_window_minutes: int = Field(
        default=10,
        alias="GATEWAY_USER_RATE_WINDOW_MINUTES",
        ge=1,
        description="Length of the per-user sliding window.",
    )
    provider_timeout_ms: int = Field(
        default=60_000,
        alias="GATEWAY_PROVIDER_TIMEOUT_MS",
        ge=1,
        description="Hard timeout applied to each upstream provider call.",
    )
    default_temperature: float = Field(
        default=0.7,
        alias="GATEWAY_TEMPERATURE",
        ge=0.0,
        le=2.0,
    )
    max_tokens_cap: int = Field(
        default=2048,
        alias="GATEWAY_MAX_TOKENS_CAP",
        ge=1,
        description="Platform-wide ceiling on generated tokens.",
    )

    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com/v1", alias="ANTHROPIC_BASE_URL"
    )
    google_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta", alias="GOOGLE_BASE_URL"
    )
    perplexity_base_url: str = Field(
        default="https://api.perplexity.ai", alias="PERPLEXITY_BASE_URL"
    )
    grok_base_url: str = Field(default="https://api.x.ai/v1", alias="GROK_BASE_URL")

    auth_secret_key: Optional[str] = Field(
        default=None,
        alias="GATEWAY_AUTH_SECRET",
        description="Shared secret used to verify HS256 bearer tokens.",
    )
    auth_algorithm: str = Field(default="HS256", alias="GATEWAY_AUTH_ALGORITHM")
    auth_audience: Optional[str] = Field(default=None, alias="GATEWAY_AUTH_AUDIENCE")
    keycloak_server_url: Optional[str] = Field(default=None, alias="KEYCLOAK_SERVER_URL")
    keycloak_realm: str = Field(default="prompt-gateway", alias="KEYCLOAK_REALM")
    keycloak_client_id: str = Field(default="prompt-gateway", alias="KEYCLOAK_CLIENT_ID")

    strict_environment: bool = Field(
        default=False,
        alias="GATEWAY_STRICT_ENV",
        description="Refuse to start when the auth secret is missing or insecure.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, str):
            parts = [origin.strip() for origin in value.split(",")]
            origins = [origin for origin in parts if origin]
            return origins or ["http://localhost:3000"]
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of application settings."""

    return Settings()
