from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewaySettings(BaseSettings):
    """Configuration for the media edge gateway."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore"
    )

    service_name: str = Field(
        default="Media Edge API",
        validation_alias="MEDIA_EDGE_SERVICE_NAME",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="MEDIA_EDGE_LOG_LEVEL",
    )
    namespace: str = Field(
        default="celebrity",
        validation_alias="MEDIA_EDGE_NAMESPACE",
    )
    download_prefix: str = Field(
        default="/download/",
        validation_alias="MEDIA_EDGE_DOWNLOAD_PREFIX",
    )

    # Object store
    endpoint: str | None = Field(
        default=None,
        validation_alias="MEDIA_EDGE_S3_ENDPOINT",
    )
    access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "MEDIA_EDGE_S3_ACCESS_KEY",
            "AWS_ACCESS_KEY_ID",
        ),
    )
    secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "MEDIA_EDGE_S3_SECRET_KEY",
            "AWS_SECRET_ACCESS_KEY",
        ),
    )
    session_token: str | None = Field(
        default=None,
        validation_alias="MEDIA_EDGE_S3_SESSION_TOKEN",
    )
    region: str = Field(
        default="us-east-1",
        validation_alias=AliasChoices(
            "MEDIA_EDGE_S3_REGION",
            "AWS_REGION",
        ),
    )
    bucket: str | None = Field(
        default=None,
        validation_alias="MEDIA_EDGE_BUCKET",
    )
    addressing_style: Literal["auto", "virtual", "path"] = Field(
        default="path",
        validation_alias="MEDIA_EDGE_S3_ADDRESSING_STYLE",
    )
    max_attempts: int = Field(
        default=1,
        ge=1,
        validation_alias="MEDIA_EDGE_S3_MAX_ATTEMPTS",
    )

    # Cache tiers
    kv_enabled: bool = Field(
        default=True,
        validation_alias="MEDIA_EDGE_KV_ENABLED",
    )
    redis_url: str | None = Field(
        default=None,
        validation_alias="MEDIA_EDGE_REDIS_URL",
    )
    kv_prefix: str = Field(
        default="celebrity:media:",
        validation_alias="MEDIA_EDGE_KV_PREFIX",
    )
    cache_host: str = Field(
        default="https://cache.local",
        validation_alias="MEDIA_EDGE_CACHE_HOST",
    )
    edge_ttl: int | None = Field(
        default=86400,
        validation_alias="MEDIA_EDGE_EDGE_TTL",
    )
    first_chunk_limit: int = Field(
        default=512 * 1024,
        ge=0,
        validation_alias="MEDIA_EDGE_FIRST_CHUNK_LIMIT",
    )
    edge_max_bytes: int = Field(
        default=64 * 1024 * 1024,
        gt=0,
        validation_alias="MEDIA_EDGE_EDGE_MAX_BYTES",
    )
    kv_memory_max_bytes: int = Field(
        default=64 * 1024 * 1024,
        gt=0,
        validation_alias="MEDIA_EDGE_KV_MEMORY_MAX_BYTES",
    )
    cache_sweep_interval: float = Field(
        default=60.0,
        gt=0,
        validation_alias="MEDIA_EDGE_CACHE_SWEEP_INTERVAL",
    )

    @field_validator("namespace", mode="before")
    @classmethod
    def _strip_namespace(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip().strip("/")
            if not stripped:
                msg = "namespace must not be empty"
                raise ValueError(msg)
            return stripped
        return value

    @field_validator("cache_host", mode="before")
    @classmethod
    def _strip_cache_host(cls, value: object) -> object:
        if isinstance(value, str):
            return value.rstrip("/")
        return value

    @property
    def store_configured(self) -> bool:
        """Check if the object store has a bucket to serve from."""
        return bool(self.bucket)


def load_settings_from_env() -> GatewaySettings:
    """Load gateway settings from environment variables.

    Returns:
        GatewaySettings instance populated from environment variables.
    """
    return GatewaySettings()
