from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Smallest offset/limit granularity the remote backend accepts.
CHUNK_ALIGNMENT = 1024 * 1024


class ServerSettings(BaseSettings):
    """Configuration for the HTTP front of the bridge."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    base_url: str = Field(
        default="http://localhost:8080",
        validation_alias="RANGE_BRIDGE_BASE_URL",
    )
    db_path: str = Field(
        default="./data/metadata.db",
        validation_alias="RANGE_BRIDGE_DB_PATH",
    )
    host: str = Field(
        default="0.0.0.0",
        validation_alias="RANGE_BRIDGE_HOST",
    )
    port: int = Field(
        default=8080,
        validation_alias="RANGE_BRIDGE_HTTP_PORT",
    )
    chunk_size: int = Field(
        default=CHUNK_ALIGNMENT,
        validation_alias="RANGE_BRIDGE_CHUNK_SIZE",
    )

    @field_validator("chunk_size")
    @classmethod
    def _check_chunk_size(cls, value: int) -> int:
        if value <= 0 or value % CHUNK_ALIGNMENT:
            msg = f"chunk size must be a positive multiple of {CHUNK_ALIGNMENT}"
            raise ValueError(msg)
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        return value.rstrip("/")


class BackendSettings(BaseSettings):
    """Configuration for the remote chunk backend."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    kind: Literal["http", "s3"] = Field(
        default="http",
        validation_alias="RANGE_BRIDGE_BACKEND",
    )
    endpoint: str | None = Field(
        default=None,
        validation_alias="RANGE_BRIDGE_REMOTE_ENDPOINT",
    )
    access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RANGE_BRIDGE_REMOTE_ACCESS_KEY_ID",
            "AWS_ACCESS_KEY_ID",
        ),
    )
    secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RANGE_BRIDGE_REMOTE_SECRET_ACCESS_KEY",
            "AWS_SECRET_ACCESS_KEY",
        ),
    )
    session_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RANGE_BRIDGE_REMOTE_SESSION_TOKEN",
            "AWS_SESSION_TOKEN",
        ),
    )
    region: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "RANGE_BRIDGE_REMOTE_REGION",
            "AWS_REGION",
        ),
    )
    bucket: str | None = Field(
        default=None,
        validation_alias="RANGE_BRIDGE_REMOTE_BUCKET",
    )
    addressing_style: Literal["auto", "virtual", "path"] = Field(
        default="virtual",
        validation_alias="RANGE_BRIDGE_REMOTE_ADDRESSING_STYLE",
    )
    max_connections: int = Field(
        default=8,
        ge=1,
        validation_alias="RANGE_BRIDGE_MAX_CONNECTIONS",
    )
    connect_timeout: float = Field(
        default=10.0,
        validation_alias="RANGE_BRIDGE_CONNECT_TIMEOUT",
    )
    read_timeout: float = Field(
        default=60.0,
        validation_alias="RANGE_BRIDGE_READ_TIMEOUT",
    )

    def describe(self) -> str:
        if self.kind == "s3":
            return f"s3://{self.bucket} ({self.endpoint or 'aws'})"
        return self.endpoint or "unset"


def load_server_settings_from_env() -> ServerSettings:
    """Load HTTP front settings from environment variables.

    Returns:
        ServerSettings instance populated from environment variables.
    """
    return ServerSettings()


def load_backend_settings_from_env() -> BackendSettings:
    """Load remote backend settings from environment variables.

    Returns:
        BackendSettings instance populated from environment variables.
    """
    return BackendSettings()
