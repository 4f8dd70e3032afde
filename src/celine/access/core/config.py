# access/core/config.py
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "CELINE Access"
    env: Literal["dev", "prod", "test"] = "dev"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =============================================================================
    # Manifest API credentials (optional session defaults)
    # =============================================================================

    api_url: Optional[str] = Field(
        default=None, description="Manifest API endpoint, e.g. https://access.example.org"
    )
    api_key: Optional[SecretStr] = Field(
        default=None, description="API key sent as X-API-Key to the manifest API"
    )

    http_timeout_seconds: float = Field(
        default=30.0, description="Upper bound for one manifest request"
    )

    # =============================================================================
    # Manifest cache
    # =============================================================================

    manifest_cache_safety_margin_seconds: int = Field(
        default=60,
        description="Manifests are refreshed this many seconds before they expire",
    )
    manifest_default_ttl_seconds: int = Field(
        default=3600,
        description="Validity assumed when a manifest carries no usable expires_at",
    )
    manifest_cache_maxsize: int = Field(default=10_000, ge=1, description="Maximum cache entries")

    # =============================================================================
    # Query rewrite
    # =============================================================================

    policy_fail_mode: Literal["open", "closed"] = Field(
        default="open",
        description=(
            "open: drop a row filter or mask that does not parse and keep going; "
            "closed: refuse to resolve the table"
        ),
    )
    sql_dialect: str = Field(default="duckdb", description="sqlglot dialect of the host engine")
    scan_function: str = Field(
        default="read_parquet", description="Table function used to scan manifest files"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
