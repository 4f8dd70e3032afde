from __future__ import annotations

import hashlib

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class AuthorizationContext(BaseModel):
    """
    Credentials used to ask the manifest API about a table.

    The API key is a ``SecretStr``: it is masked in repr, str and dumps.
    Code that needs a stable identity for the key (cache keys, logs) uses
    ``credential_id`` instead.
    """

    endpoint: str = Field(..., description="Manifest API base URL")
    api_key: SecretStr = Field(..., description="Value sent as X-API-Key")

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
    )

    @field_validator("endpoint")
    @classmethod
    def _normalize_endpoint(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("endpoint must not be empty")
        return value

    @property
    def credential_id(self) -> str:
        """One-way digest of the API key."""
        return hashlib.sha256(self.api_key.get_secret_value().encode("utf-8")).hexdigest()

    @property
    def manifest_url(self) -> str:
        return f"{self.endpoint}/manifest"
