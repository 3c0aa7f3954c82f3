"""
Configuration and settings for the Safetravel API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Firebase service account
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_client_email: Optional[str] = Field(default=None)
    firebase_private_key: Optional[str] = Field(default=None)

    # Web API key used for the Identity Toolkit password sign-in endpoint.
    firebase_api_key: Optional[str] = Field(default=None)
    identity_toolkit_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
    )
    request_timeout_seconds: float = Field(default=30.0)

    password_reset_ttl_minutes: int = Field(default=10, ge=1)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    @property
    def firebase_private_key_pem(self) -> Optional[str]:
        """Private key with escaped newlines expanded, as stored in .env files."""
        if not self.firebase_private_key:
            return None
        return self.firebase_private_key.replace("\\n", "\n")

    @property
    def has_service_account(self) -> bool:
        return bool(
            self.firebase_project_id
            and self.firebase_client_email
            and self.firebase_private_key
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
