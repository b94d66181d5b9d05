"""Configuration management for the OAuth broker service."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any
from urllib.parse import urlsplit

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

load_dotenv()

DEFAULT_GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/forms.responses.readonly",
    "https://www.googleapis.com/auth/spreadsheets.readonly",
]


class Settings(BaseModel):
    """Application configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    app_env: str = "dev"
    database_url: str = "sqlite:///./data.db"
    version: str = "0.1.0"
    google_client_id: str = ""
    google_client_secret: str = ""
    google_oauth_callback: str = ""
    google_default_scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_GOOGLE_SCOPES))
    identity_url: str = ""
    identity_service_key: str = ""
    frontend_base_url: str = ""
    state_ttl_seconds: int = 300
    refresh_margin_seconds: int = 30
    http_timeout: float = 10.0

    @field_validator("google_default_scopes", mode="before")
    @classmethod
    def assemble_google_scopes(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            scopes = [scope for scope in value.replace(",", " ").split() if scope]
            return scopes or list(DEFAULT_GOOGLE_SCOPES)
        if isinstance(value, list):
            return value
        return list(DEFAULT_GOOGLE_SCOPES)

    @field_validator("identity_url", "frontend_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value: Any) -> Any:
        if isinstance(value, str) and value != "/":
            return value.strip().rstrip("/")
        return value

    @property
    def async_database_url(self) -> str:
        if self.database_url.startswith("sqlite+aiosqlite://"):
            return self.database_url
        if self.database_url.startswith("sqlite:///"):
            return self.database_url.replace("sqlite:///", "sqlite+aiosqlite:///")
        if self.database_url.startswith("sqlite://"):
            return self.database_url.replace("sqlite://", "sqlite+aiosqlite://")
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.database_url

    @property
    def cors_origin(self) -> str:
        """Origin allowed to call the broker from a browser."""
        if not self.frontend_base_url or self.frontend_base_url == "/":
            return "*"
        parts = urlsplit(self.frontend_base_url)
        if not parts.scheme or not parts.netloc:
            return "*"
        return f"{parts.scheme}://{parts.netloc}"

    def missing_oauth_settings(self) -> list[str]:
        """Return the environment variables the OAuth flow needs but lacks."""
        required = {
            "GOOGLE_CLIENT_ID": self.google_client_id,
            "GOOGLE_CLIENT_SECRET": self.google_client_secret,
            "GOOGLE_OAUTH_CALLBACK": self.google_oauth_callback,
            "SUPABASE_URL": self.identity_url,
            "SUPABASE_SERVICE_ROLE_KEY": self.identity_service_key,
            "FRONTEND_BASE_URL": self.frontend_base_url,
        }
        return [name for name, value in required.items() if not value]


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def _build_settings() -> Settings:
    raw_values: dict[str, Any] = {
        "app_env": os.getenv("APP_ENV"),
        "database_url": os.getenv("DATABASE_URL"),
        "version": os.getenv("APP_VERSION"),
        "google_client_id": os.getenv("GOOGLE_CLIENT_ID"),
        "google_client_secret": os.getenv("GOOGLE_CLIENT_SECRET"),
        "google_oauth_callback": _first_env("GOOGLE_OAUTH_CALLBACK", "GOOGLE_OAUTH_REDIRECT_URI"),
        "google_default_scopes": os.getenv("GOOGLE_SCOPES"),
        "identity_url": _first_env("SUPABASE_URL", "IDENTITY_URL"),
        "identity_service_key": _first_env("SUPABASE_SERVICE_ROLE_KEY", "IDENTITY_SERVICE_KEY"),
        "frontend_base_url": os.getenv("FRONTEND_BASE_URL"),
        "state_ttl_seconds": os.getenv("OAUTH_STATE_TTL_SECONDS"),
        "refresh_margin_seconds": os.getenv("TOKEN_REFRESH_MARGIN_SECONDS"),
        "http_timeout": os.getenv("HTTP_TIMEOUT_SECONDS"),
    }
    filtered_values = {key: value for key, value in raw_values.items() if value is not None}
    return Settings(**filtered_values)


@lru_cache()
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return _build_settings()
