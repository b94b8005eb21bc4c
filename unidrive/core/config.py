"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the provider adapters and
the OAuth clients share a consistent configuration surface.
"""

from functools import lru_cache
from typing import Optional

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSettings(BaseSettings):
    """OAuth client configuration for Google Drive."""

    model_config = SettingsConfigDict(env_prefix="GOOGLE_", env_file=".env", extra="ignore")

    client_id: str
    client_secret: str
    redirect_uri: AnyHttpUrl
    scopes: tuple[str, ...] = (
        "https://www.googleapis.com/auth/drive.readonly",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
    )


class DropboxSettings(BaseSettings):
    """OAuth client configuration for Dropbox."""

    model_config = SettingsConfigDict(env_prefix="DROPBOX_", env_file=".env", extra="ignore")

    client_id: str
    client_secret: str
    redirect_uri: AnyHttpUrl
    scopes: tuple[str, ...] = (
        "account_info.read",
        "files.metadata.read",
        "files.content.read",
    )


class OneDriveSettings(BaseSettings):
    """OAuth client configuration for OneDrive (Microsoft identity platform)."""

    model_config = SettingsConfigDict(env_prefix="ONEDRIVE_", env_file=".env", extra="ignore")

    client_id: str
    client_secret: str
    redirect_uri: AnyHttpUrl
    tenant: str = "common"
    scopes: tuple[str, ...] = ("files.read", "offline_access", "User.Read")


class SessionSettings(BaseSettings):
    """Encrypted session cookie configuration."""

    model_config = SettingsConfigDict(env_prefix="SESSION_", env_file=".env", extra="ignore")

    secret_key: str = Field(
        ...,
        description="Secret used to derive the symmetric key for the session cookie.",
    )
    cookie_name: str = "unidrive_session"
    max_age_seconds: int = Field(
        60 * 60 * 24 * 7,
        description="Retention window of the session cookie.",
    )
    secure_cookies: bool = False


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_", env_file=".env", extra="ignore")

    state_ttl_seconds: int = 900
    refresh_window_seconds: int = 300


class HTTPSettings(BaseSettings):
    """Outbound HTTP behaviour for provider calls."""

    model_config = SettingsConfigDict(env_prefix="PROVIDER_", env_file=".env", extra="ignore")

    request_timeout_seconds: float = 15.0
    page_size: int = 100
    max_pages: int = 20

    @field_validator("max_pages", "page_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="URL the OAuth callbacks redirect back to.",
    )
    session: SessionSettings = Field(default_factory=SessionSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    dropbox: DropboxSettings = Field(default_factory=DropboxSettings)
    onedrive: OneDriveSettings = Field(default_factory=OneDriveSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "DropboxSettings",
    "GoogleSettings",
    "HTTPSettings",
    "OAuthSettings",
    "OneDriveSettings",
    "SessionSettings",
    "get_settings",
]
