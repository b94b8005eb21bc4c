"""
Domain models for per-account OAuth credentials and account metadata.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from unidrive.models.items import ServiceType


class CredentialRecord(BaseModel):
    """Access/refresh token pair held for one (service, account)."""

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    scope: str = ""
    token_type: str = "Bearer"
    expiry_timestamp: datetime

    @field_validator("expiry_timestamp")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("refresh_token")
    @classmethod
    def _blank_refresh_is_absent(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @classmethod
    def from_token_payload(
        cls,
        payload: dict,
        *,
        issued_at: datetime | None = None,
        default_expires_in: int = 3600,
        default_scope: str = "",
        previous: "CredentialRecord | None" = None,
    ) -> "CredentialRecord":
        """Build a record from a standard OAuth token endpoint response.

        Refresh responses frequently omit the refresh token; when ``previous``
        is given its refresh token is carried over.
        """
        issued_at = issued_at or datetime.now(timezone.utc)
        expires_in = payload.get("expires_in") or default_expires_in
        refresh_token = payload.get("refresh_token")
        if not refresh_token and previous is not None:
            refresh_token = previous.refresh_token
        return cls(
            access_token=payload["access_token"],
            refresh_token=refresh_token,
            scope=payload.get("scope") or default_scope,
            token_type=payload.get("token_type") or "Bearer",
            expiry_timestamp=issued_at + timedelta(seconds=int(expires_in)),
        )

    def is_expired(self, *, leeway: timedelta = timedelta(0), now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.expiry_timestamp <= now + leeway


class ServiceAccount(BaseModel):
    """A connected identity within one service."""

    id: str
    service: ServiceType
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.service.display_name


class AccountProfile(BaseModel):
    """User details reported by a provider's user-info endpoint."""

    name: str = ""
    email: str = ""


__all__ = ["AccountProfile", "CredentialRecord", "ServiceAccount"]
