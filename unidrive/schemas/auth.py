"""Schemas related to OAuth flows and connected accounts."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from unidrive.models.credentials import ServiceAccount
from unidrive.models.items import ServiceType


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by the provider.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class AuthStatusResponse(BaseModel):
    """Which services and accounts are connected in this session."""

    is_authenticated: bool
    active_services: List[ServiceType] = Field(default_factory=list)
    service_accounts: Dict[ServiceType, List[ServiceAccount]] = Field(default_factory=dict)


class DisconnectResponse(BaseModel):
    status: str = "disconnected"
    service: Optional[ServiceType] = None
    account_id: Optional[str] = None
    is_authenticated: bool


__all__ = ["AuthStatusResponse", "DisconnectResponse", "OAuthCallbackPayload"]
