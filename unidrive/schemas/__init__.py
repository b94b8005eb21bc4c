"""Public schema exports."""

from .auth import AuthStatusResponse, DisconnectResponse, OAuthCallbackPayload
from .drive import (
    FolderListingResponse,
    NavigateRequest,
    NavigationResponse,
    OpenLinkResponse,
    SearchResponse,
)

__all__ = [
    "AuthStatusResponse",
    "DisconnectResponse",
    "FolderListingResponse",
    "NavigateRequest",
    "NavigationResponse",
    "OAuthCallbackPayload",
    "OpenLinkResponse",
    "SearchResponse",
]
