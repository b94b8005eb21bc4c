"""Expose constructed client wrappers."""

from .base import ProviderAdapter
from .dropbox import DropboxAdapter
from .google_drive import GoogleDriveAdapter
from .oauth import (
    DropboxOAuthClient,
    GoogleOAuthClient,
    OAuthClient,
    OAuthStateEncoder,
    OAuthTokenExchangeError,
    OAuthTransientError,
    OneDriveOAuthClient,
)
from .onedrive import OneDriveAdapter

__all__ = [
    "DropboxAdapter",
    "DropboxOAuthClient",
    "GoogleDriveAdapter",
    "GoogleOAuthClient",
    "OAuthClient",
    "OAuthStateEncoder",
    "OAuthTokenExchangeError",
    "OAuthTransientError",
    "OneDriveAdapter",
    "OneDriveOAuthClient",
    "ProviderAdapter",
]
