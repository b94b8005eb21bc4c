"""
OAuth utilities for the supported providers.

These helpers build consent URLs, exchange authorization codes, refresh
access tokens and fetch the connected user's profile.
"""

from __future__ import annotations

import abc
import base64
import binascii
import hmac
import json
import logging
import uuid
from datetime import datetime, timezone
from hashlib import sha256
from typing import Any, Dict
from urllib.parse import urlencode

import httpx
from fastapi import HTTPException, status

from unidrive.core.config import DropboxSettings, GoogleSettings, OneDriveSettings
from unidrive.models.credentials import AccountProfile, CredentialRecord
from unidrive.models.failures import FailureKind
from unidrive.models.items import ServiceType
from unidrive.utils.http import RetryConfig, classify_status, request_with_retry

logger = logging.getLogger(__name__)


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed OAuth state.",
            ) from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid OAuth state signature.",
            )
        return json.loads(serialized)


def new_state_payload(
    service: ServiceType,
    account_id: str,
    *,
    add_account: bool = False,
    redirect_to: str | None = None,
) -> Dict[str, Any]:
    """State carried through the provider consent screen and back."""
    return {
        "nonce": uuid.uuid4().hex,
        "service": service.value,
        "account_id": "new" if add_account else account_id,
        "add_account": add_account,
        "redirect_to": redirect_to,
        "issued_at": datetime.now(timezone.utc).isoformat(),
    }


class OAuthTokenExchangeError(Exception):
    """Raised when the token endpoint returns an error."""


class OAuthTransientError(OAuthTokenExchangeError):
    """The token endpoint could not be reached or failed on its side.

    The credential itself was not rejected and stays usable for a retry.
    """

    def __init__(self, message: str, *, kind: FailureKind = FailureKind.TRANSIENT) -> None:
        super().__init__(message)
        self.kind = kind


class OAuthClient(abc.ABC):
    """Shared authorization-code flow for a single provider."""

    service: ServiceType
    AUTH_BASE_URL: str
    TOKEN_URL: str
    DEFAULT_EXPIRES_IN = 3600

    def __init__(
        self,
        settings: GoogleSettings | DropboxSettings | OneDriveSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport
        self._retry_config = retry_config

    @property
    def scope(self) -> str:
        return " ".join(self._settings.scopes)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _authorization_params(self, state: str, add_account: bool) -> Dict[str, str]:
        return {
            "client_id": self._settings.client_id,
            "redirect_uri": str(self._settings.redirect_uri),
            "response_type": "code",
            "scope": self.scope,
            "state": state,
        }

    def build_authorization_url(self, state: str, add_account: bool = False) -> str:
        """Construct the provider consent URL."""
        query = urlencode(self._authorization_params(state, add_account))
        return f"{self.AUTH_BASE_URL}?{query}"

    async def _post_token(self, payload: Dict[str, str]) -> Dict[str, Any]:
        async with self._http() as client:
            try:
                response = await request_with_retry(
                    client.post,
                    self.TOKEN_URL,
                    data=payload,
                    retry_config=self._retry_config,
                )
            except httpx.HTTPStatusError as exc:
                raise OAuthTransientError(
                    f"Token endpoint returned {exc.response.status_code}."
                ) from exc
            except httpx.HTTPError as exc:
                raise OAuthTransientError(str(exc)) from exc

        if response.status_code != status.HTTP_200_OK:
            kind = classify_status(response.status_code)
            if kind in (FailureKind.TRANSIENT, FailureKind.RATE_LIMITED):
                raise OAuthTransientError(response.text, kind=kind)
            raise OAuthTokenExchangeError(response.text)
        try:
            token_payload = response.json()
        except ValueError as exc:
            raise OAuthTokenExchangeError("Token endpoint returned invalid JSON.") from exc
        if not token_payload.get("access_token"):
            raise OAuthTokenExchangeError(
                f"Incomplete token payload returned from {self.service.display_name}."
            )
        return token_payload

    async def exchange_authorization_code(self, code: str) -> CredentialRecord:
        """Exchange an authorization code for a credential record."""
        token_payload = await self._post_token(
            {
                "code": code,
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "redirect_uri": str(self._settings.redirect_uri),
                "grant_type": "authorization_code",
            }
        )
        return CredentialRecord.from_token_payload(
            token_payload,
            default_expires_in=self.DEFAULT_EXPIRES_IN,
            default_scope=self.scope,
        )

    async def refresh(self, record: CredentialRecord) -> CredentialRecord:
        """Refresh the access token using the record's refresh token."""
        if not record.refresh_token:
            raise OAuthTokenExchangeError("No refresh token available.")
        token_payload = await self._post_token(
            {
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "refresh_token": record.refresh_token,
                "grant_type": "refresh_token",
            }
        )
        return CredentialRecord.from_token_payload(
            token_payload,
            default_expires_in=self.DEFAULT_EXPIRES_IN,
            default_scope=record.scope,
            previous=record,
        )

    async def fetch_profile(self, access_token: str) -> AccountProfile:
        """Return the connected user's name and email; blanks when unavailable."""
        try:
            async with self._http() as client:
                response = await self._request_profile(client, access_token)
        except httpx.HTTPError as exc:
            logger.warning("Profile lookup failed for %s: %s", self.service.value, exc)
            return AccountProfile()
        if response.status_code != status.HTTP_200_OK:
            logger.warning(
                "Profile lookup for %s returned %s", self.service.value, response.status_code
            )
            return AccountProfile()
        try:
            data = response.json()
        except ValueError:
            return AccountProfile()
        if not isinstance(data, dict):
            return AccountProfile()
        return self._parse_profile(data)

    @abc.abstractmethod
    async def _request_profile(self, client: httpx.AsyncClient, access_token: str) -> httpx.Response:
        """Issue the provider's "who am I" request."""

    @abc.abstractmethod
    def _parse_profile(self, data: Dict[str, Any]) -> AccountProfile:
        """Pull the display name and email out of the profile payload."""


class GoogleOAuthClient(OAuthClient):
    """Google authorization for Drive read access."""

    service = ServiceType.GOOGLE
    AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

    def _authorization_params(self, state: str, add_account: bool) -> Dict[str, str]:
        params = super()._authorization_params(state, add_account)
        params["access_type"] = "offline"
        params["include_granted_scopes"] = "true"
        params["prompt"] = "consent select_account" if add_account else "consent"
        return params

    async def _request_profile(self, client: httpx.AsyncClient, access_token: str) -> httpx.Response:
        return await client.get(
            self.USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
        )

    def _parse_profile(self, data: Dict[str, Any]) -> AccountProfile:
        email = data.get("email") or ""
        name = data.get("name") or (email.split("@")[0] if email else "")
        return AccountProfile(name=name, email=email)


class DropboxOAuthClient(OAuthClient):
    """Dropbox authorization with offline (refreshable) access."""

    service = ServiceType.DROPBOX
    AUTH_BASE_URL = "https://www.dropbox.com/oauth2/authorize"
    TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
    USERINFO_URL = "https://api.dropboxapi.com/2/users/get_current_account"
    DEFAULT_EXPIRES_IN = 14400

    def _authorization_params(self, state: str, add_account: bool) -> Dict[str, str]:
        params = super()._authorization_params(state, add_account)
        params["token_access_type"] = "offline"
        if add_account:
            params["force_reauthentication"] = "true"
        return params

    async def _request_profile(self, client: httpx.AsyncClient, access_token: str) -> httpx.Response:
        return await client.post(
            self.USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
        )

    def _parse_profile(self, data: Dict[str, Any]) -> AccountProfile:
        name_data = data.get("name")
        name = ""
        if isinstance(name_data, dict):
            name = name_data.get("display_name") or ""
        return AccountProfile(name=name or data.get("display_name") or "", email=data.get("email") or "")


class OneDriveOAuthClient(OAuthClient):
    """Microsoft identity platform authorization for OneDrive."""

    service = ServiceType.ONEDRIVE
    USERINFO_URL = "https://graph.microsoft.com/v1.0/me"

    def __init__(self, settings: OneDriveSettings, **kwargs: Any) -> None:
        super().__init__(settings, **kwargs)
        base = f"https://login.microsoftonline.com/{settings.tenant}/oauth2/v2.0"
        self.AUTH_BASE_URL = f"{base}/authorize"
        self.TOKEN_URL = f"{base}/token"

    def _authorization_params(self, state: str, add_account: bool) -> Dict[str, str]:
        params = super()._authorization_params(state, add_account)
        if add_account:
            params["prompt"] = "select_account"
        return params

    async def _request_profile(self, client: httpx.AsyncClient, access_token: str) -> httpx.Response:
        return await client.get(
            self.USERINFO_URL,
            params={"$select": "displayName,mail,userPrincipalName"},
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def _parse_profile(self, data: Dict[str, Any]) -> AccountProfile:
        return AccountProfile(
            name=data.get("displayName") or "",
            email=data.get("mail") or data.get("userPrincipalName") or "",
        )


__all__ = [
    "DropboxOAuthClient",
    "GoogleOAuthClient",
    "OAuthClient",
    "OAuthStateEncoder",
    "OAuthTokenExchangeError",
    "OAuthTransientError",
    "OneDriveOAuthClient",
]
