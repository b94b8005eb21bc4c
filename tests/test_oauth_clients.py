from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi import HTTPException

from unidrive.clients.oauth import (
    DropboxOAuthClient,
    GoogleOAuthClient,
    OAuthClient,
    OAuthStateEncoder,
    OAuthTokenExchangeError,
    OAuthTransientError,
    OneDriveOAuthClient,
    new_state_payload,
)
from unidrive.core.config import DropboxSettings, GoogleSettings, OneDriveSettings
from unidrive.models.credentials import CredentialRecord
from unidrive.models.failures import FailureKind
from unidrive.models.items import ServiceType
from unidrive.utils.http import RetryConfig


def _google_settings() -> GoogleSettings:
    return GoogleSettings(
        client_id="gid",
        client_secret="gsecret",
        redirect_uri="https://example.com/api/auth/google/callback",
    )


def _dropbox_settings() -> DropboxSettings:
    return DropboxSettings(
        client_id="did",
        client_secret="dsecret",
        redirect_uri="https://example.com/api/auth/dropbox/callback",
    )


def test_state_roundtrip_and_tamper_detection() -> None:
    encoder = OAuthStateEncoder("secret")
    payload = new_state_payload(ServiceType.DROPBOX, "acct-1", add_account=True, redirect_to="/x")

    token = encoder.encode(payload)
    decoded = encoder.decode(token)
    assert decoded["service"] == "dropbox"
    assert decoded["account_id"] == "new"
    assert decoded["add_account"] is True

    with pytest.raises(HTTPException) as excinfo:
        OAuthStateEncoder("other-secret").decode(token)
    assert excinfo.value.status_code == 400


def test_google_authorization_url_requests_offline_access() -> None:
    client = GoogleOAuthClient(_google_settings())

    url = client.build_authorization_url(state="abc", add_account=True)
    params = parse_qs(urlparse(url).query)

    assert url.startswith("https://accounts.google.com/")
    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent select_account"]
    assert params["state"] == ["abc"]
    assert "drive.readonly" in params["scope"][0]


def test_onedrive_urls_use_configured_tenant() -> None:
    client = OneDriveOAuthClient(
        OneDriveSettings(
            client_id="oid",
            client_secret="osecret",
            redirect_uri="https://example.com/api/auth/onedrive/callback",
            tenant="consumers",
        )
    )

    url = client.build_authorization_url(state="s")

    assert url.startswith("https://login.microsoftonline.com/consumers/oauth2/v2.0/authorize?")
    assert "prompt" not in parse_qs(urlparse(url).query)


@pytest.mark.asyncio
async def test_exchange_authorization_code_builds_record() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = parse_qs(request.content.decode())
        return httpx.Response(
            200,
            json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600, "token_type": "bearer"},
        )

    client = DropboxOAuthClient(_dropbox_settings(), transport=httpx.MockTransport(handler))
    before = datetime.now(timezone.utc)

    record = await client.exchange_authorization_code("the-code")

    assert seen["body"]["grant_type"] == ["authorization_code"]
    assert seen["body"]["code"] == ["the-code"]
    assert record.access_token == "at"
    assert record.refresh_token == "rt"
    assert record.expiry_timestamp >= before + timedelta(seconds=3600)


@pytest.mark.asyncio
async def test_refresh_keeps_previous_refresh_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert parse_qs(request.content.decode())["refresh_token"] == ["keep-me"]
        return httpx.Response(200, json={"access_token": "new-at", "expires_in": 60})

    client = GoogleOAuthClient(_google_settings(), transport=httpx.MockTransport(handler))
    previous = CredentialRecord(
        access_token="old-at",
        refresh_token="keep-me",
        expiry_timestamp=datetime.now(timezone.utc),
    )

    record = await client.refresh(previous)

    assert record.access_token == "new-at"
    assert record.refresh_token == "keep-me"


@pytest.mark.asyncio
async def test_token_endpoint_error_raises() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    client = GoogleOAuthClient(_google_settings(), transport=transport)

    with pytest.raises(OAuthTokenExchangeError):
        await client.exchange_authorization_code("bad-code")


@pytest.mark.asyncio
async def test_dropbox_profile_uses_display_name() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer at"
        return httpx.Response(
            200,
            content=json.dumps({"name": {"display_name": "Ada L"}, "email": "ada@example.com"}),
        )

    client = DropboxOAuthClient(_dropbox_settings(), transport=httpx.MockTransport(handler))

    profile = await client.fetch_profile("at")

    assert profile.name == "Ada L"
    assert profile.email == "ada@example.com"


@pytest.mark.asyncio
async def test_profile_failure_returns_blank_profile() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(401))
    client = GoogleOAuthClient(_google_settings(), transport=transport)

    profile = await client.fetch_profile("at")

    assert profile.name == "" and profile.email == ""


@pytest.mark.asyncio
async def test_rejected_code_is_not_transient() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    client = GoogleOAuthClient(_google_settings(), transport=transport)

    with pytest.raises(OAuthTokenExchangeError) as excinfo:
        await client.refresh(
            CredentialRecord(access_token="at", refresh_token="rt", expiry_timestamp=datetime.now(timezone.utc))
        )

    assert not isinstance(excinfo.value, OAuthTransientError)


@pytest.mark.asyncio
async def test_token_endpoint_outage_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    client = GoogleOAuthClient(
        _google_settings(),
        transport=httpx.MockTransport(handler),
        retry_config=RetryConfig(attempts=2, backoff_seconds=0),
    )

    with pytest.raises(OAuthTransientError) as excinfo:
        await client.exchange_authorization_code("the-code")

    assert excinfo.value.kind is FailureKind.TRANSIENT


def test_base_oauth_client_is_abstract() -> None:
    with pytest.raises(TypeError):
        OAuthClient(_google_settings())
