"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timedelta, timezone

import pytest

from unidrive.clients.oauth import OAuthStateEncoder
from unidrive.core.config import HTTPSettings
from unidrive.models.credentials import CredentialRecord


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def http_settings() -> HTTPSettings:
    return HTTPSettings(request_timeout_seconds=5.0, page_size=2, max_pages=3)


@pytest.fixture
def state_encoder() -> OAuthStateEncoder:
    return OAuthStateEncoder(secret_key="state-secret")


@pytest.fixture
def credential() -> CredentialRecord:
    return CredentialRecord(
        access_token="access-token",
        refresh_token="refresh-token",
        scope="files.read",
        expiry_timestamp=datetime.now(timezone.utc) + timedelta(hours=1),
    )


class StubOAuthClient:
    """Stands in for a provider OAuth client inside adapter and resolver tests."""

    def __init__(self, *, refreshed: CredentialRecord | None = None, error: Exception | None = None) -> None:
        self.refreshed = refreshed
        self.error = error
        self.refresh_calls: list[CredentialRecord] = []

    def build_authorization_url(self, state: str, add_account: bool = False) -> str:
        return f"https://auth.example.com/authorize?state={state}"

    async def refresh(self, record: CredentialRecord) -> CredentialRecord:
        self.refresh_calls.append(record)
        if self.error is not None:
            raise self.error
        assert self.refreshed is not None
        return self.refreshed


@pytest.fixture
def stub_oauth_client() -> StubOAuthClient:
    return StubOAuthClient()


@pytest.fixture
def make_oauth_client():
    return StubOAuthClient
