try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from unidrive.clients.oauth import OAuthTransientError
from unidrive.main import app
from unidrive.models.credentials import AccountProfile, CredentialRecord
from unidrive.models.failures import FailureKind, Outcome, ProviderFailure
from unidrive.models.items import FileItem, FolderItem, ServiceType


class DummyOAuthClient:
    def __init__(self, service: ServiceType, email: str) -> None:
        self.service = service
        self.email = email
        self.states: list[str] = []
        self.codes: list[str] = []
        self.exchange_error: Exception | None = None

    def build_authorization_url(self, state: str, add_account: bool = False) -> str:
        self.states.append(state)
        return f"https://oauth.example.com/{self.service.value}/auth?state={state}"

    async def exchange_authorization_code(self, code: str) -> CredentialRecord:
        self.codes.append(code)
        if self.exchange_error is not None:
            raise self.exchange_error
        return CredentialRecord(
            access_token=f"access-{code}",
            refresh_token="refresh",
            expiry_timestamp=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    async def fetch_profile(self, access_token: str) -> AccountProfile:
        return AccountProfile(name="Ada Lovelace", email=self.email)

    async def refresh(self, record: CredentialRecord) -> CredentialRecord:
        return record


class DummyAdapter:
    def __init__(self, service: ServiceType) -> None:
        self.service = service
        self.listed: list[tuple[str, str]] = []
        self.open_results: dict[str, Outcome] = {}
        self.list_failure: Outcome | None = None

    def reauth_url(self, account_id: str) -> str:
        return f"https://oauth.example.com/{self.service.value}/reauth/{account_id}"

    async def list_children(self, credential, account_id, folder_id):
        self.listed.append((account_id, folder_id))
        if self.list_failure is not None:
            return self.list_failure
        return Outcome.success(
            [
                FileItem(id="doc-1", name="Budget.xlsx", service=self.service, account_id=account_id, parent_id=folder_id),
                FolderItem(id="dir-1", name="Archive", service=self.service, account_id=account_id, parent_id=folder_id),
            ]
        )

    async def search(self, credential, account_id, query):
        return Outcome.success(
            [FileItem(id="hit", name=f"{query} notes.txt", service=self.service, account_id=account_id)]
        )

    async def resolve_open_link(self, credential, account_id, item_id):
        return self.open_results.get(item_id, Outcome.success(f"https://open.example.com/{item_id}"))


@pytest.fixture()
def drive_overrides():
    from unidrive import dependencies
    from unidrive.core.config import get_settings

    oauth_clients = {service: DummyOAuthClient(service, "ada@example.com") for service in ServiceType}
    adapters = {service: DummyAdapter(service) for service in ServiceType}
    base_settings = copy.deepcopy(get_settings())
    base_settings.frontend_base_url = None

    app.dependency_overrides.update(
        {
            dependencies.get_oauth_clients: lambda: oauth_clients,
            dependencies.get_provider_adapters: lambda: adapters,
            dependencies.get_app_settings: lambda: base_settings,
        }
    )

    yield oauth_clients, adapters, base_settings

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


async def _connect(client: httpx.AsyncClient, oauth_clients, service: ServiceType, **params) -> httpx.Response:
    await client.get(f"/api/auth/{service.value}/authorize", params=params)
    state = oauth_clients[service].states[-1]
    return await client.get(
        f"/api/auth/{service.value}/callback",
        params={"state": state, "code": f"code-{len(oauth_clients[service].states)}"},
    )


@pytest.mark.anyio
async def test_health() -> None:
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_authorize_returns_json_by_default(drive_overrides):
    oauth_clients, _, _ = drive_overrides
    async with _client() as client:
        response = await client.get("/api/auth/dropbox/authorize")

    assert response.status_code == 200
    data = response.json()
    assert data["authorization_url"].startswith("https://oauth.example.com/dropbox/auth")
    assert oauth_clients[ServiceType.DROPBOX].states == [data["state"]]


@pytest.mark.anyio
async def test_authorize_redirects_for_html_accept(drive_overrides):
    async with _client() as client:
        response = await client.get("/api/auth/google/authorize", headers={"accept": "text/html"})

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://oauth.example.com/google/auth")


@pytest.mark.anyio
async def test_unknown_service_is_rejected(drive_overrides):
    async with _client() as client:
        response = await client.get("/api/auth/box/authorize")

    assert response.status_code == 422


@pytest.mark.anyio
async def test_callback_connects_account_and_sets_session_cookie(drive_overrides):
    oauth_clients, _, settings = drive_overrides
    async with _client() as client:
        callback = await _connect(client, oauth_clients, ServiceType.GOOGLE)
        status = await client.get("/api/auth/status")

    assert callback.status_code == 200
    data = callback.json()
    assert data["status"] == "connected"
    assert data["account_id"].startswith("google_ada_")
    assert settings.session.cookie_name in callback.cookies

    body = status.json()
    assert body["is_authenticated"] is True
    assert body["active_services"] == ["google"]
    account = body["service_accounts"]["google"][0]
    assert account["email"] == "ada@example.com"
    assert account["name"] == "Ada Lovelace"


@pytest.mark.anyio
async def test_callback_redirects_to_frontend(drive_overrides):
    oauth_clients, _, settings = drive_overrides
    settings.frontend_base_url = "https://app.example.com/"
    async with _client() as client:
        await client.get("/api/auth/onedrive/authorize")
        state = oauth_clients[ServiceType.ONEDRIVE].states[-1]
        response = await client.get(
            "/api/auth/onedrive/callback",
            params={"state": state, "code": "abc"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"] == "https://app.example.com/"
    assert settings.session.cookie_name in response.cookies


@pytest.mark.anyio
async def test_adding_same_account_twice_is_rejected(drive_overrides):
    oauth_clients, _, _ = drive_overrides
    async with _client() as client:
        await _connect(client, oauth_clients, ServiceType.DROPBOX)
        duplicate = await _connect(client, oauth_clients, ServiceType.DROPBOX, addAccount="true")
        status = await client.get("/api/auth/status")

    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "duplicate_account"
    assert len(status.json()["service_accounts"]["dropbox"]) == 1


@pytest.mark.anyio
async def test_callback_rejects_state_for_other_service(drive_overrides):
    oauth_clients, _, _ = drive_overrides
    async with _client() as client:
        await client.get("/api/auth/google/authorize")
        state = oauth_clients[ServiceType.GOOGLE].states[-1]
        response = await client.get(
            "/api/auth/dropbox/callback", params={"state": state, "code": "abc"}
        )

    assert response.status_code == 400


@pytest.mark.anyio
async def test_callback_with_unreachable_token_endpoint_is_bad_gateway(drive_overrides):
    oauth_clients, _, _ = drive_overrides
    oauth_clients[ServiceType.GOOGLE].exchange_error = OAuthTransientError("connection reset")
    async with _client() as client:
        await client.get("/api/auth/google/authorize")
        state = oauth_clients[ServiceType.GOOGLE].states[-1]
        response = await client.get(
            "/api/auth/google/callback", params={"state": state, "code": "abc"}
        )
        status = await client.get("/api/auth/status")

    assert response.status_code == 502
    assert status.json()["is_authenticated"] is False


@pytest.mark.anyio
async def test_callback_with_provider_error_is_bad_request(drive_overrides):
    oauth_clients, _, _ = drive_overrides
    async with _client() as client:
        await client.get("/api/auth/google/authorize")
        state = oauth_clients[ServiceType.GOOGLE].states[-1]
        response = await client.get(
            "/api/auth/google/callback", params={"state": state, "error": "access_denied"}
        )

    assert response.status_code == 400
    assert oauth_clients[ServiceType.GOOGLE].codes == []


@pytest.mark.anyio
async def test_drive_without_accounts_is_empty(drive_overrides):
    async with _client() as client:
        response = await client.get("/api/drive")

    assert response.status_code == 200
    body = response.json()
    assert body["items"] == []
    assert body["error"] is None
    assert body["navigation"]["current_folder_id"] == "root"


@pytest.mark.anyio
async def test_drive_root_aggregates_connected_accounts(drive_overrides):
    oauth_clients, adapters, _ = drive_overrides
    async with _client() as client:
        await _connect(client, oauth_clients, ServiceType.GOOGLE)
        await _connect(client, oauth_clients, ServiceType.ONEDRIVE)
        response = await client.get("/api/drive")

    body = response.json()
    assert [item["name"] for item in body["items"]] == ["Archive", "Archive", "Budget.xlsx", "Budget.xlsx"]
    assert set(body["per_service"]) == {"google", "onedrive"}
    assert adapters[ServiceType.GOOGLE].listed[0][1] == "root"
    assert body["items"][0]["account_name"] == "Ada Lovelace"
    assert parse_qs(body["navigation"]["location"]) == {"folderId": ["root"]}


@pytest.mark.anyio
async def test_deep_link_lists_only_the_owning_account(drive_overrides):
    oauth_clients, adapters, _ = drive_overrides
    async with _client() as client:
        connected = await _connect(client, oauth_clients, ServiceType.DROPBOX)
        account_id = connected.json()["account_id"]
        await _connect(client, oauth_clients, ServiceType.GOOGLE)
        response = await client.get(
            "/api/drive",
            params={"folderId": "/projects", "service": "dropbox", "accountId": account_id},
        )

    body = response.json()
    assert adapters[ServiceType.DROPBOX].listed == [(account_id, "/projects")]
    assert adapters[ServiceType.GOOGLE].listed == []
    assert body["navigation"]["current_folder_id"] == "/projects"
    assert body["navigation"]["current_service"] == "dropbox"


@pytest.mark.anyio
async def test_navigate_then_filter_current_folder(drive_overrides):
    oauth_clients, adapters, _ = drive_overrides
    async with _client() as client:
        connected = await _connect(client, oauth_clients, ServiceType.GOOGLE)
        account_id = connected.json()["account_id"]
        navigated = await client.post(
            "/api/drive/navigate",
            json={"id": "dir-1", "name": "Archive", "service": "google", "account_id": account_id, "parent_id": "root"},
        )
        filtered = await client.get("/api/search", params={"q": "budget", "recursive": "false"})
        back = await client.post("/api/drive/navigate", json={"id": "root", "name": "Home"})

    nav = navigated.json()
    assert nav["current_folder_id"] == "dir-1"
    assert nav["breadcrumb"] == [{"id": "dir-1", "name": "Archive", "service": "google", "account_id": account_id}]
    assert parse_qs(nav["location"]) == {"folderId": ["dir-1"], "service": ["google"], "accountId": [account_id]}

    assert adapters[ServiceType.GOOGLE].listed[-1] == (account_id, "dir-1")
    assert [item["name"] for item in filtered.json()["items"]] == ["Budget.xlsx"]
    assert back.json()["current_folder_id"] == "root"
    assert back.json()["breadcrumb"] == []


@pytest.mark.anyio
async def test_local_search_filters_the_folder_in_the_location(drive_overrides):
    oauth_clients, adapters, _ = drive_overrides
    async with _client() as client:
        connected = await _connect(client, oauth_clients, ServiceType.GOOGLE)
        account_id = connected.json()["account_id"]
        located = await client.get(
            "/api/search",
            params={
                "q": "budget",
                "recursive": "false",
                "folderId": "dir-1",
                "service": "google",
                "accountId": account_id,
            },
        )
        again = await client.get("/api/search", params={"q": "arch", "recursive": "false"})

    assert adapters[ServiceType.GOOGLE].listed == [(account_id, "dir-1"), (account_id, "dir-1")]
    assert [item["name"] for item in located.json()["items"]] == ["Budget.xlsx"]
    assert [item["name"] for item in again.json()["items"]] == ["Archive"]


@pytest.mark.anyio
async def test_local_search_reports_reauth_url(drive_overrides):
    oauth_clients, adapters, _ = drive_overrides
    adapters[ServiceType.DROPBOX].list_failure = Outcome.failed(
        ProviderFailure(
            kind=FailureKind.UNAUTHORIZED,
            message="revoked",
            service=ServiceType.DROPBOX,
            reauth_url="https://oauth.example.com/dropbox/reauth/x",
        )
    )
    async with _client() as client:
        connected = await _connect(client, oauth_clients, ServiceType.DROPBOX)
        account_id = connected.json()["account_id"]
        response = await client.get(
            "/api/search",
            params={
                "q": "x",
                "recursive": "false",
                "folderId": "/projects",
                "service": "dropbox",
                "accountId": account_id,
            },
        )

    body = response.json()
    assert body["items"] == []
    assert body["error"]
    assert body["reauth_url"] == "https://oauth.example.com/dropbox/reauth/x"


@pytest.mark.anyio
async def test_recursive_search(drive_overrides):
    oauth_clients, _, _ = drive_overrides
    async with _client() as client:
        await _connect(client, oauth_clients, ServiceType.ONEDRIVE)
        response = await client.get("/api/search", params={"q": "tax"})
        blank = await client.get("/api/search", params={"q": " "})

    assert [item["name"] for item in response.json()["items"]] == ["tax notes.txt"]
    assert blank.json()["items"] == []


@pytest.mark.anyio
async def test_open_maps_failures_to_status_codes(drive_overrides):
    oauth_clients, adapters, _ = drive_overrides
    dropbox = adapters[ServiceType.DROPBOX]
    dropbox.open_results["gone"] = Outcome.failed(
        ProviderFailure(kind=FailureKind.NOT_FOUND, message="missing", service=ServiceType.DROPBOX)
    )
    dropbox.open_results["flaky"] = Outcome.failed(
        ProviderFailure(kind=FailureKind.TRANSIENT, message="timeout", service=ServiceType.DROPBOX)
    )
    async with _client() as client:
        connected = await _connect(client, oauth_clients, ServiceType.DROPBOX)
        account_id = connected.json()["account_id"]
        params = {"service": "dropbox", "accountId": account_id}
        ok = await client.get("/api/open", params={**params, "itemId": "/a.txt"})
        missing = await client.get("/api/open", params={**params, "itemId": "gone"})
        flaky = await client.get("/api/open", params={**params, "itemId": "flaky"})

    assert ok.status_code == 200
    assert ok.json()["url"] == "https://open.example.com//a.txt"
    assert missing.status_code == 404
    assert flaky.status_code == 502


@pytest.mark.anyio
async def test_open_unauthorized_clears_account(drive_overrides):
    oauth_clients, adapters, _ = drive_overrides
    adapters[ServiceType.GOOGLE].open_results["secret"] = Outcome.failed(
        ProviderFailure(
            kind=FailureKind.UNAUTHORIZED,
            message="revoked",
            service=ServiceType.GOOGLE,
            reauth_url="https://oauth.example.com/google/reauth/x",
        )
    )
    async with _client() as client:
        connected = await _connect(client, oauth_clients, ServiceType.GOOGLE)
        account_id = connected.json()["account_id"]
        response = await client.get(
            "/api/open", params={"service": "google", "accountId": account_id, "itemId": "secret"}
        )
        status = await client.get("/api/auth/status")

    assert response.status_code == 401
    assert response.json()["detail"]["reauth_url"] == "https://oauth.example.com/google/reauth/x"
    assert status.json()["is_authenticated"] is False


@pytest.mark.anyio
async def test_disconnect_single_account(drive_overrides):
    oauth_clients, _, _ = drive_overrides
    async with _client() as client:
        google = await _connect(client, oauth_clients, ServiceType.GOOGLE)
        await _connect(client, oauth_clients, ServiceType.DROPBOX)
        response = await client.post(
            "/api/auth/disconnect",
            params={"service": "google", "accountId": google.json()["account_id"]},
        )
        status = await client.get("/api/auth/status")

    assert response.json()["is_authenticated"] is True
    assert status.json()["active_services"] == ["dropbox"]


@pytest.mark.anyio
async def test_disconnect_account_requires_service(drive_overrides):
    async with _client() as client:
        response = await client.post("/api/auth/disconnect", params={"accountId": "x"})

    assert response.status_code == 400


@pytest.mark.anyio
async def test_logout_resets_navigation(drive_overrides):
    oauth_clients, _, _ = drive_overrides
    async with _client() as client:
        connected = await _connect(client, oauth_clients, ServiceType.ONEDRIVE)
        await client.post(
            "/api/drive/navigate",
            json={"id": "dir-1", "name": "Archive", "service": "onedrive", "account_id": connected.json()["account_id"]},
        )
        logout = await client.post("/api/auth/logout")
        listing = await client.get("/api/drive")

    assert logout.json()["is_authenticated"] is False
    assert listing.json()["navigation"]["current_folder_id"] == "root"
    assert listing.json()["items"] == []
