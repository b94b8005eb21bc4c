"""
Provider adapter contract.

Each adapter translates one provider's list/search/open semantics into the
unified ``Item`` model. Public operations return ``Outcome`` values; internal
helpers raise ``ProviderError`` which is converted at the boundary.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Dict, Optional, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from unidrive.clients.oauth import OAuthClient, OAuthStateEncoder, new_state_payload
from unidrive.core.config import HTTPSettings
from unidrive.models.credentials import CredentialRecord
from unidrive.models.failures import FailureKind, Outcome, ProviderError, ProviderFailure
from unidrive.models.items import Item, ServiceType
from unidrive.utils.http import classify_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

_timestamp = TypeAdapter(datetime)


def malformed(message: str) -> ProviderError:
    return ProviderError(ProviderFailure(kind=FailureKind.MALFORMED, message=message))


def require_str(entry: Dict[str, Any], field: str) -> str:
    value = entry.get(field)
    if not isinstance(value, str) or not value:
        raise malformed(f"Expected non-empty string field '{field}'.")
    return value


def optional_str(entry: Dict[str, Any], field: str) -> Optional[str]:
    if field not in entry or entry[field] is None:
        return None
    value = entry[field]
    if not isinstance(value, str):
        raise malformed(f"Field '{field}' must be a string.")
    return value


def optional_int(entry: Dict[str, Any], field: str) -> Optional[int]:
    """Integers may arrive as numbers or numeric strings (Google sizes)."""
    if field not in entry or entry[field] is None:
        return None
    value = entry[field]
    if isinstance(value, bool):
        raise malformed(f"Field '{field}' must be an integer.")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    raise malformed(f"Field '{field}' must be an integer.")


def optional_timestamp(entry: Dict[str, Any], field: str) -> Optional[datetime]:
    if field not in entry or entry[field] is None:
        return None
    try:
        return _timestamp.validate_python(entry[field])
    except ValidationError as exc:
        raise malformed(f"Field '{field}' is not a valid timestamp.") from exc


def require_list(payload: Dict[str, Any], field: str, *, default_empty: bool = False) -> list:
    if field not in payload and default_empty:
        return []
    value = payload.get(field)
    if not isinstance(value, list):
        raise malformed(f"Expected list field '{field}'.")
    return value


def require_object(value: Any, context: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise malformed(f"Expected an object for {context}.")
    return value


class ProviderAdapter(abc.ABC):
    """Base class for the per-service adapters."""

    service: ServiceType

    def __init__(
        self,
        oauth_client: OAuthClient,
        state_encoder: OAuthStateEncoder,
        http_settings: HTTPSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._oauth = oauth_client
        self._state_encoder = state_encoder
        self._http_settings = http_settings
        self._transport = transport

    async def list_children(
        self, credential: CredentialRecord, account_id: str, folder_id: str
    ) -> Outcome[list[Item]]:
        """List the direct children of ``folder_id`` (``"root"`` for the top level)."""
        return await self._guard(account_id, self._list_children(credential, account_id, folder_id))

    async def search(
        self, credential: CredentialRecord, account_id: str, query: str
    ) -> Outcome[list[Item]]:
        """Search the whole account with the provider's native search."""
        return await self._guard(account_id, self._search(credential, account_id, query))

    async def resolve_open_link(
        self, credential: CredentialRecord, account_id: str, item_id: str
    ) -> Outcome[str]:
        """Return a browsable URL for a single item."""
        return await self._guard(account_id, self._resolve_open_link(credential, account_id, item_id))

    def reauth_url(self, account_id: str) -> str:
        state = self._state_encoder.encode(new_state_payload(self.service, account_id))
        return self._oauth.build_authorization_url(state=state)

    @abc.abstractmethod
    async def _list_children(
        self, credential: CredentialRecord, account_id: str, folder_id: str
    ) -> list[Item]:
        raise NotImplementedError

    @abc.abstractmethod
    async def _search(self, credential: CredentialRecord, account_id: str, query: str) -> list[Item]:
        raise NotImplementedError

    @abc.abstractmethod
    async def _resolve_open_link(
        self, credential: CredentialRecord, account_id: str, item_id: str
    ) -> str:
        raise NotImplementedError

    async def _guard(self, account_id: str, operation: Awaitable[T]) -> Outcome[T]:
        try:
            value = await operation
        except ProviderError as exc:
            failure = exc.failure
        except (httpx.TimeoutException, asyncio.TimeoutError):
            failure = ProviderFailure(kind=FailureKind.TRANSIENT, message="Provider request timed out.")
        except httpx.TransportError as exc:
            failure = ProviderFailure(kind=FailureKind.TRANSIENT, message=f"Network error: {exc}")
        else:
            return Outcome.success(value)

        reauth_url = failure.reauth_url
        if failure.kind is FailureKind.UNAUTHORIZED and reauth_url is None:
            reauth_url = self.reauth_url(account_id)
        failure = ProviderFailure(
            kind=failure.kind,
            message=failure.message,
            service=self.service,
            account_id=account_id,
            status_code=failure.status_code,
            reauth_url=reauth_url,
        )
        logger.warning("%s call failed (%s): %s", self.service.value, failure.kind.value, failure.message)
        return Outcome.failed(failure)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._http_settings.request_timeout_seconds,
            transport=self._transport,
        )

    async def _request_json(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        credential: CredentialRecord,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """Send an authenticated request and return the decoded JSON object."""
        headers = {"Authorization": f"Bearer {credential.access_token}"}
        headers.update(kwargs.pop("headers", {}))
        response = await client.request(method, url, headers=headers, **kwargs)
        kind = classify_status(response.status_code)
        if kind is not None:
            kind = self._refine_failure(response, kind)
            raise ProviderError(
                ProviderFailure(
                    kind=kind,
                    message=self._error_message(response),
                    status_code=response.status_code,
                )
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise malformed("Provider returned a non-JSON body.") from exc
        return require_object(payload, "response body")

    def _refine_failure(self, response: httpx.Response, kind: FailureKind) -> FailureKind:
        """Hook for provider-specific status semantics."""
        return kind

    def _error_message(self, response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                return error["message"]
            if isinstance(error, str):
                return data.get("error_description") or error
        return response.reason_phrase or f"HTTP {response.status_code}"


__all__ = [
    "ProviderAdapter",
    "malformed",
    "optional_int",
    "optional_str",
    "optional_timestamp",
    "require_list",
    "require_object",
    "require_str",
]
