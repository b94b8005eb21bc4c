"""
Credential-aware access to the provider adapters.

Every call resolves the account's credential explicitly, passes it to the
adapter, and clears it when the provider reports an authorization failure.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Awaitable, Callable, Mapping, TypeVar

from unidrive.clients.base import ProviderAdapter
from unidrive.models.credentials import CredentialRecord
from unidrive.models.failures import Outcome
from unidrive.models.items import Item, ServiceType
from unidrive.services.credentials import CredentialResolver
from unidrive.services.token_store import TokenStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderGateway:
    """Route unified operations to the adapter of the requested service."""

    def __init__(
        self,
        token_store: TokenStore,
        resolver: CredentialResolver,
        adapters: Mapping[ServiceType, ProviderAdapter],
    ) -> None:
        self._tokens = token_store
        self._resolver = resolver
        self._adapters = adapters

    @property
    def token_store(self) -> TokenStore:
        return self._tokens

    async def list_children(self, service: ServiceType, account_id: str, folder_id: str) -> Outcome[list[Item]]:
        return await self._call(
            service,
            account_id,
            lambda adapter, credential: adapter.list_children(credential, account_id, folder_id),
        )

    async def search(self, service: ServiceType, account_id: str, query: str) -> Outcome[list[Item]]:
        return await self._call(
            service,
            account_id,
            lambda adapter, credential: adapter.search(credential, account_id, query),
        )

    async def resolve_open_link(self, service: ServiceType, account_id: str, item_id: str) -> Outcome[str]:
        return await self._call(
            service,
            account_id,
            lambda adapter, credential: adapter.resolve_open_link(credential, account_id, item_id),
        )

    async def _call(
        self,
        service: ServiceType,
        account_id: str,
        operation: Callable[[ProviderAdapter, CredentialRecord], Awaitable[Outcome[T]]],
    ) -> Outcome[T]:
        adapter = self._adapters[service]
        resolved = await self._resolver.resolve(service, account_id)
        if resolved.failure is not None:
            failure = resolved.failure
            if failure.is_unauthorized:
                failure = dataclasses.replace(failure, reauth_url=adapter.reauth_url(account_id))
            outcome: Outcome[T] = Outcome.failed(failure)
        else:
            outcome = await operation(adapter, resolved.value)

        if outcome.failure is not None and outcome.failure.is_unauthorized:
            logger.info("Invalidating %s credential for account %s", service.value, account_id)
            self._tokens.clear(service, account_id)
        return outcome


__all__ = ["ProviderGateway"]
