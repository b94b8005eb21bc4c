"""Recursive search across the connected services."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from unidrive.models.credentials import ServiceAccount
from unidrive.models.items import Item, ServiceType, sort_items
from unidrive.services.fanout import gather_outcomes
from unidrive.services.gateway import ProviderGateway

logger = logging.getLogger(__name__)


class SearchEngine:
    """Fan a query out to each active service and merge the matches."""

    def __init__(self, gateway: ProviderGateway) -> None:
        self._gateway = gateway

    async def search(
        self,
        query: str,
        accounts: Optional[Sequence[ServiceAccount]] = None,
    ) -> list[Item]:
        if not query.strip():
            return []
        if accounts is None:
            accounts = self._gateway.token_store.list_accounts()

        # One search per service, using its first connected account.
        targets: dict[ServiceType, ServiceAccount] = {}
        for account in accounts:
            targets.setdefault(account.service, account)
        if not targets:
            return []

        chosen = list(targets.values())
        outcomes = await gather_outcomes(
            chosen,
            [self._gateway.search(account.service, account.id, query) for account in chosen],
        )

        matches: list[Item] = []
        for account, outcome in zip(chosen, outcomes):
            if outcome.failure is not None:
                logger.warning("Search skipped %s: %s", account.service.value, outcome.failure.describe())
                continue
            matches.extend(
                item.model_copy(
                    update={"account_name": account.display_name, "account_email": account.email}
                )
                for item in outcome.value or []
            )
        return sort_items(matches)


__all__ = ["SearchEngine"]
