"""
Folder listing across every connected account.

At the root the engine fans out one listing per account and merges the
results; inside a folder it issues a single call for the owning account.
Partial failures become warnings; only a total failure is an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Union

from unidrive.models.credentials import ServiceAccount
from unidrive.models.failures import ProviderFailure
from unidrive.models.items import ROOT_FOLDER_ID, Item, ServiceType, sort_items
from unidrive.services.fanout import gather_outcomes
from unidrive.services.gateway import ProviderGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FolderContext:
    """A folder inside one specific account."""

    service: ServiceType
    account_id: str
    folder_id: str


class _RootAcrossAccounts:
    def __repr__(self) -> str:
        return "ROOT_ACROSS_ACCOUNTS"


ROOT_ACROSS_ACCOUNTS = _RootAcrossAccounts()

ListingContext = Union[FolderContext, _RootAcrossAccounts]


def context_for(
    folder_id: str,
    service: Optional[ServiceType] = None,
    account_id: Optional[str] = None,
) -> ListingContext:
    """The root, or a location without an owning account, aggregates everything."""
    if folder_id == ROOT_FOLDER_ID or service is None or not account_id:
        return ROOT_ACROSS_ACCOUNTS
    return FolderContext(service=service, account_id=account_id, folder_id=folder_id)


@dataclass
class FolderListing:
    items: list[Item] = field(default_factory=list)
    per_service: Dict[ServiceType, list[Item]] = field(default_factory=dict)
    error: Optional[str] = None
    warning: Optional[str] = None
    reauth_url: Optional[str] = None
    failures: list[ProviderFailure] = field(default_factory=list)


class AggregationEngine:
    """Fetch a location's children from one or all accounts."""

    def __init__(self, gateway: ProviderGateway) -> None:
        self._gateway = gateway

    async def list_folder(
        self,
        context: ListingContext,
        accounts: Optional[Sequence[ServiceAccount]] = None,
    ) -> FolderListing:
        if accounts is None:
            accounts = self._gateway.token_store.list_accounts()
        if not accounts:
            logger.info("No connected accounts; returning an empty listing")
            return FolderListing()

        if isinstance(context, FolderContext):
            targets = [self._account_for(context, accounts)]
            folder_id = context.folder_id
        else:
            targets = list(accounts)
            folder_id = ROOT_FOLDER_ID

        outcomes = await gather_outcomes(
            targets,
            [
                self._gateway.list_children(account.service, account.id, folder_id)
                for account in targets
            ],
        )

        listing = FolderListing()
        for account, outcome in zip(targets, outcomes):
            if outcome.failure is not None:
                listing.failures.append(outcome.failure)
                if outcome.failure.reauth_url and listing.reauth_url is None:
                    listing.reauth_url = outcome.failure.reauth_url
                continue
            annotated = [
                item.model_copy(
                    update={"account_name": account.display_name, "account_email": account.email}
                )
                for item in outcome.value or []
            ]
            listing.items.extend(annotated)
            listing.per_service.setdefault(account.service, []).extend(annotated)

        listing.items = sort_items(listing.items)
        listing.per_service = {
            service: sort_items(items) for service, items in listing.per_service.items()
        }

        if listing.failures:
            succeeded = len(targets) - len(listing.failures)
            if succeeded == 0:
                listing.error = listing.failures[-1].describe()
            else:
                listing.warning = "Failed to fetch files from one or more services: " + "; ".join(
                    failure.describe() for failure in listing.failures
                )
            logger.warning(
                "Listing %r: %s of %s account calls failed",
                context,
                len(listing.failures),
                len(targets),
            )
        return listing

    @staticmethod
    def _account_for(context: FolderContext, accounts: Sequence[ServiceAccount]) -> ServiceAccount:
        for account in accounts:
            if account.service is context.service and account.id == context.account_id:
                return account
        return ServiceAccount(id=context.account_id, service=context.service)


__all__ = [
    "AggregationEngine",
    "FolderContext",
    "FolderListing",
    "ListingContext",
    "ROOT_ACROSS_ACCOUNTS",
    "context_for",
]
