"""
Helpers for retrieving and refreshing per-account OAuth credentials.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Mapping

from unidrive.clients.oauth import OAuthClient, OAuthTokenExchangeError, OAuthTransientError
from unidrive.models.credentials import CredentialRecord
from unidrive.models.failures import FailureKind, Outcome, ProviderFailure
from unidrive.models.items import ServiceType
from unidrive.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class CredentialResolver:
    """Reads credentials before a provider call, refreshing them when due."""

    _REFRESH_WINDOW = timedelta(minutes=5)

    def __init__(
        self,
        token_store: TokenStore,
        oauth_clients: Mapping[ServiceType, OAuthClient],
        *,
        refresh_window: timedelta | None = None,
    ) -> None:
        self._tokens = token_store
        self._oauth = oauth_clients
        self._refresh_window = refresh_window if refresh_window is not None else self._REFRESH_WINDOW

    async def resolve(self, service: ServiceType, account_id: str) -> Outcome[CredentialRecord]:
        """Return a usable credential, or the failure that prevented it.

        Only a rejected refresh is ``Unauthorized``; an unreachable or failing
        token endpoint leaves the stored credential alone.
        """
        record = self._tokens.get(service, account_id)
        if record is None:
            return Outcome.failed(
                ProviderFailure(
                    kind=FailureKind.UNAUTHORIZED,
                    message=f"Not authenticated with {service.display_name}.",
                    service=service,
                    account_id=account_id,
                )
            )

        if not record.is_expired(leeway=self._refresh_window):
            return Outcome.success(record)

        if not record.refresh_token:
            return Outcome.failed(
                ProviderFailure(
                    kind=FailureKind.UNAUTHORIZED,
                    message="Token expired and no refresh token is available.",
                    service=service,
                    account_id=account_id,
                )
            )

        logger.info("Refreshing %s token for account %s", service.value, account_id)
        try:
            refreshed = await self._oauth[service].refresh(record)
        except OAuthTransientError as exc:
            logger.warning(
                "Token refresh for %s/%s could not complete: %s", service.value, account_id, exc
            )
            return Outcome.failed(
                ProviderFailure(
                    kind=exc.kind,
                    message=f"Could not reach {service.display_name} to refresh the session.",
                    service=service,
                    account_id=account_id,
                )
            )
        except OAuthTokenExchangeError as exc:
            logger.warning("Token refresh failed for %s/%s: %s", service.value, account_id, exc)
            return Outcome.failed(
                ProviderFailure(
                    kind=FailureKind.UNAUTHORIZED,
                    message="Token expired and refresh failed.",
                    service=service,
                    account_id=account_id,
                )
            )

        self._tokens.put(service, account_id, refreshed)
        return Outcome.success(refreshed)


__all__ = ["CredentialResolver"]
