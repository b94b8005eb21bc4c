"""
Per-account credential storage.

Credentials and account metadata are kept under ``<service>_<account>_tokens``
and ``<service>_<account>_metadata`` keys of an injected key-value store.
"""

from __future__ import annotations

import logging
import random
import re
import time
from typing import Optional

from pydantic import ValidationError

from unidrive.models.credentials import CredentialRecord, ServiceAccount
from unidrive.models.items import ServiceType
from unidrive.services.session_store import KeyValueStore

logger = logging.getLogger(__name__)

_TOKEN_KEY = re.compile(r"^(google|onedrive|dropbox)_(.+)_tokens$")


def _token_key(service: ServiceType, account_id: str) -> str:
    return f"{service.value}_{account_id}_tokens"


def _metadata_key(service: ServiceType, account_id: str) -> str:
    return f"{service.value}_{account_id}_metadata"


class TokenStore:
    """Get/put/clear credential records for (service, account) pairs."""

    def __init__(self, store: KeyValueStore) -> None:
        self._kv = store

    def get(self, service: ServiceType, account_id: str) -> Optional[CredentialRecord]:
        """Return the stored record, or ``None`` when absent or unreadable."""
        raw = self._kv.get(_token_key(service, account_id))
        if raw is None:
            return None
        try:
            return CredentialRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning(
                "Ignoring unreadable credential record for %s/%s", service.value, account_id
            )
            return None

    def put(self, service: ServiceType, account_id: str, record: CredentialRecord) -> None:
        self._kv.set(_token_key(service, account_id), record.model_dump_json())

    def clear(
        self,
        service: Optional[ServiceType] = None,
        account_id: Optional[str] = None,
    ) -> None:
        """Remove credentials and metadata.

        With both arguments one account is cleared; with only ``service`` every
        account of that service; with neither, every account.
        """
        if service is not None and account_id is not None:
            targets = [(service, account_id)]
        else:
            targets = [
                (account.service, account.id)
                for account in self.list_accounts()
                if service is None or account.service is service
            ]
        for target_service, target_account in targets:
            self._kv.delete(_token_key(target_service, target_account))
            self._kv.delete(_metadata_key(target_service, target_account))
            logger.info("Cleared credentials for %s/%s", target_service.value, target_account)

    def put_account_metadata(self, account: ServiceAccount) -> None:
        self._kv.set(_metadata_key(account.service, account.id), account.model_dump_json())

    def get_account_metadata(self, service: ServiceType, account_id: str) -> Optional[ServiceAccount]:
        raw = self._kv.get(_metadata_key(service, account_id))
        if raw is None:
            return None
        try:
            return ServiceAccount.model_validate_json(raw)
        except ValidationError:
            return None

    def list_accounts(self) -> list[ServiceAccount]:
        """Every connected account, in key-enumeration order."""
        accounts: list[ServiceAccount] = []
        for key in self._kv.keys():
            match = _TOKEN_KEY.match(key)
            if not match:
                continue
            service = ServiceType(match.group(1))
            account_id = match.group(2)
            metadata = self.get_account_metadata(service, account_id)
            accounts.append(
                ServiceAccount(
                    id=account_id,
                    service=service,
                    name=metadata.name if metadata else None,
                    email=metadata.email if metadata else None,
                )
            )
        return accounts

    def active_services(self) -> list[ServiceType]:
        services: list[ServiceType] = []
        for account in self.list_accounts():
            if account.service not in services:
                services.append(account.service)
        return services

    def find_account_by_email(self, service: ServiceType, email: str) -> Optional[ServiceAccount]:
        if not email:
            return None
        for account in self.list_accounts():
            if account.service is service and account.email == email:
                return account
        return None

    @staticmethod
    def generate_account_id(service: ServiceType, email: Optional[str] = None) -> str:
        local_part = email.split("@")[0] if email else ""
        timestamp = int(time.time() * 1000)
        return f"{service.value}_{local_part or 'user'}_{timestamp}_{random.randint(0, 9999)}"


__all__ = ["TokenStore"]
