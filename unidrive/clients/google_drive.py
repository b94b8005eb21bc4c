"""Google Drive adapter built on the Drive v3 discovery client."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, TypeVar

import httplib2
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from unidrive.clients.base import (
    ProviderAdapter,
    optional_int,
    optional_str,
    optional_timestamp,
    require_list,
    require_object,
    require_str,
)
from unidrive.models.credentials import CredentialRecord
from unidrive.models.failures import FailureKind, ProviderError, ProviderFailure
from unidrive.models.items import (
    ROOT_FOLDER_ID,
    FileItem,
    FolderItem,
    Item,
    ServiceType,
    size_in_kilobytes,
)
from unidrive.utils.http import classify_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id, name, mimeType, modifiedTime, size, parents, webViewLink, webContentLink, shared"
_RATE_LIMIT_REASONS = {"ratelimitexceeded", "userratelimitexceeded"}


def _quote(value: str) -> str:
    """Escape a literal for use inside a Drive ``q`` expression."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveAdapter(ProviderAdapter):
    """List, search and open items in Google Drive."""

    service = ServiceType.GOOGLE

    def _drive(self, credential: CredentialRecord) -> Any:
        credentials = Credentials(token=credential.access_token)
        return build("drive", "v3", credentials=credentials, cache_discovery=False)

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        """Execute a blocking discovery-client call off the event loop."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args),
                timeout=self._http_settings.request_timeout_seconds,
            )
        except HttpError as exc:
            raise ProviderError(self._failure_from_http_error(exc)) from exc
        except asyncio.TimeoutError:
            raise
        except (httplib2.HttpLib2Error, OSError) as exc:
            raise ProviderError(
                ProviderFailure(kind=FailureKind.TRANSIENT, message=f"Network error: {exc}")
            ) from exc

    @staticmethod
    def _failure_from_http_error(exc: HttpError) -> ProviderFailure:
        status_code = int(exc.resp.status)
        kind = classify_status(status_code) or FailureKind.MALFORMED
        message = f"Google Drive API error {status_code}"
        reasons: set[str] = set()
        try:
            body = json.loads(exc.content)
        except (TypeError, ValueError):
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            error = body["error"]
            if isinstance(error.get("message"), str):
                message = error["message"]
            for detail in error.get("errors") or []:
                if isinstance(detail, dict) and isinstance(detail.get("reason"), str):
                    reasons.add(detail["reason"].lower())
        if status_code == 403 and reasons & _RATE_LIMIT_REASONS:
            kind = FailureKind.RATE_LIMITED
        return ProviderFailure(kind=kind, message=message, status_code=status_code)

    def _collect_files(
        self, credential: CredentialRecord, query: str, drive: Any = None
    ) -> list[Dict[str, Any]]:
        drive = drive or self._drive(credential)
        files: list[Dict[str, Any]] = []
        page_token = None
        for _ in range(self._http_settings.max_pages):
            response = (
                drive.files()
                .list(
                    q=query,
                    pageSize=self._http_settings.page_size,
                    pageToken=page_token,
                    fields=f"nextPageToken, files({FILE_FIELDS})",
                )
                .execute()
            )
            payload = require_object(response, "files.list response")
            files.extend(require_list(payload, "files", default_empty=True))
            page_token = optional_str(payload, "nextPageToken")
            if not page_token:
                break
        else:
            logger.info("Stopped Google Drive pagination after %s pages", self._http_settings.max_pages)
        return files

    def _to_item(
        self,
        entry: Any,
        account_id: str,
        parent_id: str | None = None,
        *,
        root_id: str | None = None,
    ) -> Item:
        entry = require_object(entry, "Drive file")
        parents = entry.get("parents")
        if parents is not None and not isinstance(parents, list):
            raise ProviderError(
                ProviderFailure(kind=FailureKind.MALFORMED, message="Field 'parents' must be a list.")
            )
        if parent_id is None and parents:
            parent_id = ROOT_FOLDER_ID if root_id and parents[0] == root_id else parents[0]
        common = {
            "id": require_str(entry, "id"),
            "name": require_str(entry, "name"),
            "modified_at": optional_timestamp(entry, "modifiedTime"),
            "parent_id": parent_id,
            "service": self.service,
            "account_id": account_id,
        }
        mime_type = optional_str(entry, "mimeType")
        if mime_type == FOLDER_MIME_TYPE:
            shared = entry.get("shared")
            return FolderItem(**common, is_shared=shared if isinstance(shared, bool) else None)
        return FileItem(
            **common,
            size=size_in_kilobytes(optional_int(entry, "size")),
            mime_type=mime_type,
            view_link=optional_str(entry, "webViewLink"),
            download_link=optional_str(entry, "webContentLink"),
        )

    async def _list_children(
        self, credential: CredentialRecord, account_id: str, folder_id: str
    ) -> list[Item]:
        query = f"'{_quote(folder_id)}' in parents and trashed = false"
        files = await self._run(self._collect_files, credential, query)
        parent_id = ROOT_FOLDER_ID if folder_id == ROOT_FOLDER_ID else folder_id
        return [self._to_item(entry, account_id, parent_id) for entry in files]

    def _search_files(
        self, credential: CredentialRecord, query: str
    ) -> tuple[str | None, list[Dict[str, Any]]]:
        """Matching files plus the id of My Drive, which parents report instead of 'root'."""
        drive = self._drive(credential)
        root = drive.files().get(fileId=ROOT_FOLDER_ID, fields="id").execute()
        root_id = optional_str(root, "id") if isinstance(root, dict) else None
        return root_id, self._collect_files(credential, query, drive)

    async def _search(self, credential: CredentialRecord, account_id: str, query: str) -> list[Item]:
        expression = f"name contains '{_quote(query)}' and trashed = false"
        root_id, files = await self._run(self._search_files, credential, expression)
        return [self._to_item(entry, account_id, root_id=root_id) for entry in files]

    async def _resolve_open_link(
        self, credential: CredentialRecord, account_id: str, item_id: str
    ) -> str:
        def _execute_get() -> Any:
            drive = self._drive(credential)
            return drive.files().get(fileId=item_id, fields="id,name,mimeType,webViewLink").execute()

        metadata = require_object(await self._run(_execute_get), "files.get response")
        link = optional_str(metadata, "webViewLink")
        if not link:
            raise ProviderError(
                ProviderFailure(
                    kind=FailureKind.NOT_FOUND,
                    message="File not found or no view link available.",
                )
            )
        return link


__all__ = ["FOLDER_MIME_TYPE", "GoogleDriveAdapter"]
