"""Dropbox adapter over the HTTP API v2."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from unidrive.clients.base import (
    ProviderAdapter,
    malformed,
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

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.dropboxapi.com/2"
WEB_HOME_URL = "https://www.dropbox.com/home"


def _api_path(folder_id: str) -> str:
    """Dropbox addresses its root as the empty path."""
    return "" if folder_id in (ROOT_FOLDER_ID, "", "/") else folder_id


def _parent_of(path_lower: str) -> str:
    parent = path_lower.rsplit("/", 1)[0]
    return parent or ROOT_FOLDER_ID


class DropboxAdapter(ProviderAdapter):
    """List, search and open items in Dropbox. Item ids are lower-cased paths."""

    service = ServiceType.DROPBOX

    def _refine_failure(self, response: httpx.Response, kind: FailureKind) -> FailureKind:
        if response.status_code == 409:
            summary = self._error_message(response)
            return FailureKind.NOT_FOUND if "not_found" in summary else FailureKind.MALFORMED
        return kind

    def _error_message(self, response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(data, dict) and isinstance(data.get("error_summary"), str):
            return data["error_summary"]
        return super()._error_message(response)

    def _to_item(self, entry: Any, account_id: str, parent_id: str | None = None) -> Item | None:
        entry = require_object(entry, "Dropbox entry")
        tag = entry.get(".tag")
        if tag == "deleted":
            return None
        if tag not in ("file", "folder"):
            raise malformed(f"Unrecognised Dropbox entry tag {tag!r}.")
        path_lower = optional_str(entry, "path_lower")
        item_id = path_lower or require_str(entry, "id")
        if parent_id is None:
            parent_id = _parent_of(path_lower) if path_lower else None
        common = {
            "id": item_id,
            "name": require_str(entry, "name"),
            "parent_id": parent_id,
            "service": self.service,
            "account_id": account_id,
            "path": optional_str(entry, "path_display"),
        }
        if tag == "folder":
            return FolderItem(**common, is_shared="sharing_info" in entry or None)
        return FileItem(
            **common,
            modified_at=optional_timestamp(entry, "server_modified"),
            size=size_in_kilobytes(optional_int(entry, "size")),
        )

    async def _list_children(
        self, credential: CredentialRecord, account_id: str, folder_id: str
    ) -> list[Item]:
        path = _api_path(folder_id)
        parent_id = ROOT_FOLDER_ID if path == "" else folder_id
        entries: list[Any] = []
        async with self._http() as client:
            payload = await self._request_json(
                client,
                "POST",
                f"{API_BASE_URL}/files/list_folder",
                credential,
                json={
                    "path": path,
                    "recursive": False,
                    "include_deleted": False,
                    "include_mounted_folders": True,
                    "limit": min(self._http_settings.page_size, 2000),
                },
            )
            entries.extend(require_list(payload, "entries"))
            pages = 1
            while payload.get("has_more") and pages < self._http_settings.max_pages:
                payload = await self._request_json(
                    client,
                    "POST",
                    f"{API_BASE_URL}/files/list_folder/continue",
                    credential,
                    json={"cursor": require_str(payload, "cursor")},
                )
                entries.extend(require_list(payload, "entries"))
                pages += 1
            if payload.get("has_more"):
                logger.info("Stopped Dropbox pagination after %s pages", pages)
        items = [self._to_item(entry, account_id, parent_id) for entry in entries]
        return [item for item in items if item is not None]

    async def _search(self, credential: CredentialRecord, account_id: str, query: str) -> list[Item]:
        matches: list[Any] = []
        async with self._http() as client:
            payload = await self._request_json(
                client,
                "POST",
                f"{API_BASE_URL}/files/search_v2",
                credential,
                json={
                    "query": query,
                    "include_highlights": False,
                    "options": {"filename_only": True, "max_results": 1000},
                },
            )
            matches.extend(require_list(payload, "matches", default_empty=True))
            pages = 1
            while payload.get("has_more") and pages < self._http_settings.max_pages:
                payload = await self._request_json(
                    client,
                    "POST",
                    f"{API_BASE_URL}/files/search/continue_v2",
                    credential,
                    json={"cursor": require_str(payload, "cursor")},
                )
                matches.extend(require_list(payload, "matches", default_empty=True))
                pages += 1

        items: list[Item] = []
        for match in matches:
            wrapper = require_object(require_object(match, "search match").get("metadata"), "match metadata")
            item = self._to_item(wrapper.get("metadata"), account_id)
            if item is not None:
                items.append(item)
        return items

    async def _resolve_open_link(
        self, credential: CredentialRecord, account_id: str, item_id: str
    ) -> str:
        path = _api_path(item_id)
        if path == "":
            return WEB_HOME_URL
        async with self._http() as client:
            try:
                payload = await self._request_json(
                    client,
                    "POST",
                    f"{API_BASE_URL}/files/get_temporary_link",
                    credential,
                    json={"path": path},
                )
            except ProviderError as exc:
                # Folders have no temporary link; open them in the web UI instead.
                if exc.failure.message.startswith("path/not_file"):
                    return f"{WEB_HOME_URL}{quote(path)}"
                raise
        link = optional_str(payload, "link")
        if not link:
            raise ProviderError(
                ProviderFailure(kind=FailureKind.NOT_FOUND, message="No link returned from Dropbox.")
            )
        return link


__all__ = ["DropboxAdapter"]
