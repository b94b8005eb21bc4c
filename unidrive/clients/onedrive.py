"""OneDrive adapter over Microsoft Graph."""

from __future__ import annotations

import logging
from typing import Any, Dict
from urllib.parse import quote

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

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
ITEM_FIELDS = "id,name,folder,file,size,lastModifiedDateTime,parentReference,webUrl,shared"
# parentReference.path of items that sit directly in the drive root
DRIVE_ROOT_PATH = "/drive/root:"

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"
DOWNLOAD_URL = "@microsoft.graph.downloadUrl"


def _escape_search(query: str) -> str:
    return quote(query.replace("'", "''"), safe="")


class OneDriveAdapter(ProviderAdapter):
    """List, search and open items in the signed-in user's OneDrive."""

    service = ServiceType.ONEDRIVE

    def _to_item(self, entry: Any, account_id: str, parent_id: str | None = None) -> Item:
        entry = require_object(entry, "drive item")
        if parent_id is None:
            parent = entry.get("parentReference")
            if parent is not None:
                parent = require_object(parent, "parentReference")
                parent_id = optional_str(parent, "id")
                if optional_str(parent, "path") == DRIVE_ROOT_PATH:
                    parent_id = ROOT_FOLDER_ID
        common = {
            "id": require_str(entry, "id"),
            "name": require_str(entry, "name"),
            "modified_at": optional_timestamp(entry, "lastModifiedDateTime"),
            "parent_id": parent_id,
            "service": self.service,
            "account_id": account_id,
        }
        folder = entry.get("folder")
        if folder is not None:
            folder = require_object(folder, "folder facet")
            return FolderItem(
                **common,
                child_count=optional_int(folder, "childCount"),
                is_shared="shared" in entry or None,
            )
        file_facet = entry.get("file")
        mime_type = None
        if file_facet is not None:
            mime_type = optional_str(require_object(file_facet, "file facet"), "mimeType")
        return FileItem(
            **common,
            size=size_in_kilobytes(optional_int(entry, "size")),
            mime_type=mime_type,
            view_link=optional_str(entry, "webUrl"),
            download_link=optional_str(entry, DOWNLOAD_URL),
        )

    async def _collect(self, credential: CredentialRecord, url: str, params: Dict[str, str] | None) -> list[Any]:
        entries: list[Any] = []
        async with self._http() as client:
            payload = await self._request_json(client, "GET", url, credential, params=params)
            entries.extend(require_list(payload, ODATA_VALUE))
            pages = 1
            # nextLink already carries the query string
            while payload.get(ODATA_NEXT_LINK) and pages < self._http_settings.max_pages:
                payload = await self._request_json(
                    client, "GET", require_str(payload, ODATA_NEXT_LINK), credential
                )
                entries.extend(require_list(payload, ODATA_VALUE))
                pages += 1
            if payload.get(ODATA_NEXT_LINK):
                logger.info("Stopped OneDrive pagination after %s pages", pages)
        return entries

    async def _list_children(
        self, credential: CredentialRecord, account_id: str, folder_id: str
    ) -> list[Item]:
        if folder_id == ROOT_FOLDER_ID:
            url = f"{GRAPH_BASE_URL}/me/drive/root/children"
        else:
            url = f"{GRAPH_BASE_URL}/me/drive/items/{quote(folder_id, safe='')}/children"
        entries = await self._collect(
            credential,
            url,
            {"$select": ITEM_FIELDS, "$top": str(self._http_settings.page_size)},
        )
        return [self._to_item(entry, account_id, folder_id) for entry in entries]

    async def _search(self, credential: CredentialRecord, account_id: str, query: str) -> list[Item]:
        url = f"{GRAPH_BASE_URL}/me/drive/root/search(q='{_escape_search(query)}')"
        entries = await self._collect(credential, url, {"$select": ITEM_FIELDS})
        return [self._to_item(entry, account_id) for entry in entries]

    async def _resolve_open_link(
        self, credential: CredentialRecord, account_id: str, item_id: str
    ) -> str:
        if item_id == ROOT_FOLDER_ID:
            url = f"{GRAPH_BASE_URL}/me/drive/root"
        else:
            url = f"{GRAPH_BASE_URL}/me/drive/items/{quote(item_id, safe='')}"
        async with self._http() as client:
            payload = await self._request_json(
                client, "GET", url, credential, params={"$select": "id,name,webUrl"}
            )
        link = optional_str(payload, "webUrl")
        if not link:
            raise ProviderError(
                ProviderFailure(
                    kind=FailureKind.NOT_FOUND,
                    message="File not found or no web URL available.",
                )
            )
        return link


__all__ = ["OneDriveAdapter"]
