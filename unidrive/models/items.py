"""
Unified item model shared by every provider adapter.

Items are a tagged union of files and folders. The only identity that is
stable across providers is the ``(service, account_id, id)`` triple; two
providers may both use the literal id ``"root"``.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Annotated, Iterable, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, computed_field

ROOT_FOLDER_ID = "root"


class ServiceType(str, Enum):
    """Supported cloud storage services."""

    GOOGLE = "google"
    DROPBOX = "dropbox"
    ONEDRIVE = "onedrive"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ServiceType.GOOGLE: "Google Drive",
    ServiceType.DROPBOX: "Dropbox",
    ServiceType.ONEDRIVE: "OneDrive",
}


class BaseItem(BaseModel):
    """Fields common to files and folders."""

    id: str = Field(..., min_length=1)
    name: str
    modified_at: Optional[datetime] = Field(
        None, description="Timestamp reported by the provider."
    )
    parent_id: Optional[str] = Field(
        None, description="Parent item id, or 'root' for top-level items."
    )
    service: ServiceType
    account_id: str
    account_name: Optional[str] = None
    account_email: Optional[str] = None
    path: Optional[str] = Field(None, description="Provider path for context.")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def modified_display(self) -> str:
        """Locale date string used for display only."""
        if self.modified_at is None:
            return ""
        return self.modified_at.strftime("%x")

    @property
    def key(self) -> tuple[ServiceType, str, str]:
        return (self.service, self.account_id, self.id)

    @property
    def is_folder(self) -> bool:
        return self.type == "folder"  # type: ignore[attr-defined]


class FileItem(BaseItem):
    type: Literal["file"] = "file"
    size: Optional[int] = Field(None, description="Size in whole kilobytes.")
    mime_type: Optional[str] = None
    view_link: Optional[str] = None
    download_link: Optional[str] = None


class FolderItem(BaseItem):
    type: Literal["folder"] = "folder"
    child_count: Optional[int] = None
    is_shared: Optional[bool] = None


Item = Annotated[Union[FileItem, FolderItem], Field(discriminator="type")]

ItemAdapter: TypeAdapter[Item] = TypeAdapter(Item)


class BreadcrumbItem(BaseModel):
    """One step of the path from root to the current folder."""

    id: str
    name: str
    service: Optional[ServiceType] = None
    account_id: Optional[str] = None


def size_in_kilobytes(size_bytes: Optional[int]) -> Optional[int]:
    """Convert a byte count to whole kilobytes, rounding halves up."""
    if size_bytes is None:
        return None
    return int(math.floor(size_bytes / 1024 + 0.5))


def sort_items(items: Iterable[Item]) -> list[Item]:
    """Folders before files, then case-insensitive by name. Stable."""
    return sorted(items, key=lambda item: (item.type != "folder", item.name.casefold()))


def filter_items(items: Iterable[Item], query: str) -> list[Item]:
    """Case-insensitive, unanchored substring match on item names."""
    if not query.strip():
        return list(items)
    needle = query.casefold()
    return [item for item in items if needle in item.name.casefold()]


__all__ = [
    "BaseItem",
    "BreadcrumbItem",
    "FileItem",
    "FolderItem",
    "Item",
    "ItemAdapter",
    "ROOT_FOLDER_ID",
    "ServiceType",
    "filter_items",
    "size_in_kilobytes",
    "sort_items",
]
