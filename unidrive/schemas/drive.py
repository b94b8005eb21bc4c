"""
Pydantic models for browsing, searching and opening items.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from unidrive.models.items import BreadcrumbItem, Item, ServiceType
from unidrive.services.navigation import NavigationState


class NavigationResponse(BaseModel):
    """Current navigation state plus the bookmarkable location."""

    current_folder_id: str
    current_service: Optional[ServiceType] = None
    current_account_id: Optional[str] = None
    breadcrumb: List[BreadcrumbItem] = Field(default_factory=list)
    location: str = Field(..., description="Query string that reopens this folder.")

    @classmethod
    def from_state(cls, state: NavigationState) -> "NavigationResponse":
        return cls(
            current_folder_id=state.current_folder_id,
            current_service=state.current_service,
            current_account_id=state.current_account_id,
            breadcrumb=list(state.breadcrumb),
            location=state.location.to_query(),
        )


class NavigateRequest(BaseModel):
    """Folder (or breadcrumb entry) the user selected."""

    id: str = Field(..., min_length=1)
    name: str = ""
    service: Optional[ServiceType] = None
    account_id: Optional[str] = None
    parent_id: Optional[str] = Field(
        None, description="Parent folder id; omitted or 'root' for top-level folders."
    )


class FolderListingResponse(BaseModel):
    """Merged children of the current location."""

    items: List[Item] = Field(default_factory=list)
    per_service: Dict[ServiceType, List[Item]] = Field(default_factory=dict)
    error: Optional[str] = None
    warning: Optional[str] = None
    reauth_url: Optional[str] = None
    navigation: NavigationResponse


class SearchResponse(BaseModel):
    query: str
    recursive: bool
    items: List[Item] = Field(default_factory=list)
    error: Optional[str] = None
    warning: Optional[str] = None
    reauth_url: Optional[str] = None


class OpenLinkResponse(BaseModel):
    service: ServiceType
    account_id: str
    item_id: str
    url: str


__all__ = [
    "FolderListingResponse",
    "NavigateRequest",
    "NavigationResponse",
    "OpenLinkResponse",
    "SearchResponse",
]
