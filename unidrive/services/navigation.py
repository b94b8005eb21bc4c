"""
Navigation state: where the user is, and the breadcrumb that led there.

The state is kept reconcilable with an externally visible location (query
parameters ``folderId``, ``service`` and ``accountId``) so any folder is
bookmarkable. Location writes never raise past the state machine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Union
from urllib.parse import parse_qsl, urlencode

from pydantic import BaseModel, ConfigDict, ValidationError

from unidrive.models.items import ROOT_FOLDER_ID, BreadcrumbItem, ServiceType
from unidrive.services.session_store import KeyValueStore

logger = logging.getLogger(__name__)

NAVIGATION_KEY = "navigation"


@dataclass(frozen=True)
class Location:
    """Bookmarkable location; missing or garbled parameters mean root/absent."""

    folder_id: str = ROOT_FOLDER_ID
    service: Optional[ServiceType] = None
    account_id: Optional[str] = None

    @classmethod
    def from_query(cls, params: Union[Mapping[str, str], str, None]) -> "Location":
        if params is None:
            return cls()
        if isinstance(params, str):
            params = dict(parse_qsl(params.lstrip("?"), keep_blank_values=True))
        folder_id = (params.get("folderId") or "").strip() or ROOT_FOLDER_ID
        service: Optional[ServiceType] = None
        raw_service = (params.get("service") or "").strip().lower()
        if raw_service:
            try:
                service = ServiceType(raw_service)
            except ValueError:
                logger.info("Ignoring unknown service %r in location", raw_service)
        account_id = (params.get("accountId") or "").strip() or None
        return cls(folder_id=folder_id, service=service, account_id=account_id)

    def to_query(self) -> str:
        params = {"folderId": self.folder_id}
        if self.service is not None:
            params["service"] = self.service.value
        if self.account_id:
            params["accountId"] = self.account_id
        return urlencode(params)

    def to_url(self, path: str = "/") -> str:
        return f"{path}?{self.to_query()}"


class LocationWriter(Protocol):
    def write(self, location: Location) -> None: ...


class RecordingLocationWriter:
    """Keeps the latest written location (and the history) in memory."""

    def __init__(self) -> None:
        self.history: list[Location] = []

    @property
    def current(self) -> Optional[Location]:
        return self.history[-1] if self.history else None

    def write(self, location: Location) -> None:
        self.history.append(location)


class NavigationTarget(Protocol):
    id: str
    name: str
    service: Optional[ServiceType]
    account_id: Optional[str]
    parent_id: Optional[str]


class NavigationState(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_folder_id: str = ROOT_FOLDER_ID
    current_service: Optional[ServiceType] = None
    current_account_id: Optional[str] = None
    breadcrumb: tuple[BreadcrumbItem, ...] = ()

    @property
    def at_root(self) -> bool:
        return self.current_folder_id == ROOT_FOLDER_ID

    @property
    def location(self) -> Location:
        return Location(
            folder_id=self.current_folder_id,
            service=self.current_service,
            account_id=self.current_account_id,
        )


INITIAL_STATE = NavigationState()


def load_navigation_state(store: KeyValueStore) -> NavigationState:
    """Navigation state kept in the session; unreadable values start at root."""
    raw = store.get(NAVIGATION_KEY)
    if raw is None:
        return INITIAL_STATE
    try:
        return NavigationState.model_validate_json(raw)
    except ValidationError:
        logger.warning("Discarding unreadable navigation state")
        return INITIAL_STATE


def save_navigation_state(store: KeyValueStore, state: NavigationState) -> None:
    if state == INITIAL_STATE:
        store.delete(NAVIGATION_KEY)
    else:
        store.set(NAVIGATION_KEY, state.model_dump_json())


class NavigationStateMachine:
    """Transitions over ``NavigationState``."""

    def __init__(
        self,
        writer: Optional[LocationWriter] = None,
        state: Optional[NavigationState] = None,
    ) -> None:
        self._writer = writer
        self._state = state or INITIAL_STATE

    @property
    def state(self) -> NavigationState:
        return self._state

    def navigate_to(self, item: NavigationTarget) -> bool:
        """Move into ``item``; returns False when already there."""
        if item.id == self._state.current_folder_id:
            return False

        crumb = BreadcrumbItem(
            id=item.id, name=item.name, service=item.service, account_id=item.account_id
        )
        path = self._state.breadcrumb
        if item.id == ROOT_FOLDER_ID:
            path = ()
        elif item.parent_id in (None, ROOT_FOLDER_ID):
            path = (crumb,)
        else:
            index = self._index_of(item.id)
            path = path[: index + 1] if index is not None else (*path, crumb)

        self._state = NavigationState(
            current_folder_id=item.id,
            current_service=item.service,
            current_account_id=item.account_id,
            breadcrumb=path,
        )
        self._publish()
        return True

    def navigate_to_root(self) -> bool:
        if self._state.at_root:
            return False
        self._state = INITIAL_STATE
        self._publish()
        return True

    def sync_from_location(self, location: Location) -> bool:
        """Adopt an externally changed location (history navigation, deep link).

        The breadcrumb is never derived from the location. A folder that is
        not in the breadcrumb leaves it untouched. Two cases do change it so
        that it still ends at the current folder: root clears it, and a
        folder already in it (going back in history) cuts it back to that
        entry. Nothing is published, since the location already changed.
        """
        if location.folder_id == self._state.current_folder_id:
            return False
        path = self._state.breadcrumb
        if location.folder_id == ROOT_FOLDER_ID:
            path = ()
        else:
            index = self._index_of(location.folder_id)
            if index is not None:
                path = path[: index + 1]
        self._state = NavigationState(
            current_folder_id=location.folder_id,
            current_service=location.service,
            current_account_id=location.account_id,
            breadcrumb=path,
        )
        return True

    def on_authentication_changed(self, is_authenticated: bool) -> None:
        if is_authenticated:
            return
        moved = not self._state.at_root
        self._state = INITIAL_STATE
        if moved:
            self._publish()

    def _index_of(self, folder_id: str) -> Optional[int]:
        for index, crumb in enumerate(self._state.breadcrumb):
            if crumb.id == folder_id:
                return index
        return None

    def _publish(self) -> None:
        if self._writer is None:
            return
        try:
            self._writer.write(self._state.location)
        except Exception:
            logger.exception("Failed to update location for folder %s", self._state.current_folder_id)


__all__ = [
    "INITIAL_STATE",
    "Location",
    "LocationWriter",
    "NAVIGATION_KEY",
    "NavigationState",
    "NavigationStateMachine",
    "NavigationTarget",
    "RecordingLocationWriter",
    "load_navigation_state",
    "save_navigation_state",
]
