"""Service layer exports."""

from .aggregation import AggregationEngine, FolderListing, context_for
from .credentials import CredentialResolver
from .gateway import ProviderGateway
from .navigation import Location, NavigationState, NavigationStateMachine
from .search import SearchEngine
from .session_store import EncryptedCookieSession, InMemoryKeyValueStore
from .token_cipher import TokenCipherService
from .token_store import TokenStore

__all__ = [
    "AggregationEngine",
    "CredentialResolver",
    "EncryptedCookieSession",
    "FolderListing",
    "InMemoryKeyValueStore",
    "Location",
    "NavigationState",
    "NavigationStateMachine",
    "ProviderGateway",
    "SearchEngine",
    "TokenCipherService",
    "TokenStore",
    "context_for",
]
