"""
Factory functions to provide shared clients and per-session services as
FastAPI dependencies.

Process-wide objects (cipher, OAuth clients, adapters) are cached with
``lru_cache``. Everything derived from the session cookie is built per
request; FastAPI caches a dependency's result for the duration of a request,
so every consumer sees the same session object.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Annotated, Any, Dict

from fastapi import Depends, Request, Response

from unidrive.clients import (
    DropboxAdapter,
    DropboxOAuthClient,
    GoogleDriveAdapter,
    GoogleOAuthClient,
    OAuthClient,
    OAuthStateEncoder,
    OneDriveAdapter,
    OneDriveOAuthClient,
    ProviderAdapter,
)
from unidrive.core.config import AppSettings, get_settings
from unidrive.dependencies.config import get_app_settings
from unidrive.models.items import ServiceType
from unidrive.services import (
    AggregationEngine,
    CredentialResolver,
    EncryptedCookieSession,
    ProviderGateway,
    SearchEngine,
    TokenCipherService,
    TokenStore,
)
from unidrive.services.navigation import (
    NavigationStateMachine,
    RecordingLocationWriter,
    load_navigation_state,
)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for the session cookie."""
    settings = get_settings()
    return TokenCipherService(
        secret=settings.session.secret_key,
        max_age_seconds=settings.session.max_age_seconds,
    )


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder keyed by the session secret."""
    return OAuthStateEncoder(secret_key=get_settings().session.secret_key)


@lru_cache()
def get_oauth_clients() -> Dict[ServiceType, OAuthClient]:
    """One OAuth client per supported service."""
    settings = get_settings()
    timeout = settings.http.request_timeout_seconds
    return {
        ServiceType.GOOGLE: GoogleOAuthClient(settings.google, timeout=timeout),
        ServiceType.DROPBOX: DropboxOAuthClient(settings.dropbox, timeout=timeout),
        ServiceType.ONEDRIVE: OneDriveOAuthClient(settings.onedrive, timeout=timeout),
    }


@lru_cache()
def get_provider_adapters() -> Dict[ServiceType, ProviderAdapter]:
    """One storage adapter per supported service."""
    settings = get_settings()
    oauth_clients = get_oauth_clients()
    encoder = get_oauth_state_encoder()
    adapter_types = {
        ServiceType.GOOGLE: GoogleDriveAdapter,
        ServiceType.DROPBOX: DropboxAdapter,
        ServiceType.ONEDRIVE: OneDriveAdapter,
    }
    return {
        service: adapter_type(oauth_clients[service], encoder, settings.http)
        for service, adapter_type in adapter_types.items()
    }


def get_session(
    request: Request,
    cipher: Annotated[Any, Depends(get_token_cipher_service)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> EncryptedCookieSession:
    """Load the encrypted session carried by the request cookie."""
    return EncryptedCookieSession.load(cipher, request.cookies.get(settings.session.cookie_name))


def get_token_store(
    session: Annotated[EncryptedCookieSession, Depends(get_session)],
) -> TokenStore:
    return TokenStore(session)


def get_provider_gateway(
    token_store: Annotated[TokenStore, Depends(get_token_store)],
    oauth_clients: Annotated[Any, Depends(get_oauth_clients)],
    adapters: Annotated[Any, Depends(get_provider_adapters)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> ProviderGateway:
    resolver = CredentialResolver(
        token_store,
        oauth_clients,
        refresh_window=timedelta(seconds=settings.oauth.refresh_window_seconds),
    )
    return ProviderGateway(token_store, resolver, adapters)


def get_aggregation_engine(
    gateway: Annotated[ProviderGateway, Depends(get_provider_gateway)],
) -> AggregationEngine:
    return AggregationEngine(gateway)


def get_search_engine(
    gateway: Annotated[ProviderGateway, Depends(get_provider_gateway)],
) -> SearchEngine:
    return SearchEngine(gateway)


def get_navigation(
    session: Annotated[EncryptedCookieSession, Depends(get_session)],
) -> NavigationStateMachine:
    """Navigation state machine seeded from the session."""
    return NavigationStateMachine(writer=RecordingLocationWriter(), state=load_navigation_state(session))


def persist_session(response: Response, session: EncryptedCookieSession, settings: AppSettings) -> None:
    """Write the session back to its cookie when it changed during the request."""
    if not session.dirty:
        return
    cookie_name = settings.session.cookie_name
    if not session.snapshot():
        response.delete_cookie(cookie_name)
        return
    response.set_cookie(
        cookie_name,
        session.dump(),
        max_age=settings.session.max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.session.secure_cookies or settings.is_production,
    )


__all__ = [
    "get_aggregation_engine",
    "get_navigation",
    "get_oauth_clients",
    "get_oauth_state_encoder",
    "get_provider_adapters",
    "get_provider_gateway",
    "get_search_engine",
    "get_session",
    "get_token_cipher_service",
    "get_token_store",
    "persist_session",
]
