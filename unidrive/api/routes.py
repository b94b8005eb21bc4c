"""
FastAPI routes for the unified drive service.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from unidrive.clients.oauth import OAuthTokenExchangeError, OAuthTransientError, new_state_payload
from unidrive.core.config import AppSettings
from unidrive.dependencies import (
    get_aggregation_engine,
    get_app_settings,
    get_navigation,
    get_oauth_clients,
    get_oauth_state_encoder,
    get_provider_gateway,
    get_search_engine,
    get_session,
    get_token_store,
    persist_session,
)
from unidrive.models.credentials import ServiceAccount
from unidrive.models.failures import FailureKind
from unidrive.models.items import ROOT_FOLDER_ID, ServiceType, filter_items
from unidrive.schemas import (
    AuthStatusResponse,
    DisconnectResponse,
    FolderListingResponse,
    NavigateRequest,
    NavigationResponse,
    OAuthCallbackPayload,
    OpenLinkResponse,
    SearchResponse,
)
from unidrive.services.aggregation import context_for
from unidrive.services.navigation import Location, save_navigation_state

router = APIRouter()
logger = logging.getLogger(__name__)

NEW_ACCOUNT = "new"


def _wants_redirect(request: Request, redirect: bool) -> bool:
    return redirect or "text/html" in request.headers.get("accept", "").lower()


def _frontend_url(settings: AppSettings, target: Optional[str], **params: str) -> Optional[str]:
    base = target or (str(settings.frontend_base_url) if settings.frontend_base_url else None)
    if not base:
        return None
    if not params:
        return base
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode(params)}"


def _sign_out_if_empty(token_store: Any, navigation: Any) -> bool:
    """Reset navigation once the last account is gone; returns authentication."""
    is_authenticated = bool(token_store.list_accounts())
    navigation.on_authentication_changed(is_authenticated)
    return is_authenticated


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/status", response_model=AuthStatusResponse)
async def auth_status(
    token_store: Annotated[Any, Depends(get_token_store)],
) -> AuthStatusResponse:
    """Report the connected services and their accounts."""
    accounts = token_store.list_accounts()
    grouped: dict[ServiceType, list[ServiceAccount]] = {}
    for account in accounts:
        grouped.setdefault(account.service, []).append(account)
    return AuthStatusResponse(
        is_authenticated=bool(accounts),
        active_services=token_store.active_services(),
        service_accounts=grouped,
    )


@router.post("/auth/disconnect", response_model=DisconnectResponse)
async def disconnect_account(
    response: Response,
    session: Annotated[Any, Depends(get_session)],
    token_store: Annotated[Any, Depends(get_token_store)],
    navigation: Annotated[Any, Depends(get_navigation)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    service: Optional[ServiceType] = Query(default=None),
    account_id: Optional[str] = Query(default=None, alias="accountId"),
) -> DisconnectResponse:
    """Remove one account, one service, or every connection."""
    if account_id and service is None:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="accountId requires service.",
        )
    token_store.clear(service, account_id or None)
    is_authenticated = _sign_out_if_empty(token_store, navigation)
    save_navigation_state(session, navigation.state)
    persist_session(response, session, settings)
    return DisconnectResponse(
        service=service, account_id=account_id, is_authenticated=is_authenticated
    )


@router.post("/auth/logout", response_model=DisconnectResponse)
async def logout(
    response: Response,
    session: Annotated[Any, Depends(get_session)],
    token_store: Annotated[Any, Depends(get_token_store)],
    navigation: Annotated[Any, Depends(get_navigation)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    service: Optional[ServiceType] = Query(default=None),
) -> DisconnectResponse:
    """Sign out of one service, or of everything when no service is given."""
    token_store.clear(service)
    is_authenticated = _sign_out_if_empty(token_store, navigation)
    save_navigation_state(session, navigation.state)
    persist_session(response, session, settings)
    return DisconnectResponse(
        status="logged_out", service=service, is_authenticated=is_authenticated
    )


@router.get("/auth/{service}/authorize", status_code=HTTPStatus.OK)
async def start_oauth_flow(
    service: ServiceType,
    request: Request,
    oauth_clients: Annotated[Any, Depends(get_oauth_clients)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    add_account: bool = Query(
        default=False,
        alias="addAccount",
        description="Connect another account of a service that is already connected.",
    ),
    account_id: Optional[str] = Query(
        default=None,
        alias="accountId",
        description="Existing account to re-authenticate.",
    ),
    redirect_to: Optional[str] = Query(
        default=None,
        description="Optional URL to redirect back to on successful authentication.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the provider consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a state token and authorization URL.
    """
    state = state_encoder.encode(
        new_state_payload(
            service,
            account_id or NEW_ACCOUNT,
            add_account=add_account,
            redirect_to=redirect_to,
        )
    )
    authorization_url = oauth_clients[service].build_authorization_url(
        state=state, add_account=add_account
    )

    if _wants_redirect(request, redirect):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return {"authorization_url": authorization_url, "state": state}


async def _complete_oauth(
    service: ServiceType,
    payload: OAuthCallbackPayload,
    *,
    oauth_clients: Any,
    state_encoder: Any,
    token_store: Any,
    settings: AppSettings,
) -> dict:
    """Exchange the code, store credential and metadata, and report the outcome."""
    state_data = state_encoder.decode(payload.state)

    if state_data.get("service") != service.value:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="OAuth state was issued for a different service.",
        )

    issued_at_raw = state_data.get("issued_at")
    if not issued_at_raw:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing issued_at in state token.",
        )
    try:
        issued_at = datetime.fromisoformat(issued_at_raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Invalid issued_at in state token.",
        ) from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    now = datetime.now(timezone.utc)
    if now - issued_at > timedelta(seconds=settings.oauth.state_ttl_seconds):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    oauth_client = oauth_clients[service]
    try:
        record = await oauth_client.exchange_authorization_code(payload.code)
    except OAuthTransientError as exc:
        logger.warning("Token endpoint unavailable for %s: %s", service.value, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail=f"Could not reach {service.display_name}; try again.",
        ) from exc
    except OAuthTokenExchangeError as exc:
        logger.warning("Authorization code exchange failed for %s: %s", service.value, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    profile = await oauth_client.fetch_profile(record.access_token)
    existing = token_store.find_account_by_email(service, profile.email)
    add_account = bool(state_data.get("add_account"))
    redirect_to = state_data.get("redirect_to")

    if add_account and existing is not None:
        logger.info("Rejected duplicate %s account for %s", service.value, profile.email)
        return {
            "status": "duplicate_account",
            "service": service.value,
            "account_id": existing.id,
            "redirect_to": redirect_to,
        }

    account_id = state_data.get("account_id") or NEW_ACCOUNT
    if account_id == NEW_ACCOUNT:
        account_id = existing.id if existing else token_store.generate_account_id(service, profile.email)

    token_store.put(service, account_id, record)
    token_store.put_account_metadata(
        ServiceAccount(
            id=account_id,
            service=service,
            name=profile.name or None,
            email=profile.email or None,
        )
    )
    logger.info("Connected %s account %s", service.value, account_id)
    return {
        "status": "connected",
        "service": service.value,
        "account_id": account_id,
        "redirect_to": redirect_to,
    }


@router.post("/auth/{service}/callback", status_code=HTTPStatus.OK)
async def handle_oauth_callback(
    service: ServiceType,
    payload: OAuthCallbackPayload,
    response: Response,
    session: Annotated[Any, Depends(get_session)],
    token_store: Annotated[Any, Depends(get_token_store)],
    oauth_clients: Annotated[Any, Depends(get_oauth_clients)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> dict:
    """Complete the OAuth exchange and return redirect metadata."""
    result = await _complete_oauth(
        service,
        payload,
        oauth_clients=oauth_clients,
        state_encoder=state_encoder,
        token_store=token_store,
        settings=settings,
    )
    if result["status"] == "duplicate_account":
        raise HTTPException(
            status_code=HTTPStatus.CONFLICT,
            detail="duplicate_account",
        )
    persist_session(response, session, settings)
    return result


@router.get("/auth/{service}/callback", status_code=HTTPStatus.OK)
async def handle_oauth_callback_get(
    service: ServiceType,
    request: Request,
    session: Annotated[Any, Depends(get_session)],
    token_store: Annotated[Any, Depends(get_token_store)],
    oauth_clients: Annotated[Any, Depends(get_oauth_clients)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    state: str = Query(..., description="OAuth state token."),
    code: Optional[str] = Query(default=None, description="Authorization code."),
    error: Optional[str] = Query(default=None, description="Provider error, e.g. access_denied."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    wants_redirect = _wants_redirect(request, redirect)

    if error or not code:
        reason = error or "missing_code"
        logger.info("OAuth for %s was not completed: %s", service.value, reason)
        target = _frontend_url(settings, None, error=reason)
        if target and wants_redirect:
            return RedirectResponse(url=target, status_code=HTTPStatus.TEMPORARY_REDIRECT)
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=reason)

    result = await _complete_oauth(
        service,
        OAuthCallbackPayload(state=state, code=code),
        oauth_clients=oauth_clients,
        state_encoder=state_encoder,
        token_store=token_store,
        settings=settings,
    )

    if result["status"] == "duplicate_account":
        target = _frontend_url(settings, result.get("redirect_to"), error="duplicate_account")
        if target and wants_redirect:
            return RedirectResponse(url=target, status_code=HTTPStatus.TEMPORARY_REDIRECT)
        return JSONResponse(status_code=HTTPStatus.CONFLICT, content={"detail": "duplicate_account"})

    target = _frontend_url(settings, result.get("redirect_to"))
    if target and wants_redirect:
        outgoing: Response = RedirectResponse(url=target, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    else:
        outgoing = JSONResponse(content=result)
    persist_session(outgoing, session, settings)
    return outgoing


@router.get("/drive", response_model=FolderListingResponse)
async def browse(
    request: Request,
    response: Response,
    session: Annotated[Any, Depends(get_session)],
    token_store: Annotated[Any, Depends(get_token_store)],
    navigation: Annotated[Any, Depends(get_navigation)],
    engine: Annotated[Any, Depends(get_aggregation_engine)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> FolderListingResponse:
    """List the folder named by ``folderId``/``service``/``accountId`` (root by default)."""
    navigation.sync_from_location(Location.from_query(request.query_params))
    _sign_out_if_empty(token_store, navigation)

    state = navigation.state
    listing = await engine.list_folder(
        context_for(state.current_folder_id, state.current_service, state.current_account_id)
    )
    # The listing may have invalidated the last credential.
    _sign_out_if_empty(token_store, navigation)

    save_navigation_state(session, navigation.state)
    persist_session(response, session, settings)
    return FolderListingResponse(
        items=listing.items,
        per_service=listing.per_service,
        error=listing.error,
        warning=listing.warning,
        reauth_url=listing.reauth_url,
        navigation=NavigationResponse.from_state(navigation.state),
    )


@router.post("/drive/navigate", response_model=NavigationResponse)
async def navigate(
    target: NavigateRequest,
    response: Response,
    session: Annotated[Any, Depends(get_session)],
    navigation: Annotated[Any, Depends(get_navigation)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> NavigationResponse:
    """Enter a folder or jump back to a breadcrumb entry."""
    if target.id == ROOT_FOLDER_ID:
        navigation.navigate_to_root()
    else:
        navigation.navigate_to(target)
    save_navigation_state(session, navigation.state)
    persist_session(response, session, settings)
    return NavigationResponse.from_state(navigation.state)


@router.get("/search", response_model=SearchResponse)
async def search(
    request: Request,
    response: Response,
    session: Annotated[Any, Depends(get_session)],
    token_store: Annotated[Any, Depends(get_token_store)],
    navigation: Annotated[Any, Depends(get_navigation)],
    search_engine: Annotated[Any, Depends(get_search_engine)],
    engine: Annotated[Any, Depends(get_aggregation_engine)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    q: str = Query(default="", description="Search text."),
    recursive: bool = Query(
        default=True,
        description="Search every connected service; false filters the current folder.",
    ),
) -> SearchResponse:
    """Recursive provider search, or local filtering of the current folder.

    In local mode a ``folderId`` (with ``service``/``accountId``) selects the
    folder to filter the same way ``/drive`` does; without one the folder
    kept in the session is used.
    """
    if recursive:
        items = await search_engine.search(q)
        persist_session(response, session, settings)
        return SearchResponse(query=q, recursive=True, items=items)

    if "folderId" in request.query_params:
        navigation.sync_from_location(Location.from_query(request.query_params))

    state = navigation.state
    listing = await engine.list_folder(
        context_for(state.current_folder_id, state.current_service, state.current_account_id)
    )
    _sign_out_if_empty(token_store, navigation)

    save_navigation_state(session, navigation.state)
    persist_session(response, session, settings)
    return SearchResponse(
        query=q,
        recursive=False,
        items=filter_items(listing.items, q),
        error=listing.error,
        warning=listing.warning,
        reauth_url=listing.reauth_url,
    )


@router.get("/open", response_model=OpenLinkResponse)
async def open_item(
    request: Request,
    session: Annotated[Any, Depends(get_session)],
    gateway: Annotated[Any, Depends(get_provider_gateway)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    service: ServiceType = Query(...),
    account_id: str = Query(..., alias="accountId", min_length=1),
    item_id: str = Query(..., alias="itemId", min_length=1),
    redirect: bool = Query(default=False, description="Redirect to the item instead of returning JSON."),
) -> Response:
    """Resolve a browsable URL for one item."""
    outcome = await gateway.resolve_open_link(service, account_id, item_id)

    if outcome.failure is not None:
        failure = outcome.failure
        if failure.kind is FailureKind.UNAUTHORIZED:
            status_code = HTTPStatus.UNAUTHORIZED
        elif failure.kind is FailureKind.NOT_FOUND:
            status_code = HTTPStatus.NOT_FOUND
        else:
            status_code = HTTPStatus.BAD_GATEWAY
        outgoing: Response = JSONResponse(
            status_code=status_code,
            content={
                "detail": {
                    "kind": failure.kind.value,
                    "message": failure.describe(),
                    "reauth_url": failure.reauth_url,
                }
            },
        )
    elif _wants_redirect(request, redirect):
        outgoing = RedirectResponse(url=outcome.value, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    else:
        outgoing = JSONResponse(
            content=OpenLinkResponse(
                service=service, account_id=account_id, item_id=item_id, url=outcome.value
            ).model_dump(mode="json")
        )
    persist_session(outgoing, session, settings)
    return outgoing
