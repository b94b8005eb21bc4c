"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_aggregation_engine,
    get_navigation,
    get_oauth_clients,
    get_oauth_state_encoder,
    get_provider_adapters,
    get_provider_gateway,
    get_search_engine,
    get_session,
    get_token_cipher_service,
    get_token_store,
    persist_session,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_aggregation_engine",
    "get_app_settings",
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
