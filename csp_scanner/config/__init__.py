"""Configuration helpers for the scanner service and CLI."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from csp_scanner.adapters import QuoteChainClient, create_adapter

from .loader import AppSettings, get_settings, reset_settings_cache, settings_from_mapping

DEFAULT_OPTIONS_PROVIDER = "yfinance"
PROVIDER_VARIABLE = "OPTIONS_DATA_PROVIDER"


@lru_cache(maxsize=None)
def _get_chain_client(provider: Optional[str], env: Optional[str]) -> QuoteChainClient:
    settings = get_settings(env) if env else None
    configured = settings.adapter.provider if settings else None
    name = (provider or os.getenv(PROVIDER_VARIABLE) or configured or DEFAULT_OPTIONS_PROVIDER).strip().lower()
    options = dict(settings.adapter.settings) if settings and name == configured else {}
    try:
        return create_adapter(name, **options)
    except KeyError as exc:
        raise ValueError(f"Unsupported market data provider: {name}") from exc


def get_chain_client(provider: Optional[str] = None, env: Optional[str] = None) -> QuoteChainClient:
    """Return a quote/chain client based on configuration.

    ``provider`` wins over ``OPTIONS_DATA_PROVIDER``, which wins over the
    ``adapter.provider`` of the settings for ``env`` (when given).
    """

    return _get_chain_client(provider, env)


def reset_chain_client_cache() -> None:
    """Clear the cached client instance (useful for tests)."""

    _get_chain_client.cache_clear()


__all__ = [
    "AppSettings",
    "DEFAULT_OPTIONS_PROVIDER",
    "PROVIDER_VARIABLE",
    "get_chain_client",
    "get_settings",
    "reset_chain_client_cache",
    "reset_settings_cache",
    "settings_from_mapping",
]
