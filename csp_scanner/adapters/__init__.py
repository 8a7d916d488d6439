"""Adapter implementations for external quote and option chain providers."""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Type

from .base import ChainSnapshot, FetchError, FetchErrorKind, QuoteChainClient

_ADAPTER_REGISTRY: Dict[str, str] = {
    "yfinance": "csp_scanner.adapters.yfinance:YFinanceChainClient",
    "yahoo_http": "csp_scanner.adapters.yahoo_http:YahooHTTPChainClient",
}


def available_providers() -> list[str]:
    return sorted(_ADAPTER_REGISTRY)


def create_adapter(provider: str, **settings: Any) -> QuoteChainClient:
    """Instantiate a quote/chain client by name.

    Args:
        provider: The lowercase name of the provider to load.
        **settings: Keyword arguments forwarded to the client constructor.

    Returns:
        An instance of the requested client implementation.

    Raises:
        KeyError: If the provider name is unknown.
    """

    normalized = provider.lower()
    try:
        dotted_path = _ADAPTER_REGISTRY[normalized]
    except KeyError as exc:
        raise KeyError(f"Unknown market data provider: {provider}") from exc

    module_name, class_name = dotted_path.split(":", 1)
    module = import_module(module_name)
    adapter_cls: Type[QuoteChainClient] = getattr(module, class_name)
    return adapter_cls(**settings)


__all__ = [
    "ChainSnapshot",
    "FetchError",
    "FetchErrorKind",
    "QuoteChainClient",
    "available_providers",
    "create_adapter",
]
