"""Core abstractions for quote and put-chain adapters."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, List

from csp_scanner.models.contract import OptionContract, Quote


class FetchErrorKind(str, Enum):
    """Failure categories surfaced by market data adapters."""

    UNREACHABLE = "unreachable"
    NOT_FOUND = "not_found"
    EMPTY_CHAIN = "empty_chain"
    RATE_LIMITED = "rate_limited"
    MALFORMED = "malformed"


_RETRYABLE_KINDS = frozenset({FetchErrorKind.UNREACHABLE, FetchErrorKind.RATE_LIMITED})


class AdapterError(Exception):
    """Base exception raised for adapter related failures."""


class FetchError(AdapterError):
    """Raised when a symbol's quote or put chain cannot be retrieved."""

    def __init__(self, symbol: str, kind: FetchErrorKind, message: str = "") -> None:
        self.symbol = symbol
        self.kind = FetchErrorKind(kind)
        self.message = message or self.kind.value.replace("_", " ")
        super().__init__(f"{symbol}: {self.message}")

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE_KINDS


class CallTimeoutError(AdapterError):
    """Raised when a single provider call exceeds its time allowance."""


def run_with_timeout(func: Callable[[], Any], timeout_seconds: float) -> Any:
    """Run a blocking provider call on a daemon thread with a timeout.

    This is more reliable than signal-based timeouts, which only work on the
    main thread and therefore not inside the scan worker pool.
    """
    result_container: List[Any] = []
    exception_container: List[BaseException] = []

    def wrapper() -> None:
        try:
            result_container.append(func())
        except Exception as exc:
            exception_container.append(exc)

    thread = threading.Thread(target=wrapper, daemon=True)
    thread.start()
    thread.join(timeout=timeout_seconds)

    if thread.is_alive():
        raise CallTimeoutError(f"Operation timed out after {timeout_seconds} seconds")

    if exception_container:
        raise exception_container[0]

    if result_container:
        return result_container[0]

    raise CallTimeoutError("Operation completed but returned no result")


@dataclass(frozen=True)
class ChainSnapshot:
    """Quote plus the nearest-expiration put chain for one symbol."""

    quote: Quote
    expiration: date
    puts: List[OptionContract] = field(default_factory=list)


class QuoteChainClient(ABC):
    """Abstract base class for fetching quotes and put chains from a provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable provider name."""

    @abstractmethod
    def fetch(self, symbol: str) -> ChainSnapshot:
        """Return the quote and nearest-expiration puts for ``symbol``.

        Raises:
            FetchError: If the provider is unreachable, the symbol is unknown,
                or the nearest expiration has no puts.
        """


__all__ = [
    "AdapterError",
    "CallTimeoutError",
    "ChainSnapshot",
    "FetchError",
    "FetchErrorKind",
    "QuoteChainClient",
    "run_with_timeout",
]
