"""Quote/chain client backed by the public yfinance client."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import pandas as pd
import requests
import yfinance as yf
from pydantic import ValidationError

from csp_scanner.models.contract import OptionContract, Quote

from .base import (
    CallTimeoutError,
    ChainSnapshot,
    FetchError,
    FetchErrorKind,
    QuoteChainClient,
    run_with_timeout,
)

logger = logging.getLogger(__name__)

_PRICE_KEYS = ("currentPrice", "regularMarketPrice")
_FAST_PRICE_KEYS = ("last_price", "lastPrice", "regular_market_price", "regularMarketPrice")
_EARNINGS_KEYS = ("earningsTimestamp", "earningsTimestampStart")


def classify_exception(symbol: str, exc: Exception) -> FetchError:
    """Map the broad exceptions raised by yfinance onto a :class:`FetchError`."""

    if isinstance(exc, FetchError):
        return exc
    message = str(exc) or exc.__class__.__name__
    if "RateLimit" in exc.__class__.__name__ or "Too Many Requests" in message:
        return FetchError(symbol, FetchErrorKind.RATE_LIMITED, message)
    if isinstance(exc, (CallTimeoutError, requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return FetchError(symbol, FetchErrorKind.UNREACHABLE, message)
    if isinstance(exc, (KeyError, TypeError, ValueError)):
        return FetchError(symbol, FetchErrorKind.MALFORMED, message)
    return FetchError(symbol, FetchErrorKind.UNREACHABLE, message)


class YFinanceChainClient(QuoteChainClient):
    """Fetch the nearest-expiration put chain from Yahoo Finance via yfinance."""

    def __init__(
        self,
        ticker_factory: Callable[[str], yf.Ticker] | None = None,
        call_timeout_seconds: float = 10.0,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._ticker_factory = ticker_factory or yf.Ticker
        self._call_timeout = call_timeout_seconds
        self._today = today or date.today

    @property
    def name(self) -> str:
        return "yfinance"

    def fetch(self, symbol: str) -> ChainSnapshot:
        ticker = self._ticker_factory(symbol)
        expiration = self._nearest_expiration(symbol, ticker)

        option_chain = self._call(symbol, lambda: ticker.option_chain(expiration.strftime("%Y-%m-%d")))
        puts_frame = getattr(option_chain, "puts", None)
        puts = self._parse_puts(symbol, puts_frame)
        if not puts:
            raise FetchError(symbol, FetchErrorKind.EMPTY_CHAIN, f"no puts listed for {expiration.isoformat()}")

        underlying = getattr(option_chain, "underlying", None)
        quote = self._build_quote(symbol, ticker, underlying if isinstance(underlying, Mapping) else {})
        return ChainSnapshot(quote=quote, expiration=expiration, puts=puts)

    def _call(self, symbol: str, operation: Callable[[], Any]) -> Any:
        try:
            return run_with_timeout(operation, self._call_timeout)
        except Exception as exc:  # yfinance raises generic errors
            raise classify_exception(symbol, exc) from exc

    def _nearest_expiration(self, symbol: str, ticker: yf.Ticker) -> date:
        raw_expirations = self._call(symbol, lambda: ticker.options) or ()
        today = self._today()
        upcoming: List[date] = []
        for raw in raw_expirations:
            try:
                parsed = datetime.strptime(str(raw), "%Y-%m-%d").date()
            except ValueError:
                continue
            if parsed >= today:
                upcoming.append(parsed)
        if not upcoming:
            raise FetchError(symbol, FetchErrorKind.NOT_FOUND, "no listed option expirations")
        return min(upcoming)

    def _parse_puts(self, symbol: str, frame: Optional[pd.DataFrame]) -> List[OptionContract]:
        if frame is None or not isinstance(frame, pd.DataFrame) or frame.empty:
            return []
        if "strike" not in frame.columns:
            raise FetchError(symbol, FetchErrorKind.MALFORMED, "put chain is missing strikes")

        contracts: List[OptionContract] = []
        for row in frame.to_dict("records"):
            iv = row.get("impliedVolatility")
            try:
                iv_percent = float(iv) * 100 if iv is not None else None
            except (TypeError, ValueError):
                iv_percent = None
            try:
                contracts.append(
                    OptionContract(
                        strike=row.get("strike"),
                        bid=row.get("bid"),
                        ask=row.get("ask"),
                        volume=row.get("volume"),
                        open_interest=row.get("openInterest"),
                        implied_volatility=iv_percent,
                    )
                )
            except ValidationError:
                logger.debug("Skipping malformed put row for %s: %s", symbol, row)
        return contracts

    def _build_quote(self, symbol: str, ticker: yf.Ticker, underlying: Mapping[str, Any]) -> Quote:
        info: Dict[str, Any] = dict(underlying)
        if self._price_from(info) is None or not any(info.get(key) for key in _EARNINGS_KEYS):
            try:
                fetched = self._call(symbol, lambda: ticker.info)
            except FetchError as exc:
                logger.debug("ticker.info lookup failed for %s: %s", symbol, exc)
                fetched = None
            if isinstance(fetched, Mapping):
                info = {**fetched, **{key: value for key, value in info.items() if value is not None}}

        price = self._price_from(info)
        if price is None:
            price = self._fast_price(symbol, ticker)

        earnings = next((info.get(key) for key in _EARNINGS_KEYS if info.get(key)), None)
        return Quote(
            symbol=symbol,
            price=price,
            percent_change=info.get("regularMarketChangePercent"),
            fifty_two_week_high=info.get("fiftyTwoWeekHigh"),
            fifty_two_week_low=info.get("fiftyTwoWeekLow"),
            earnings_date=earnings,
        )

    def _fast_price(self, symbol: str, ticker: yf.Ticker) -> Optional[float]:
        try:
            fast_info = self._call(symbol, lambda: getattr(ticker, "fast_info", {}))
        except FetchError:
            return None
        for key in _FAST_PRICE_KEYS:
            try:
                value = fast_info.get(key) if hasattr(fast_info, "get") else getattr(fast_info, key, None)
            except Exception:  # fast_info properties trigger lazy network calls
                logger.debug("fast_info.%s lookup failed for %s", key, symbol, exc_info=True)
                continue
            if _is_valid_price(value):
                return float(value)
        return None

    @staticmethod
    def _price_from(info: Mapping[str, Any]) -> Optional[float]:
        for key in _PRICE_KEYS:
            value = info.get(key)
            if _is_valid_price(value):
                return float(value)
        return None


def _is_valid_price(value: Any) -> bool:
    """Check if a value represents a valid price."""
    if value in (None, 0, ""):
        return False
    try:
        price_val = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(price_val) and price_val > 0


__all__ = ["YFinanceChainClient", "classify_exception"]
