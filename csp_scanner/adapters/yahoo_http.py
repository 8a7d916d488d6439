"""Quote/chain client that reads Yahoo Finance's options endpoint directly."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import requests
from pydantic import ValidationError

from csp_scanner.models.contract import OptionContract, Quote

from .base import ChainSnapshot, FetchError, FetchErrorKind, QuoteChainClient

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://query1.finance.yahoo.com"
DEFAULT_HEADERS = {"User-Agent": "Mozilla/5.0"}


class YahooHTTPChainClient(QuoteChainClient):
    """Fetch the nearest-expiration puts from ``/v7/finance/options/{symbol}``.

    The endpoint returns the quote and the first expiration's chain in a single
    payload, so one request covers a ticker.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        base_url: str = DEFAULT_BASE_URL,
        call_timeout_seconds: float = 10.0,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers.update(DEFAULT_HEADERS)
        self._base_url = base_url.rstrip("/")
        self._call_timeout = call_timeout_seconds

    @property
    def name(self) -> str:
        return "yahoo_http"

    def fetch(self, symbol: str) -> ChainSnapshot:
        payload = self._get_json(symbol, f"{self._base_url}/v7/finance/options/{symbol}")
        try:
            results = payload["optionChain"]["result"]
        except (KeyError, TypeError) as exc:
            raise FetchError(symbol, FetchErrorKind.MALFORMED, "response has no optionChain.result") from exc
        if not results:
            raise FetchError(symbol, FetchErrorKind.NOT_FOUND, "no options data")

        result = results[0]
        if not isinstance(result, Mapping):
            raise FetchError(symbol, FetchErrorKind.MALFORMED, "unexpected optionChain entry")

        expiration_stamps = result.get("expirationDates") or []
        if not expiration_stamps:
            raise FetchError(symbol, FetchErrorKind.NOT_FOUND, "no listed option expirations")
        try:
            expiration = datetime.fromtimestamp(int(expiration_stamps[0]), tz=timezone.utc).date()
        except (TypeError, ValueError, OverflowError) as exc:
            raise FetchError(symbol, FetchErrorKind.MALFORMED, "unparseable expiration timestamp") from exc

        options = result.get("options") or [{}]
        puts = self._parse_puts(symbol, (options[0] or {}).get("puts") or [])
        if not puts:
            raise FetchError(symbol, FetchErrorKind.EMPTY_CHAIN, f"no puts listed for {expiration.isoformat()}")

        quote = self._parse_quote(symbol, result.get("quote") or {})
        return ChainSnapshot(quote=quote, expiration=expiration, puts=puts)

    def _get_json(self, symbol: str, url: str) -> Dict[str, Any]:
        try:
            response = self._session.get(url, timeout=self._call_timeout)
        except requests.exceptions.RequestException as exc:
            raise FetchError(symbol, FetchErrorKind.UNREACHABLE, str(exc)) from exc

        if response.status_code == 404:
            raise FetchError(symbol, FetchErrorKind.NOT_FOUND, "symbol not found")
        if response.status_code == 429:
            raise FetchError(symbol, FetchErrorKind.RATE_LIMITED, "provider rate limit reached")
        if not 200 <= response.status_code < 300:
            raise FetchError(
                symbol, FetchErrorKind.UNREACHABLE, f"options fetch failed: {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(symbol, FetchErrorKind.MALFORMED, "response is not JSON") from exc
        if not isinstance(payload, dict):
            raise FetchError(symbol, FetchErrorKind.MALFORMED, "response is not a JSON object")
        return payload

    @staticmethod
    def _parse_puts(symbol: str, rows: List[Any]) -> List[OptionContract]:
        contracts: List[OptionContract] = []
        for row in rows:
            if not isinstance(row, Mapping):
                continue
            iv = row.get("impliedVolatility")
            try:
                contracts.append(
                    OptionContract(
                        strike=row.get("strike"),
                        bid=row.get("bid"),
                        ask=row.get("ask"),
                        volume=row.get("volume"),
                        open_interest=row.get("openInterest"),
                        implied_volatility=float(iv) * 100 if isinstance(iv, (int, float)) else None,
                    )
                )
            except ValidationError:
                logger.debug("Skipping malformed put row for %s: %s", symbol, row)
        return contracts

    @staticmethod
    def _parse_quote(symbol: str, raw: Mapping[str, Any]) -> Quote:
        earnings: Optional[Any] = raw.get("earningsTimestamp") or raw.get("earningsTimestampStart")
        return Quote(
            symbol=symbol,
            price=raw.get("regularMarketPrice"),
            percent_change=raw.get("regularMarketChangePercent"),
            fifty_two_week_high=raw.get("fiftyTwoWeekHigh"),
            fifty_two_week_low=raw.get("fiftyTwoWeekLow"),
            earnings_date=earnings,
        )


__all__ = ["YahooHTTPChainClient"]
