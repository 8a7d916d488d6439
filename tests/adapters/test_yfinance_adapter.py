from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock

import pandas as pd
import pytest
import requests

from csp_scanner.adapters.base import CallTimeoutError, FetchError, FetchErrorKind
from csp_scanner.adapters.yfinance import YFinanceChainClient, classify_exception

EARNINGS_TS = 1705536000  # 2024-01-18 UTC


@pytest.fixture
def ticker_mock():
    ticker = MagicMock()
    ticker.info = {"currentPrice": 100.0, "earningsTimestamp": EARNINGS_TS, "regularMarketChangePercent": -1.2}
    ticker.options = ["2024-01-12", "2024-01-19", "2024-02-16"]
    return ticker


def make_option_chain(rows=None) -> SimpleNamespace:
    puts = pd.DataFrame(
        rows
        if rows is not None
        else {
            "contractSymbol": ["AAPL240119P00095000", "AAPL240119P00090000"],
            "strike": [95.0, 90.0],
            "lastPrice": [1.10, 0.55],
            "volume": [12, float("nan")],
            "openInterest": [220, 80],
            "impliedVolatility": [0.31, 0.35],
            "bid": [1.05, 0.50],
            "ask": [1.15, 0.60],
        }
    )
    return SimpleNamespace(calls=pd.DataFrame(), puts=puts)


def make_client(ticker) -> YFinanceChainClient:
    return YFinanceChainClient(ticker_factory=lambda _: ticker, call_timeout_seconds=2, today=lambda: date(2024, 1, 15))


def test_fetch_uses_nearest_upcoming_expiration(ticker_mock):
    ticker_mock.option_chain.return_value = make_option_chain()

    snapshot = make_client(ticker_mock).fetch("AAPL")

    ticker_mock.option_chain.assert_called_once_with("2024-01-19")
    assert snapshot.expiration == date(2024, 1, 19)
    assert snapshot.quote.price == 100.0
    assert snapshot.quote.percent_change == -1.2
    assert snapshot.quote.earnings_date == date(2024, 1, 18)
    assert [put.strike for put in snapshot.puts] == [95.0, 90.0]
    assert snapshot.puts[0].implied_volatility == pytest.approx(31.0)
    assert snapshot.puts[1].volume == 0


def test_missing_expirations_is_not_found(ticker_mock):
    ticker_mock.options = ["2023-12-29"]

    with pytest.raises(FetchError) as excinfo:
        make_client(ticker_mock).fetch("AAPL")

    assert excinfo.value.kind is FetchErrorKind.NOT_FOUND
    ticker_mock.option_chain.assert_not_called()


def test_empty_put_frame_is_empty_chain(ticker_mock):
    ticker_mock.option_chain.return_value = SimpleNamespace(calls=pd.DataFrame(), puts=pd.DataFrame())

    with pytest.raises(FetchError) as excinfo:
        make_client(ticker_mock).fetch("AAPL")

    assert excinfo.value.kind is FetchErrorKind.EMPTY_CHAIN


def test_rate_limit_is_retryable(ticker_mock):
    ticker_mock.option_chain.side_effect = Exception("Too Many Requests. Rate limited. Try after a while.")

    with pytest.raises(FetchError) as excinfo:
        make_client(ticker_mock).fetch("AAPL")

    assert excinfo.value.kind is FetchErrorKind.RATE_LIMITED
    assert excinfo.value.retryable


def test_price_falls_back_to_fast_info(ticker_mock):
    ticker_mock.info = {}
    ticker_mock.fast_info = {"last_price": 101.5}
    ticker_mock.option_chain.return_value = make_option_chain()

    snapshot = make_client(ticker_mock).fetch("AAPL")

    assert snapshot.quote.price == 101.5
    assert snapshot.quote.earnings_date is None


class YFRateLimitError(Exception):
    pass


@pytest.mark.parametrize(
    "exc, kind",
    [
        (YFRateLimitError(), FetchErrorKind.RATE_LIMITED),
        (CallTimeoutError("slow"), FetchErrorKind.UNREACHABLE),
        (requests.exceptions.ConnectionError("refused"), FetchErrorKind.UNREACHABLE),
        (KeyError("strike"), FetchErrorKind.MALFORMED),
        (RuntimeError("boom"), FetchErrorKind.UNREACHABLE),
    ],
)
def test_classify_exception(exc, kind):
    assert classify_exception("AAPL", exc).kind is kind
