from __future__ import annotations

import threading
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pytest

from csp_scanner.adapters.base import ChainSnapshot, QuoteChainClient
from csp_scanner.config.loader import AppSettings, settings_from_mapping
from csp_scanner.models.contract import OptionContract, Quote

TODAY = date(2024, 1, 15)
EXPIRATION = date(2024, 1, 19)

# (strike, bid, ask, open_interest, implied_volatility %)
PutRow = Tuple[float, float, float, int, Optional[float]]


def make_snapshot(
    symbol: str,
    price: Optional[float],
    puts: Iterable[PutRow],
    *,
    expiration: date = EXPIRATION,
    earnings_in_days: Optional[int] = None,
) -> ChainSnapshot:
    earnings = TODAY + timedelta(days=earnings_in_days) if earnings_in_days is not None else None
    quote = Quote(
        symbol=symbol,
        price=price,
        percent_change=-0.5,
        fifty_two_week_high=(price or 0) * 1.3,
        fifty_two_week_low=(price or 0) * 0.7,
        earnings_date=earnings,
    )
    contracts = [
        OptionContract(strike=strike, bid=bid, ask=ask, volume=50, open_interest=oi, implied_volatility=iv)
        for strike, bid, ask, oi, iv in puts
    ]
    return ChainSnapshot(quote=quote, expiration=expiration, puts=contracts)


class FakeChainClient(QuoteChainClient):
    """In-memory provider returning canned snapshots or raising canned errors."""

    def __init__(self, responses: Dict[str, Union[ChainSnapshot, Exception, List]]) -> None:
        self.responses = dict(responses)
        self.calls: List[str] = []
        self.release = threading.Event()
        self.blocked: set[str] = set()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "fake"

    def fetch(self, symbol: str) -> ChainSnapshot:
        with self._lock:
            self.calls.append(symbol)
        if symbol in self.blocked:
            self.release.wait(timeout=5)
        response = self.responses[symbol]
        if isinstance(response, list):
            with self._lock:
                response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def settings() -> AppSettings:
    return settings_from_mapping(
        {
            "universe": {"default_tickers": []},
            "analysis": {"enabled": False},
            "scan": {"timeout_seconds": 5, "retry_base_delay": 0, "retry_jitter": 0},
        },
        env="test",
    )


@pytest.fixture
def today():
    return lambda: TODAY
