from __future__ import annotations

import pytest

from csp_scanner.models.contract import OptionContract, Quote
from csp_scanner.scanner.metrics import (
    InvalidQuoteError,
    average_implied_volatility,
    derive_candidates,
    spread_percent,
)


def make_quote(price) -> Quote:
    return Quote(symbol="XYZ", price=price)


def test_reference_contract_metrics() -> None:
    contract = OptionContract(strike=100, bid=2.00, ask=2.20, volume=10, open_interest=500)

    [candidate] = derive_candidates(make_quote(106), [contract], target_return_percent=1.0)

    assert candidate.mid == pytest.approx(2.10)
    assert candidate.otm_percent == pytest.approx(5.66, abs=0.005)
    assert candidate.weekly_return_percent == pytest.approx(2.10)
    assert candidate.spread_percent == pytest.approx(9.52, abs=0.005)
    assert candidate.meets_target is True
    assert candidate.in_preferred_band is True


def test_filters_to_otm_band_and_positive_bid() -> None:
    contracts = [
        OptionContract(strike=99, bid=1.0, ask=1.2),  # 1% OTM
        OptionContract(strike=95, bid=0.8, ask=0.9),  # 5% OTM
        OptionContract(strike=90, bid=0.0, ask=0.1),  # no bid
        OptionContract(strike=81, bid=0.2, ask=0.3),  # 19% OTM
        OptionContract(strike=75, bid=0.1, ask=0.2),  # 25% OTM
        OptionContract(strike=105, bid=6.0, ask=6.5),  # in the money
    ]

    candidates = derive_candidates(make_quote(100), contracts)

    assert [c.strike for c in candidates] == [95, 81]


def test_sorted_by_weekly_return_and_truncated() -> None:
    contracts = [OptionContract(strike=90 - i, bid=0.5 + i * 0.1, ask=0.6 + i * 0.1) for i in range(12)]

    candidates = derive_candidates(make_quote(100), contracts, limit=10)

    returns = [c.weekly_return_percent for c in candidates]
    assert len(candidates) == 10
    assert returns == sorted(returns, reverse=True)


@pytest.mark.parametrize("price", [None, 0, -5])
def test_missing_or_non_positive_price_raises(price) -> None:
    with pytest.raises(InvalidQuoteError):
        derive_candidates(make_quote(price), [OptionContract(strike=90, bid=1, ask=1.1)])


def test_spread_undefined_when_mid_is_zero() -> None:
    assert spread_percent(0.0, 0.0) is None


def test_average_iv_ignores_missing_values() -> None:
    contracts = [
        OptionContract(strike=95, bid=1.0, ask=1.1, implied_volatility=40.0),
        OptionContract(strike=94, bid=0.9, ask=1.0, implied_volatility=60.0),
        OptionContract(strike=93, bid=0.8, ask=0.9),
    ]
    candidates = derive_candidates(make_quote(100), contracts)

    assert average_implied_volatility(candidates) == pytest.approx(50.0)
    assert average_implied_volatility([]) is None
