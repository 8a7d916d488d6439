from __future__ import annotations

from datetime import date, timedelta

import pytest

from csp_scanner.config.loader import RiskSettings
from csp_scanner.models.contract import PutCandidate, Quote
from csp_scanner.models.report import RiskLevel
from csp_scanner.scanner.risk import classify, risk_warnings

TODAY = date(2024, 1, 15)
EXPIRATION = date(2024, 1, 19)


def make_candidate(
    *,
    otm: float = 8.0,
    oi: int = 1000,
    bid: float = 1.0,
    ask: float = 1.1,
    iv: float | None = 30.0,
) -> PutCandidate:
    mid = (bid + ask) / 2
    return PutCandidate(
        strike=92.0,
        bid=bid,
        ask=ask,
        volume=100,
        open_interest=oi,
        implied_volatility=iv,
        mid=mid,
        otm_percent=otm,
        weekly_return_percent=mid / 92.0 * 100,
        spread_percent=(ask - bid) / mid * 100,
        meets_target=True,
        in_preferred_band=True,
    )


def run_classify(best: PutCandidate, *, days_to_expiry: int = 4, earnings: date | None = None, thresholds=None):
    quote = Quote(symbol="XYZ", price=100.0, earnings_date=earnings)
    return classify(
        quote,
        EXPIRATION,
        days_to_expiry,
        earnings,
        [best],
        best,
        thresholds=thresholds,
        today=TODAY,
    )


def test_clean_setup_is_low_risk() -> None:
    flags = run_classify(make_candidate())

    assert flags.active() == []
    assert flags.risk_level is RiskLevel.LOW


@pytest.mark.parametrize("days, expected", [(0, True), (2, True), (7, True), (8, False), (-1, False)])
def test_earnings_horizon(days: int, expected: bool) -> None:
    flags = run_classify(make_candidate(), earnings=TODAY + timedelta(days=days))

    assert flags.earnings_imminent is expected
    assert (flags.risk_level is RiskLevel.EXTREME) is expected


def test_elevated_volatility_threshold_is_configurable() -> None:
    best = make_candidate(iv=55.0)

    assert run_classify(best).elevated_volatility is True
    assert run_classify(best, thresholds=RiskSettings(iv_threshold=60)).elevated_volatility is False


def test_high_risk_needs_thin_cushion() -> None:
    wide_cushion = run_classify(make_candidate(iv=70.0, otm=8.0))
    thin_cushion = run_classify(make_candidate(iv=70.0, otm=4.0))
    illiquid_thin = run_classify(make_candidate(oi=20, otm=3.5))

    assert wide_cushion.risk_level is RiskLevel.MEDIUM
    assert thin_cushion.risk_level is RiskLevel.HIGH
    assert illiquid_thin.liquidity_risk is True
    assert illiquid_thin.risk_level is RiskLevel.HIGH


def test_execution_and_theta_flags() -> None:
    flags = run_classify(make_candidate(bid=0.5, ask=0.8), days_to_expiry=2)

    assert flags.execution_risk is True
    assert flags.theta_risk is True
    assert flags.risk_level is RiskLevel.MEDIUM
    assert set(flags.active()) == {"execution_risk", "theta_risk"}


def test_spread_threshold_is_configurable() -> None:
    best = make_candidate(bid=1.0, ask=1.25)  # ~22% of mid

    assert run_classify(best).execution_risk is True
    assert run_classify(best, thresholds=RiskSettings(max_spread_percent=25)).execution_risk is False


def test_no_best_candidate_only_time_rules_apply() -> None:
    quote = Quote(symbol="XYZ", price=100.0)
    flags = classify(quote, EXPIRATION, 1, None, [], None, today=TODAY)

    assert flags.liquidity_risk is False
    assert flags.execution_risk is False
    assert flags.theta_risk is True
    assert flags.average_iv is None


def test_warnings_cover_each_active_flag() -> None:
    best = make_candidate(oi=20, bid=0.5, ask=0.8, iv=80.0)
    earnings = TODAY + timedelta(days=3)
    flags = run_classify(best, days_to_expiry=1, earnings=earnings)

    warnings = risk_warnings(flags, earnings_date=earnings, best=best, days_to_expiry=1)

    assert len(warnings) == 5
    assert "2024-01-18" in warnings[0]
