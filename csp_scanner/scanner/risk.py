from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence

from csp_scanner.config.loader import RiskSettings
from csp_scanner.models.contract import PutCandidate, Quote
from csp_scanner.models.report import RiskFlags, RiskLevel

from .metrics import average_implied_volatility

# Best-candidate OTM cushion below which volatility/liquidity flags escalate to HIGH.
HIGH_RISK_OTM_CUSHION = 5.0


def days_until(target: Optional[date], today: date) -> Optional[int]:
    if target is None:
        return None
    return (target - today).days


def earnings_within_horizon(earnings_date: Optional[date], today: date, horizon_days: int) -> bool:
    days = days_until(earnings_date, today)
    return days is not None and 0 <= days <= horizon_days


def classify(
    quote: Quote,
    expiration: date,
    days_to_expiry: int,
    earnings_date: Optional[date],
    candidates: Sequence[PutCandidate],
    best: Optional[PutCandidate] = None,
    *,
    thresholds: RiskSettings | None = None,
    today: date | None = None,
) -> RiskFlags:
    """Evaluate each risk rule independently and derive a coarse risk level."""

    thresholds = thresholds or RiskSettings()
    today = today or date.today()
    average_iv = average_implied_volatility(candidates)

    earnings_imminent = earnings_within_horizon(earnings_date, today, thresholds.earnings_horizon_days)
    elevated_volatility = average_iv is not None and average_iv > thresholds.iv_threshold
    liquidity_risk = best is not None and best.open_interest < thresholds.min_open_interest
    execution_risk = (
        best is not None
        and best.spread_percent is not None
        and best.spread_percent > thresholds.max_spread_percent
    )
    theta_risk = days_to_expiry <= thresholds.theta_days

    if earnings_imminent:
        level = RiskLevel.EXTREME
    elif (
        (elevated_volatility or liquidity_risk)
        and best is not None
        and best.otm_percent < HIGH_RISK_OTM_CUSHION
    ):
        level = RiskLevel.HIGH
    elif any((elevated_volatility, liquidity_risk, execution_risk, theta_risk)):
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    return RiskFlags(
        earnings_imminent=earnings_imminent,
        elevated_volatility=elevated_volatility,
        liquidity_risk=liquidity_risk,
        execution_risk=execution_risk,
        theta_risk=theta_risk,
        average_iv=average_iv,
        risk_level=level,
    )


def risk_warnings(
    flags: RiskFlags,
    *,
    earnings_date: Optional[date] = None,
    best: Optional[PutCandidate] = None,
    days_to_expiry: Optional[int] = None,
    thresholds: RiskSettings | None = None,
) -> List[str]:
    """Human readable warnings for every flag that fired."""

    thresholds = thresholds or RiskSettings()
    warnings: List[str] = []
    if flags.earnings_imminent:
        when = f" ({earnings_date.isoformat()})" if earnings_date else ""
        warnings.append(
            f"Earnings within {thresholds.earnings_horizon_days} days{when} - high risk of a gap through the strike"
        )
    if flags.elevated_volatility and flags.average_iv is not None:
        warnings.append(
            f"Elevated implied volatility ({flags.average_iv:.0f}% avg, threshold {thresholds.iv_threshold:.0f}%)"
        )
    if flags.liquidity_risk and best is not None:
        warnings.append(f"Thin liquidity: open interest {best.open_interest} on the ${best.strike:g} put")
    if flags.execution_risk and best is not None and best.spread_percent is not None:
        warnings.append(f"Wide bid/ask spread ({best.spread_percent:.1f}% of mid) - fills may slip")
    if flags.theta_risk:
        days = "" if days_to_expiry is None else f" ({days_to_expiry} days)"
        warnings.append(f"Expiration is imminent{days} - little time to manage the position")
    return warnings


__all__ = [
    "HIGH_RISK_OTM_CUSHION",
    "classify",
    "days_until",
    "earnings_within_horizon",
    "risk_warnings",
]
