"""Derived return metrics for out-of-the-money puts."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from csp_scanner.models.contract import OptionContract, PutCandidate, Quote

Band = Tuple[float, float]


class InvalidQuoteError(ValueError):
    """Raised when a quote has no usable (positive) price."""


def mid_price(bid: float, ask: float) -> float:
    return (bid + ask) / 2


def otm_percent(price: float, strike: float) -> float:
    return (price - strike) / price * 100


def weekly_return_percent(mid: float, strike: float) -> float:
    return mid / strike * 100


def spread_percent(bid: float, ask: float) -> Optional[float]:
    mid = mid_price(bid, ask)
    if mid == 0:
        return None
    return (ask - bid) / mid * 100


def in_band(value: float, band: Band) -> bool:
    low, high = band
    return low <= value <= high


def require_price(quote: Quote) -> float:
    if quote.price is None or quote.price <= 0:
        raise InvalidQuoteError(f"{quote.symbol}: missing or non-positive price ({quote.price!r})")
    return float(quote.price)


def build_candidate(
    contract: OptionContract,
    price: float,
    *,
    preferred_band: Band,
    target_return_percent: Optional[float] = None,
) -> PutCandidate:
    mid = mid_price(contract.bid, contract.ask)
    weekly = weekly_return_percent(mid, contract.strike)
    otm = otm_percent(price, contract.strike)
    return PutCandidate(
        strike=contract.strike,
        bid=contract.bid,
        ask=contract.ask,
        volume=contract.volume,
        open_interest=contract.open_interest,
        implied_volatility=contract.implied_volatility,
        mid=mid,
        otm_percent=otm,
        weekly_return_percent=weekly,
        spread_percent=spread_percent(contract.bid, contract.ask),
        meets_target=target_return_percent is not None and weekly >= target_return_percent,
        in_preferred_band=in_band(otm, preferred_band),
    )


def derive_candidates(
    quote: Quote,
    contracts: Iterable[OptionContract],
    *,
    otm_band: Band = (3.0, 20.0),
    preferred_band: Band = (5.0, 10.0),
    limit: int = 10,
    min_bid: float = 0.0,
    target_return_percent: Optional[float] = None,
) -> List[PutCandidate]:
    """Return the top ``limit`` puts inside ``otm_band``, highest weekly return first.

    Contracts with ``bid <= min_bid`` are dropped. Ties on weekly return are
    broken by the higher strike so the ordering is stable for identical input.

    Raises:
        InvalidQuoteError: If the quote has no positive price.
    """

    price = require_price(quote)
    candidates = [
        build_candidate(
            contract,
            price,
            preferred_band=preferred_band,
            target_return_percent=target_return_percent,
        )
        for contract in contracts
        if contract.bid > min_bid
    ]
    retained = [candidate for candidate in candidates if in_band(candidate.otm_percent, otm_band)]
    retained.sort(key=lambda c: (-c.weekly_return_percent, -c.strike))
    return retained[: max(limit, 0)]


def average_implied_volatility(candidates: Sequence[PutCandidate]) -> Optional[float]:
    values = [c.implied_volatility for c in candidates if c.implied_volatility is not None]
    if not values:
        return None
    return sum(values) / len(values)


__all__ = [
    "InvalidQuoteError",
    "average_implied_volatility",
    "build_candidate",
    "derive_candidates",
    "in_band",
    "mid_price",
    "otm_percent",
    "require_price",
    "spread_percent",
    "weekly_return_percent",
]
