"""Deterministic ranking of candidates and tickers.

Within a ticker, puts that meet the return target are preferred, and among
those the ones inside the preferred OTM band with the widest cushion win.
Across tickers the same intent applies to each ticker's best put, after
excluding anything with earnings inside the risk horizon. When nothing meets
the target the highest-yielding put is shown as the closest miss.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from csp_scanner.models.contract import PutCandidate
from csp_scanner.models.report import BestPick, Recommendation, ShortlistEntry, TickerResult


def _candidate_key(candidate: PutCandidate) -> Tuple:
    if candidate.meets_target:
        return (
            0,
            0 if candidate.in_preferred_band else 1,
            -candidate.otm_percent,
            -candidate.weekly_return_percent,
            -candidate.strike,
        )
    return (1, 0, -candidate.weekly_return_percent, -candidate.otm_percent, -candidate.strike)


def rank_candidates(candidates: Iterable[PutCandidate]) -> List[PutCandidate]:
    """Order candidates by recommendation preference; the first entry is the best put."""

    return sorted(candidates, key=_candidate_key)


def eligible_results(results: Iterable[TickerResult]) -> List[TickerResult]:
    return [
        result
        for result in results
        if result.ok and not result.has_earnings_risk and result.best_contract is not None
    ]


def select_best_overall(results: Sequence[TickerResult]) -> Optional[TickerResult]:
    """Pick the single best ticker across a scan, or ``None`` when nothing qualifies."""

    eligible = eligible_results(results)
    meeting = [result for result in eligible if result.best_contract.meets_target]
    if meeting:
        return min(
            meeting,
            key=lambda r: (-r.best_contract.otm_percent, -r.best_contract.weekly_return_percent, r.symbol),
        )
    if eligible:
        return min(eligible, key=lambda r: (-r.best_contract.weekly_return_percent, r.symbol))
    return None


def best_pick_reason(contract: PutCandidate, target_return_percent: float) -> str:
    reason = f"{contract.otm_percent:.1f}% OTM, {contract.weekly_return_percent:.2f}% return"
    if not contract.meets_target:
        reason += f" (below {target_return_percent:.2f}% target)"
    return reason


def to_best_pick(result: Optional[TickerResult], target_return_percent: float) -> Optional[BestPick]:
    if result is None or result.best_contract is None:
        return None
    contract = result.best_contract
    return BestPick(
        symbol=result.symbol,
        contract=contract,
        meets_target=contract.meets_target,
        reason=best_pick_reason(contract, target_return_percent),
    )


def select_focus(
    results: Sequence[TickerResult],
    requested: Optional[str] = None,
    best: Optional[TickerResult] = None,
) -> Optional[TickerResult]:
    successful = [result for result in results if result.ok]
    if requested:
        for result in successful:
            if result.symbol == requested:
                return result
    if best is not None:
        return best
    return successful[0] if successful else None


def build_shortlist(focus: Optional[TickerResult], size: int = 3) -> List[ShortlistEntry]:
    if focus is None:
        return []
    return [ShortlistEntry(rank=index, contract=contract) for index, contract in enumerate(focus.ranked[:size], start=1)]


def ticker_verdict(result: TickerResult) -> Tuple[Recommendation, str]:
    """Per-ticker recommendation and short reason shown next to each scan row."""

    if not result.ok:
        return Recommendation.ERROR, result.error or "scan failed"
    if result.has_earnings_risk:
        when = result.earnings_date.isoformat() if result.earnings_date else "imminent"
        return Recommendation.AVOID, f"Earnings {when}"
    if result.best_contract is None:
        return Recommendation.WAIT, "No puts in the OTM band"
    if result.best_contract.meets_target:
        return Recommendation.SELL, f"{result.best_contract.otm_percent:.1f}% cushion"
    return Recommendation.WAIT, "Below target"


__all__ = [
    "best_pick_reason",
    "build_shortlist",
    "eligible_results",
    "rank_candidates",
    "select_best_overall",
    "select_focus",
    "ticker_verdict",
    "to_best_pick",
]
