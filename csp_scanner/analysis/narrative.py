"""Merge the analysis service's commentary with the deterministic scan data.

The service is treated as an unreliable text channel: its reply may wrap the
JSON in prose or markdown fences, or not contain JSON at all. Whatever comes
back, :meth:`NarrativeMerger.merge` returns a fully populated
:class:`~csp_scanner.models.report.Narrative`, falling back to rules derived
from the risk flags when the reply cannot be used.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from csp_scanner.config.loader import AppSettings, RiskSettings
from csp_scanner.models.report import Narrative, Recommendation, RiskLevel, RiskFlags, TickerResult
from csp_scanner.scanner.risk import risk_warnings

from .client import AnalysisClient, AnalysisUnavailableError

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```[a-zA-Z]*")

RESPONSE_SHAPE = """{
  "recommendedStrike": <number or null>,
  "recommendation": "<SELL/WAIT/AVOID>",
  "recommendationReasoning": "<2 sentences>",
  "warnings": ["<risks>"],
  "riskLevel": "<LOW/MEDIUM/HIGH/EXTREME>",
  "keyFactors": ["<positives>"]
}"""


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the first balanced ``{...}`` object found in ``text``.

    Raises:
        AnalysisUnavailableError: If no complete object can be parsed.
    """

    cleaned = _FENCE.sub("", text or "")
    start = cleaned.find("{")
    while start != -1:
        end = _matching_brace(cleaned, start)
        if end is None:
            start = cleaned.find("{", start + 1)
            continue
        try:
            parsed = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            start = cleaned.find("{", start + 1)
            continue
        if isinstance(parsed, dict):
            return parsed
        start = cleaned.find("{", end + 1)
    raise AnalysisUnavailableError("no JSON object found in analysis reply")


def _matching_brace(text: str, start: int) -> Optional[int]:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def build_prompt(
    focus: TickerResult,
    target_return_percent: float,
    *,
    max_candidates: int = 3,
    max_chars: int = 2000,
) -> str:
    """Compact, size-bounded summary of the focus ticker for the analysis service."""

    quote = focus.quote
    risk = focus.risk or RiskFlags()
    price = f"${quote.price:g} ({quote.percent_change:+.2f}% today)" if quote and quote.price else "n/a"
    low = quote.fifty_two_week_low if quote else None
    high = quote.fifty_two_week_high if quote else None
    earnings = focus.earnings_date.isoformat() if focus.earnings_date else "Not scheduled"
    if focus.has_earnings_risk:
        earnings += " - WITHIN RISK HORIZON"
    avg_iv = f"{risk.average_iv:.0f}%" if risk.average_iv is not None else "n/a"

    header = [
        "You are an options risk analyst reviewing cash-secured put candidates. Analyze this data briefly.",
        "",
        f"TICKER: {focus.symbol}",
        f"- Price: {price}",
        f"- 52-Week: {low if low is not None else 'n/a'} - {high if high is not None else 'n/a'}",
        f"- Earnings: {earnings}",
        f"- Expiry: {focus.expiration.isoformat() if focus.expiration else 'n/a'} ({focus.days_to_expiry} days)",
        f"- Avg IV: {avg_iv}",
        f"- Target weekly return: {target_return_percent:.2f}%",
        f"- Risk flags: {', '.join(risk.active()) or 'none'}",
        "",
        "TOP PUTS:",
    ]
    lines = [
        f"${c.strike:g}: bid ${c.bid:.2f} ask ${c.ask:.2f}, OTM {c.otm_percent:.1f}%, "
        f"return {c.weekly_return_percent:.2f}%, OI {c.open_interest}"
        for c in focus.ranked[:max_candidates]
    ] or ["None"]
    footer = "\n\nReturn ONLY JSON:\n" + RESPONSE_SHAPE

    body = "\n".join(header + lines)
    while len(body) + len(footer) > max_chars and len(lines) > 1:
        lines = lines[:-1]
        body = "\n".join(header + lines)
    # The response shape is never truncated; the data summary absorbs the cut.
    return body[: max(max_chars - len(footer), 0)] + footer


def fallback_narrative(
    focus: TickerResult,
    target_return_percent: float,
    thresholds: RiskSettings | None = None,
) -> Narrative:
    """Rule-based narrative used whenever the analysis reply is unusable."""

    thresholds = thresholds or RiskSettings()
    risk = focus.risk or RiskFlags()
    best = focus.best_contract
    warnings = risk_warnings(
        risk,
        earnings_date=focus.earnings_date,
        best=best,
        days_to_expiry=focus.days_to_expiry,
        thresholds=thresholds,
    )

    if focus.has_earnings_risk:
        recommendation = Recommendation.AVOID
        when = f" ({focus.earnings_date.isoformat()})" if focus.earnings_date else ""
        reasoning = (
            f"Earnings are imminent{when}, so the stock can gap through any strike. "
            "Avoid selling puts until after the report."
        )
        strike = None
    elif best is not None and best.meets_target:
        recommendation = Recommendation.SELL
        reasoning = (
            f"The ${best.strike:g} put pays {best.weekly_return_percent:.2f}% for the week "
            f"with a {best.otm_percent:.1f}% cushion. That meets the {target_return_percent:.2f}% target."
        )
        strike = best.strike
    elif best is not None:
        recommendation = Recommendation.WAIT
        reasoning = (
            f"The best put (${best.strike:g}, {best.weekly_return_percent:.2f}%) is below the "
            f"{target_return_percent:.2f}% target. Wait for richer premium or accept a lower return."
        )
        strike = best.strike
    else:
        recommendation = Recommendation.WAIT
        reasoning = "No puts with a bid sit inside the OTM band. Review the chain again later."
        strike = None

    key_factors: List[str] = []
    if best is not None and not focus.has_earnings_risk:
        key_factors.append(f"{best.otm_percent:.1f}% OTM cushion")
        if best.meets_target:
            key_factors.append(f"{best.weekly_return_percent:.2f}% weekly return meets target")
        if not risk.liquidity_risk:
            key_factors.append(f"Open interest {best.open_interest}")
        if best.spread_percent is not None and not risk.execution_risk:
            key_factors.append(f"Bid/ask spread {best.spread_percent:.1f}% of mid")

    return Narrative(
        recommended_strike=strike,
        recommendation=recommendation,
        recommendation_reasoning=reasoning,
        warnings=warnings,
        risk_level=risk.risk_level,
        key_factors=key_factors,
        source="fallback",
    )


def _string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    return [str(item).strip() for item in value if str(item).strip()]


def merge_analysis(payload: Mapping[str, Any], fallback: Narrative) -> Narrative:
    """Overlay the service's fields on ``fallback``; unusable fields keep the fallback value.

    Raises:
        AnalysisUnavailableError: If the reply has no usable recommendation.
    """

    try:
        recommendation = Recommendation(str(payload.get("recommendation", "")).strip().upper())
    except ValueError as exc:
        raise AnalysisUnavailableError("analysis reply has no valid recommendation") from exc
    if recommendation is Recommendation.ERROR:
        raise AnalysisUnavailableError("analysis reply has no valid recommendation")

    try:
        risk_level = RiskLevel(str(payload.get("riskLevel", "")).strip().upper())
    except ValueError:
        risk_level = fallback.risk_level

    strike = payload.get("recommendedStrike")
    try:
        strike = float(strike) if strike is not None else None
    except (TypeError, ValueError):
        strike = None
    if strike is not None and strike <= 0:
        strike = None
    if strike is None and recommendation is not Recommendation.AVOID:
        strike = fallback.recommended_strike

    reasoning = payload.get("recommendationReasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        reasoning = fallback.recommendation_reasoning

    warnings = _string_list(payload.get("warnings"))
    merged_warnings = list(warnings) if warnings is not None else []
    for warning in fallback.warnings:
        if warning not in merged_warnings:
            merged_warnings.append(warning)

    key_factors = _string_list(payload.get("keyFactors"))

    return Narrative(
        recommended_strike=strike,
        recommendation=recommendation,
        recommendation_reasoning=reasoning.strip(),
        warnings=merged_warnings,
        risk_level=risk_level,
        key_factors=key_factors if key_factors is not None else list(fallback.key_factors),
        source="analysis",
    )


class NarrativeMerger:
    """Ask the analysis service about the focus ticker and merge its answer."""

    def __init__(self, client: Optional[AnalysisClient], settings: AppSettings) -> None:
        self.client = client
        self.settings = settings

    def merge(self, focus: TickerResult, *, target_return_percent: float) -> Narrative:
        fallback = fallback_narrative(focus, target_return_percent, self.settings.risk)
        if self.client is None:
            return fallback

        analysis = self.settings.analysis
        prompt = build_prompt(
            focus,
            target_return_percent,
            max_candidates=analysis.max_candidates,
            max_chars=analysis.max_prompt_chars,
        )
        try:
            reply = self.client.complete(prompt, timeout=analysis.timeout_seconds)
            return merge_analysis(extract_json_object(reply), fallback)
        except AnalysisUnavailableError as exc:
            logger.info("Using fallback narrative for %s: %s", focus.symbol, exc)
        except Exception:
            logger.warning("Analysis client failed for %s; using fallback narrative", focus.symbol, exc_info=True)
        return fallback


__all__ = [
    "NarrativeMerger",
    "RESPONSE_SHAPE",
    "build_prompt",
    "extract_json_object",
    "fallback_narrative",
    "merge_analysis",
]
