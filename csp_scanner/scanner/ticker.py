"""Per-ticker scan: fetch, derive, classify, with failures confined to the ticker."""

from __future__ import annotations

import logging
import random
import time
from datetime import date
from typing import Callable

from csp_scanner.adapters.base import ChainSnapshot, FetchError, QuoteChainClient
from csp_scanner.config.loader import AppSettings
from csp_scanner.models.report import TickerResult, TickerStage

from .metrics import InvalidQuoteError, derive_candidates
from .risk import classify
from .selection import rank_candidates, ticker_verdict

logger = logging.getLogger(__name__)


class TickerScanner:
    """Runs one ticker through ``pending -> fetching -> deriving -> classifying -> done``.

    Any exception moves the ticker straight to ``failed``; the error is recorded
    on the returned :class:`TickerResult` instead of being raised.
    """

    def __init__(
        self,
        client: QuoteChainClient,
        settings: AppSettings,
        *,
        today: Callable[[], date] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.settings = settings
        self._today = today or date.today
        self._sleep = sleep

    def scan(self, symbol: str, target_return_percent: float) -> TickerResult:
        stage = TickerStage.PENDING
        try:
            stage = self._enter(symbol, TickerStage.FETCHING)
            snapshot = self._fetch(symbol)

            stage = self._enter(symbol, TickerStage.DERIVING)
            filters = self.settings.filters
            candidates = derive_candidates(
                snapshot.quote,
                snapshot.puts,
                otm_band=filters.otm_band,
                preferred_band=filters.preferred_band,
                limit=filters.max_candidates,
                min_bid=filters.min_bid,
                target_return_percent=target_return_percent,
            )
            ranked = rank_candidates(candidates)
            best = ranked[0] if ranked else None

            stage = self._enter(symbol, TickerStage.CLASSIFYING)
            today = self._today()
            days_to_expiry = max(0, (snapshot.expiration - today).days)
            earnings_date = snapshot.quote.earnings_date
            flags = classify(
                snapshot.quote,
                snapshot.expiration,
                days_to_expiry,
                earnings_date,
                candidates,
                best,
                thresholds=self.settings.risk,
                today=today,
            )

            result = TickerResult(
                symbol=symbol,
                stage=TickerStage.DONE,
                quote=snapshot.quote,
                expiration=snapshot.expiration,
                days_to_expiry=days_to_expiry,
                earnings_date=earnings_date,
                has_earnings_risk=flags.earnings_imminent,
                candidates=candidates,
                ranked=ranked,
                best_contract=best,
                risk=flags,
            )
        except FetchError as exc:
            logger.warning("Fetch failed for %s during %s: %s", symbol, stage.value, exc.message)
            return TickerResult.failed(symbol, exc.message, f"FetchError:{exc.kind.value}")
        except InvalidQuoteError as exc:
            logger.warning("Invalid quote for %s: %s", symbol, exc)
            return TickerResult.failed(symbol, str(exc), "InvalidQuoteError")
        except Exception as exc:
            logger.exception("Unexpected failure scanning %s during %s", symbol, stage.value)
            return TickerResult.failed(symbol, str(exc) or exc.__class__.__name__, exc.__class__.__name__)

        recommendation, reason = ticker_verdict(result)
        logger.debug("%s done: %d candidates, verdict %s", symbol, len(candidates), recommendation.value)
        return result.model_copy(update={"recommendation": recommendation, "reason": reason})

    def _enter(self, symbol: str, stage: TickerStage) -> TickerStage:
        logger.debug("%s -> %s", symbol, stage.value)
        return stage

    def _fetch(self, symbol: str) -> ChainSnapshot:
        max_attempts = self.settings.scan.max_attempts
        attempt = 0
        while True:
            try:
                return self.client.fetch(symbol)
            except FetchError as exc:
                attempt += 1
                if not exc.retryable or attempt >= max_attempts:
                    raise
                logger.info(
                    "Retrying %s after %s (attempt %d/%d)", symbol, exc.kind.value, attempt, max_attempts
                )
                self._backoff(attempt - 1)

    def _backoff(self, attempt: int) -> None:
        scan = self.settings.scan
        delay = min(scan.retry_max_delay, scan.retry_base_delay * (1 + attempt))
        delay += random.uniform(0, scan.retry_jitter)
        self._sleep(delay)


__all__ = ["TickerScanner"]
