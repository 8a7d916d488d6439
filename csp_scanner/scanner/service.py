"""Multi-ticker scan service: concurrent per-ticker scans, ranking and narrative."""

from __future__ import annotations

import concurrent.futures
import logging
import time
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence

from csp_scanner.adapters import create_adapter
from csp_scanner.adapters.base import QuoteChainClient
from csp_scanner.analysis.client import AnalysisClient, create_analysis_client
from csp_scanner.analysis.narrative import NarrativeMerger
from csp_scanner.config import get_settings
from csp_scanner.config.loader import AppSettings
from csp_scanner.models.report import ScanReport, ScanRequest, TickerResult

from .selection import build_shortlist, select_best_overall, select_focus, to_best_pick
from .ticker import TickerScanner
from .universe import build_universe, normalize_symbol

logger = logging.getLogger(__name__)


class EmptyUniverseError(ValueError):
    """Raised when no valid symbol is left to scan."""


class ScanTimeoutError(TimeoutError):
    """A ticker did not finish before the scan deadline."""


class OptionsScanService:
    """Scan a ticker universe for cash-secured put opportunities.

    The data provider and analysis client are injected, so the same service
    covers every provider/target combination through configuration.
    """

    def __init__(
        self,
        client: QuoteChainClient | None = None,
        settings: AppSettings | None = None,
        *,
        analysis_client: AnalysisClient | None = None,
        use_analysis: bool = True,
        today: Callable[[], date] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = client or create_adapter(self.settings.adapter.provider, **self.settings.adapter.settings)
        if analysis_client is None and use_analysis:
            analysis_client = create_analysis_client(self.settings.analysis)
        self.merger = NarrativeMerger(analysis_client if use_analysis else None, self.settings)
        self.ticker_scanner = TickerScanner(self.client, self.settings, today=today, sleep=sleep)

    def build_universe(self, request: ScanRequest) -> List[str]:
        universe = self.settings.universe
        symbols = build_universe(
            universe.default_tickers,
            request.tickers,
            request.focus_symbol,
            max_length=universe.max_symbol_length,
        )
        if not symbols:
            raise EmptyUniverseError("No valid ticker symbols to scan")
        return symbols

    def scan(self, request: ScanRequest | None = None) -> ScanReport:
        request = request or ScanRequest()
        target = request.target_return_percent
        if target is None:
            target = self.settings.scan.target_return_percent
        symbols = self.build_universe(request)

        logger.info("Scanning %d tickers via %s (target %.2f%%)", len(symbols), self.client.name, target)
        results = self.scan_symbols(symbols, target)

        best = select_best_overall(results)
        focus_symbol = normalize_symbol(request.focus_symbol, self.settings.universe.max_symbol_length)
        focus = select_focus(results, focus_symbol, best)
        narrative = self.merger.merge(focus, target_return_percent=target) if focus is not None else None
        best_pick = to_best_pick(best, target)

        succeeded = sum(1 for result in results if result.ok)
        logger.info(
            "Scan finished: %d/%d tickers succeeded, best=%s",
            succeeded,
            len(results),
            best_pick.symbol if best_pick else None,
        )
        return ScanReport(
            results=results,
            best_overall=best_pick,
            focus=focus,
            shortlist=build_shortlist(focus, self.settings.scan.shortlist_size),
            narrative=narrative,
            target_return_percent=target,
            market_overview=_market_overview(succeeded, len(results), best),
            errors=[f"{result.symbol}: {result.error}" for result in results if not result.ok],
        )

    def scan_symbols(self, symbols: Sequence[str], target_return_percent: float) -> List[TickerResult]:
        """Scan ``symbols`` on a bounded pool and return results in input order."""

        scan_settings = self.settings.scan
        if not symbols:
            return []
        slots: List[Optional[TickerResult]] = [None] * len(symbols)

        deadline = time.monotonic() + scan_settings.timeout_seconds
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=min(scan_settings.max_workers, len(symbols)),
            thread_name_prefix="csp-scan",
        )
        future_to_index: Dict[concurrent.futures.Future, int] = {
            executor.submit(self.ticker_scanner.scan, symbol, target_return_percent): index
            for index, symbol in enumerate(symbols)
        }
        pending = set(future_to_index)

        try:
            while pending:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                done, pending = concurrent.futures.wait(
                    pending,
                    timeout=remaining,
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )
                for future in done:
                    index = future_to_index[future]
                    try:
                        slots[index] = future.result()
                    except Exception as exc:  # TickerScanner records its own failures
                        logger.exception("Scan task for %s crashed", symbols[index])
                        slots[index] = TickerResult.failed(symbols[index], str(exc), exc.__class__.__name__)
        finally:
            for future in pending:
                future.cancel()
            executor.shutdown(wait=False, cancel_futures=True)

        if pending:
            logger.warning(
                "Scan deadline of %.1fs reached with %d/%d tickers unfinished",
                scan_settings.timeout_seconds,
                len(pending),
                len(symbols),
            )
        for index, result in enumerate(slots):
            if result is None:
                error = ScanTimeoutError(f"did not finish within {scan_settings.timeout_seconds:g}s")
                slots[index] = TickerResult.failed(symbols[index], str(error), "TimeoutError")
        return [result for result in slots if result is not None]


def _market_overview(succeeded: int, total: int, best: Optional[TickerResult]) -> str:
    overview = f"Scanned {succeeded}/{total} tickers."
    if best is None or best.best_contract is None:
        return f"{overview} No picks found."
    contract = best.best_contract
    return f"{overview} Best: {best.symbol} ${contract.strike:g} put ({contract.weekly_return_percent:.2f}%)."


def run_scan(
    tickers: Sequence[str] = (),
    *,
    target_return_percent: float | None = None,
    focus_symbol: str | None = None,
    settings: AppSettings | None = None,
    use_analysis: bool = True,
) -> ScanReport:
    """Convenience wrapper used by the CLI."""

    service = OptionsScanService(settings=settings, use_analysis=use_analysis)
    request = ScanRequest(
        tickers=list(tickers),
        target_return_percent=target_return_percent,
        focus_symbol=focus_symbol,
    )
    return service.scan(request)


__all__ = [
    "EmptyUniverseError",
    "OptionsScanService",
    "ScanTimeoutError",
    "run_scan",
]
