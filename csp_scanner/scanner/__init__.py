"""Scan pipeline building blocks.

The orchestrating service lives in :mod:`csp_scanner.scanner.service` and is
imported from there directly.
"""

from .metrics import InvalidQuoteError, derive_candidates
from .risk import classify
from .selection import rank_candidates, select_best_overall, select_focus
from .ticker import TickerScanner
from .universe import build_universe

__all__ = [
    "InvalidQuoteError",
    "TickerScanner",
    "build_universe",
    "classify",
    "derive_candidates",
    "rank_candidates",
    "select_best_overall",
    "select_focus",
]
