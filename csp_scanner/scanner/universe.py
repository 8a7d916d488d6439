"""Helpers for constructing the deduplicated ticker universe for a scan."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

_NON_LETTERS = re.compile(r"[^A-Z]")


def normalize_symbol(raw: object, max_length: int = 5) -> Optional[str]:
    """Upper-case ``raw``, drop anything that is not a letter and truncate.

    Returns ``None`` when nothing is left.
    """

    if raw is None:
        return None
    cleaned = _NON_LETTERS.sub("", str(raw).upper())[:max_length]
    return cleaned or None


def normalize_universe(symbols: Iterable[object], max_length: int = 5) -> List[str]:
    seen: set[str] = set()
    cleaned: List[str] = []
    for raw in symbols:
        normalized = normalize_symbol(raw, max_length)
        if normalized is None:
            logger.warning("Rejecting invalid ticker symbol %r", raw)
            continue
        if normalized in seen:
            continue
        seen.add(normalized)
        cleaned.append(normalized)
    return cleaned


def build_universe(
    defaults: Iterable[object],
    extra: Iterable[object] = (),
    focus: Optional[object] = None,
    *,
    max_length: int = 5,
) -> List[str]:
    """Return defaults, then caller symbols, then the focus symbol, without duplicates."""

    symbols: List[object] = [*defaults, *extra]
    if focus is not None:
        symbols.append(focus)
    return normalize_universe(symbols, max_length)


__all__ = ["build_universe", "normalize_symbol", "normalize_universe"]
