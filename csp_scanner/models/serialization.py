"""Serialization helpers shared between the CLI and callers of the scan service."""

from __future__ import annotations

import json
from typing import Any, Dict

from .report import ScanReport, TickerResult

IDEMPOTENCE_EXCLUDE = {"generated_at"}


def serialize_ticker_result(result: TickerResult) -> Dict[str, Any]:
    """Return a JSON-compatible representation of a ticker result."""

    return result.model_dump(mode="json")


def serialize_scan_report(report: ScanReport, *, include_timestamp: bool = True) -> Dict[str, Any]:
    """Return a JSON-compatible payload for a scan report."""

    exclude = None if include_timestamp else set(IDEMPOTENCE_EXCLUDE)
    return report.model_dump(mode="json", exclude=exclude)


def scan_report_to_json(report: ScanReport, *, indent: int | None = None) -> str:
    return json.dumps(serialize_scan_report(report), indent=indent, default=str)


__all__ = [
    "IDEMPOTENCE_EXCLUDE",
    "scan_report_to_json",
    "serialize_scan_report",
    "serialize_ticker_result",
]
