from .contract import OptionContract, PutCandidate, Quote
from .report import (
    BestPick,
    Narrative,
    Recommendation,
    RiskFlags,
    RiskLevel,
    ScanReport,
    ScanRequest,
    ShortlistEntry,
    TickerResult,
    TickerStage,
)
from .serialization import scan_report_to_json, serialize_scan_report, serialize_ticker_result

__all__ = [
    "BestPick",
    "Narrative",
    "OptionContract",
    "PutCandidate",
    "Quote",
    "Recommendation",
    "RiskFlags",
    "RiskLevel",
    "ScanReport",
    "ScanRequest",
    "ShortlistEntry",
    "TickerResult",
    "TickerStage",
    "scan_report_to_json",
    "serialize_scan_report",
    "serialize_ticker_result",
]
