"""Qualitative analysis layer merged on top of the deterministic scan."""

from .client import AnalysisClient, AnalysisUnavailableError, AnthropicAnalysisClient, create_analysis_client
from .narrative import NarrativeMerger, extract_json_object, fallback_narrative

__all__ = [
    "AnalysisClient",
    "AnalysisUnavailableError",
    "AnthropicAnalysisClient",
    "NarrativeMerger",
    "create_analysis_client",
    "extract_json_object",
    "fallback_narrative",
]
