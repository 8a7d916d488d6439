"""Cash-secured put scanner."""

from __future__ import annotations

from typing import Any

__version__ = "0.1.0"


def run_scan(*args: Any, **kwargs: Any):  # pragma: no cover - thin wrapper
    """Lazily import the scan service and run a scan."""

    from .scanner.service import run_scan as _impl

    return _impl(*args, **kwargs)


__all__ = ["__version__", "run_scan"]
