"""Command line interface for the cash-secured put scanner."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from csp_scanner.config import get_chain_client, get_settings
from csp_scanner.models import ScanRequest, scan_report_to_json
from csp_scanner.scanner.service import EmptyUniverseError, OptionsScanService

LOG_DIR = Path("logs/csp_scanner")

LOGGER = logging.getLogger("csp_scanner.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scan weekly puts for cash-secured put opportunities")
    parser.add_argument("command", choices=["scan"], help="Command to execute")
    parser.add_argument(
        "--tickers",
        type=str,
        default="",
        help="Comma separated tickers to scan in addition to the configured defaults",
    )
    parser.add_argument("--focus", type=str, default=None, help="Ticker to deep-dive in the narrative")
    parser.add_argument(
        "--target",
        type=float,
        default=None,
        help="Target weekly return in percent (defaults to scan.target_return_percent)",
    )
    parser.add_argument("--env", type=str, default=None, help="Configuration environment (default: APP_ENV or dev)")
    parser.add_argument("--provider", type=str, default=None, help="Override the market data provider")
    parser.add_argument("--no-analysis", action="store_true", help="Skip the analysis service and use rule-based narrative")
    parser.add_argument("--indent", type=int, default=2, help="JSON indentation for the printed report")
    parser.add_argument("--log-file", action="store_true", help=f"Also write logs to {LOG_DIR / 'scan.log'}")
    return parser


def _configure_logging(to_file: bool) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", stream=sys.stderr)
    if not to_file:
        return
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger("csp_scanner")
    if not any(isinstance(existing, logging.FileHandler) for existing in root.handlers):
        handler = logging.FileHandler(LOG_DIR / "scan.log", encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)


def _tokenize_tickers(raw: str) -> Sequence[str]:
    if not raw:
        return []
    return [token.strip() for token in raw.split(",") if token.strip()]


def run_from_args(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings(args.env)
    client = get_chain_client(args.provider, settings.env)
    service = OptionsScanService(client, settings, use_analysis=not args.no_analysis)
    request = ScanRequest(
        tickers=list(_tokenize_tickers(args.tickers)),
        target_return_percent=args.target,
        focus_symbol=args.focus,
    )

    LOGGER.info("Running put scan env=%s provider=%s", settings.env, client.name)
    try:
        report = service.scan(request)
    except EmptyUniverseError as exc:
        LOGGER.error("%s", exc)
        return 2

    print(scan_report_to_json(report, indent=args.indent if args.indent > 0 else None))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser_args = list(sys.argv[1:] if argv is None else argv)
    _configure_logging("--log-file" in parser_args)
    return run_from_args(parser_args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
