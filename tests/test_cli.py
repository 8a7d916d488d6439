from __future__ import annotations

import json
from unittest.mock import patch

from csp_scanner import cli

from conftest import FakeChainClient, make_snapshot


def run_cli(settings, argv, capsys):
    client = FakeChainClient(
        {
            "AAPL": make_snapshot("AAPL", 100.0, [(91.0, 0.95, 1.05, 600, 30.0)]),
            "GOOG": make_snapshot("GOOG", 200.0, [(190.0, 1.00, 1.10, 500, 25.0)]),
        }
    )
    with patch("csp_scanner.cli.get_settings", return_value=settings), patch(
        "csp_scanner.cli.get_chain_client", return_value=client
    ) as chain_mock:
        exit_code = cli.run_from_args(argv)
    return exit_code, capsys.readouterr().out, chain_mock


def test_scan_prints_json_report(settings, capsys):
    exit_code, output, chain_mock = run_cli(
        settings, ["scan", "--tickers", "aapl, goog", "--focus", "GOOG", "--target", "0.5", "--no-analysis"], capsys
    )

    assert exit_code == 0
    chain_mock.assert_called_once_with(None, "test")
    report = json.loads(output)
    assert [row["symbol"] for row in report["results"]] == ["AAPL", "GOOG"]
    assert report["target_return_percent"] == 0.5
    assert report["focus"]["symbol"] == "GOOG"
    assert report["narrative"]["source"] == "fallback"
    assert "generated_at" in report


def test_empty_universe_exits_with_error(settings, capsys):
    exit_code, output, _ = run_cli(settings, ["scan", "--tickers", "!!!"], capsys)

    assert exit_code == 2
    assert output == ""


def test_tokenize_tickers():
    assert cli._tokenize_tickers(" a, ,b ,") == ["a", "b"]
    assert cli._tokenize_tickers("") == []
