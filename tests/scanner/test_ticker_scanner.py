from __future__ import annotations

from unittest.mock import MagicMock

from csp_scanner.adapters.base import FetchError, FetchErrorKind
from csp_scanner.config.loader import settings_from_mapping
from csp_scanner.models.report import Recommendation, RiskLevel, TickerStage
from csp_scanner.scanner.ticker import TickerScanner

from conftest import EXPIRATION, FakeChainClient, make_snapshot

PUTS = [
    (99.0, 1.50, 1.60, 900, 25.0),  # 1% OTM, outside band
    (95.0, 1.10, 1.20, 800, 28.0),  # 5% OTM, ~1.21%
    (91.0, 0.95, 1.05, 600, 30.0),  # 9% OTM, ~1.10%
    (85.0, 0.30, 0.40, 300, 35.0),  # 15% OTM, below target
]


def test_successful_scan_reaches_done(settings, today) -> None:
    client = FakeChainClient({"XYZ": make_snapshot("XYZ", 100.0, PUTS)})
    scanner = TickerScanner(client, settings, today=today)

    result = scanner.scan("XYZ", 1.0)

    assert result.ok
    assert result.stage is TickerStage.DONE
    assert result.expiration == EXPIRATION
    assert result.days_to_expiry == 4
    assert [c.strike for c in result.candidates] == [95.0, 91.0, 85.0]
    assert result.best_contract.strike == 91.0
    assert result.ranked[0] is result.best_contract
    assert result.risk.risk_level is RiskLevel.LOW
    assert result.recommendation is Recommendation.SELL
    assert result.has_earnings_risk is False


def test_earnings_inside_horizon_marks_avoid(settings, today) -> None:
    client = FakeChainClient({"XYZ": make_snapshot("XYZ", 100.0, PUTS, earnings_in_days=3)})

    result = TickerScanner(client, settings, today=today).scan("XYZ", 1.0)

    assert result.has_earnings_risk is True
    assert result.risk.risk_level is RiskLevel.EXTREME
    assert result.recommendation is Recommendation.AVOID
    assert result.reason == "Earnings 2024-01-18"


def test_empty_band_leaves_no_best_contract(settings, today) -> None:
    client = FakeChainClient({"XYZ": make_snapshot("XYZ", 100.0, [(99.0, 1.0, 1.1, 100, 20.0)])})

    result = TickerScanner(client, settings, today=today).scan("XYZ", 1.0)

    assert result.ok
    assert result.candidates == []
    assert result.best_contract is None
    assert result.recommendation is Recommendation.WAIT


def test_fetch_error_becomes_failed_result(settings, today) -> None:
    client = FakeChainClient({"BAD": FetchError("BAD", FetchErrorKind.NOT_FOUND, "no options listed")})

    result = TickerScanner(client, settings, today=today).scan("BAD", 1.0)

    assert not result.ok
    assert result.stage is TickerStage.FAILED
    assert result.error == "no options listed"
    assert result.error_type == "FetchError:not_found"
    assert result.recommendation is Recommendation.ERROR


def test_missing_price_is_reported_as_invalid_quote(settings, today) -> None:
    client = FakeChainClient({"XYZ": make_snapshot("XYZ", None, PUTS)})

    result = TickerScanner(client, settings, today=today).scan("XYZ", 1.0)

    assert result.error_type == "InvalidQuoteError"


def test_unexpected_exception_is_isolated(settings, today) -> None:
    client = FakeChainClient({"XYZ": RuntimeError("parser exploded")})

    result = TickerScanner(client, settings, today=today).scan("XYZ", 1.0)

    assert result.error == "parser exploded"
    assert result.error_type == "RuntimeError"


def test_retryable_errors_are_retried_with_backoff(today) -> None:
    settings = settings_from_mapping(
        {"scan": {"max_attempts": 3, "retry_base_delay": 0.5, "retry_max_delay": 0.75, "retry_jitter": 0}},
        env="test",
    )
    client = FakeChainClient(
        {
            "XYZ": [
                FetchError("XYZ", FetchErrorKind.RATE_LIMITED),
                FetchError("XYZ", FetchErrorKind.UNREACHABLE),
                make_snapshot("XYZ", 100.0, PUTS),
            ]
        }
    )
    sleep = MagicMock()

    result = TickerScanner(client, settings, today=today, sleep=sleep).scan("XYZ", 1.0)

    assert result.ok
    assert client.calls == ["XYZ", "XYZ", "XYZ"]
    assert [call.args[0] for call in sleep.call_args_list] == [0.5, 0.75]


def test_non_retryable_errors_fail_immediately(today) -> None:
    settings = settings_from_mapping({"scan": {"max_attempts": 3}}, env="test")
    client = FakeChainClient({"XYZ": FetchError("XYZ", FetchErrorKind.EMPTY_CHAIN)})
    sleep = MagicMock()

    result = TickerScanner(client, settings, today=today, sleep=sleep).scan("XYZ", 1.0)

    assert result.error_type == "FetchError:empty_chain"
    assert client.calls == ["XYZ"]
    sleep.assert_not_called()
