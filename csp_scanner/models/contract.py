from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class Quote(BaseModel):
    """Spot quote for an underlying as reported by the market data provider."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str
    price: Optional[float] = None
    percent_change: float = Field(default=0.0, alias="percentChange")
    fifty_two_week_high: Optional[float] = Field(default=None, alias="fiftyTwoWeekHigh")
    fifty_two_week_low: Optional[float] = Field(default=None, alias="fiftyTwoWeekLow")
    earnings_date: Optional[date] = Field(default=None, alias="earningsDate")

    @field_validator("price", "fifty_two_week_high", "fifty_two_week_low", mode="before")
    @classmethod
    def coerce_optional_float(cls, value: Any) -> Optional[float]:
        return _optional_float(value)

    @field_validator("percent_change", mode="before")
    @classmethod
    def coerce_change(cls, value: Any) -> float:
        return _optional_float(value) or 0.0

    @field_validator("earnings_date", mode="before")
    @classmethod
    def parse_earnings_date(cls, value: Any) -> Optional[date]:
        if value in (None, "", 0):
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            if isinstance(value, (int, float)):
                return datetime.fromtimestamp(value, tz=timezone.utc).date()
            if isinstance(value, str):
                return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
        except (OverflowError, OSError, ValueError):
            pass
        # Earnings date is optional; an unreadable one must not fail the quote.
        logger.warning("Ignoring unparseable earnings date %r", value)
        return None


class OptionContract(BaseModel):
    """Raw put contract row from a provider chain snapshot.

    ``implied_volatility`` is expressed in percent (31.0 rather than 0.31).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    strike: float
    bid: float = 0.0
    ask: float = 0.0
    volume: int = 0
    open_interest: int = Field(default=0, alias="openInterest")
    implied_volatility: Optional[float] = Field(default=None, alias="impliedVolatility")

    @field_validator("volume", "open_interest", mode="before")
    @classmethod
    def coerce_int(cls, value: Any) -> int:
        number = _optional_float(value)
        return max(int(number), 0) if number is not None else 0

    @field_validator("bid", "ask", mode="before")
    @classmethod
    def coerce_price(cls, value: Any) -> float:
        number = _optional_float(value)
        return max(number, 0.0) if number is not None else 0.0

    @field_validator("strike", mode="before")
    @classmethod
    def coerce_strike(cls, value: Any) -> float:
        number = _optional_float(value)
        if number is None or number <= 0:
            raise ValueError("strike must be a positive number")
        return number

    @field_validator("implied_volatility", mode="before")
    @classmethod
    def coerce_iv(cls, value: Any) -> Optional[float]:
        number = _optional_float(value)
        return number if number is not None and number > 0 else None


class PutCandidate(BaseModel):
    """An out-of-the-money put with its derived return and risk metrics."""

    model_config = ConfigDict(frozen=True)

    strike: float
    bid: float
    ask: float
    volume: int
    open_interest: int
    implied_volatility: Optional[float] = None
    mid: float
    otm_percent: float
    weekly_return_percent: float
    spread_percent: Optional[float] = None
    meets_target: bool = False
    in_preferred_band: bool = False


__all__ = ["OptionContract", "PutCandidate", "Quote"]
