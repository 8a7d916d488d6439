from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .contract import PutCandidate, Quote


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


class Recommendation(str, Enum):
    SELL = "SELL"
    WAIT = "WAIT"
    AVOID = "AVOID"
    ERROR = "ERROR"


class TickerStage(str, Enum):
    """Lifecycle of a single ticker within a scan."""

    PENDING = "pending"
    FETCHING = "fetching"
    DERIVING = "deriving"
    CLASSIFYING = "classifying"
    DONE = "done"
    FAILED = "failed"


class RiskFlags(BaseModel):
    """Independent risk rules evaluated for one ticker."""

    model_config = ConfigDict(frozen=True)

    earnings_imminent: bool = False
    elevated_volatility: bool = False
    liquidity_risk: bool = False
    execution_risk: bool = False
    theta_risk: bool = False
    average_iv: Optional[float] = None
    risk_level: RiskLevel = RiskLevel.LOW

    def active(self) -> List[str]:
        names = (
            "earnings_imminent",
            "elevated_volatility",
            "liquidity_risk",
            "execution_risk",
            "theta_risk",
        )
        return [name for name in names if getattr(self, name)]


class TickerResult(BaseModel):
    """Outcome of scanning one symbol; failed results only carry the error."""

    symbol: str
    stage: TickerStage = TickerStage.PENDING
    quote: Optional[Quote] = None
    expiration: Optional[date] = None
    days_to_expiry: int = 0
    earnings_date: Optional[date] = None
    has_earnings_risk: bool = False
    candidates: List[PutCandidate] = Field(default_factory=list)
    ranked: List[PutCandidate] = Field(default_factory=list)
    best_contract: Optional[PutCandidate] = None
    risk: Optional[RiskFlags] = None
    recommendation: Recommendation = Recommendation.WAIT
    reason: str = ""
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, symbol: str, error: str, error_type: str, stage: TickerStage = TickerStage.FAILED) -> "TickerResult":
        return cls(
            symbol=symbol,
            stage=stage,
            recommendation=Recommendation.ERROR,
            reason=error,
            error=error,
            error_type=error_type,
        )


class BestPick(BaseModel):
    symbol: str
    contract: PutCandidate
    meets_target: bool
    reason: str


class ShortlistEntry(BaseModel):
    rank: int
    contract: PutCandidate


class Narrative(BaseModel):
    """Qualitative recommendation block for the focus ticker."""

    recommended_strike: Optional[float] = None
    recommendation: Recommendation
    recommendation_reasoning: str
    warnings: List[str] = Field(default_factory=list)
    risk_level: RiskLevel
    key_factors: List[str] = Field(default_factory=list)
    source: str = "fallback"

    @field_validator("recommendation")
    @classmethod
    def reject_error_recommendation(cls, value: Recommendation) -> Recommendation:
        if value is Recommendation.ERROR:
            raise ValueError("Narrative recommendation must be SELL, WAIT or AVOID")
        return value


class ScanRequest(BaseModel):
    tickers: List[str] = Field(default_factory=list)
    target_return_percent: Optional[float] = None
    focus_symbol: Optional[str] = None


class ScanReport(BaseModel):
    results: List[TickerResult] = Field(default_factory=list)
    best_overall: Optional[BestPick] = None
    focus: Optional[TickerResult] = None
    shortlist: List[ShortlistEntry] = Field(default_factory=list)
    narrative: Optional[Narrative] = None
    target_return_percent: float
    market_overview: str = ""
    errors: List[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = [
    "BestPick",
    "Narrative",
    "Recommendation",
    "RiskFlags",
    "RiskLevel",
    "ScanReport",
    "ScanRequest",
    "ShortlistEntry",
    "TickerResult",
    "TickerStage",
]
