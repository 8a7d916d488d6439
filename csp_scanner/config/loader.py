"""Environment aware configuration loader for the put scanner."""

from __future__ import annotations

import copy
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_TICKERS = ["GOOG", "AAPL", "TSLA", "NVDA", "AMZN", "META", "MSFT", "SPY"]

DEFAULT_SETTINGS: Dict[str, Any] = {
    "universe": {
        "default_tickers": list(DEFAULT_TICKERS),
        "max_symbol_length": 5,
    },
    "filters": {
        "otm_band": [3.0, 20.0],
        "preferred_band": [5.0, 10.0],
        "max_candidates": 10,
        "min_bid": 0.0,
    },
    "risk": {
        "earnings_horizon_days": 7,
        "iv_threshold": 50.0,
        "min_open_interest": 100,
        "max_spread_percent": 20.0,
        "theta_days": 2,
    },
    "scan": {
        "target_return_percent": 1.0,
        "max_workers": 4,
        "timeout_seconds": 30.0,
        "max_attempts": 1,
        "retry_base_delay": 0.75,
        "retry_max_delay": 4.0,
        "retry_jitter": 0.3,
        "shortlist_size": 3,
    },
    "adapter": {
        "provider": "yfinance",
        "settings": {},
    },
    "analysis": {
        "enabled": True,
        "provider": "anthropic",
        "model": "claude-haiku-4-5-20251001",
        "api_key_env": "ANTHROPIC_API_KEY",
        "base_url": "https://api.anthropic.com",
        "max_tokens": 400,
        "timeout_seconds": 15.0,
        "max_candidates": 3,
        "max_prompt_chars": 2000,
    },
}

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"
ENVIRONMENT_VARIABLE = "APP_ENV"


def _coerce_band(value: Any) -> Tuple[float, float]:
    low, high = (float(item) for item in value)
    if low < 0 or high < low:
        raise ValueError(f"Invalid OTM band: {value!r}")
    return low, high


class UniverseSettings(BaseModel):
    default_tickers: List[str] = Field(default_factory=lambda: list(DEFAULT_TICKERS))
    max_symbol_length: int = 5

    @field_validator("default_tickers", mode="before")
    @classmethod
    def _coerce_tickers(cls, value: Any) -> List[str]:
        return [str(item) for item in (value or [])]


class FilterSettings(BaseModel):
    """OTM bands used for retention (raw) and for ranking (preferred)."""

    otm_band: Tuple[float, float] = (3.0, 20.0)
    preferred_band: Tuple[float, float] = (5.0, 10.0)
    max_candidates: int = 10
    min_bid: float = 0.0

    @field_validator("otm_band", "preferred_band", mode="before")
    @classmethod
    def _validate_band(cls, value: Any) -> Tuple[float, float]:
        return _coerce_band(value)


class RiskSettings(BaseModel):
    earnings_horizon_days: int = 7
    iv_threshold: float = 50.0
    min_open_interest: int = 100
    max_spread_percent: float = 20.0
    theta_days: int = 2


class ScanSettings(BaseModel):
    target_return_percent: float = 1.0
    max_workers: int = Field(default=4, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=1, ge=1)
    retry_base_delay: float = 0.75
    retry_max_delay: float = 4.0
    retry_jitter: float = 0.3
    shortlist_size: int = Field(default=3, ge=1)


class AdapterSettings(BaseModel):
    provider: str = "yfinance"
    settings: Dict[str, Any] = Field(default_factory=dict)


class AnalysisSettings(BaseModel):
    enabled: bool = True
    provider: str = "anthropic"
    model: str = "claude-haiku-4-5-20251001"
    api_key_env: str = "ANTHROPIC_API_KEY"
    base_url: str = "https://api.anthropic.com"
    max_tokens: int = 400
    timeout_seconds: float = 15.0
    max_candidates: int = Field(default=3, ge=3, le=5)
    max_prompt_chars: int = Field(default=2000, ge=500)


class AppSettings(BaseModel):
    """Fully resolved application settings loaded from YAML."""

    model_config = ConfigDict(frozen=True)

    env: str
    universe: UniverseSettings
    filters: FilterSettings
    risk: RiskSettings
    scan: ScanSettings
    adapter: AdapterSettings
    analysis: AnalysisSettings

    @field_validator("env")
    @classmethod
    def _normalize_env(cls, value: str) -> str:
        return value.lower()

    @model_validator(mode="after")
    def _check_bands(self) -> "AppSettings":
        raw_low, raw_high = self.filters.otm_band
        low, high = self.filters.preferred_band
        if low < raw_low or high > raw_high:
            raise ValueError("preferred_band must sit inside otm_band")
        return self


def _deep_merge(base: MutableMapping[str, Any], overrides: Mapping[str, Any]) -> MutableMapping[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, Mapping):
            existing = base.get(key)
            if isinstance(existing, MutableMapping):
                base[key] = _deep_merge(copy.deepcopy(existing), value)
            else:
                base[key] = copy.deepcopy(value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle.read()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping at the root.")
        return data


def settings_from_mapping(overrides: Optional[Mapping[str, Any]] = None, env: str = "custom") -> AppSettings:
    """Build settings from the defaults plus in-memory overrides."""

    merged = _deep_merge(copy.deepcopy(DEFAULT_SETTINGS), overrides or {})
    merged["env"] = env
    return AppSettings.model_validate(merged)


def _build_settings(env: str) -> AppSettings:
    config_path = CONFIG_DIR / f"{env}.yaml"
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file for environment '{env}' not found at {config_path}")

    return settings_from_mapping(_load_yaml(config_path), env=env)


@lru_cache(maxsize=None)
def _cached_settings(env: str) -> AppSettings:
    return _build_settings(env)


def get_settings(env: Optional[str] = None) -> AppSettings:
    """Load settings for the requested environment (default: APP_ENV or 'dev')."""

    resolved_env = (env or os.getenv(ENVIRONMENT_VARIABLE, "dev")).strip().lower()
    return _cached_settings(resolved_env)


def reset_settings_cache() -> None:
    """Clear the cached settings, primarily used during tests."""

    _cached_settings.cache_clear()


__all__ = [
    "AdapterSettings",
    "AnalysisSettings",
    "AppSettings",
    "FilterSettings",
    "RiskSettings",
    "ScanSettings",
    "UniverseSettings",
    "get_settings",
    "reset_settings_cache",
    "settings_from_mapping",
]
