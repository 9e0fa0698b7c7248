"""
Application configuration utilities.

This module defines the ``Settings`` class used throughout the service for
environment variables and provides helper functions to load YAML files
containing the forecasting constants and alerting thresholds.
"""

from __future__ import annotations

import logging
import operator
import os
from dataclasses import dataclass, fields
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

import yaml
from pydantic import BaseModel, Field, create_model
from pydantic_settings import BaseSettings, SettingsConfigDict

LOGGER = logging.getLogger(__name__)

SETTINGS_FILE = "settings.yaml"
THRESHOLDS_FILE = "thresholds.yaml"


class Settings(BaseSettings):
    """Configuration loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # API server configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Directory holding settings.yaml and thresholds.yaml
    config_dir: str = "configs"

    # Comma separated list; empty means "*"
    cors_origins: str = ""

    log_level: str = "INFO"


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return a cached instance of ``Settings``.

    Using a cache ensures that environment variables are only read once.
    """
    return Settings()


def config_root() -> str:
    """Return the configured YAML directory, honouring ``CONFIG_DIR``."""

    return os.getenv("CONFIG_DIR", get_settings().config_dir)


def load_yaml(file_path: str) -> dict:
    """Load a YAML file from the given path and return its contents.

    If the file does not exist, an empty dictionary is returned.
    """
    if not os.path.exists(file_path):
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        LOGGER.warning("Configuration at %s is not a mapping; ignoring it.", file_path)
        return {}
    return loaded


# ---------------------------------------------------------------------------
# Typed views over the YAML files
#
# The bounds tables are the single definition of each tunable's valid range:
# the YAML loaders fall back to the default outside them, and the config
# endpoints build their partial-update models from them.

Bounds = Mapping[str, float]

_T = TypeVar("_T")

_COMPARATORS = {"gt": operator.gt, "ge": operator.ge, "lt": operator.lt, "le": operator.le}
_NON_NEGATIVE: Bounds = {"ge": 0}
_FRACTION: Bounds = {"gt": 0.0, "le": 1.0}
_POSITIVE: Bounds = {"gt": 0}


def _within(value: Any, bounds: Bounds) -> bool:
    return all(_COMPARATORS[op](value, limit) for op, limit in bounds.items())


def _coerce(cls_name: str, key: str, raw: Any, default: Any, bounds: Bounds) -> Any:
    caster = type(default)
    fractional = caster is int and isinstance(raw, float) and not raw.is_integer()
    if isinstance(raw, bool) or fractional:
        LOGGER.warning("%s.%s=%r is not a %s; using %r", cls_name, key, raw, caster.__name__, default)
        return default
    try:
        value = caster(raw)
    except (TypeError, ValueError):
        LOGGER.warning("%s.%s=%r is not a %s; using %r", cls_name, key, raw, caster.__name__, default)
        return default
    if not _within(value, bounds):
        LOGGER.warning("%s.%s=%r is out of range; using %r", cls_name, key, raw, default)
        return default
    return value


def _from_mapping(cls: Type[_T], data: Mapping[str, Any], bounds: Mapping[str, Bounds]) -> _T:
    values: Dict[str, Any] = {}
    for field in fields(cls):  # type: ignore[arg-type]
        if field.name not in data or data[field.name] is None:
            continue
        values[field.name] = _coerce(
            cls.__name__,
            field.name,
            data[field.name],
            field.default,
            bounds.get(field.name, _NON_NEGATIVE),
        )
    return cls(**values)


def partial_update_model(name: str, cls: type, bounds: Mapping[str, Bounds]) -> Type[BaseModel]:
    """Build a pydantic model with every field of ``cls`` optional and bounded."""

    definitions: Dict[str, Tuple[Any, Any]] = {
        field.name: (
            Optional[type(field.default)],
            Field(None, **bounds.get(field.name, _NON_NEGATIVE)),
        )
        for field in fields(cls)
    }
    return create_model(name, **definitions)


FORECAST_SETTING_BOUNDS: Mapping[str, Bounds] = {
    "alpha": _FRACTION,
    "beta": _FRACTION,
    "gamma": _FRACTION,
    "fallback_alpha": _FRACTION,
    "seasonality_period": {"ge": 1, "le": 365},
    "min_data_points": {"ge": 2},
    "max_horizon_days": {"ge": 1, "le": 365},
    "confidence_level": {"ge": 0.5, "lt": 1.0},
}

ALERT_THRESHOLD_BOUNDS: Mapping[str, Bounds] = {
    "recent_window_days": {"ge": 1},
    "trend_increase_ratio": _POSITIVE,
    "trend_decrease_ratio": _POSITIVE,
    "max_price_increase_pct": {"ge": 0, "le": 100},
    "max_price_decrease_pct": {"ge": 0, "le": 100},
    "price_step_factor": _POSITIVE,
    "excess_window_days": {"ge": 1},
    "dashboard_sales_window_days": {"ge": 1},
}


@dataclass(frozen=True, slots=True)
class ForecastSettings:
    """Smoothing constants and fallbacks for the demand forecaster."""

    alpha: float = 0.2
    beta: float = 0.1
    gamma: float = 0.3
    seasonality_period: int = 7
    min_data_points: int = 14
    max_horizon_days: int = 90
    fallback_alpha: float = 0.3
    confidence_level: float = 0.95
    default_variance: float = 0.1
    naive_monthly_growth: float = 0.05
    naive_confidence: float = 0.6
    empty_confidence: float = 0.5

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ForecastSettings":
        return _from_mapping(cls, data, FORECAST_SETTING_BOUNDS)


@dataclass(frozen=True, slots=True)
class AlertThresholds:
    """Business heuristics driving the alert rules.

    These are tunable, so every ratio and window lives here rather than in
    the rule bodies.
    """

    recent_window_days: int = 7
    trend_min_history_records: int = 5
    trend_increase_ratio: float = 1.5
    trend_decrease_ratio: float = 0.6
    stale_forecast_days: int = 14
    price_min_records: int = 3
    high_velocity: float = 1.0
    low_velocity: float = 0.2
    high_stock_multiplier: float = 2.0
    low_stock_multiplier: float = 3.0
    max_price_increase_pct: int = 15
    max_price_decrease_pct: int = 25
    price_step_factor: float = 5.0
    excess_window_days: int = 30
    excess_days_of_supply: float = 120.0
    excess_min_stock: int = 10
    dashboard_sales_window_days: int = 30

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AlertThresholds":
        return _from_mapping(cls, data, ALERT_THRESHOLD_BOUNDS)


def load_forecast_settings(root: str | None = None) -> ForecastSettings:
    path = os.path.join(root or config_root(), SETTINGS_FILE)
    return ForecastSettings.from_mapping(load_yaml(path))


def load_alert_thresholds(root: str | None = None) -> AlertThresholds:
    path = os.path.join(root or config_root(), THRESHOLDS_FILE)
    return AlertThresholds.from_mapping(load_yaml(path))
