from __future__ import annotations

from dataclasses import fields
from pathlib import Path
import sys


ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

import yaml

from backend.app.api.v1.configs import SettingsUpdate, ThresholdsUpdate
from backend.app.core.config import (
    AlertThresholds,
    ForecastSettings,
    load_alert_thresholds,
    load_forecast_settings,
    load_yaml,
)


def test_shipped_yaml_matches_defaults() -> None:
    configs = ROOT / "configs"

    assert load_forecast_settings(str(configs)) == ForecastSettings()
    assert load_alert_thresholds(str(configs)) == AlertThresholds()


def test_missing_files_give_defaults(tmp_path: Path) -> None:
    assert load_yaml(str(tmp_path / "absent.yaml")) == {}
    assert load_forecast_settings(str(tmp_path)) == ForecastSettings()
    assert load_alert_thresholds(str(tmp_path)) == AlertThresholds()


def test_non_mapping_yaml_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump([1, 2, 3]))

    assert load_yaml(str(path)) == {}


def test_values_are_read_from_yaml(tmp_path: Path) -> None:
    (tmp_path / "settings.yaml").write_text(
        yaml.safe_dump({"alpha": 0.5, "max_horizon_days": 60, "unknown_key": True})
    )
    (tmp_path / "thresholds.yaml").write_text(yaml.safe_dump({"stale_forecast_days": 21}))

    settings = load_forecast_settings(str(tmp_path))
    thresholds = load_alert_thresholds(str(tmp_path))

    assert settings.alpha == 0.5
    assert settings.max_horizon_days == 60
    assert settings.beta == 0.1
    assert thresholds.stale_forecast_days == 21


def test_invalid_values_fall_back_to_defaults(caplog) -> None:
    settings = ForecastSettings.from_mapping(
        {"alpha": 1.5, "seasonality_period": 0, "confidence_level": "high"}
    )
    thresholds = AlertThresholds.from_mapping({"trend_increase_ratio": -1, "excess_min_stock": "x"})

    assert settings.alpha == 0.2
    assert settings.seasonality_period == 7
    assert settings.confidence_level == 0.95
    assert thresholds.trend_increase_ratio == 1.5
    assert thresholds.excess_min_stock == 10
    assert "out of range" in caplog.text


def test_integer_settings_reject_fractional_values(caplog) -> None:
    settings = ForecastSettings.from_mapping({"seasonality_period": 7.9, "max_horizon_days": 60.0})

    assert settings.seasonality_period == 7
    assert settings.max_horizon_days == 60
    assert "seasonality_period=7.9 is not a int" in caplog.text


def test_loader_applies_the_same_upper_bounds_as_the_api() -> None:
    settings = ForecastSettings.from_mapping({"seasonality_period": 400, "max_horizon_days": 366})
    thresholds = AlertThresholds.from_mapping({"max_price_increase_pct": 150})

    assert settings.seasonality_period == 7
    assert settings.max_horizon_days == 90
    assert thresholds.max_price_increase_pct == 15


def test_update_models_cover_every_tunable() -> None:
    assert set(SettingsUpdate.model_fields) == {field.name for field in fields(ForecastSettings)}
    assert set(ThresholdsUpdate.model_fields) == {field.name for field in fields(AlertThresholds)}
