"""API endpoints for reading and updating the engine's YAML configuration.

``settings.yaml`` holds the forecasting constants and ``thresholds.yaml`` the
alerting heuristics.  Updates are partial, validated, and written atomically;
the services pick them up on the next process start.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Any, Dict

import yaml
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from ...core.config import (
    ALERT_THRESHOLD_BOUNDS,
    FORECAST_SETTING_BOUNDS,
    SETTINGS_FILE,
    THRESHOLDS_FILE,
    AlertThresholds,
    ForecastSettings,
    config_root,
    load_yaml,
    partial_update_model,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter()

CONFIG_DIR = config_root()


def _config_path(filename: str) -> str:
    return os.path.join(CONFIG_DIR, filename)


def _atomic_dump(path: str, payload: Dict[str, Any]) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    fd, staging = tempfile.mkstemp(prefix=".staging-", suffix=".yaml", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)
        os.replace(staging, path)
    except OSError:
        if os.path.exists(staging):
            os.unlink(staging)
        raise


SettingsUpdate = partial_update_model("SettingsUpdate", ForecastSettings, FORECAST_SETTING_BOUNDS)
ThresholdsUpdate = partial_update_model("ThresholdsUpdate", AlertThresholds, ALERT_THRESHOLD_BOUNDS)


def _read(filename: str) -> Dict[str, Any]:
    path = _config_path(filename)
    if not os.path.exists(path):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "message": f"{filename} not found"},
        )
    return load_yaml(path)


def _apply(filename: str, updates: BaseModel) -> Dict[str, Any]:
    path = _config_path(filename)
    current = load_yaml(path)
    changes = updates.model_dump(exclude_none=True)

    merged = {**current, **changes}
    if merged == current:
        return current

    try:
        _atomic_dump(path, merged)
    except OSError as exc:
        LOGGER.exception("Could not write %s", path)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "write_failed", "message": str(exc)},
        ) from exc

    LOGGER.info("Updated %s keys=%s", filename, sorted(changes))
    return merged


@router.get("/configs/settings")
def get_settings() -> Dict[str, Any]:
    return _read(SETTINGS_FILE)


@router.put("/configs/settings")
def put_settings(body: SettingsUpdate) -> Dict[str, Any]:
    return _apply(SETTINGS_FILE, body)


@router.get("/configs/thresholds")
def get_thresholds() -> Dict[str, Any]:
    return _read(THRESHOLDS_FILE)


@router.put("/configs/thresholds")
def put_thresholds(body: ThresholdsUpdate) -> Dict[str, Any]:
    return _apply(THRESHOLDS_FILE, body)
