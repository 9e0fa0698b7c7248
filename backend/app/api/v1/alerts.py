r"""backend\app\api\v1\alerts.py

Routes for operational alerts and the dashboard summary.

Records are accepted as loose JSON objects and validated one by one in the
service, so a single malformed product or sale is skipped instead of failing
the whole request.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import Field

from ...core.observability import ALERTS_GENERATED
from ...models import schemas
from ...services.alerting_service import AlertingService

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_alerting_service = AlertingService()


def _error_payload(code: str, message: str) -> dict[str, str]:
    return {"error": code, "message": message}


class AlertsRequest(schemas.CamelModel):
    products: List[Dict[str, Any]] = Field(default_factory=list, description="ProductSnapshot objects")
    sales: List[Dict[str, Any]] = Field(default_factory=list, description="SaleRecord objects")
    forecasts: List[Dict[str, Any]] = Field(default_factory=list, description="ForecastRecord objects")
    now: Optional[datetime] = Field(None, description="Reference time; defaults to now")


class AlertsResponse(schemas.CamelModel):
    alerts: List[schemas.Alert]


def _record_alerts(alerts: List[schemas.Alert]) -> None:
    for alert in alerts:
        ALERTS_GENERATED.labels(alert.type.value).inc()


@router.post("/alerts", response_model=AlertsResponse)
def create_alerts(body: AlertsRequest) -> AlertsResponse:
    """Return the prioritised alert list for the supplied snapshots."""

    try:
        alerts = _alerting_service.generate_alerts(
            body.products, body.sales, body.forecasts, now=body.now
        )
    except Exception as exc:  # pragma: no cover - defensive programming
        LOGGER.exception("Unexpected error while generating alerts")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_payload("alerts_failed", "An unexpected error occurred while generating alerts."),
        ) from exc

    _record_alerts(alerts)
    return AlertsResponse(alerts=alerts)


@router.post("/dashboard", response_model=schemas.DashboardResponse)
def create_dashboard(body: AlertsRequest) -> schemas.DashboardResponse:
    """Return headline inventory metrics, low-stock products and alerts."""

    try:
        dashboard = _alerting_service.dashboard(
            body.products, body.sales, body.forecasts, now=body.now
        )
    except Exception as exc:  # pragma: no cover - defensive programming
        LOGGER.exception("Unexpected error while building the dashboard")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_payload("dashboard_failed", "An unexpected error occurred while building the dashboard."),
        ) from exc

    _record_alerts(dashboard.alerts)
    return dashboard
