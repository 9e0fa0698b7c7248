"""Routes for demand forecasting."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import Field

from ...core.observability import FORECAST_RUNS
from ...models import schemas
from ...services.forecasting_service import ForecastingService

LOGGER = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_HORIZON_DAYS = 30

_forecast_service = ForecastingService()


def _error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


class ForecastRequest(schemas.CamelModel):
    """Sales history to forecast; out-of-range horizons are clamped, not rejected."""

    sales: List[schemas.SaleRecord] = Field(default_factory=list)
    horizon_days: int = Field(DEFAULT_HORIZON_DAYS, description="Forecast horizon in days")
    product_id: Optional[schemas.ProductId] = Field(
        None, description="Restrict the forecast to this product's sales"
    )
    as_of: Optional[datetime] = Field(None, description="Reference time; defaults to now")


class BatchForecastRequest(schemas.CamelModel):
    sales: List[schemas.SaleRecord] = Field(default_factory=list)
    horizon_days: int = Field(DEFAULT_HORIZON_DAYS, description="Forecast horizon in days")
    as_of: Optional[datetime] = None


class BatchFailure(schemas.CamelModel):
    product_id: schemas.ProductId
    message: str


class BatchForecastResponse(schemas.CamelModel):
    forecasts: List[schemas.ForecastResponse]
    failures: List[BatchFailure]


@router.post("/forecasts", response_model=schemas.ForecastResponse)
def create_forecast(body: ForecastRequest) -> schemas.ForecastResponse:
    """Return a demand and revenue forecast for the supplied sales history."""

    LOGGER.info(
        "Forecast request received product_id=%s records=%s horizon=%s",
        body.product_id,
        len(body.sales),
        body.horizon_days,
    )
    try:
        response = _forecast_service.forecast(
            body.sales,
            body.horizon_days,
            product_id=body.product_id,
            as_of=body.as_of,
        )
    except (TypeError, ValueError) as exc:
        LOGGER.warning("Forecast rejected for product_id=%s: %s", body.product_id, exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error_payload("invalid_request", str(exc)),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive programming
        LOGGER.exception("Unexpected error while forecasting product_id=%s", body.product_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_payload("forecast_failed", "An unexpected error occurred while forecasting."),
        ) from exc

    FORECAST_RUNS.labels(response.metadata.algorithm).inc()
    return response


@router.post("/forecasts/batch", response_model=BatchForecastResponse)
def create_batch_forecasts(body: BatchForecastRequest) -> BatchForecastResponse:
    """Forecast every product present in the sales history independently."""

    try:
        batch = _forecast_service.forecast_many(body.sales, body.horizon_days, as_of=body.as_of)
    except (TypeError, ValueError) as exc:
        LOGGER.warning("Batch forecast rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error_payload("invalid_request", str(exc)),
        ) from exc

    for response in batch.forecasts.values():
        FORECAST_RUNS.labels(response.metadata.algorithm).inc()

    return BatchForecastResponse(
        forecasts=list(batch.forecasts.values()),
        failures=[
            BatchFailure(product_id=product_id, message=message)
            for product_id, message in batch.failures.items()
        ],
    )
