r"""backend\app\models\schemas.py

Pydantic models used throughout the engine and the API.

These models serve as both request payload validators and response
serialisation schemas.  Field names are snake_case in Python and camelCase
on the wire (``productId``, ``saleDate`` ...); either spelling is accepted
on input.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_REORDER_POINT = 5
DEFAULT_LOW_STOCK_THRESHOLD = 10

ProductId = Union[int, str]


def to_naive_utc(value: datetime) -> datetime:
    """Drop timezone information after converting to UTC."""

    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Inputs supplied by the storage adapter


class SaleRecord(CamelModel):
    """A single sale of one product."""

    product_id: ProductId
    quantity: int = Field(..., ge=0)
    sale_date: datetime
    revenue: Optional[float] = Field(None, ge=0)

    @field_validator("sale_date")
    @classmethod
    def _normalise_sale_date(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class ProductSnapshot(CamelModel):
    """Point-in-time view of a product's stock and pricing."""

    id: ProductId
    name: Optional[str] = None
    stock_quantity: int = Field(..., ge=0)
    reorder_point: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    price: float = Field(0.0, ge=0)

    @property
    def effective_reorder_point(self) -> int:
        if self.reorder_point is None:
            return DEFAULT_REORDER_POINT
        return self.reorder_point

    @property
    def effective_low_stock_threshold(self) -> int:
        if self.low_stock_threshold is None:
            return DEFAULT_LOW_STOCK_THRESHOLD
        return self.low_stock_threshold

    @property
    def display_name(self) -> str:
        return self.name or f"Product {self.id}"


class ForecastRecord(CamelModel):
    """A previously generated forecast, as persisted by the caller."""

    product_id: ProductId
    created_at: datetime
    forecast_date: Optional[date] = None
    forecast_quantity: Optional[int] = None
    confidence: Optional[float] = None

    @field_validator("created_at")
    @classmethod
    def _normalise_created_at(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


# ---------------------------------------------------------------------------
# Derived results


class ForecastResult(CamelModel):
    """Per-day demand forecast; every list has one entry per horizon day."""

    dates: List[date] = Field(default_factory=list)
    quantities: List[int] = Field(default_factory=list)
    revenues: List[float] = Field(default_factory=list)
    confidence: List[float] = Field(
        default_factory=list, description="Half-width of the uncertainty band for each day"
    )
    errors: List[str] = Field(default_factory=list, description="Warnings raised while forecasting")


class ForecastMetadata(CamelModel):
    algorithm: str = Field(..., description="holt_winters, simple_exponential, naive_growth or none")
    product_id: Optional[ProductId] = None
    generated_at: datetime
    data_points: int = Field(..., description="Number of raw sale records used")
    trend_slope: float = Field(0.0, description="Least-squares change in daily quantity per day")
    seasonality: List[float] = Field(
        default_factory=list, description="Normalised index per position in the seasonal cycle"
    )


class ForecastResponse(CamelModel):
    """A forecast together with how it was produced."""

    forecast: ForecastResult
    metadata: ForecastMetadata


class AlertType(str, Enum):
    CRITICAL = "critical"
    TREND = "trend"
    PRICE = "price"
    INVENTORY = "inventory"


class Alert(CamelModel):
    """An operational alert; priority 1 is the most urgent."""

    id: str
    type: AlertType
    message: str
    product_id: ProductId
    timestamp: datetime
    priority: int = Field(..., ge=1, le=4)


class DashboardMetrics(CamelModel):
    total_products: int
    low_stock_items: int
    out_of_stock: int
    sales_value: float = Field(..., description="Revenue over the recent sales window")


class DashboardResponse(CamelModel):
    metrics: DashboardMetrics
    low_stock_products: List[ProductSnapshot]
    alerts: List[Alert]
