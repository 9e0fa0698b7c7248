r"""backend\app\services\alerting_service.py

Rule-based operational alerts derived from product, sales and forecast
snapshots.

Every call recomputes the alert list from scratch.  Rules are grouped by
category with a fixed priority (1 is the most urgent):

* critical stock / out of stock (1) - need no sales history
* sales trend shifts and stale forecasts (2)
* price optimisation (3)
* excess inventory (4)

A rule whose minimum-data precondition is not met for a product is skipped.
A product whose data breaks a rule is logged and skipped as a whole; the
rest of the batch proceeds.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.config import AlertThresholds, load_alert_thresholds
from ..models.schemas import (
    Alert,
    AlertType,
    DashboardMetrics,
    DashboardResponse,
    ForecastRecord,
    ProductId,
    ProductSnapshot,
    SaleRecord,
    to_naive_utc,
)
from .timeseries import round_half_up

LOGGER = logging.getLogger(__name__)

PRIORITY_STOCK = 1
PRIORITY_TREND = 2
PRIORITY_PRICE = 3
PRIORITY_INVENTORY = 4

_SECONDS_PER_DAY = 86_400.0

_M = TypeVar("_M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Helper utilities


def _coerce_records(items: Iterable[Any], model: Type[_M], kind: str) -> List[_M]:
    """Validate ``items`` into ``model`` instances, skipping malformed entries."""

    records: List[_M] = []
    for item in items:
        if isinstance(item, model):
            records.append(item)
            continue
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            LOGGER.warning("Skipping malformed %s record: %s", kind, exc.errors(include_url=False))
    return records


def _days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / _SECONDS_PER_DAY


def _span_days(sales: Sequence[SaleRecord]) -> float:
    """Days between the oldest and newest sale, at least one."""

    dates = [sale.sale_date for sale in sales]
    return max(1.0, _days_between(min(dates), max(dates)))


def _units(sales: Iterable[SaleRecord]) -> int:
    return sum(sale.quantity for sale in sales)


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    return to_naive_utc(now)


class AlertingService:
    """Derive a prioritised alert list and dashboard metrics."""

    def __init__(
        self,
        config_root: str | None = None,
        thresholds: AlertThresholds | None = None,
    ) -> None:
        self.thresholds = thresholds or load_alert_thresholds(config_root)

    # ------------------------------------------------------------------
    @staticmethod
    def _alert(
        alert_type: AlertType,
        product: ProductSnapshot,
        message: str,
        priority: int,
        now: datetime,
    ) -> Alert:
        return Alert(
            id=str(uuid.uuid4()),
            type=alert_type,
            message=message,
            product_id=product.id,
            timestamp=now.replace(tzinfo=timezone.utc),
            priority=priority,
        )

    # ------------------------------------------------------------------
    def _stock_alerts(self, product: ProductSnapshot, now: datetime) -> List[Alert]:
        stock = product.stock_quantity
        reorder_point = product.effective_reorder_point
        name = product.display_name

        if stock == 0:
            message = f"{name} is out of stock! Immediate restocking required."
            return [self._alert(AlertType.CRITICAL, product, message, PRIORITY_STOCK, now)]
        if stock <= reorder_point:
            message = (
                f"{name} has reached critical stock level "
                f"({stock} left, reorder point: {reorder_point})."
            )
            return [self._alert(AlertType.CRITICAL, product, message, PRIORITY_STOCK, now)]
        return []

    # ------------------------------------------------------------------
    def _trend_alerts(
        self,
        product: ProductSnapshot,
        sales: Sequence[SaleRecord],
        forecasts: Sequence[ForecastRecord],
        now: datetime,
    ) -> List[Alert]:
        t = self.thresholds
        cutoff = now - timedelta(days=t.recent_window_days)
        recent = [sale for sale in sales if sale.sale_date >= cutoff]
        historical = [sale for sale in sales if sale.sale_date < cutoff]

        if not recent or len(historical) < t.trend_min_history_records:
            return []

        historical_velocity = _units(historical) / _span_days(historical)
        if historical_velocity <= 0:
            return []

        recent_velocity = _units(recent) / t.recent_window_days
        ratio = recent_velocity / historical_velocity
        name = product.display_name
        alerts: List[Alert] = []

        if ratio > t.trend_increase_ratio:
            percent = round_half_up((ratio - 1) * 100)
            message = (
                f"{name} is selling {percent}% faster than historical average. "
                f"Consider increasing next order by {min(100, percent)}%."
            )
            alerts.append(self._alert(AlertType.TREND, product, message, PRIORITY_TREND, now))

            if forecasts:
                latest = max(forecasts, key=lambda record: record.created_at)
                age_days = round_half_up(_days_between(latest.created_at, now))
                if age_days > t.stale_forecast_days:
                    message = (
                        f"{name} forecast is {age_days} days old and doesn't reflect recent "
                        f"{percent}% sales increase. Update forecast."
                    )
                    alerts.append(self._alert(AlertType.TREND, product, message, PRIORITY_TREND, now))

        if ratio < t.trend_decrease_ratio:
            percent = round_half_up((1 - ratio) * 100)
            message = (
                f"{name} is selling {percent}% slower than historical average. "
                "Consider reducing next order or running promotions."
            )
            alerts.append(self._alert(AlertType.TREND, product, message, PRIORITY_TREND, now))

        return alerts

    # ------------------------------------------------------------------
    def _price_alerts(
        self,
        product: ProductSnapshot,
        sales: Sequence[SaleRecord],
        now: datetime,
    ) -> List[Alert]:
        t = self.thresholds
        if len(sales) < t.price_min_records:
            return []

        velocity = _units(sales) / _span_days(sales)
        stock = product.stock_quantity
        reorder_point = product.effective_reorder_point
        name = product.display_name
        alerts: List[Alert] = []

        if velocity > t.high_velocity and stock > reorder_point * t.high_stock_multiplier:
            increase = min(t.max_price_increase_pct, round_half_up(velocity * t.price_step_factor))
            message = (
                f"Consider increasing the price of '{name}' by {increase}% "
                f"based on strong demand ({velocity:.1f} units/day)."
            )
            alerts.append(self._alert(AlertType.PRICE, product, message, PRIORITY_PRICE, now))

        if velocity < t.low_velocity and stock > reorder_point * t.low_stock_multiplier:
            if velocity > 0:
                decrease = min(t.max_price_decrease_pct, round_half_up(t.price_step_factor / velocity))
            else:
                decrease = t.max_price_decrease_pct
            message = (
                f"Consider decreasing the price of '{name}' by {decrease}% to increase "
                f"sales velocity (currently {velocity:.1f} units/day)."
            )
            alerts.append(self._alert(AlertType.PRICE, product, message, PRIORITY_PRICE, now))

        return alerts

    # ------------------------------------------------------------------
    def _excess_alerts(
        self,
        product: ProductSnapshot,
        sales: Sequence[SaleRecord],
        now: datetime,
    ) -> List[Alert]:
        """Flag stock that would last longer than the days-of-supply ceiling.

        Demand is averaged over the most recent ``excess_window_days`` of the
        product's history, or over the whole history when it is shorter.
        """

        t = self.thresholds
        stock = product.stock_quantity
        if not sales or stock <= t.excess_min_stock:
            return []

        window_days = min(float(t.excess_window_days), _span_days(sales))
        newest = max(sale.sale_date for sale in sales)
        window_start = newest - timedelta(days=window_days)
        average_daily = _units(sale for sale in sales if sale.sale_date >= window_start) / window_days

        days_of_supply = stock / average_daily if average_daily > 0 else math.inf
        if days_of_supply <= t.excess_days_of_supply:
            return []

        if math.isinf(days_of_supply):
            supply_text = "no recent demand"
        else:
            supply_text = f"{round_half_up(days_of_supply)} days of supply"
        message = (
            f"{product.display_name} has excess inventory ({stock} units, {supply_text}). "
            "Consider promotions or inventory reduction."
        )
        return [self._alert(AlertType.INVENTORY, product, message, PRIORITY_INVENTORY, now)]

    # ------------------------------------------------------------------
    def _alerts_for_product(
        self,
        product: ProductSnapshot,
        sales: Sequence[SaleRecord],
        forecasts: Sequence[ForecastRecord],
        now: datetime,
    ) -> List[Alert]:
        alerts = self._stock_alerts(product, now)
        if sales:
            alerts.extend(self._trend_alerts(product, sales, forecasts, now))
            alerts.extend(self._price_alerts(product, sales, now))
            alerts.extend(self._excess_alerts(product, sales, now))
        return alerts

    # ------------------------------------------------------------------
    def generate_alerts(
        self,
        products: Iterable[Any],
        sales_history: Iterable[Any],
        forecast_history: Iterable[Any] = (),
        *,
        now: Optional[datetime] = None,
    ) -> List[Alert]:
        """Return all alerts for ``products`` sorted by ascending priority."""

        current = _resolve_now(now)
        product_list = _coerce_records(products, ProductSnapshot, "product")

        sales_by_product: Dict[ProductId, List[SaleRecord]] = {}
        for sale in _coerce_records(sales_history, SaleRecord, "sale"):
            sales_by_product.setdefault(sale.product_id, []).append(sale)

        forecasts_by_product: Dict[ProductId, List[ForecastRecord]] = {}
        for record in _coerce_records(forecast_history, ForecastRecord, "forecast"):
            forecasts_by_product.setdefault(record.product_id, []).append(record)

        alerts: List[Alert] = []
        for product in product_list:
            try:
                alerts.extend(
                    self._alerts_for_product(
                        product,
                        sales_by_product.get(product.id, []),
                        forecasts_by_product.get(product.id, []),
                        current,
                    )
                )
            except (ArithmeticError, TypeError, ValueError):
                LOGGER.exception("Skipping alerts for product %s", product.id)

        alerts.sort(key=lambda alert: alert.priority)
        LOGGER.info("Generated %d alerts for %d products", len(alerts), len(product_list))
        return alerts

    # ------------------------------------------------------------------
    def dashboard(
        self,
        products: Iterable[Any],
        sales_history: Iterable[Any],
        forecast_history: Iterable[Any] = (),
        *,
        now: Optional[datetime] = None,
    ) -> DashboardResponse:
        """Headline inventory metrics together with the alert list."""

        current = _resolve_now(now)
        product_list = _coerce_records(products, ProductSnapshot, "product")
        sales = _coerce_records(sales_history, SaleRecord, "sale")

        low_stock = [
            product
            for product in product_list
            if product.stock_quantity <= product.effective_low_stock_threshold
        ]
        cutoff = current - timedelta(days=self.thresholds.dashboard_sales_window_days)
        sales_value = round(sum(sale.revenue or 0.0 for sale in sales if sale.sale_date >= cutoff), 2)

        metrics = DashboardMetrics(
            total_products=len(product_list),
            low_stock_items=len(low_stock),
            out_of_stock=sum(1 for product in product_list if product.stock_quantity == 0),
            sales_value=sales_value,
        )
        return DashboardResponse(
            metrics=metrics,
            low_stock_products=low_stock,
            alerts=self.generate_alerts(product_list, sales, forecast_history, now=current),
        )


def generate_alerts(
    products: Iterable[Any],
    sales_history: Iterable[Any],
    forecast_history: Iterable[Any] = (),
    *,
    thresholds: AlertThresholds | None = None,
    now: Optional[datetime] = None,
) -> List[Alert]:
    """Alert list with explicit (or default) thresholds; reads no configuration files."""

    service = AlertingService(thresholds=thresholds or AlertThresholds())
    return service.generate_alerts(products, sales_history, forecast_history, now=now)
