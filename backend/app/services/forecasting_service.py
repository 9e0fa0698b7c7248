r"""backend\app\services\forecasting_service.py

Demand forecasting service built on seasonal exponential smoothing.

The implementation follows a tiered strategy.  Histories with at least
``min_data_points`` days go through Holt-Winters triple exponential
smoothing; shorter ones use simple exponential smoothing.  Should the
Holt-Winters arithmetic fail, the service degrades to a naive growth
projection from the average daily demand.  Every downgrade is logged and
reported in ``ForecastResult.errors``; the orchestrator never raises for
anything found in the sales data itself.

Holt-Winters runs in two explicit phases: a training pass that updates the
level, trend and seasonal indices from real history only, and a projection
pass that reads the frozen final state.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from numbers import Integral
from statistics import NormalDist
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.config import ForecastSettings, load_forecast_settings
from ..models.schemas import (
    ForecastMetadata,
    ForecastResponse,
    ForecastResult,
    ProductId,
    SaleRecord,
    to_naive_utc,
)
from .timeseries import (
    TimeSeriesPoint,
    detect_trend,
    extract_seasonality,
    preprocess_sales,
    quantities,
    round_half_up,
)

LOGGER = logging.getLogger(__name__)

ALGORITHM_HOLT_WINTERS = "holt_winters"
ALGORITHM_SIMPLE_EXPONENTIAL = "simple_exponential"
ALGORITHM_NAIVE_GROWTH = "naive_growth"
ALGORITHM_NONE = "none"

NAIVE_FALLBACK_WARNING = "Failed to apply advanced forecasting, using fallback method"
ZERO_SEASON_WARNING = "Seasonal index reached zero; used the raw observation to update the level"
ZERO_LEVEL_WARNING = "Level reached zero; kept the previous seasonal index"


# ---------------------------------------------------------------------------
# Helper utilities (kept top-level for straightforward unit testing)


def clamp_horizon(horizon_days: Any, max_horizon_days: int = 90) -> int:
    """Clamp ``horizon_days`` into ``[1, max_horizon_days]``.

    Out-of-range integers are clamped silently; anything that is not an
    integer is a caller error.
    """

    if isinstance(horizon_days, bool) or not isinstance(horizon_days, Integral):
        raise TypeError(f"horizon_days must be an integer, got {type(horizon_days).__name__}")
    return max(1, min(int(horizon_days), max_horizon_days))


def forecast_dates(last_date: date, days: int) -> List[date]:
    """Return ``days`` consecutive dates starting the day after ``last_date``."""

    return [last_date + timedelta(days=offset) for offset in range(1, days + 1)]


def z_for_confidence(confidence: float) -> float:
    """Two-sided z-score for ``confidence`` at table precision (0.95 -> 1.96)."""

    return round(NormalDist().inv_cdf(0.5 + confidence / 2.0), 2)


@dataclass(slots=True)
class HoltWintersState:
    level: float
    trend: float
    seasonals: List[float]
    observed: int = 0

    @property
    def period(self) -> int:
        return len(self.seasonals)

    def copy(self) -> "HoltWintersState":
        return HoltWintersState(self.level, self.trend, list(self.seasonals), self.observed)


@dataclass(slots=True)
class ModelFit:
    """Output of one forecasting tier."""

    algorithm: str
    forecast: List[int]
    residuals: List[float] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def initialize_holt_winters(values: Sequence[float], period: int) -> HoltWintersState:
    """Derive the starting level, trend and seasonal indices.

    The effective period is capped at half the history so at least two
    blocks exist.  Seasonal indices are the average ratio of each point to
    the mean of its block, renormalised to average 1.0.
    """

    series = np.asarray(values, dtype=float)
    period = min(period, len(series) // 2)
    if period < 1:
        raise ValueError("Holt-Winters needs at least two observations")

    first_block = series[:period]
    level = float(first_block.mean())
    trend = 0.0
    if len(series) >= 2 * period:
        trend = float(series[period : 2 * period].mean() - first_block.mean()) / period

    n_blocks = len(series) // period
    block_means = [float(series[j * period : (j + 1) * period].mean()) for j in range(n_blocks)]

    seasonals: List[float] = []
    for position in range(period):
        ratios = [series[j * period + position] / (block_means[j] or 1.0) for j in range(n_blocks)]
        seasonals.append(float(np.mean(ratios)) if ratios else 1.0)

    total = sum(seasonals)
    if total == 0:
        seasonals = [1.0] * period
    else:
        seasonals = [s * period / total for s in seasonals]

    return HoltWintersState(level=level, trend=trend, seasonals=seasonals)


def train_holt_winters(
    state: HoltWintersState,
    values: Sequence[float],
    alpha: float = 0.2,
    beta: float = 0.1,
    gamma: float = 0.3,
) -> Tuple[HoltWintersState, List[float], List[str]]:
    """Replay ``values`` through the smoothing equations.

    Returns the updated state (the input is left untouched), the one-step
    ahead residuals ``actual - predicted`` and any numeric warnings.
    """

    trained = state.copy()
    residuals: List[float] = []
    warnings: List[str] = []

    for actual in values:
        position = trained.observed % trained.period
        season = trained.seasonals[position]
        previous_level = trained.level

        residuals.append(float(actual) - (previous_level + trained.trend) * season)

        if season > 0:
            deseasonalised = actual / season
        else:
            deseasonalised = float(actual)
            if ZERO_SEASON_WARNING not in warnings:
                warnings.append(ZERO_SEASON_WARNING)

        trained.level = alpha * deseasonalised + (1 - alpha) * (previous_level + trained.trend)
        trained.trend = beta * (trained.level - previous_level) + (1 - beta) * trained.trend

        if trained.level > 0:
            trained.seasonals[position] = gamma * (actual / trained.level) + (1 - gamma) * season
        elif ZERO_LEVEL_WARNING not in warnings:
            warnings.append(ZERO_LEVEL_WARNING)

        trained.observed += 1

    state_values = [trained.level, trained.trend, *trained.seasonals]
    if not all(math.isfinite(v) for v in state_values):
        raise FloatingPointError("Holt-Winters state became non-finite during training")

    return trained, residuals, warnings


def project_holt_winters(state: HoltWintersState, days: int) -> List[int]:
    """Project the frozen state ``days`` steps past the end of history."""

    forecast: List[int] = []
    for step in range(days):
        position = (state.observed + step) % state.period
        value = (state.level + state.trend) * state.seasonals[position]
        if not math.isfinite(value):
            raise FloatingPointError("Holt-Winters projection is not finite")
        forecast.append(max(0, round_half_up(value)))
    return forecast


def fit_simple_exponential(values: Sequence[float], alpha: float = 0.3) -> Tuple[float, List[float]]:
    """Smooth ``values`` forward; return the final level and one-step residuals."""

    if len(values) == 0:
        return 0.0, []

    level = float(values[0])
    residuals: List[float] = []
    for actual in values[1:]:
        residuals.append(float(actual) - level)
        level = alpha * float(actual) + (1 - alpha) * level
    return level, residuals


def simple_exponential_forecast(
    points: Sequence[TimeSeriesPoint],
    days: int,
    alpha: float = 0.3,
) -> List[int]:
    """Repeat the final smoothed level ``days`` times, rounded and floored at 0."""

    level, _ = fit_simple_exponential(quantities(points), alpha)
    return [max(0, round_half_up(level))] * days


def apply_holt_winters(
    points: Sequence[TimeSeriesPoint],
    days: int,
    settings: ForecastSettings = ForecastSettings(),
) -> ModelFit:
    """Forecast ``days`` ahead, delegating short histories to simple smoothing."""

    values = quantities(points)

    if len(values) < settings.min_data_points:
        level, residuals = fit_simple_exponential(values, settings.fallback_alpha)
        message = (
            f"Insufficient history ({len(values)} of {settings.min_data_points} days); "
            "using simple exponential smoothing"
        )
        LOGGER.warning(message)
        return ModelFit(
            algorithm=ALGORITHM_SIMPLE_EXPONENTIAL,
            forecast=[max(0, round_half_up(level))] * days,
            residuals=residuals,
            warnings=[message],
        )

    initial = initialize_holt_winters(values, settings.seasonality_period)
    trained, residuals, warnings = train_holt_winters(
        initial, values, settings.alpha, settings.beta, settings.gamma
    )
    for warning in warnings:
        LOGGER.warning("Holt-Winters: %s", warning)

    return ModelFit(
        algorithm=ALGORITHM_HOLT_WINTERS,
        forecast=project_holt_winters(trained, days),
        residuals=residuals,
        warnings=warnings,
    )


def generate_confidence_intervals(
    forecast: Sequence[int],
    errors: Sequence[float],
    confidence: float = 0.95,
    default_variance: float = 0.1,
) -> List[float]:
    """Return a flat ``z * sigma`` half-width for every forecast day.

    ``sigma`` is the population standard deviation of the residuals, or
    ``sqrt(default_variance)`` when no residuals are available.
    """

    residuals = np.asarray(errors, dtype=float)
    variance = float(residuals.var()) if residuals.size else default_variance
    half_width = round(z_for_confidence(confidence) * math.sqrt(variance), 4)
    return [half_width] * len(forecast)


def average_unit_price(points: Sequence[TimeSeriesPoint]) -> float:
    """Total revenue over total units, counting only days that sold something."""

    selling = [point for point in points if point.quantity > 0]
    total_units = sum(point.quantity for point in selling)
    if total_units == 0:
        return 0.0
    return sum(point.revenue for point in selling) / total_units


def project_revenue(forecast: Sequence[int], points: Sequence[TimeSeriesPoint]) -> List[float]:
    price = average_unit_price(points)
    return [round(quantity * price, 2) for quantity in forecast]


def naive_growth_forecast(
    points: Sequence[TimeSeriesPoint],
    days: int,
    monthly_growth: float = 0.05,
) -> List[int]:
    """Average daily demand grown linearly by ``monthly_growth`` per 30 days."""

    if not points:
        return [0] * days
    average = sum(point.quantity for point in points) / len(points)
    return [max(0, round_half_up(average * (1 + monthly_growth * step / 30))) for step in range(days)]


# ---------------------------------------------------------------------------
# Core service implementation


@dataclass(slots=True)
class BatchForecast:
    forecasts: Dict[ProductId, ForecastResponse] = field(default_factory=dict)
    failures: Dict[ProductId, str] = field(default_factory=dict)


def _coerce_sales(sales: Iterable[Any]) -> List[SaleRecord]:
    return [sale if isinstance(sale, SaleRecord) else SaleRecord.model_validate(sale) for sale in sales]


class ForecastingService:
    """Generate per-product demand and revenue forecasts from sale records."""

    def __init__(
        self,
        config_root: str | None = None,
        settings: ForecastSettings | None = None,
    ) -> None:
        self.settings = settings or load_forecast_settings(config_root)

    # ------------------------------------------------------------------
    def _empty_result(self, horizon: int, today: date) -> ForecastResult:
        return ForecastResult(
            dates=forecast_dates(today, horizon),
            quantities=[0] * horizon,
            revenues=[0.0] * horizon,
            confidence=[self.settings.empty_confidence] * horizon,
            errors=[],
        )

    # ------------------------------------------------------------------
    def _naive_result(self, points: Sequence[TimeSeriesPoint], horizon: int) -> ForecastResult:
        projected = naive_growth_forecast(points, horizon, self.settings.naive_monthly_growth)
        return ForecastResult(
            dates=forecast_dates(points[-1].date, horizon),
            quantities=projected,
            revenues=project_revenue(projected, points),
            confidence=[self.settings.naive_confidence] * horizon,
            errors=[NAIVE_FALLBACK_WARNING],
        )

    # ------------------------------------------------------------------
    def _forecast_points(
        self, points: Sequence[TimeSeriesPoint], horizon: int
    ) -> Tuple[ForecastResult, str]:
        try:
            fit = apply_holt_winters(points, horizon, self.settings)
            confidence = generate_confidence_intervals(
                fit.forecast,
                fit.residuals,
                self.settings.confidence_level,
                self.settings.default_variance,
            )
        except (ArithmeticError, ValueError) as exc:
            LOGGER.warning("Smoothing failed (%s); falling back to naive growth projection", exc)
            return self._naive_result(points, horizon), ALGORITHM_NAIVE_GROWTH

        result = ForecastResult(
            dates=forecast_dates(points[-1].date, horizon),
            quantities=fit.forecast,
            revenues=project_revenue(fit.forecast, points),
            confidence=confidence,
            errors=list(fit.warnings),
        )
        return result, fit.algorithm

    # ------------------------------------------------------------------
    def forecast(
        self,
        sales: Iterable[Any],
        horizon_days: int = 30,
        *,
        product_id: Optional[ProductId] = None,
        as_of: Optional[datetime] = None,
    ) -> ForecastResponse:
        """Return the forecast for ``sales`` along with how it was produced.

        When ``product_id`` is given only that product's records are used.
        ``as_of`` fixes "now" for reproducible output; it only matters for
        an empty history, whose dates start the day after it.
        """

        horizon = clamp_horizon(horizon_days, self.settings.max_horizon_days)
        records = _coerce_sales(sales)
        if product_id is not None:
            records = [record for record in records if record.product_id == product_id]

        now = to_naive_utc(as_of) if as_of is not None else datetime.now(timezone.utc).replace(tzinfo=None)
        points = preprocess_sales(records)

        if not points:
            result, algorithm = self._empty_result(horizon, now.date()), ALGORITHM_NONE
        else:
            result, algorithm = self._forecast_points(points, horizon)

        trend = detect_trend(points)
        seasonality = extract_seasonality(points, self.settings.seasonality_period)

        LOGGER.info(
            "Forecast product=%s algorithm=%s horizon=%s history_days=%s",
            product_id if product_id is not None else "all",
            algorithm,
            horizon,
            len(points),
        )

        return ForecastResponse(
            forecast=result,
            metadata=ForecastMetadata(
                algorithm=algorithm,
                product_id=product_id,
                generated_at=now.replace(tzinfo=timezone.utc),
                data_points=len(records),
                trend_slope=round(trend.slope, 4),
                seasonality=[round(index, 4) for index in seasonality],
            ),
        )

    # ------------------------------------------------------------------
    def generate_forecast(
        self,
        sales_history: Iterable[Any],
        horizon_days: int = 30,
        *,
        as_of: Optional[datetime] = None,
    ) -> ForecastResult:
        return self.forecast(sales_history, horizon_days, as_of=as_of).forecast

    # ------------------------------------------------------------------
    def forecast_many(
        self,
        sales: Iterable[Any],
        horizon_days: int = 30,
        *,
        as_of: Optional[datetime] = None,
    ) -> BatchForecast:
        """Forecast each product found in ``sales`` independently.

        A failure for one product is logged and reported in ``failures``;
        the remaining products are still forecast.
        """

        horizon = clamp_horizon(horizon_days, self.settings.max_horizon_days)
        grouped: Dict[ProductId, List[SaleRecord]] = {}
        for record in _coerce_sales(sales):
            grouped.setdefault(record.product_id, []).append(record)

        batch = BatchForecast()
        for product_id, records in grouped.items():
            try:
                batch.forecasts[product_id] = self.forecast(
                    records, horizon, product_id=product_id, as_of=as_of
                )
            except Exception as exc:
                LOGGER.exception("Forecast failed for product %s", product_id)
                batch.failures[product_id] = str(exc)
        return batch


def generate_forecast(
    sales_history: Iterable[Any],
    horizon_days: int = 30,
    *,
    settings: ForecastSettings | None = None,
    as_of: Optional[datetime] = None,
) -> ForecastResult:
    """Forecast with explicit (or default) settings; reads no configuration files."""

    service = ForecastingService(settings=settings or ForecastSettings())
    return service.generate_forecast(sales_history, horizon_days, as_of=as_of)
