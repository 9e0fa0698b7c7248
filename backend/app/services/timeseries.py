r"""backend\app\services\timeseries.py

Daily time-series helpers shared by the forecaster.

Raw sale records arrive unordered and sparse; :func:`preprocess_sales` turns
them into one contiguous, zero-filled point per calendar day.  The seasonal
index and the least-squares trend of that series are reported in the
forecast metadata as diagnostics.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, NamedTuple, Sequence

import numpy as np
import pandas as pd

from ..models.schemas import SaleRecord

DEFAULT_SEASONALITY_PERIOD = 7


@dataclass(frozen=True, slots=True)
class TimeSeriesPoint:
    date: date
    quantity: int
    revenue: float


class Trend(NamedTuple):
    slope: float
    intercept: float


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""

    return int(math.floor(value + 0.5))


def quantities(points: Sequence[TimeSeriesPoint]) -> np.ndarray:
    return np.array([point.quantity for point in points], dtype=float)


# ---------------------------------------------------------------------------
def preprocess_sales(sales: Iterable[SaleRecord]) -> List[TimeSeriesPoint]:
    """Aggregate sales per calendar day and fill the gaps with zeros.

    The result spans the earliest to the latest sale date inclusive, sorted
    ascending, with quantities and revenues summed per day.  Time of day is
    discarded.  An empty input yields an empty list.
    """

    records = list(sales)
    if not records:
        return []

    frame = pd.DataFrame(
        {
            "date": pd.to_datetime([record.sale_date for record in records]).normalize(),
            "quantity": [int(record.quantity) for record in records],
            "revenue": [float(record.revenue or 0.0) for record in records],
        }
    )
    daily = frame.groupby("date").agg(quantity=("quantity", "sum"), revenue=("revenue", "sum"))
    full_index = pd.date_range(daily.index.min(), daily.index.max(), freq="D")
    daily = daily.reindex(full_index, fill_value=0)

    return [
        TimeSeriesPoint(date=row.Index.date(), quantity=int(row.quantity), revenue=float(row.revenue))
        for row in daily.itertuples()
    ]


# ---------------------------------------------------------------------------
def extract_seasonality(
    points: Sequence[TimeSeriesPoint],
    period: int = DEFAULT_SEASONALITY_PERIOD,
) -> List[float]:
    """Return a normalised seasonal index vector of length ``period``.

    Quantities are bucketed by ``position % period`` and each bucket is
    averaged; the bucket averages are then divided by their own mean so the
    vector averages to 1.0.  Fewer than two full cycles of history, or a
    series with no demand at all, yields the all-ones vector.
    """

    if period < 1:
        raise ValueError("seasonality period must be a positive integer")

    values = quantities(points)
    if len(values) < 2 * period:
        return [1.0] * period

    pattern = np.array([values[offset::period].mean() for offset in range(period)])
    pattern_mean = float(pattern.mean())
    if pattern_mean == 0.0:
        return [1.0] * period

    return [float(v) for v in pattern / pattern_mean]


# ---------------------------------------------------------------------------
def detect_trend(points: Sequence[TimeSeriesPoint]) -> Trend:
    """Ordinary least squares of quantity against the day index."""

    if not points:
        return Trend(0.0, 0.0)
    if len(points) == 1:
        return Trend(0.0, float(points[0].quantity))

    values = quantities(points)
    index = np.arange(len(values), dtype=float)
    slope, intercept = np.polyfit(index, values, 1)
    return Trend(float(slope), float(intercept))
