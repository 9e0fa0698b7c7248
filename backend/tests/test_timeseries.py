from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
import sys


ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

import pytest

from backend.app.models.schemas import SaleRecord
from backend.app.services.timeseries import (
    TimeSeriesPoint,
    detect_trend,
    extract_seasonality,
    preprocess_sales,
    round_half_up,
)


def _points(values: list[int]) -> list[TimeSeriesPoint]:
    start = date(2024, 1, 1).toordinal()
    return [
        TimeSeriesPoint(date=date.fromordinal(start + idx), quantity=value, revenue=0.0)
        for idx, value in enumerate(values)
    ]


def test_preprocess_sums_per_day_and_fills_gaps() -> None:
    sales = [
        SaleRecord(product_id="P1", quantity=1, sale_date=datetime(2024, 1, 4, 9, 0), revenue=10.0),
        SaleRecord(product_id="P1", quantity=3, sale_date=datetime(2024, 1, 1, 8, 30), revenue=30.0),
        SaleRecord(product_id="P1", quantity=2, sale_date=datetime(2024, 1, 1, 17, 45), revenue=None),
    ]

    points = preprocess_sales(sales)

    assert [point.date for point in points] == [
        date(2024, 1, 1),
        date(2024, 1, 2),
        date(2024, 1, 3),
        date(2024, 1, 4),
    ]
    assert [point.quantity for point in points] == [5, 0, 0, 1]
    assert [point.revenue for point in points] == [30.0, 0.0, 0.0, 10.0]


def test_preprocess_groups_by_utc_calendar_day() -> None:
    sale = SaleRecord.model_validate(
        {"productId": "P1", "quantity": 4, "saleDate": "2024-01-01T23:30:00-05:00"}
    )

    points = preprocess_sales([sale])

    assert points == [TimeSeriesPoint(date=date(2024, 1, 2), quantity=4, revenue=0.0)]


def test_preprocess_empty_input() -> None:
    assert preprocess_sales([]) == []


def test_seasonality_recovers_weekly_pattern() -> None:
    points = _points([1, 2, 3, 4, 5, 6, 7] * 2)

    seasonals = extract_seasonality(points, period=7)

    assert len(seasonals) == 7
    assert seasonals == pytest.approx([0.25, 0.5, 0.75, 1.0, 1.25, 1.5, 1.75])
    assert sum(seasonals) / 7 == pytest.approx(1.0, abs=1e-6)


def test_seasonality_falls_back_to_ones() -> None:
    assert extract_seasonality(_points([3] * 13), period=7) == [1.0] * 7
    assert extract_seasonality(_points([0] * 21), period=7) == [1.0] * 7
    assert extract_seasonality([], period=3) == [1.0] * 3


def test_seasonality_rejects_non_positive_period() -> None:
    with pytest.raises(ValueError):
        extract_seasonality(_points([1, 2, 3]), period=0)


def test_trend_edge_cases() -> None:
    assert detect_trend([]) == (0.0, 0.0)
    assert detect_trend(_points([9])) == (0.0, 9.0)


def test_trend_least_squares_line() -> None:
    slope, intercept = detect_trend(_points([3 + 2 * idx for idx in range(10)]))

    assert slope == pytest.approx(2.0)
    assert intercept == pytest.approx(3.0)


def test_round_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2
    assert round_half_up(-0.4) == 0
