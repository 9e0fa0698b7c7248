r"""backend/tests/test_forecast_api.py"""

from __future__ import annotations

import sys
from datetime import date, datetime, timedelta
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.main import app  # noqa: E402

client = TestClient(app)

START = datetime(2024, 1, 1, 9, 0)


def _sales_payload(product_id: str, days: int, quantity: int = 5, unit_price: float = 10.0) -> list[dict]:
    return [
        {
            "productId": product_id,
            "quantity": quantity,
            "saleDate": (START + timedelta(days=offset)).isoformat(),
            "revenue": quantity * unit_price,
        }
        for offset in range(days)
    ]


def test_forecast_api_returns_expected_payload() -> None:
    horizon = 14
    body = {"sales": _sales_payload("SKU-1", 30), "horizonDays": horizon, "productId": "SKU-1"}

    response = client.post("/api/v1/forecasts", json=body)

    assert response.status_code == 200
    assert response.headers.get("x-request-id")
    payload = response.json()
    forecast = payload["forecast"]
    for key in ("dates", "quantities", "revenues", "confidence"):
        assert len(forecast[key]) == horizon
    # ``fromisoformat`` raises if the string is not ISO-8601 compliant.
    assert date.fromisoformat(forecast["dates"][0]) == date(2024, 1, 31)
    assert forecast["quantities"] == [5] * horizon
    assert forecast["revenues"] == [50.0] * horizon
    assert payload["metadata"]["algorithm"] == "holt_winters"
    assert payload["metadata"]["productId"] == "SKU-1"
    assert payload["metadata"]["dataPoints"] == 30


def test_forecast_api_clamps_horizon() -> None:
    response = client.post(
        "/api/v1/forecasts", json={"sales": _sales_payload("SKU-1", 20), "horizonDays": 500}
    )

    assert response.status_code == 200
    assert len(response.json()["forecast"]["quantities"]) == 90


def test_forecast_api_empty_history() -> None:
    response = client.post(
        "/api/v1/forecasts",
        json={"sales": [], "horizonDays": 3, "asOf": "2024-05-01T08:00:00Z"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["metadata"]["algorithm"] == "none"
    assert payload["forecast"]["quantities"] == [0, 0, 0]
    assert payload["forecast"]["confidence"] == [0.5, 0.5, 0.5]
    assert payload["forecast"]["dates"] == ["2024-05-02", "2024-05-03", "2024-05-04"]


def test_forecast_api_rejects_malformed_records() -> None:
    body = {"sales": [{"productId": "SKU-1", "quantity": -1, "saleDate": "2024-01-01"}]}

    response = client.post("/api/v1/forecasts", json=body)

    assert response.status_code == 422


def test_forecast_api_maps_engine_type_errors(monkeypatch) -> None:
    def _reject(*_args, **_kwargs):
        raise TypeError("horizon_days must be an integer")

    monkeypatch.setattr("backend.app.api.v1.forecasts._forecast_service.forecast", _reject)

    response = client.post("/api/v1/forecasts", json={"sales": []})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "invalid_request"


def test_batch_forecasts_per_product() -> None:
    sales = _sales_payload("A", 20) + _sales_payload("B", 4, quantity=2)

    response = client.post("/api/v1/forecasts/batch", json={"sales": sales, "horizonDays": 7})

    assert response.status_code == 200
    payload = response.json()
    algorithms = {item["metadata"]["productId"]: item["metadata"]["algorithm"] for item in payload["forecasts"]}
    assert algorithms == {"A": "holt_winters", "B": "simple_exponential"}
    assert payload["failures"] == []


def test_metrics_count_forecast_runs() -> None:
    client.post("/api/v1/forecasts", json={"sales": _sales_payload("SKU-9", 3), "horizonDays": 2})

    response = client.get("/metrics")

    assert response.status_code == 200
    assert 'forecast_runs_total{algorithm="simple_exponential"}' in response.text
    assert "http_requests_total" in response.text


def test_health_and_root_redirect() -> None:
    health = client.get("/api/v1/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    root = client.get("/", follow_redirects=False)
    assert root.status_code in (302, 307)
    assert root.headers["location"] == "/docs"
