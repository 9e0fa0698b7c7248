from __future__ import annotations

from pathlib import Path
import sys

import yaml
from fastapi.testclient import TestClient


ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))


from backend.app.main import app  # noqa: E402


client = TestClient(app)

CFG_MODULE = "backend.app.api.v1.configs"


def test_configs_get_put(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(f"{CFG_MODULE}.CONFIG_DIR", str(tmp_path))
    (tmp_path / "settings.yaml").write_text(
        yaml.safe_dump({"alpha": 0.2, "seasonality_period": 7})
    )
    (tmp_path / "thresholds.yaml").write_text(
        yaml.safe_dump({"excess_days_of_supply": 120.0})
    )

    response = client.get("/api/v1/configs/settings")
    assert response.status_code == 200
    assert response.json()["alpha"] == 0.2

    response = client.put("/api/v1/configs/settings", json={"seasonality_period": 14})
    assert response.status_code == 200
    settings = yaml.safe_load((tmp_path / "settings.yaml").read_text())
    assert settings == {"alpha": 0.2, "seasonality_period": 14}

    response = client.get("/api/v1/configs/thresholds")
    assert response.status_code == 200

    response = client.put(
        "/api/v1/configs/thresholds",
        json={"excess_days_of_supply": 90.0, "trend_increase_ratio": 2.0},
    )
    assert response.status_code == 200
    thresholds = yaml.safe_load((tmp_path / "thresholds.yaml").read_text())
    assert thresholds["excess_days_of_supply"] == 90.0
    assert thresholds["trend_increase_ratio"] == 2.0


def test_configs_reject_out_of_range_values(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(f"{CFG_MODULE}.CONFIG_DIR", str(tmp_path))

    response = client.put("/api/v1/configs/settings", json={"alpha": 1.5})

    assert response.status_code == 422
    assert not (tmp_path / "settings.yaml").exists()


def test_configs_missing_file_returns_404(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(f"{CFG_MODULE}.CONFIG_DIR", str(tmp_path))

    response = client.get("/api/v1/configs/thresholds")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "not_found"


def test_configs_put_creates_missing_file(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(f"{CFG_MODULE}.CONFIG_DIR", str(tmp_path))

    response = client.put("/api/v1/configs/thresholds", json={"stale_forecast_days": 21})

    assert response.status_code == 200
    assert yaml.safe_load((tmp_path / "thresholds.yaml").read_text()) == {"stale_forecast_days": 21}


def test_configs_reject_values_the_loader_would_discard(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(f"{CFG_MODULE}.CONFIG_DIR", str(tmp_path))

    fractional = client.put("/api/v1/configs/settings", json={"seasonality_period": 7.5})
    too_long = client.put("/api/v1/configs/settings", json={"max_horizon_days": 400})
    too_steep = client.put("/api/v1/configs/thresholds", json={"max_price_decrease_pct": 120})

    assert fractional.status_code == 422
    assert too_long.status_code == 422
    assert too_steep.status_code == 422
    assert list(tmp_path.iterdir()) == []
