r"""backend\app\main.py

Main entrypoint for the FastAPI application.

The API exposes endpoints to forecast daily demand from a sales history and
to raise stock, trend, pricing and excess-inventory alerts.  A health
endpoint is also provided for readiness/liveness checks.  Configuration is
read from environment variables and YAML files in `configs/`.
"""


import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

# Load .env from repo root before settings are first read
BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(BASE_DIR / ".env")

from .api.v1 import alerts, configs, forecasts, health  # noqa: E402
from .core.config import config_root, get_settings  # noqa: E402
from .core.observability import RequestMetricsMiddleware, metrics_endpoint  # noqa: E402

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())

logging.getLogger(__name__).info("Loading engine configuration from %s", config_root())

app = FastAPI(title="Demand Insights API", version="0.1.0")

origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestMetricsMiddleware)

# Include versioned routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(forecasts.router, prefix="/api/v1")
app.include_router(alerts.router, prefix="/api/v1")
app.include_router(configs.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def _root() -> RedirectResponse:
    """Redirect the root path to the interactive docs."""

    return RedirectResponse(url="/docs")


@app.get("/metrics", include_in_schema=False)
async def _metrics() -> Response:
    """Expose Prometheus metrics."""

    return metrics_endpoint()
