r"""backend\app\core\observability.py

Prometheus metrics and structured access logging for the HTTP layer.

The engine itself keeps no shared state; the forecast and alert counters
below are incremented by the API routes after a successful call.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

ACCESS_LOGGER = logging.getLogger("backend.access")

_REQUEST_COUNTER = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "path", "status"]
)
_LATENCY_HISTOGRAM = Histogram(
    "http_request_latency_seconds", "Request latency", ["method", "path"]
)

FORECAST_RUNS = Counter(
    "forecast_runs_total", "Forecasts produced, by algorithm tier", ["algorithm"]
)
ALERTS_GENERATED = Counter(
    "alerts_generated_total", "Alerts emitted, by alert type", ["type"]
)


def _product_id_from_body(body: bytes) -> Optional[str]:
    if not body:
        return None
    try:
        payload: Any = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if isinstance(payload, dict) and isinstance(payload.get("productId"), (str, int)):
        return str(payload["productId"])
    return None


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Record Prometheus metrics and emit one JSON access-log line per request."""

    # Forecast requests carry a productId worth tagging the access line with.
    _tagged_prefixes: tuple[str, ...] = ("/api/v1/forecasts",)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        method = request.method
        request_id = (
            request.headers.get("x-request-id")
            or request.headers.get("request-id")
            or str(uuid.uuid4())
        )

        product_id = None
        if method == "POST" and path.startswith(self._tagged_prefixes):
            # body() caches the payload so the route can still read it
            product_id = _product_id_from_body(await request.body())

        started = time.perf_counter()
        received_at = datetime.now(timezone.utc)

        def _observe(response: Response) -> Response:
            elapsed = time.perf_counter() - started
            status_code = response.status_code

            _REQUEST_COUNTER.labels(method, path, str(status_code)).inc()
            _LATENCY_HISTOGRAM.labels(method, path).observe(elapsed)

            ACCESS_LOGGER.info(
                json.dumps(
                    {
                        "timestamp": received_at.isoformat(),
                        "path": path,
                        "method": method,
                        "status": status_code,
                        "latency_ms": int(elapsed * 1000),
                        "request_id": request_id,
                        "product_id": product_id,
                    }
                )
            )
            response.headers["x-request-id"] = request_id
            return response

        try:
            response = await call_next(request)
        except Exception:
            _observe(PlainTextResponse("Internal Server Error", status_code=500))
            raise

        return _observe(response)


def metrics_endpoint() -> Response:
    """Return Prometheus metrics payload."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
