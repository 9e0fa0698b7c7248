r"""backend\app\api\v1\health.py

Health check endpoints.

`/api/v1/health` answers liveness probes; it also reports which YAML
directory the forecasting and alerting engines were configured from.
"""

from fastapi import APIRouter

from ...core.config import config_root

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Return a basic health indicator."""
    return {"status": "ok", "configDir": config_root()}
