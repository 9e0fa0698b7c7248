r"""backend\app\api\v1\__init__.py

Version 1 routers: forecasts, alerts/dashboard, configs and health.
Submodules are imported on first attribute access."""

from importlib import import_module
from typing import Any

__all__ = ["alerts", "configs", "forecasts", "health"]


def __getattr__(name: str) -> Any:
    if name not in __all__:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    router_module = import_module(f"{__name__}.{name}")
    globals()[name] = router_module
    return router_module
