from __future__ import annotations

from throttler.api.routes.api_keys import build_api_keys_router
from throttler.api.routes.health import router as health_router
from throttler.api.routes.limits import build_limits_router

__all__ = ["build_api_keys_router", "build_limits_router", "health_router"]
