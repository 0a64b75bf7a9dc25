"""Application factory and composition root.

Owns the lifetime of the shared store client and the limiter registry: both
are constructed here and handed to routers explicitly. Nothing else in the
package instantiates limiters.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from throttler.adapters.rate_limit.api_keys import ApiKeyQuota, ApiKeyQuotaLimiter
from throttler.adapters.store.base import AbstractCounterStore
from throttler.adapters.store.redis_store import RedisCounterStore
from throttler.api.routes import build_api_keys_router, build_limits_router, health_router
from throttler.core.config import settings
from throttler.core.exception_handlers import setup_exception_handlers
from throttler.core.logging import configure_logging
from throttler.core.middleware import request_id_middleware
from throttler.core.openapi import apply_openapi_customizations
from throttler.core.registry import LimiterRegistry

logger = logging.getLogger(__name__)


def _build_store() -> AbstractCounterStore | None:
    if not settings.redis.enabled:
        return None
    return RedisCounterStore.from_settings(settings.redis)


def create_app(
    *,
    registry: LimiterRegistry | None = None,
    quotas: ApiKeyQuotaLimiter | None = None,
    store: AbstractCounterStore | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        registry: Prebuilt limiters; built from settings when omitted.
        quotas: Prebuilt per-API-key quota limiter; built from ``QUOTA_*``
            settings over ``store`` when omitted.
        store: Shared counter store. When ``registry`` is omitted and no store
            is given, one is built from ``REDIS_*`` settings (or none when
            Redis is disabled).
        configure_logs: Install the root log handler.

    Returns:
        Configured FastAPI app.

    Raises:
        ConfigurationAppError: If a limiter or quota configuration is invalid.
    """
    if configure_logs:
        configure_logging(settings.log)

    if registry is None:
        if store is None:
            store = _build_store()
        registry = LimiterRegistry.from_settings(settings.limits, store)

    if quotas is None:
        quotas = ApiKeyQuotaLimiter(
            store,
            ApiKeyQuota.from_settings(settings.quotas),
            job_ttl_seconds=settings.quotas.job_ttl_seconds,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "app.startup",
            extra={
                "limiters": registry.names(),
                "store": "redis" if store is not None else "disabled",
            },
        )
        try:
            yield
        finally:
            if store is not None:
                await store.close()
            logger.info("app.shutdown")

    app = FastAPI(
        title="Throttler",
        description=(
            "Distributed sliding-window rate limiter. Callers check admission "
            "per traffic class; counters live in Redis and fall back to "
            "per-process fixed windows while Redis is unreachable."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.limiters = registry
    app.state.quotas = quotas

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(build_limits_router(registry), prefix="/v1")
    app.include_router(build_api_keys_router(quotas), prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
