"""Limiter endpoints.

Routes are built around an explicit ``LimiterRegistry`` handed in by the app
factory, so handlers hold direct references to their limiters.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from throttler.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter, hash_key
from throttler.core.auth import verify_api_key
from throttler.core.rate_limit import wrap
from throttler.core.registry import LimiterRegistry
from throttler.schemas.limits import (
    CheckResponse,
    LimiterInfo,
    LimitersResponse,
    LimiterStatsResponse,
)

logger = logging.getLogger(__name__)


def _limiter_info(limiter: SlidingWindowRateLimiter) -> LimiterInfo:
    return LimiterInfo(
        name=limiter.name,
        key_prefix=limiter.config.key_prefix,
        window_ms=limiter.config.window_ms,
        max_requests=limiter.config.max_requests,
    )


def _admitted_handler(name: str):
    async def admitted(request: Request) -> JSONResponse:
        return JSONResponse(CheckResponse(limiter=name).model_dump())

    admitted.__name__ = f"check_{name}"
    return admitted


def build_limits_router(registry: LimiterRegistry) -> APIRouter:
    """Create the ``/limits`` routes bound to ``registry``.

    Args:
        registry: Limiters to expose.

    Returns:
        APIRouter with list, per-limiter check, stats and reset routes.
    """

    router = APIRouter(tags=["Limits"])

    @router.get("/limits", response_model=LimitersResponse)
    async def list_limiters() -> LimitersResponse:
        """List configured limiters and their windows."""
        return LimitersResponse(limiters=[_limiter_info(limiter) for limiter in registry])

    for limiter in registry:
        # One route per limiter: the check itself runs through ``wrap``
        router.add_api_route(
            f"/limits/{limiter.name}/check",
            wrap(_admitted_handler(limiter.name), limiter),
            methods=["POST"],
            response_model=None,
            summary=f"Check the caller against the '{limiter.name}' limiter",
            responses={
                200: {"model": CheckResponse, "description": "Admitted"},
                429: {"description": "Rate limit exceeded"},
            },
        )

    @router.get(
        "/limits/{name}/stats",
        response_model=LimiterStatsResponse,
        dependencies=[Depends(verify_api_key)],
    )
    async def limiter_stats(name: str) -> LimiterStatsResponse:
        """Identifiers currently tracked by a limiter (operational visibility)."""
        stats = await registry.get(name).get_stats()
        return LimiterStatsResponse(
            limiter=name,
            total=stats.total,
            identifiers=stats.identifiers,
            source=stats.source,
        )

    @router.delete(
        "/limits/{name}/identifiers/{identifier:path}",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
        dependencies=[Depends(verify_api_key)],
    )
    async def reset_identifier(name: str, identifier: str) -> Response:
        """Administrative reset of one caller's window. Idempotent."""
        await registry.get(name).reset(identifier)
        logger.info(
            "rate_limit.reset",
            extra={"limiter": name, "key_hash": hash_key(identifier)},
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router
