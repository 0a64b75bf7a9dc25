"""Per-API-key quota and job slot endpoints.

Called by the services fronting the external API, so every route sits behind
the admin ``X-API-Key`` check. Key ids are opaque strings owned by the caller.
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from throttler.adapters.rate_limit.api_keys import ApiKeyQuotaLimiter
from throttler.adapters.rate_limit.sliding_window import hash_key
from throttler.core.auth import verify_api_key
from throttler.core.rate_limit import apply_rate_limit_headers, deny
from throttler.schemas.api_keys import ConcurrentJobsResponse, QuotaCheckResponse

logger = logging.getLogger(__name__)


def build_api_keys_router(quotas: ApiKeyQuotaLimiter) -> APIRouter:
    """Create the ``/api-keys`` routes bound to ``quotas``.

    Args:
        quotas: Per-key quota limiter owned by the app factory.

    Returns:
        APIRouter with quota check/reset and job acquire/release routes.
    """

    router = APIRouter(
        prefix="/api-keys/{key_id}",
        tags=["API keys"],
        dependencies=[Depends(verify_api_key)],
    )

    @router.post(
        "/quota/{window}/check",
        response_model=None,
        responses={
            200: {"model": QuotaCheckResponse, "description": "Within quota"},
            429: {"description": "Quota exceeded"},
        },
    )
    async def check_quota(key_id: str, window: str) -> Response:
        """Count one request against the key's hourly or daily quota."""
        result = await quotas.check(key_id, window)
        if not result.allowed:
            logger.warning(
                "api_key_quota.exceeded",
                extra={"window": window, "key_hash": hash_key(key_id), "limit": result.limit},
            )
            return deny(result, now_ms=quotas.now_ms())
        response = JSONResponse(QuotaCheckResponse(key_id=key_id, window=window).model_dump())
        return apply_rate_limit_headers(response, result)

    @router.delete(
        "/quota",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    async def reset_quota(key_id: str) -> Response:
        """Forget the key's hourly and daily windows. Idempotent."""
        await quotas.reset(key_id)
        logger.info("api_key_quota.reset", extra={"key_hash": hash_key(key_id)})
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.get("/jobs", response_model=ConcurrentJobsResponse)
    async def get_jobs(key_id: str) -> ConcurrentJobsResponse:
        """Jobs in flight for the key and whether another may start."""
        jobs = await quotas.check_concurrent_jobs(key_id)
        return ConcurrentJobsResponse(
            key_id=key_id, allowed=jobs.allowed, current=jobs.current, limit=jobs.limit
        )

    @router.post(
        "/jobs",
        status_code=status.HTTP_201_CREATED,
        response_model=ConcurrentJobsResponse,
        responses={429: {"description": "Too many concurrent jobs"}},
    )
    async def acquire_job(key_id: str):
        """Start a job if the key is below its concurrent job limit."""
        jobs = await quotas.check_concurrent_jobs(key_id)
        if not jobs.allowed:
            logger.warning(
                "api_key_jobs.exceeded",
                extra={"key_hash": hash_key(key_id), "current": jobs.current, "limit": jobs.limit},
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Too many concurrent jobs",
                    "message": f"At most {jobs.limit} jobs may run at once for this API key.",
                    "current": jobs.current,
                    "limit": jobs.limit,
                },
            )
        current = await quotas.increment_concurrent_jobs(key_id)
        return ConcurrentJobsResponse(
            key_id=key_id,
            allowed=True,
            current=jobs.current + 1 if current is None else current,
            limit=jobs.limit,
        )

    @router.delete(
        "/jobs",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    async def release_job(key_id: str) -> Response:
        """Finish a job; the counter disappears once no job is left."""
        await quotas.decrement_concurrent_jobs(key_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router
