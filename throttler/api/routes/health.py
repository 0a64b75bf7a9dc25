from __future__ import annotations

from fastapi import APIRouter, Request

from throttler.schemas.limits import ReadinessResponse

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe for load balancers."""

    return {"status": "ok"}


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe reporting the shared store state.

    Always 200: with the store down, limiters keep admitting on their
    per-process fallback, so the service itself is still ready.
    """

    store = getattr(request.app.state, "store", None)
    if store is None:
        return ReadinessResponse(store="disabled")
    return ReadinessResponse(store="up" if await store.ping() else "down")
