"""Pydantic schemas for limiter endpoints."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field


class LimiterInfo(BaseModel):
    """Configuration of one registered limiter."""

    name: str = Field(..., description="Traffic class name (api, auth, strict, image, analytics).")
    key_prefix: str = Field(..., description="Prefix of the limiter's keys in the shared store.")
    window_ms: int = Field(..., ge=1, description="Sliding window size in milliseconds.")
    max_requests: int = Field(..., ge=1, description="Requests admitted per window.")


class LimitersResponse(BaseModel):
    limiters: List[LimiterInfo] = Field(default_factory=list)


class CheckResponse(BaseModel):
    """Body returned when a check admits the caller.

    Quota details travel in the X-RateLimit-* headers.
    """

    allowed: Literal[True] = True
    limiter: str = Field(..., description="Limiter that admitted the request.")


class LimiterStatsResponse(BaseModel):
    """Identifiers currently tracked by a limiter."""

    limiter: str
    total: int = Field(..., ge=0)
    identifiers: List[str] = Field(default_factory=list)
    source: Literal["store", "fallback"] = Field(
        ...,
        description="'store' when read from Redis, 'fallback' when the store was unreachable.",
    )


class ReadinessResponse(BaseModel):
    status: Literal["ok"] = "ok"
    store: Literal["up", "down", "disabled"] = Field(
        ...,
        description="Shared store state; the service keeps serving on the fallback when down.",
    )
