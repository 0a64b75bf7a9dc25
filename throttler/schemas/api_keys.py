"""Pydantic schemas for per-API-key quota endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class QuotaCheckResponse(BaseModel):
    """Body returned when a key is within its quota.

    Remaining requests and the reset time travel in the X-RateLimit-* headers.
    """

    allowed: Literal[True] = True
    key_id: str
    window: Literal["hour", "day"]


class ConcurrentJobsResponse(BaseModel):
    key_id: str
    allowed: bool = Field(..., description="Whether another job may start now.")
    current: int = Field(..., ge=0, description="Jobs in flight for this key.")
    limit: int = Field(..., ge=1, description="Jobs allowed in flight at once.")
