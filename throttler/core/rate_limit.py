"""HTTP side of rate limiting.

Turns limiter verdicts into responses:
- ``deny`` builds the 429 throttling response.
- ``apply_rate_limit_headers`` stamps X-RateLimit-* on a downstream response.
- ``wrap`` / ``rate_limited`` guard an async handler with a limiter.

The handler contract is framework-light: a request only needs ``headers``
with ``.get``, a response only needs ``status_code`` and mutable ``headers``.
Starlette/FastAPI objects satisfy both.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Awaitable, Callable, MutableMapping, Protocol, TypeVar

from fastapi import status
from fastapi.responses import JSONResponse

from throttler.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from throttler.adapters.rate_limit.sliding_window import hash_key
from throttler.core.identifier import HeaderLookup, identifier_of

logger = logging.getLogger(__name__)


class RequestLike(Protocol):
    @property
    def headers(self) -> HeaderLookup: ...


class ResponseLike(Protocol):
    status_code: int

    @property
    def headers(self) -> MutableMapping[str, str]: ...


RequestT = TypeVar("RequestT", bound=RequestLike)
ResponseT = TypeVar("ResponseT", bound=ResponseLike)


def _now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Header values describing ``result``.

    Args:
        result: Verdict of an admission check.

    Returns:
        ``X-RateLimit-Limit``, ``X-RateLimit-Remaining`` and
        ``X-RateLimit-Reset`` (ISO-8601 UTC with milliseconds).
    """
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": result.reset_at_iso,
    }


def apply_rate_limit_headers(response: ResponseT, result: RateLimitResult) -> ResponseT:
    """Set the three X-RateLimit-* headers on ``response`` and return it."""

    for name, value in rate_limit_headers(result).items():
        response.headers[name] = value
    return response


def deny(result: RateLimitResult, *, now_ms: int | None = None) -> JSONResponse:
    """Build the 429 response for a throttled request.

    Args:
        result: The denying verdict.
        now_ms: Current epoch milliseconds; defaults to the wall clock.

    Returns:
        JSONResponse with body ``{error, message, retryAfter}`` and the
        ``Retry-After`` and ``X-RateLimit-*`` headers.
    """

    retry_after = result.retry_after_seconds(_now_ms() if now_ms is None else now_ms)
    headers = {"Retry-After": str(retry_after), **rate_limit_headers(result)}
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Too many requests",
            "message": f"Rate limit exceeded. Try again in {retry_after} seconds.",
            "retryAfter": retry_after,
        },
        headers=headers,
    )


def wrap(
    handler: Callable[[RequestT], Awaitable[ResponseLike]],
    limiter: AbstractRateLimiter,
    *,
    identify: Callable[[HeaderLookup], str] = identifier_of,
) -> Callable[[RequestT], Awaitable[ResponseLike]]:
    """Guard ``handler`` with ``limiter``.

    The returned handler identifies the caller, runs the admission check and
    either returns ``deny(...)`` without calling ``handler`` or awaits
    ``handler`` and stamps the rate limit headers on its response.

    Example:
        >>> async def upload(request):
        ...     return JSONResponse({"ok": True})
        >>> guarded = wrap(upload, registry.image)
    """

    limiter_name = getattr(limiter, "name", type(limiter).__name__)

    @functools.wraps(handler)
    async def rate_limited_handler(request: RequestT) -> ResponseLike:
        identifier = identify(request.headers)
        result = await limiter.check(identifier)

        if not result.allowed:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "limiter": limiter_name,
                    "key_hash": hash_key(identifier),
                    "limit": result.limit,
                    "reset_at": result.reset_at_iso,
                },
            )
            return deny(result, now_ms=limiter.now_ms())

        logger.debug(
            "rate_limit.allowed",
            extra={
                "limiter": limiter_name,
                "key_hash": hash_key(identifier),
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        response = await handler(request)
        return apply_rate_limit_headers(response, result)

    return rate_limited_handler


def rate_limited(
    limiter: AbstractRateLimiter,
) -> Callable[
    [Callable[[RequestT], Awaitable[ResponseLike]]],
    Callable[[RequestT], Awaitable[ResponseLike]],
]:
    """Decorator form of ``wrap``.

    Usage:
        @rate_limited(registry.auth)
        async def login(request: Request) -> Response: ...
    """

    def decorator(
        handler: Callable[[RequestT], Awaitable[ResponseLike]],
    ) -> Callable[[RequestT], Awaitable[ResponseLike]]:
        return wrap(handler, limiter)

    return decorator
