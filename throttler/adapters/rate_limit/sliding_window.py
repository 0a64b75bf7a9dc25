"""Distributed sliding-window rate limiter.

Admission decisions are made by a Lua script against a Redis sorted set per
caller, one member per admitted request scored by its arrival time. When the
store cannot be consulted the limiter fails open to a per-process fixed-window
counter: availability of the protected endpoints wins over exact throttling.
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from typing import Any, Callable

from throttler.adapters.rate_limit.base import (
    AbstractRateLimiter,
    LimiterConfig,
    LimiterStats,
    RateLimitResult,
)
from throttler.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from throttler.adapters.rate_limit.scripts import SLIDING_WINDOW_SCRIPT
from throttler.adapters.store.base import AbstractCounterStore, StoreOk, StoreUnavailable
from throttler.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def hash_key(key: str) -> str:
    """Short SHA-256 digest of a caller identifier, safe to put in logs.

    Args:
        key: Identifier (client address, API key id...) to hide.

    Returns:
        First 16 hex characters of the SHA-256 digest.
    """
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def parse_script_reply(reply: Any) -> RateLimitResult | None:
    """Turn the script's ``{allowed, remaining, reset_at, limit}`` into a result.

    Returns:
        The verdict, or None when the reply does not have that shape.
    """

    if not isinstance(reply, (list, tuple)):
        return None
    try:
        allowed, remaining, reset_at_ms, limit = (int(value) for value in reply)
    except (TypeError, ValueError):
        return None
    return RateLimitResult(
        allowed=allowed == 1,
        limit=limit,
        remaining=max(0, remaining),
        reset_at_ms=reset_at_ms,
    )


class SlidingWindowRateLimiter(AbstractRateLimiter):
    """Sliding-window limiter over a shared store with a local fallback.

    Args:
        name: Limiter class name used in logs (``api``, ``auth``...).
        config: Prefix, window and quota for this instance.
        store: Shared counter store, or None to run on the fallback only.
        clock: Time source returning UNIX time in seconds.
    """

    def __init__(
        self,
        name: str,
        config: LimiterConfig,
        store: AbstractCounterStore | None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self.config = config
        self._store = store
        self._clock = clock
        self._fallback = InMemoryFixedWindowRateLimiter(config, clock=clock)

        if store is None:
            logger.info(
                "rate_limit.store_disabled",
                extra={"limiter": name, "mode": "per_process_fixed_window"},
            )

    def now_ms(self) -> int:
        """Current time in epoch milliseconds, from the injected clock."""
        return int(self._clock() * 1000)

    async def check(self, identifier: str) -> RateLimitResult:
        """Check ``identifier`` against the shared sliding window.

        Raises:
            ValidationAppError: If identifier is empty.
        """

        if not identifier:
            raise ValidationAppError(
                code="invalid_identifier",
                message="identifier must be a non-empty string",
                details={"field": "identifier", "limiter": self.name},
            )

        if self._store is None:
            return self._fallback.consume(identifier)

        key = self.config.rate_key(identifier)
        now = self.now_ms()
        member = f"{now}-{uuid.uuid4().hex}"

        outcome = await self._store.eval_script(
            SLIDING_WINDOW_SCRIPT,
            1,
            key,
            now,
            self.config.window_ms,
            self.config.max_requests,
            member,
        )

        if isinstance(outcome, StoreOk):
            result = parse_script_reply(outcome.value)
            if result is not None:
                return result
            outcome = StoreUnavailable(reason="malformed_reply")

        logger.warning(
            "rate_limit.store_unavailable",
            extra={
                "limiter": self.name,
                "reason": outcome.reason,
                "key_hash": hash_key(identifier),
                "fallback": "per_process_fixed_window",
            },
        )
        return self._fallback.consume(identifier)

    async def reset(self, identifier: str) -> None:
        """Delete the identifier's window from the store and the fallback map."""

        if self._store is not None:
            outcome = await self._store.delete(self.config.rate_key(identifier))
            if isinstance(outcome, StoreUnavailable):
                logger.debug(
                    "rate_limit.reset_store_skipped",
                    extra={"limiter": self.name, "reason": outcome.reason},
                )
        self._fallback.reset(identifier)

    async def get_stats(self) -> LimiterStats:
        if self._store is not None:
            prefix = f"{self.config.key_prefix}:"
            outcome = await self._store.list_keys(f"{prefix}*")
            if isinstance(outcome, StoreOk):
                identifiers = [key[len(prefix):] for key in outcome.value if key.startswith(prefix)]
                return LimiterStats(total=len(identifiers), identifiers=identifiers, source="store")

        identifiers = self._fallback.identifiers()
        return LimiterStats(total=len(identifiers), identifiers=identifiers, source="fallback")
