"""Rate limiter interfaces.

HTTP code depends on this abstraction, never on a concrete limiter, so
handlers can be wired to the Redis-backed sliding window in production and to
anything with the same shape in tests.
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal

from throttler.core.errors import ConfigurationAppError


@dataclass(frozen=True)
class LimiterConfig:
    """Immutable configuration of one limiter instance.

    Raises:
        ConfigurationAppError: If the prefix is empty or window/limit are not
            positive. Raised at construction so bad config fails at startup.
    """

    key_prefix: str
    window_ms: int
    max_requests: int

    def __post_init__(self) -> None:
        if not self.key_prefix:
            raise ConfigurationAppError(
                code="invalid_limiter_config",
                message="key_prefix must be a non-empty string",
                details={"field": "key_prefix", "actual_value": self.key_prefix},
            )
        for name in ("window_ms", "max_requests"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationAppError(
                    code="invalid_limiter_config",
                    message=f"{name} must be a positive integer",
                    details={"field": name, "actual_value": value, "limiter": self.key_prefix},
                )

    def rate_key(self, identifier: str) -> str:
        return f"{self.key_prefix}:{identifier}"


@dataclass(frozen=True)
class RateLimitResult:
    """Verdict of a single admission check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Requests left in the current window (0 when blocked).
        reset_at_ms: Epoch milliseconds at which a slot frees up again.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int

    def retry_after_seconds(self, now_ms: int) -> int:
        """Whole seconds until ``reset_at_ms``, never less than 1."""
        return max(1, math.ceil((self.reset_at_ms - now_ms) / 1000))

    @property
    def reset_at_iso(self) -> str:
        """``reset_at_ms`` as ISO-8601 UTC with millisecond precision."""
        seconds, millis = divmod(self.reset_at_ms, 1000)
        moment = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)
        return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class LimiterStats:
    """Identifiers currently tracked by one limiter instance."""

    total: int
    identifiers: list[str] = field(default_factory=list)
    source: Literal["store", "fallback"] = "store"


class AbstractRateLimiter(ABC):
    """Interface for admission-control limiters."""

    def now_ms(self) -> int:
        """Current time in epoch milliseconds, as the limiter sees it.

        Verdict reset times are computed on this clock, so retry delays must
        be measured against it too. Defaults to the wall clock.
        """
        return int(time.time() * 1000)

    @abstractmethod
    async def check(self, identifier: str) -> RateLimitResult:
        """Check and, when admitted, count one request for ``identifier``."""
        raise NotImplementedError

    @abstractmethod
    async def reset(self, identifier: str) -> None:
        """Forget all counted requests for ``identifier``."""
        raise NotImplementedError

    @abstractmethod
    async def get_stats(self) -> LimiterStats:
        """Enumerate tracked identifiers, for operational visibility only."""
        raise NotImplementedError
