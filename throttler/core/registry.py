"""Named limiter instances for each traffic class.

The registry is built once by the composition root (``create_app``) and
handed to whatever needs a limiter. Each limiter has its own key prefix,
window and quota; they share at most the store connection, never counters.
"""

from __future__ import annotations

import time
from typing import Callable, Iterator

from throttler.adapters.rate_limit.base import LimiterConfig
from throttler.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter
from throttler.adapters.store.base import AbstractCounterStore
from throttler.core.config import LimitSettings
from throttler.core.errors import LimiterNotFoundAppError

API = "api"
AUTH = "auth"
STRICT = "strict"
IMAGE = "image"
ANALYTICS = "analytics"


def default_configs(limits: LimitSettings) -> dict[str, LimiterConfig]:
    """Limiter configuration for every traffic class.

    Args:
        limits: Window/quota overrides (``LIMIT_*`` environment variables).

    Returns:
        Mapping of limiter name to its configuration.
    """

    return {
        API: LimiterConfig("rl:api", limits.api_window_ms, limits.api_max_requests),
        AUTH: LimiterConfig("rl:auth", limits.auth_window_ms, limits.auth_max_requests),
        STRICT: LimiterConfig("rl:strict", limits.strict_window_ms, limits.strict_max_requests),
        IMAGE: LimiterConfig("rl:image", limits.image_window_ms, limits.image_max_requests),
        ANALYTICS: LimiterConfig(
            "rl:analytics", limits.analytics_window_ms, limits.analytics_max_requests
        ),
    }


class LimiterRegistry:
    """Independent sliding-window limiters keyed by traffic class."""

    def __init__(
        self,
        configs: dict[str, LimiterConfig],
        store: AbstractCounterStore | None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._limiters = {
            name: SlidingWindowRateLimiter(name, config, store, clock=clock)
            for name, config in configs.items()
        }

    @classmethod
    def from_settings(
        cls,
        limits: LimitSettings,
        store: AbstractCounterStore | None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> "LimiterRegistry":
        """Build the default traffic classes with ``LIMIT_*`` overrides applied.

        Args:
            limits: Window and quota settings.
            store: Shared store, or None to run every limiter on its fallback.
            clock: Time source in UNIX seconds.

        Raises:
            ConfigurationAppError: If a configured window or quota is invalid.
        """
        return cls(default_configs(limits), store, clock=clock)

    def get(self, name: str) -> SlidingWindowRateLimiter:
        """Return the limiter registered under ``name``.

        Raises:
            LimiterNotFoundAppError: If no limiter has that name.
        """

        try:
            return self._limiters[name]
        except KeyError:
            raise LimiterNotFoundAppError(
                code="limiter_not_found",
                message=f"No rate limiter named '{name}'",
                details={"limiter": name, "available": self.names()},
            ) from None

    def names(self) -> list[str]:
        """Registered limiter names, in registration order.

        Returns:
            Names usable with ``get``.
        """
        return list(self._limiters)

    def __iter__(self) -> Iterator[SlidingWindowRateLimiter]:
        return iter(self._limiters.values())

    @property
    def api(self) -> SlidingWindowRateLimiter:
        """General API traffic: 100 requests per 15 minutes by default."""
        return self.get(API)

    @property
    def auth(self) -> SlidingWindowRateLimiter:
        """Authentication endpoints: 5 per 15 minutes, to blunt credential stuffing."""
        return self.get(AUTH)

    @property
    def strict(self) -> SlidingWindowRateLimiter:
        """Tight per-minute guard: 10 per minute."""
        return self.get(STRICT)

    @property
    def image(self) -> SlidingWindowRateLimiter:
        """Resource-intensive image processing: 20 per 15 minutes."""
        return self.get(IMAGE)

    @property
    def analytics(self) -> SlidingWindowRateLimiter:
        """Analytics and telemetry ingestion: 60 per minute."""
        return self.get(ANALYTICS)
