"""In-memory fixed-window rate limiter used when the shared store is down.

Notes:
- Best-effort and per-process only: it does not coordinate across workers or
  instances, so N workers admit up to N times the configured limit.
- Fixed window, not sliding: a window starts at an identifier's first request
  and the count resets wholesale once it ends, so bursts at the boundary are
  possible. This coarser behavior during degradation is intended.
- Thread-safe: one lock around the shared map, one critical section per call.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from throttler.adapters.rate_limit.base import LimiterConfig, RateLimitResult


@dataclass
class _WindowState:
    count: int
    window_reset_at_ms: int


class InMemoryFixedWindowRateLimiter:
    """Fixed-window counter per identifier held in process memory.

    Entries are never swept in the background; they are replaced when their
    window rolls over and removed by ``reset``.
    """

    def __init__(
        self,
        config: LimiterConfig,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the fallback limiter.

        Args:
            config: Window size and quota shared with the primary limiter.
            clock: Time source returning UNIX time in seconds.
        """

        self._config = config
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_identifier: dict[str, _WindowState] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def consume(self, identifier: str) -> RateLimitResult:
        """Check the identifier's fixed window and count the request if admitted.

        Args:
            identifier: Caller identifier (not the prefixed rate key).

        Returns:
            RateLimitResult with the admission decision.
        """

        limit = self._config.max_requests
        now = self._now_ms()

        with self._lock:
            state = self._state_by_identifier.get(identifier)

            if state is None or state.window_reset_at_ms < now:
                state = _WindowState(count=1, window_reset_at_ms=now + self._config.window_ms)
                self._state_by_identifier[identifier] = state
                return RateLimitResult(
                    allowed=True,
                    limit=limit,
                    remaining=limit - 1,
                    reset_at_ms=state.window_reset_at_ms,
                )

            if state.count >= limit:
                return RateLimitResult(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_at_ms=state.window_reset_at_ms,
                )

            state.count += 1
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=limit - state.count,
                reset_at_ms=state.window_reset_at_ms,
            )

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._state_by_identifier.pop(identifier, None)

    def identifiers(self) -> list[str]:
        with self._lock:
            return list(self._state_by_identifier)
