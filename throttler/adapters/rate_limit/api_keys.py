"""Per-API-key quotas for external API consumers.

Two controls keyed by API key id, independent of the traffic-class limiters:

- a rolling hour or day request quota, evaluated by the same sliding-window
  script under ``ratelimit:{key_id}:{window}``;
- a counter of jobs in flight under ``concurrent:{key_id}``, incremented when
  a job starts and decremented when it ends.

There is no local fallback here. When the store cannot be consulted every
check is admitted and counter updates are skipped, with a warning.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Literal

from throttler.adapters.rate_limit.base import RateLimitResult
from throttler.adapters.rate_limit.scripts import (
    DECREMENT_JOBS_SCRIPT,
    INCREMENT_JOBS_SCRIPT,
    SLIDING_WINDOW_SCRIPT,
)
from throttler.adapters.rate_limit.sliding_window import hash_key, parse_script_reply
from throttler.adapters.store.base import AbstractCounterStore, StoreOk, StoreUnavailable
from throttler.core.config import QuotaSettings
from throttler.core.errors import ConfigurationAppError, ValidationAppError

logger = logging.getLogger(__name__)

QuotaWindow = Literal["hour", "day"]

QUOTA_WINDOWS_MS: dict[str, int] = {
    "hour": 60 * 60 * 1000,
    "day": 24 * 60 * 60 * 1000,
}


@dataclass(frozen=True)
class ApiKeyQuota:
    """Limits granted to one API key.

    Raises:
        ConfigurationAppError: If any limit is not a positive integer.
    """

    requests_per_hour: int
    requests_per_day: int
    concurrent_jobs: int

    def __post_init__(self) -> None:
        for name in ("requests_per_hour", "requests_per_day", "concurrent_jobs"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationAppError(
                    code="invalid_quota_config",
                    message=f"{name} must be a positive integer",
                    details={"field": name, "actual_value": value},
                )

    @classmethod
    def from_settings(cls, quotas: QuotaSettings) -> "ApiKeyQuota":
        return cls(
            requests_per_hour=quotas.requests_per_hour,
            requests_per_day=quotas.requests_per_day,
            concurrent_jobs=quotas.concurrent_jobs,
        )

    def limit_for(self, window: QuotaWindow) -> int:
        return self.requests_per_hour if window == "hour" else self.requests_per_day


@dataclass(frozen=True)
class ConcurrentJobsResult:
    """Whether another job may start for a key.

    Attributes:
        allowed: ``current < limit``.
        current: Jobs currently in flight (0 when the store is unreachable).
        limit: Jobs allowed in flight at once.
    """

    allowed: bool
    current: int
    limit: int


def _require_key_id(key_id: str) -> None:
    if not key_id:
        raise ValidationAppError(
            code="invalid_api_key_id",
            message="API key id must be a non-empty string",
            details={"field": "key_id"},
        )


def _require_window(window: str) -> None:
    if window not in QUOTA_WINDOWS_MS:
        raise ValidationAppError(
            code="invalid_quota_window",
            message=f"Unknown quota window '{window}'",
            details={"field": "window", "actual_value": window, "available": list(QUOTA_WINDOWS_MS)},
        )


class ApiKeyQuotaLimiter:
    """Hourly/daily request quotas and in-flight job limits per API key.

    Args:
        store: Shared counter store, or None to admit everything.
        quota: Default limits for keys without their own quota.
        clock: Time source returning UNIX time in seconds.
        job_ttl_seconds: Expiry of the in-flight counter, refreshed on every
            increment so a missed decrement cannot block a key forever.
    """

    def __init__(
        self,
        store: AbstractCounterStore | None,
        quota: ApiKeyQuota,
        *,
        clock: Callable[[], float] = time.time,
        job_ttl_seconds: int = 600,
    ) -> None:
        if job_ttl_seconds < 1:
            raise ConfigurationAppError(
                code="invalid_quota_config",
                message="job_ttl_seconds must be a positive integer",
                details={"field": "job_ttl_seconds", "actual_value": job_ttl_seconds},
            )
        self.name = "api_key"
        self.quota = quota
        self.job_ttl_seconds = job_ttl_seconds
        self._store = store
        self._clock = clock

        if store is None:
            logger.info("api_key_quota.store_disabled", extra={"mode": "fail_open"})

    def now_ms(self) -> int:
        """Current time in epoch milliseconds, from the injected clock."""
        return int(self._clock() * 1000)

    @staticmethod
    def quota_key(key_id: str, window: QuotaWindow) -> str:
        return f"ratelimit:{key_id}:{window}"

    @staticmethod
    def jobs_key(key_id: str) -> str:
        return f"concurrent:{key_id}"

    def _store_unavailable(self, event: str, key_id: str, reason: str) -> None:
        logger.warning(
            event,
            extra={"limiter": self.name, "reason": reason, "key_hash": hash_key(key_id)},
        )

    async def check(
        self,
        key_id: str,
        window: QuotaWindow = "hour",
        quota: ApiKeyQuota | None = None,
    ) -> RateLimitResult:
        """Count one request against the key's quota for ``window``.

        Args:
            key_id: API key id.
            window: ``hour`` or ``day``.
            quota: Limits for this key; defaults to the limiter's quota.

        Returns:
            The sliding-window verdict. When the store cannot be consulted the
            request is admitted with ``remaining == limit``.

        Raises:
            ValidationAppError: If the key id is empty or the window unknown.
        """

        _require_key_id(key_id)
        _require_window(window)
        limit = (quota or self.quota).limit_for(window)
        window_ms = QUOTA_WINDOWS_MS[window]
        now = self.now_ms()

        if self._store is not None:
            outcome = await self._store.eval_script(
                SLIDING_WINDOW_SCRIPT,
                1,
                self.quota_key(key_id, window),
                now,
                window_ms,
                limit,
                f"{now}-{uuid.uuid4().hex}",
            )
            if isinstance(outcome, StoreOk):
                result = parse_script_reply(outcome.value)
                if result is not None:
                    return result
                outcome = StoreUnavailable(reason="malformed_reply")
            self._store_unavailable("api_key_quota.store_unavailable", key_id, outcome.reason)

        return RateLimitResult(allowed=True, limit=limit, remaining=limit, reset_at_ms=now + window_ms)

    async def reset(self, key_id: str) -> None:
        """Forget both quota windows of a key. In-flight jobs are untouched."""

        _require_key_id(key_id)
        if self._store is None:
            return
        for window in QUOTA_WINDOWS_MS:
            outcome = await self._store.delete(self.quota_key(key_id, window))
            if isinstance(outcome, StoreUnavailable):
                logger.debug(
                    "api_key_quota.reset_store_skipped",
                    extra={"limiter": self.name, "reason": outcome.reason},
                )

    async def check_concurrent_jobs(
        self,
        key_id: str,
        quota: ApiKeyQuota | None = None,
    ) -> ConcurrentJobsResult:
        """Whether ``key_id`` may start another job.

        Read-only: starting the job is a separate ``increment_concurrent_jobs``
        call. Fails open with ``current == 0``.

        Raises:
            ValidationAppError: If the key id is empty.
        """

        _require_key_id(key_id)
        limit = (quota or self.quota).concurrent_jobs
        current = 0

        if self._store is not None:
            outcome = await self._store.get(self.jobs_key(key_id))
            if isinstance(outcome, StoreOk):
                try:
                    current = max(0, int(outcome.value or 0))
                except (TypeError, ValueError):
                    self._store_unavailable("api_key_jobs.store_unavailable", key_id, "malformed_reply")
            else:
                self._store_unavailable("api_key_jobs.store_unavailable", key_id, outcome.reason)

        return ConcurrentJobsResult(allowed=current < limit, current=current, limit=limit)

    async def increment_concurrent_jobs(self, key_id: str) -> int | None:
        """Record a job start; returns the new in-flight count, or None if not recorded."""

        _require_key_id(key_id)
        if self._store is None:
            return None
        outcome = await self._store.eval_script(
            INCREMENT_JOBS_SCRIPT, 1, self.jobs_key(key_id), self.job_ttl_seconds
        )
        return self._counter_value(outcome, key_id)

    async def decrement_concurrent_jobs(self, key_id: str) -> int | None:
        """Record a job end; the counter is deleted once it reaches zero.

        Returns:
            The remaining in-flight count (0 after deletion), or None if the
            store could not be updated.
        """

        _require_key_id(key_id)
        if self._store is None:
            return None
        outcome = await self._store.eval_script(DECREMENT_JOBS_SCRIPT, 1, self.jobs_key(key_id))
        return self._counter_value(outcome, key_id)

    def _counter_value(self, outcome, key_id: str) -> int | None:
        if isinstance(outcome, StoreOk):
            try:
                return int(outcome.value)
            except (TypeError, ValueError):
                outcome = StoreUnavailable(reason="malformed_reply")
        self._store_unavailable("api_key_jobs.store_unavailable", key_id, outcome.reason)
        return None
