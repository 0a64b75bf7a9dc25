"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``throttler`` import so settings
pick up the test configuration instead of a local .env file.
"""

import fnmatch
import os
import threading
from typing import Any
from unittest.mock import Mock

import pytest

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from throttler.adapters.rate_limit.scripts import (  # noqa: E402
    DECREMENT_JOBS_SCRIPT,
    INCREMENT_JOBS_SCRIPT,
    SLIDING_WINDOW_SCRIPT,
)
from throttler.adapters.store.base import (  # noqa: E402
    AbstractCounterStore,
    StoreOk,
    StoreOutcome,
    StoreUnavailable,
)


class FakeRedisStore(AbstractCounterStore):
    """In-process stand-in for Redis running the limiter scripts.

    Each script body is emulated in Python under one lock, which gives the
    same all-or-nothing execution Redis gives a Lua script.
    """

    def __init__(self) -> None:
        self.zsets: dict[str, dict[str, int]] = {}
        self.counters: dict[str, int] = {}
        self.ttls_ms: dict[str, int] = {}
        self.eval_calls: list[tuple[Any, ...]] = []
        self.closed = False
        self._lock = threading.Lock()

    async def eval_script(self, script: str, num_keys: int, *keys_and_args: Any) -> StoreOutcome[Any]:
        keys, args = keys_and_args[:num_keys], keys_and_args[num_keys:]
        if script == INCREMENT_JOBS_SCRIPT:
            return self._increment(keys[0], int(args[0]))
        if script == DECREMENT_JOBS_SCRIPT:
            return self._decrement(keys[0])
        assert script == SLIDING_WINDOW_SCRIPT
        key = keys[0]
        now, window, limit = int(args[0]), int(args[1]), int(args[2])
        member = str(args[3])

        with self._lock:
            self.eval_calls.append(keys_and_args)
            entries = self.zsets.get(key, {})
            for existing, score in list(entries.items()):
                if score < now - window:
                    del entries[existing]

            count = len(entries)
            if count >= limit:
                reset_at = now + window
                if entries:
                    reset_at = min(entries.values()) + window
                return StoreOk([0, 0, reset_at, limit])

            entries[member] = now
            self.zsets[key] = entries
            self.ttls_ms[key] = window
            return StoreOk([1, limit - count - 1, now + window, limit])

    def _increment(self, key: str, ttl_seconds: int) -> StoreOutcome[int]:
        with self._lock:
            self.counters[key] = self.counters.get(key, 0) + 1
            self.ttls_ms[key] = ttl_seconds * 1000
            return StoreOk(self.counters[key])

    def _decrement(self, key: str) -> StoreOutcome[int]:
        with self._lock:
            current = self.counters.get(key, 0) - 1
            if current <= 0:
                self.counters.pop(key, None)
                self.ttls_ms.pop(key, None)
                return StoreOk(0)
            self.counters[key] = current
            return StoreOk(current)

    async def get(self, key: str) -> StoreOutcome[str | None]:
        with self._lock:
            value = self.counters.get(key)
            return StoreOk(None if value is None else str(value))

    async def delete(self, key: str) -> StoreOutcome[int]:
        with self._lock:
            self.ttls_ms.pop(key, None)
            removed = self.zsets.pop(key, None) is not None
            removed = self.counters.pop(key, None) is not None or removed
            return StoreOk(int(removed))

    async def list_keys(self, pattern: str) -> StoreOutcome[list[str]]:
        with self._lock:
            return StoreOk([key for key in self.zsets if fnmatch.fnmatchcase(key, pattern)])

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


class UnavailableStore(AbstractCounterStore):
    """Store whose every call reports it cannot be reached."""

    def __init__(self, reason: str = "connection_error") -> None:
        self.reason = reason
        self.calls = 0

    async def eval_script(self, script: str, num_keys: int, *keys_and_args: Any) -> StoreOutcome[Any]:
        self.calls += 1
        return StoreUnavailable(reason=self.reason)

    async def get(self, key: str) -> StoreOutcome[str | None]:
        self.calls += 1
        return StoreUnavailable(reason=self.reason)

    async def delete(self, key: str) -> StoreOutcome[int]:
        self.calls += 1
        return StoreUnavailable(reason=self.reason)

    async def list_keys(self, pattern: str) -> StoreOutcome[list[str]]:
        self.calls += 1
        return StoreUnavailable(reason=self.reason)


@pytest.fixture
def fake_store() -> FakeRedisStore:
    return FakeRedisStore()


@pytest.fixture
def unavailable_store() -> UnavailableStore:
    return UnavailableStore()


@pytest.fixture
def clock() -> Mock:
    """Controllable clock in UNIX seconds; set ``clock.return_value`` to move time."""
    return Mock(return_value=1_700_000_000.0)
