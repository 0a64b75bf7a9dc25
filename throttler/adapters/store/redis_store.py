"""Redis implementation of the shared counter store.

Each call is bounded by a short timeout so that a slow or dead Redis degrades
request latency by at most ``timeout_ms`` before the limiter falls back to its
per-process counters.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

import redis
import redis.asyncio as aioredis

from throttler.adapters.store.base import (
    AbstractCounterStore,
    StoreOk,
    StoreOutcome,
    StoreUnavailable,
)
from throttler.core.config import RedisSettings

logger = logging.getLogger(__name__)


def _classify(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, redis.TimeoutError)):
        return "timeout"
    if isinstance(exc, (redis.ConnectionError, OSError)):
        return "connection_error"
    if isinstance(exc, redis.ResponseError):
        return "script_error"
    return "redis_error"


class RedisCounterStore(AbstractCounterStore):
    """Counter store backed by ``redis.asyncio``.

    Args:
        client: Async Redis client. Responses are expected decoded to ``str``.
        timeout_ms: Upper bound for a single store call.
    """

    def __init__(self, client: aioredis.Redis, *, timeout_ms: int = 250) -> None:
        if timeout_ms < 1:
            raise ValueError("timeout_ms must be >= 1")
        self._client = client
        self._timeout = timeout_ms / 1000

    @classmethod
    def from_settings(cls, redis_settings: RedisSettings) -> "RedisCounterStore":
        """Build a store from settings without opening a connection yet."""

        timeout = redis_settings.timeout_ms / 1000
        client = aioredis.from_url(
            redis_settings.url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            max_connections=redis_settings.max_connections,
        )
        return cls(client, timeout_ms=redis_settings.timeout_ms)

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> StoreOutcome[Any]:
        try:
            value = await asyncio.wait_for(awaitable, timeout=self._timeout)
        except (redis.RedisError, OSError, asyncio.TimeoutError) as exc:
            reason = _classify(exc)
            logger.debug(
                "store.call_failed",
                extra={"operation": operation, "reason": reason, "error_type": type(exc).__name__},
            )
            return StoreUnavailable(reason=reason, error=exc)
        return StoreOk(value)

    async def eval_script(self, script: str, num_keys: int, *keys_and_args: Any) -> StoreOutcome[Any]:
        return await self._call("eval", self._client.eval(script, num_keys, *keys_and_args))

    async def get(self, key: str) -> StoreOutcome[str | None]:
        return await self._call("get", self._client.get(key))

    async def delete(self, key: str) -> StoreOutcome[int]:
        return await self._call("delete", self._client.delete(key))

    async def list_keys(self, pattern: str) -> StoreOutcome[list[str]]:
        # SCAN instead of KEYS so large keyspaces don't block the server
        async def _scan() -> list[str]:
            return [key async for key in self._client.scan_iter(match=pattern, count=500)]

        return await self._call("scan", _scan())

    async def ping(self) -> bool:
        outcome = await self._call("ping", self._client.ping())
        return isinstance(outcome, StoreOk) and bool(outcome.value)

    async def close(self) -> None:
        await self._client.aclose()
