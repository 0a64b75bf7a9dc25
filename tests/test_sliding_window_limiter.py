"""Tests for the Redis-backed sliding-window limiter.

The shared-store path runs against ``FakeRedisStore`` (see conftest), the
degraded path against ``UnavailableStore``.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from throttler.adapters.rate_limit.base import LimiterConfig
from throttler.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter, hash_key
from throttler.adapters.store.base import StoreOk, StoreUnavailable
from throttler.core.errors import ValidationAppError

WINDOW_MS = 60_000


def _limiter(store, clock, *, limit: int = 3, window_ms: int = WINDOW_MS) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter("test", LimiterConfig("rl:test", window_ms, limit), store, clock=clock)


class TestSharedStorePath:
    @pytest.mark.asyncio
    async def test_scenario_three_per_minute(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock)

        results = [await limiter.check("ip-1") for _ in range(3)]
        assert [r.allowed for r in results] == [True, True, True]
        assert [r.remaining for r in results] == [2, 1, 0]

        clock.return_value += 10
        denied = await limiter.check("ip-1")
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.limit == 3
        now_ms = int(clock.return_value * 1000)
        assert denied.retry_after_seconds(now_ms) > 0

        clock.return_value += 61
        assert (await limiter.check("ip-1")).allowed is True

    @pytest.mark.asyncio
    async def test_remaining_strictly_decreases_to_zero(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock, limit=10)

        remaining = []
        for _ in range(10):
            remaining.append((await limiter.check("ip")).remaining)
            clock.return_value += 0.001

        assert remaining == list(range(9, -1, -1))

    @pytest.mark.asyncio
    async def test_denied_reset_is_oldest_entry_plus_window(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock, limit=2)
        start_ms = int(clock.return_value * 1000)

        await limiter.check("ip")
        clock.return_value += 5
        await limiter.check("ip")
        clock.return_value += 5
        denied = await limiter.check("ip")

        assert denied.allowed is False
        assert denied.reset_at_ms == start_ms + WINDOW_MS

    @pytest.mark.asyncio
    async def test_window_slides_one_entry_at_a_time(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock, limit=2)

        await limiter.check("ip")
        clock.return_value += 30
        await limiter.check("ip")

        # 61s after the first request only the first entry has left the window
        clock.return_value += 31
        assert (await limiter.check("ip")).allowed is True
        assert (await limiter.check("ip")).allowed is False

    @pytest.mark.asyncio
    async def test_entry_exactly_window_old_still_counts(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock, limit=1)

        await limiter.check("ip")
        clock.return_value += WINDOW_MS / 1000

        assert (await limiter.check("ip")).allowed is False

    @pytest.mark.asyncio
    async def test_denied_request_is_not_recorded(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock, limit=1)

        await limiter.check("ip")
        await limiter.check("ip")
        await limiter.check("ip")

        assert len(fake_store.zsets["rl:test:ip"]) == 1

    @pytest.mark.asyncio
    async def test_same_millisecond_requests_get_distinct_members(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock, limit=5)

        for _ in range(5):
            await limiter.check("ip")

        assert len(fake_store.zsets["rl:test:ip"]) == 5

    @pytest.mark.asyncio
    async def test_script_arguments_and_expiry(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock)

        await limiter.check("ip")

        key, now, window, limit, member = fake_store.eval_calls[0]
        assert key == "rl:test:ip"
        assert now == int(clock.return_value * 1000)
        assert (window, limit) == (WINDOW_MS, 3)
        assert member.startswith(f"{now}-")
        assert fake_store.ttls_ms["rl:test:ip"] == WINDOW_MS

    @pytest.mark.asyncio
    async def test_identifiers_are_independent(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock, limit=1)

        await limiter.check("a")
        assert (await limiter.check("a")).allowed is False

        result = await limiter.check("b")
        assert result.allowed is True
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_reset_scenario(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock)

        for _ in range(4):
            last = await limiter.check("ip-2")
        assert last.allowed is False

        await limiter.reset("ip-2")
        result = await limiter.check("ip-2")

        assert result.allowed is True
        assert result.remaining == 2

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock)

        await limiter.reset("never-seen")
        await limiter.reset("never-seen")

        assert "rl:test:never-seen" not in fake_store.zsets

    @pytest.mark.asyncio
    async def test_stats_lists_only_own_prefix(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock)
        other = SlidingWindowRateLimiter("other", LimiterConfig("rl:other", WINDOW_MS, 3), fake_store, clock=clock)

        await limiter.check("stats-1")
        await limiter.check("stats-2")
        await other.check("stats-3")

        stats = await limiter.get_stats()

        assert stats.source == "store"
        assert stats.total == 2
        assert sorted(stats.identifiers) == ["stats-1", "stats-2"]

    @pytest.mark.asyncio
    async def test_empty_identifier_rejected(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock)

        with pytest.raises(ValidationAppError) as exc_info:
            await limiter.check("")

        assert exc_info.value.code == "invalid_identifier"
        assert fake_store.eval_calls == []


class TestAtomicity:
    @pytest.mark.asyncio
    async def test_concurrent_tasks_never_exceed_limit(self, fake_store) -> None:
        limiter = SlidingWindowRateLimiter("test", LimiterConfig("rl:test", WINDOW_MS, 7), fake_store)

        results = await asyncio.gather(*(limiter.check("hot") for _ in range(100)))

        assert sum(r.allowed for r in results) == 7
        assert sorted(r.remaining for r in results if r.allowed) == list(range(7))

    def test_parallel_threads_never_exceed_limit(self, fake_store) -> None:
        limiter = SlidingWindowRateLimiter("test", LimiterConfig("rl:test", WINDOW_MS, 10), fake_store)

        def run_check(_: int) -> bool:
            return asyncio.run(limiter.check("hot")).allowed

        with ThreadPoolExecutor(max_workers=8) as pool:
            allowed = list(pool.map(run_check, range(64)))

        assert sum(allowed) == 10


class TestFallbackPath:
    @pytest.mark.asyncio
    async def test_unreachable_store_returns_well_formed_verdicts(self, unavailable_store, clock) -> None:
        limiter = _limiter(unavailable_store, clock)

        results = [await limiter.check("ip-1") for _ in range(5)]

        assert [r.allowed for r in results] == [True, True, True, False, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0, 0]
        assert all(r.limit == 3 for r in results)
        assert all(r.reset_at_ms == int(clock.return_value * 1000) + WINDOW_MS for r in results)
        assert unavailable_store.calls == 5

    @pytest.mark.asyncio
    async def test_fallback_recovers_after_window(self, unavailable_store, clock) -> None:
        limiter = _limiter(unavailable_store, clock, limit=1)

        await limiter.check("ip")
        assert (await limiter.check("ip")).allowed is False

        clock.return_value += 61
        assert (await limiter.check("ip")).allowed is True

    @pytest.mark.asyncio
    async def test_degradation_is_logged_as_warning(self, unavailable_store, clock, caplog) -> None:
        limiter = _limiter(unavailable_store, clock)

        with caplog.at_level(logging.WARNING, logger="throttler.adapters.rate_limit.sliding_window"):
            await limiter.check("ip")

        records = [r for r in caplog.records if r.getMessage() == "rate_limit.store_unavailable"]
        assert len(records) == 1
        assert records[0].reason == "connection_error"
        assert records[0].limiter == "test"
        assert records[0].key_hash == hash_key("ip")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [None, [1, 2], ["x", 0, 0, 3], "garbage", "1034", 1034])
    async def test_malformed_reply_falls_back(self, reply, clock) -> None:
        store = Mock()

        async def eval_script(*args):
            return StoreOk(reply)

        store.eval_script = eval_script
        limiter = _limiter(store, clock)

        result = await limiter.check("ip")

        assert result.allowed is True
        assert result.remaining == 2

    @pytest.mark.asyncio
    async def test_no_store_uses_fallback_only(self, clock) -> None:
        limiter = _limiter(None, clock, limit=2)

        assert (await limiter.check("ip")).remaining == 1
        assert (await limiter.check("ip")).remaining == 0
        assert (await limiter.check("ip")).allowed is False

        stats = await limiter.get_stats()
        assert stats.source == "fallback"
        assert stats.identifiers == ["ip"]

    @pytest.mark.asyncio
    async def test_reset_clears_fallback_even_when_store_down(self, unavailable_store, clock) -> None:
        limiter = _limiter(unavailable_store, clock, limit=1)

        await limiter.check("ip-2")
        assert (await limiter.check("ip-2")).allowed is False

        await limiter.reset("ip-2")
        result = await limiter.check("ip-2")

        assert result.allowed is True
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_stats_fall_back_to_local_identifiers(self, unavailable_store, clock) -> None:
        limiter = _limiter(unavailable_store, clock)

        await limiter.check("a")
        await limiter.check("b")
        stats = await limiter.get_stats()

        assert stats.source == "fallback"
        assert stats.total == 2
        assert sorted(stats.identifiers) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_store_recovery_switches_back_to_sliding_window(self, fake_store, clock) -> None:
        limiter = _limiter(fake_store, clock, limit=2)
        healthy_eval = fake_store.eval_script

        async def failing_eval(*args):
            return StoreUnavailable(reason="timeout")

        fake_store.eval_script = failing_eval
        await limiter.check("ip")
        await limiter.check("ip")
        assert (await limiter.check("ip")).allowed is False

        fake_store.eval_script = healthy_eval
        result = await limiter.check("ip")
        assert result.allowed is True
        assert result.remaining == 1
