"""Unit tests for the fixed-window rate limiter."""

import json

import pytest

from app.adapters.rate_limit.base import RATE_LIMIT_EXCEEDED, RateLimitConfig
from app.adapters.rate_limit.fixed_window import FixedWindowRateLimiter


def _limiter(store, clock, *, window_seconds: int = 60, max_requests: int = 5) -> FixedWindowRateLimiter:
    config = RateLimitConfig(window_seconds=window_seconds, max_requests=max_requests, key_prefix="fixed")
    return FixedWindowRateLimiter(config, store, clock=clock)


@pytest.mark.asyncio
async def test_allows_up_to_limit_then_denies_once(store, clock) -> None:
    limiter = _limiter(store, clock, max_requests=3)

    results = [await limiter.check("1.2.3.4") for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.current for r in results] == [1, 2, 3, 4]
    assert results[-1].reason == RATE_LIMIT_EXCEEDED


@pytest.mark.asyncio
async def test_remaining_counts_down_and_retry_after_tracks_window_start(store, clock) -> None:
    limiter = _limiter(store, clock, window_seconds=60, max_requests=5)
    start_ms = clock()

    remaining = []
    for _ in range(5):
        remaining.append((await limiter.check("1.2.3.4")).remaining)
        clock.advance(0.2)

    denied = await limiter.check("1.2.3.4")

    assert remaining == [4, 3, 2, 1, 0]
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.retry_after_seconds == 59
    assert denied.reset_at == (start_ms + 60_000) // 1000


@pytest.mark.asyncio
async def test_denial_does_not_change_persisted_record(store, clock) -> None:
    limiter = _limiter(store, clock, max_requests=2)
    await limiter.check("k")
    await limiter.check("k")
    stored_before = await store.get("fixed:k")

    first = await limiter.check("k")
    second = await limiter.check("k")

    assert first.allowed is second.allowed is False
    assert first.current == second.current == 3
    assert await store.get("fixed:k") == stored_before
    assert json.loads(stored_before)["request_count"] == 2


@pytest.mark.asyncio
async def test_window_rollover_restores_full_budget(store, clock) -> None:
    limiter = _limiter(store, clock, window_seconds=10, max_requests=2)
    await limiter.check("k")
    await limiter.check("k")
    assert (await limiter.check("k")).allowed is False

    clock.advance(10)

    fresh = [await limiter.check("k") for _ in range(2)]
    assert all(r.allowed for r in fresh)
    assert fresh[0].current == 1


@pytest.mark.asyncio
async def test_keys_are_isolated(store, clock) -> None:
    limiter = _limiter(store, clock, max_requests=1)

    assert (await limiter.check("k1")).allowed is True
    assert (await limiter.check("k1")).allowed is False
    assert (await limiter.check("k2")).allowed is True


@pytest.mark.asyncio
async def test_record_is_written_with_window_ttl(store, clock) -> None:
    limiter = _limiter(store, clock, window_seconds=30, max_requests=5)
    await limiter.check("k")

    clock.advance(30 + 60)

    assert await store.get("fixed:k") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("fail_get,fail_put", [(True, False), (False, True)])
async def test_store_failure_allows_with_error_note(clock, failing_store, fail_get: bool, fail_put: bool) -> None:
    store = failing_store(fail_get=fail_get, fail_put=fail_put)
    limiter = _limiter(store, clock)

    decision = await limiter.check("k")

    assert decision.allowed is True
    assert decision.current == 0
    assert decision.error == "store down"


@pytest.mark.asyncio
async def test_corrupt_record_starts_new_window(store, clock) -> None:
    await store.put("fixed:k", "{not json")
    limiter = _limiter(store, clock)

    decision = await limiter.check("k")

    assert decision.allowed is True
    assert decision.current == 1
