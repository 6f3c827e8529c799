"""Unit tests for the adaptive rate limiter."""

import json

import pytest

from app.adapters.rate_limit.adaptive import (
    AdaptiveRateLimitConfig,
    AdaptiveRateLimiter,
    AdaptiveStats,
    compute_adapted_limit,
    is_success_status,
)
from app.adapters.rate_limit.base import ADAPTIVE_RATE_LIMIT_EXCEEDED


def _limiter(store, clock, *, max_requests: int = 10, factor: float = 0.5, window_seconds: int = 60) -> AdaptiveRateLimiter:
    config = AdaptiveRateLimitConfig(
        window_seconds=window_seconds,
        max_requests=max_requests,
        key_prefix="adaptive",
        adaptation_factor=factor,
    )
    return AdaptiveRateLimiter(config, store, clock=clock)


def test_compute_adapted_limit_shrinks_with_error_rate() -> None:
    # error rate 1 / (0 + 1 + 1) = 0.5 -> floor(10 * (1 - 0.25)) = 7
    stats = AdaptiveStats(success_count=0, error_count=1, last_update=0, adapted_limit=10)

    assert compute_adapted_limit(10, stats, 0.5) == 7


def test_compute_adapted_limit_never_below_one() -> None:
    stats = AdaptiveStats(success_count=0, error_count=10_000, last_update=0, adapted_limit=1)

    assert compute_adapted_limit(3, stats, 1.0) == 1


@pytest.mark.parametrize(
    "status_code,expected",
    [(200, True), (204, True), (302, True), (399, True), (400, False), (429, False), (500, False), (199, False)],
)
def test_is_success_status(status_code: int, expected: bool) -> None:
    assert is_success_status(status_code) is expected


@pytest.mark.asyncio
async def test_fresh_client_gets_base_limit(store, clock) -> None:
    limiter = _limiter(store, clock, max_requests=10)

    decision = await limiter.check("k")

    assert decision.allowed is True
    assert decision.limit == 10
    assert decision.remaining == 9
    assert decision.adaptive is True


@pytest.mark.asyncio
async def test_error_outcomes_shrink_limit(store, clock) -> None:
    limiter = _limiter(store, clock, max_requests=10, factor=0.5)

    await limiter.check("k")
    await limiter.record_outcome("k", 500)
    stats = await limiter.load_stats("k")
    decision = await limiter.check("k")

    assert stats.error_count == 1
    assert stats.adapted_limit == 7
    assert decision.limit == 7


@pytest.mark.asyncio
async def test_success_outcomes_restore_limit(store, clock) -> None:
    limiter = _limiter(store, clock, max_requests=10, factor=0.5)
    await limiter.record_outcome("k", 500)
    assert (await limiter.load_stats("k")).adapted_limit == 7

    for _ in range(20):
        await limiter.record_outcome("k", 200)

    # error rate 1 / 22 -> floor(10 * (1 - 0.0227)) = 9
    assert (await limiter.load_stats("k")).adapted_limit == 9


@pytest.mark.asyncio
async def test_denial_counts_as_error_and_is_flagged_adaptive(store, clock) -> None:
    limiter = _limiter(store, clock, max_requests=2, factor=0.5)
    await limiter.check("k")
    await limiter.check("k")

    denied = await limiter.check("k")
    stats = await limiter.load_stats("k")

    assert denied.allowed is False
    assert denied.adaptive is True
    assert denied.reason == ADAPTIVE_RATE_LIMIT_EXCEEDED
    assert stats.error_count == 1
    assert len(json.loads(await store.get("adaptive:k"))) == 2


@pytest.mark.asyncio
async def test_sustained_failures_converge_to_one_and_stay_there(store, clock) -> None:
    limiter = _limiter(store, clock, max_requests=10, factor=1.0, window_seconds=1)

    limits = []
    for _ in range(50):
        decision = await limiter.check("k")
        if decision.allowed:
            await limiter.record_outcome("k", 500)
        limits.append(decision.limit)
        clock.advance(1)

    assert min(limits) >= 1
    assert limits[-1] == 1
    assert limits == sorted(limits, reverse=True)


@pytest.mark.asyncio
async def test_stats_are_namespaced_separately_from_window(store, clock) -> None:
    limiter = _limiter(store, clock)
    await limiter.check("k")
    await limiter.record_outcome("k", 200)

    assert await store.get("adaptive:k") is not None
    assert json.loads(await store.get("adaptive_stats:k"))["success_count"] == 1


@pytest.mark.asyncio
async def test_reset_clears_window_and_stats(store, clock) -> None:
    limiter = _limiter(store, clock)
    await limiter.check("k")
    await limiter.record_outcome("k", 500)

    await limiter.reset("k")

    assert await store.get("adaptive:k") is None
    assert await store.get("adaptive_stats:k") is None
    assert (await limiter.check("k")).limit == 10


@pytest.mark.asyncio
async def test_stats_expire_after_a_day(store, clock) -> None:
    limiter = _limiter(store, clock)
    await limiter.record_outcome("k", 500)

    clock.advance(24 * 60 * 60)

    assert (await limiter.load_stats("k")).error_count == 0


@pytest.mark.asyncio
async def test_denial_stands_when_stats_write_fails(clock, failing_store) -> None:
    store = failing_store(fail_get=False, fail_put=False)
    limiter = _limiter(store, clock, max_requests=2)
    await limiter.check("k")
    await limiter.check("k")

    store.fail_put = True
    denied = await limiter.check("k")

    assert denied.allowed is False
    assert denied.reason == ADAPTIVE_RATE_LIMIT_EXCEEDED
    store.fail_put = False
    assert (await limiter.load_stats("k")).error_count == 0
