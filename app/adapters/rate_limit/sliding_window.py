"""Sliding-window rate limiter backed by a key-value store.

Stores the accepted request timestamps (epoch ms) per key as a JSON list.
Timestamps older than the window are pruned on every read.
"""

from __future__ import annotations

from app.adapters.rate_limit.base import (
    RATE_LIMIT_EXCEEDED,
    AbstractRateLimiter,
    RateLimitDecision,
    retry_after_seconds,
    to_epoch_seconds,
)


class SlidingWindowRateLimiter(AbstractRateLimiter):
    """Allows at most ``max_requests`` accepted requests in any trailing window.

    Only accepted requests are recorded: a denied attempt leaves the timestamp
    list untouched, so the budget frees up as soon as the oldest accepted
    request leaves the window.
    """

    strategy = "sliding"

    async def _load_timestamps(self, storage_key: str, now: int) -> list[int]:
        data = await self._load_json(storage_key)
        if not isinstance(data, list):
            return []
        cutoff = now - self.config.window_ms
        timestamps: list[int] = []
        for value in data:
            if isinstance(value, (int, float)) and value > cutoff:
                timestamps.append(int(value))
        return timestamps

    async def _check_window(
        self,
        key: str,
        *,
        limit: int,
        now: int,
        reason: str = RATE_LIMIT_EXCEEDED,
    ) -> RateLimitDecision:
        storage_key = self.storage_key(key)
        timestamps = await self._load_timestamps(storage_key, now)

        if len(timestamps) >= limit:
            reset_ms = min(timestamps) + self.config.window_ms
            return RateLimitDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                current=len(timestamps),
                reset_at=to_epoch_seconds(reset_ms),
                retry_after_seconds=retry_after_seconds(reset_ms, now),
                reason=reason,
                adaptive=self.strategy == "adaptive",
            )

        timestamps.append(now)
        await self._save_json(storage_key, timestamps, ttl_seconds=self.config.ttl_seconds)

        return RateLimitDecision(
            allowed=True,
            limit=limit,
            remaining=max(0, limit - len(timestamps)),
            current=len(timestamps),
            reset_at=to_epoch_seconds(min(timestamps) + self.config.window_ms),
            adaptive=self.strategy == "adaptive",
        )

    async def check(self, key: str) -> RateLimitDecision:
        return await self._check_window(key, limit=self.config.max_requests, now=self._clock())
