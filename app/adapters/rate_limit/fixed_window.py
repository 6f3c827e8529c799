"""Fixed-window rate limiter backed by a key-value store.

Each key owns one RateRecord whose window opens at its first request. The
record is replaced once ``window_start`` falls out of the window; it is never
deleted explicitly and simply expires from the store.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from app.adapters.rate_limit.base import (
    RATE_LIMIT_EXCEEDED,
    AbstractRateLimiter,
    RateLimitDecision,
    retry_after_seconds,
    to_epoch_seconds,
)
from app.core.errors import StoreAppError
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)


@dataclass
class RateRecord:
    window_start: int
    request_count: int
    last_request: int


class FixedWindowRateLimiter(AbstractRateLimiter):
    """Counts requests per key within a window that starts at the first request.

    A denied request does not increment the stored count, so sustained abuse
    cannot push the counter further past the limit.
    """

    strategy = "fixed"

    async def _load_record(self, storage_key: str, now: int) -> RateRecord | None:
        data = await self._load_json(storage_key)
        if not isinstance(data, dict):
            return None
        try:
            record = RateRecord(
                window_start=int(data["window_start"]),
                request_count=int(data["request_count"]),
                last_request=int(data["last_request"]),
            )
        except (KeyError, TypeError, ValueError):
            return None
        if record.window_start <= now - self.config.window_ms:
            return None
        return record

    async def check(self, key: str) -> RateLimitDecision:
        now = self._clock()
        storage_key = self.storage_key(key)
        limit = self.config.max_requests

        try:
            record = await self._load_record(storage_key, now)

            if record is None:
                record = RateRecord(window_start=now, request_count=1, last_request=now)
                await self._save_json(storage_key, asdict(record), ttl_seconds=self.config.ttl_seconds)
                return RateLimitDecision(
                    allowed=True,
                    limit=limit,
                    remaining=limit - 1,
                    current=1,
                    reset_at=to_epoch_seconds(now + self.config.window_ms),
                )

            reset_ms = record.window_start + self.config.window_ms
            new_count = record.request_count + 1

            if new_count > limit:
                return RateLimitDecision(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    current=new_count,
                    reset_at=to_epoch_seconds(reset_ms),
                    retry_after_seconds=retry_after_seconds(reset_ms, now),
                    reason=RATE_LIMIT_EXCEEDED,
                )

            record.request_count = new_count
            record.last_request = now
            await self._save_json(storage_key, asdict(record), ttl_seconds=self.config.ttl_seconds)
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - new_count),
                current=new_count,
                reset_at=to_epoch_seconds(reset_ms),
            )
        except StoreAppError as exc:
            logger.error(
                "rate_limit.store_failed_open",
                extra={
                    "strategy": self.strategy,
                    "key_hash": hash_identifier(key),
                    "error_code": exc.code,
                },
            )
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=limit,
                current=0,
                reset_at=to_epoch_seconds(now + self.config.window_ms),
                error=exc.message,
            )
