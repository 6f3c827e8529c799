"""Adaptive rate limiter.

A sliding-window limiter whose threshold follows the client's recent
downstream error rate:

    error_rate    = errors / (successes + errors + 1)
    adapted_limit = max(1, floor(base_max * (1 - error_rate * adaptation_factor)))

Sustained downstream failures shrink the effective quota; sustained success
restores it toward ``base_max``. Denials by the limiter itself count as errors.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass

from app.adapters.kv_store.base import AbstractKeyValueStore
from app.adapters.rate_limit.base import (
    ADAPTIVE_RATE_LIMIT_EXCEEDED,
    RateLimitConfig,
    RateLimitDecision,
)
from app.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter
from app.core.errors import ConfigurationAppError, StoreAppError
from app.core.logging import hash_identifier
from app.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)

STATS_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class AdaptiveRateLimitConfig(RateLimitConfig):
    """Adaptive limiter configuration.

    ``max_requests`` is the base limit. ``adaptation_factor`` must lie in
    [0, 1]; 0 disables adaptation, 1 lets a fully failing client drop to a
    single request per window.
    """

    key_prefix: str = "adaptive_rate_limit"
    adaptation_factor: float = 0.5
    stats_ttl_seconds: int = STATS_TTL_SECONDS

    def __post_init__(self) -> None:
        super().__post_init__()
        if not 0.0 <= self.adaptation_factor <= 1.0:
            raise ConfigurationAppError(
                code="invalid_adaptation_factor",
                message="adaptation_factor must be between 0 and 1",
                details={"field": "adaptation_factor", "actual_value": self.adaptation_factor},
            )
        if self.stats_ttl_seconds <= 0:
            raise ConfigurationAppError(
                code="invalid_stats_ttl",
                message="stats_ttl_seconds must be >= 1",
                details={"field": "stats_ttl_seconds", "min_value": 1, "actual_value": self.stats_ttl_seconds},
            )


@dataclass
class AdaptiveStats:
    success_count: int
    error_count: int
    last_update: int
    adapted_limit: int


def compute_adapted_limit(base_max: int, stats: AdaptiveStats, adaptation_factor: float) -> int:
    """Derive the effective limit from the observed success/error counts."""
    error_rate = stats.error_count / (stats.success_count + stats.error_count + 1)
    return max(1, math.floor(base_max * (1 - error_rate * adaptation_factor)))


def is_success_status(status_code: int) -> bool:
    """2xx and 3xx responses count as successes."""
    return 200 <= status_code < 400


class AdaptiveRateLimiter(SlidingWindowRateLimiter):
    """Sliding-window limiter with a feedback loop on downstream outcomes."""

    strategy = "adaptive"

    def __init__(
        self,
        config: AdaptiveRateLimitConfig,
        store: AbstractKeyValueStore,
        *,
        clock: Clock = system_clock,
    ) -> None:
        super().__init__(config, store, clock=clock)
        self.config: AdaptiveRateLimitConfig = config

    def stats_key(self, key: str) -> str:
        return f"{self.config.key_prefix}_stats:{key}"

    async def load_stats(self, key: str) -> AdaptiveStats:
        """Return stored stats for ``key`` or fresh defaults."""
        data = await self._load_json(self.stats_key(key))
        if isinstance(data, dict):
            try:
                return AdaptiveStats(
                    success_count=max(0, int(data["success_count"])),
                    error_count=max(0, int(data["error_count"])),
                    last_update=int(data["last_update"]),
                    adapted_limit=max(1, int(data["adapted_limit"])),
                )
            except (KeyError, TypeError, ValueError):
                pass
        return AdaptiveStats(
            success_count=0,
            error_count=0,
            last_update=self._clock(),
            adapted_limit=self.config.max_requests,
        )

    async def _save_stats(self, key: str, stats: AdaptiveStats) -> None:
        await self._save_json(self.stats_key(key), asdict(stats), ttl_seconds=self.config.stats_ttl_seconds)

    async def check(self, key: str) -> RateLimitDecision:
        now = self._clock()
        stats = await self.load_stats(key)
        adapted_limit = compute_adapted_limit(self.config.max_requests, stats, self.config.adaptation_factor)

        decision = await self._check_window(
            key,
            limit=adapted_limit,
            now=now,
            reason=ADAPTIVE_RATE_LIMIT_EXCEEDED,
        )

        if not decision.allowed:
            stats.error_count += 1
            stats.last_update = now
            stats.adapted_limit = compute_adapted_limit(
                self.config.max_requests, stats, self.config.adaptation_factor
            )
            try:
                await self._save_stats(key, stats)
            except StoreAppError as exc:
                # The window already denied; a lost error sample must not flip that
                logger.error(
                    "rate_limit.stats_write_failed",
                    extra={"key_hash": hash_identifier(key), "error_code": exc.code},
                )

        return decision

    async def record_outcome(self, key: str, status_code: int) -> None:
        stats = await self.load_stats(key)
        if is_success_status(status_code):
            stats.success_count += 1
        else:
            stats.error_count += 1
        stats.last_update = self._clock()
        stats.adapted_limit = compute_adapted_limit(
            self.config.max_requests, stats, self.config.adaptation_factor
        )
        await self._save_stats(key, stats)

        logger.debug(
            "rate_limit.adaptive_updated",
            extra={
                "key_hash": hash_identifier(key),
                "status_code": status_code,
                "success_count": stats.success_count,
                "error_count": stats.error_count,
                "adapted_limit": stats.adapted_limit,
            },
        )

    async def reset(self, key: str) -> None:
        await super().reset(key)
        await self._store.delete(self.stats_key(key))
