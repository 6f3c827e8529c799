"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not a concrete strategy) so the
fixed-window, sliding-window and adaptive limiters are interchangeable behind
the same gate.

All state lives in an injected key-value store. The read-modify-write sequence
per key is not transactional: concurrent requests for the same key can both
read count N and both write N+1. Limits are therefore best-effort under
concurrency, trading exactness for one store round-trip per request.
"""

from __future__ import annotations

import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from app.adapters.kv_store.base import AbstractKeyValueStore
from app.core.errors import ConfigurationAppError
from app.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)

RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
ADAPTIVE_RATE_LIMIT_EXCEEDED = "ADAPTIVE_RATE_LIMIT_EXCEEDED"

# Extra TTL on window state so slight clock/store skew never drops live entries.
WINDOW_TTL_BUFFER_SECONDS = 60


@dataclass(frozen=True)
class RateLimitConfig:
    """Validated limiter configuration.

    Attributes:
        window_seconds: Window length in seconds.
        max_requests: Requests allowed per window.
        key_prefix: Namespace for this limiter's store keys.

    Raises:
        ConfigurationAppError: If the window or limit is not positive.
    """

    window_seconds: int
    max_requests: int
    key_prefix: str = "rate_limit"

    def __post_init__(self) -> None:
        if self.window_seconds <= 0:
            raise ConfigurationAppError(
                code="invalid_rate_limit_window",
                message="window_seconds must be >= 1",
                details={"field": "window_seconds", "min_value": 1, "actual_value": self.window_seconds},
            )
        if self.max_requests <= 0:
            raise ConfigurationAppError(
                code="invalid_rate_limit_max",
                message="max_requests must be >= 1",
                details={"field": "max_requests", "min_value": 1, "actual_value": self.max_requests},
            )
        if not self.key_prefix:
            raise ConfigurationAppError(
                code="invalid_rate_limit_prefix",
                message="key_prefix must be a non-empty string",
                details={"field": "key_prefix"},
            )

    @property
    def window_ms(self) -> int:
        return self.window_seconds * 1000

    @property
    def ttl_seconds(self) -> int:
        return self.window_seconds + WINDOW_TTL_BUFFER_SECONDS


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Threshold that was applied (the adapted limit for adaptive).
        remaining: Requests left in the window after this one (0 when denied).
        current: Requests counted in the window, including this one.
        reset_at: UNIX epoch seconds when budget frees up.
        retry_after_seconds: Suggested wait when denied, else None.
        reason: Machine-readable denial code, else None.
        adaptive: True when produced by the adaptive limiter.
        error: Set when the limiter failed open because of a store error.
    """

    allowed: bool
    limit: int
    remaining: int
    current: int
    reset_at: int
    retry_after_seconds: int | None = None
    reason: str | None = None
    adaptive: bool = False
    error: str | None = None


def to_epoch_seconds(timestamp_ms: int) -> int:
    """Round a millisecond timestamp up to whole epoch seconds."""
    return int(math.ceil(timestamp_ms / 1000))


def retry_after_seconds(reset_ms: int, now_ms: int) -> int:
    """Seconds until ``reset_ms``, rounded up and never negative."""
    return max(0, int(math.ceil((reset_ms - now_ms) / 1000)))


class AbstractRateLimiter(ABC):
    """Interface for rate limiters.

    Subclasses implement ``check``; limiters that learn from downstream
    outcomes also override ``record_outcome``.
    """

    strategy: str = "abstract"

    def __init__(
        self,
        config: RateLimitConfig,
        store: AbstractKeyValueStore,
        *,
        clock: Clock = system_clock,
    ) -> None:
        self.config = config
        self._store = store
        self._clock = clock

    def storage_key(self, key: str) -> str:
        """Namespaced store key for a client identity."""
        return f"{self.config.key_prefix}:{key}"

    @abstractmethod
    async def check(self, key: str) -> RateLimitDecision:
        """Evaluate (and, when allowed, count) one request for ``key``.

        Args:
            key: Client identity (e.g., IP address).

        Returns:
            RateLimitDecision describing whether the request was allowed.
        """
        raise NotImplementedError

    async def record_outcome(self, key: str, status_code: int) -> None:
        """Feed the downstream response status back to the limiter."""
        return None

    async def reset(self, key: str) -> None:
        """Forget all window state for ``key``."""
        await self._store.delete(self.storage_key(key))

    async def _load_json(self, storage_key: str) -> Any | None:
        raw = await self._store.get(storage_key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(
                "rate_limit.corrupt_state",
                extra={"strategy": self.strategy, "key_prefix": self.config.key_prefix},
            )
            return None

    async def _save_json(self, storage_key: str, value: Any, *, ttl_seconds: int) -> None:
        await self._store.put(storage_key, json.dumps(value), ttl_seconds=ttl_seconds)
