"""Factory for the configured key-value store backend."""

from app.adapters.kv_store.base import AbstractKeyValueStore
from app.adapters.kv_store.in_memory import InMemoryKeyValueStore
from app.adapters.kv_store.redis_store import RedisKeyValueStore
from app.core.config import RateLimitSettings, settings
from app.utils.clock import Clock, system_clock


def create_kv_store(
    rate_limit_settings: RateLimitSettings | None = None,
    *,
    clock: Clock = system_clock,
) -> AbstractKeyValueStore:
    """Instantiate the key-value store selected by ``RATE_LIMIT_BACKEND``.

    Args:
        rate_limit_settings: Settings to read; defaults to the global settings.
        clock: Time source for the in-memory backend's expiration.

    Returns:
        AbstractKeyValueStore: Configured store instance.
    """
    cfg = rate_limit_settings or settings.rate_limit

    if cfg.backend == "redis":
        return RedisKeyValueStore.from_url(cfg.redis_url)

    return InMemoryKeyValueStore(clock=clock)
