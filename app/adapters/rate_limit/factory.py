"""Factory pattern for creating rate limiter instances."""

from app.adapters.kv_store.base import AbstractKeyValueStore
from app.adapters.rate_limit.adaptive import AdaptiveRateLimitConfig, AdaptiveRateLimiter
from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitConfig
from app.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from app.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter
from app.core.errors import ConfigurationAppError
from app.utils.clock import Clock, system_clock

SUPPORTED_STRATEGIES = ("fixed", "sliding", "adaptive")


def create_rate_limiter(
    strategy: str,
    *,
    store: AbstractKeyValueStore,
    window_seconds: int,
    max_requests: int,
    key_prefix: str,
    adaptation_factor: float = 0.5,
    clock: Clock = system_clock,
) -> AbstractRateLimiter:
    """Instantiate a limiter for ``strategy`` with a validated config.

    Args:
        strategy: One of "fixed", "sliding" or "adaptive".
        store: Key-value store holding the limiter state.
        window_seconds: Window length in seconds.
        max_requests: Limit per window (base limit for adaptive).
        key_prefix: Store namespace for this limiter.
        adaptation_factor: Adaptive feedback strength (adaptive only).
        clock: Millisecond time source.

    Returns:
        AbstractRateLimiter: Configured limiter.

    Raises:
        ConfigurationAppError: If the strategy is unknown or the config invalid.
    """
    normalized = strategy.lower()

    if normalized == "fixed":
        config = RateLimitConfig(window_seconds=window_seconds, max_requests=max_requests, key_prefix=key_prefix)
        return FixedWindowRateLimiter(config, store, clock=clock)

    if normalized == "sliding":
        config = RateLimitConfig(window_seconds=window_seconds, max_requests=max_requests, key_prefix=key_prefix)
        return SlidingWindowRateLimiter(config, store, clock=clock)

    if normalized == "adaptive":
        adaptive_config = AdaptiveRateLimitConfig(
            window_seconds=window_seconds,
            max_requests=max_requests,
            key_prefix=key_prefix,
            adaptation_factor=adaptation_factor,
        )
        return AdaptiveRateLimiter(adaptive_config, store, clock=clock)

    raise ConfigurationAppError(
        code="unknown_rate_limit_strategy",
        message=(
            f"Unknown rate limit strategy: '{strategy}'. "
            f"Supported strategies: {', '.join(SUPPORTED_STRATEGIES)}"
        ),
        details={"strategy": strategy},
    )
