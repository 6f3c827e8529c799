"""Rate limiting adapters.

Three strategies share one interface (``AbstractRateLimiter.check``):
fixed window, sliding window and adaptive. State lives in an injected
key-value store so the same limiter works in-process or against Redis.
"""
