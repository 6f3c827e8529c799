"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any app import so the global settings
object is built with test values.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from app.adapters.kv_store.in_memory import InMemoryKeyValueStore


class FakeClock:
    """Deterministic millisecond clock."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.current = start_ms

    def __call__(self) -> int:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += int(seconds * 1000)


class FailingStore(InMemoryKeyValueStore):
    """Store whose reads and/or writes raise, for fail-open tests."""

    def __init__(self, *, fail_get: bool = True, fail_put: bool = True, error: Exception | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.error = error

    def _raise(self) -> None:
        from app.core.errors import StoreAppError

        raise self.error or StoreAppError(code="store_unavailable", message="store down")

    async def get(self, key: str) -> str | None:
        if self.fail_get:
            self._raise()
        return await super().get(key)

    async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        if self.fail_put:
            self._raise()
        await super().put(key, value, ttl_seconds=ttl_seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-API-Key": "test-admin-key-123"}


@pytest.fixture
def failing_store(clock: FakeClock):
    """Factory for stores that raise on get and/or put."""

    def _build(*, fail_get: bool = True, fail_put: bool = True, error: Exception | None = None) -> FailingStore:
        return FailingStore(fail_get=fail_get, fail_put=fail_put, error=error, clock=clock)

    return _build
