"""Unit tests for the Redis key-value store adapter (client mocked)."""

from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from app.adapters.kv_store.redis_store import RedisKeyValueStore
from app.core.errors import StoreAppError


@pytest.fixture
def client() -> AsyncMock:
    return AsyncMock()


@pytest.mark.asyncio
async def test_get_returns_decoded_value(client: AsyncMock) -> None:
    client.get.return_value = b"payload"
    store = RedisKeyValueStore(client)

    assert await store.get("k") == "payload"
    client.get.assert_awaited_once_with("k")


@pytest.mark.asyncio
async def test_put_passes_ttl_as_expiry(client: AsyncMock) -> None:
    store = RedisKeyValueStore(client)

    await store.put("k", "v", ttl_seconds=120)
    await store.put("forever", "v")

    client.set.assert_any_await("k", "v", ex=120)
    client.set.assert_any_await("forever", "v", ex=None)


@pytest.mark.asyncio
async def test_delete_forwards_to_client(client: AsyncMock) -> None:
    store = RedisKeyValueStore(client)

    await store.delete("k")

    client.delete.assert_awaited_once_with("k")


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["get", "put", "delete"])
async def test_backend_errors_become_store_errors(client: AsyncMock, operation: str) -> None:
    client.get.side_effect = redis.ConnectionError("down")
    client.set.side_effect = redis.ConnectionError("down")
    client.delete.side_effect = redis.ConnectionError("down")
    store = RedisKeyValueStore(client)

    with pytest.raises(StoreAppError) as exc_info:
        if operation == "get":
            await store.get("k")
        elif operation == "put":
            await store.put("k", "v")
        else:
            await store.delete("k")

    assert exc_info.value.code == "store_unavailable"
    assert exc_info.value.details == {"backend": "redis"}


@pytest.mark.asyncio
async def test_ping_reports_unreachable_backend(client: AsyncMock) -> None:
    client.ping.side_effect = redis.TimeoutError("slow")
    store = RedisKeyValueStore(client)

    assert await store.ping() is False
