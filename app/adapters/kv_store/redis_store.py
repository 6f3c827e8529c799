"""Redis-backed key-value store shared across workers."""

from __future__ import annotations

import logging

import redis.asyncio as redis

from app.adapters.kv_store.base import AbstractKeyValueStore
from app.core.errors import StoreAppError

logger = logging.getLogger(__name__)


class RedisKeyValueStore(AbstractKeyValueStore):
    """Key-value store on top of ``redis.asyncio``.

    Backend errors are logged and re-raised as ``StoreAppError``.
    """

    backend_name = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 2.0) -> "RedisKeyValueStore":
        """Create a store from a connection URL (decoded string responses)."""
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except redis.RedisError as exc:
            raise self._wrap("get", exc) from exc
        if isinstance(value, bytes):
            return value.decode()
        return value

    async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except redis.RedisError as exc:
            raise self._wrap("put", exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except redis.RedisError as exc:
            raise self._wrap("delete", exc) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except redis.RedisError as exc:
            logger.warning("kv_store.ping_failed", extra={"backend": self.backend_name, "error_type": type(exc).__name__})
            return False

    async def close(self) -> None:
        await self._client.aclose()

    def _wrap(self, operation: str, exc: Exception) -> StoreAppError:
        logger.error(
            "kv_store.error",
            extra={
                "backend": self.backend_name,
                "operation": operation,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return StoreAppError(
            code="store_unavailable",
            message=f"Key-value store {operation} failed",
            details={"backend": self.backend_name},
        )
