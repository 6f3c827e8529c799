"""Key-value store interface consumed by the rate limiters."""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractKeyValueStore(ABC):
    """Async string store with optional per-key expiration.

    Implementations raise ``StoreAppError`` when the backend fails so callers
    can apply their fail-open policy without knowing the backend.
    """

    backend_name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for ``key`` or None if absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        """Store ``value`` under ``key``.

        Args:
            key: Store key.
            value: Serialized value.
            ttl_seconds: Expiration in seconds; None keeps the key until deleted.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; deleting a missing key is not an error."""
        raise NotImplementedError

    async def ping(self) -> bool:
        """Return True when the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""
        return None
