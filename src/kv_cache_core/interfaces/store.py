"""Abstract key-value store interface consumed by the cache facade."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import timedelta
from typing import Protocol, runtime_checkable

from kv_cache_core.models.entry import TtlReading


@runtime_checkable
class KeyValueStore(Protocol):
    """Primitive operations a remote key-value store must offer.

    Implementations translate their backend's failures into
    :class:`~kv_cache_core.exceptions.StoreFaultError` subclasses and
    normalize backend-specific TTL sentinels into :class:`TtlReading`.
    """

    @property
    def supports_conditional_write(self) -> bool:
        """Whether :meth:`set_existing` is a single atomic store call."""
        ...

    async def get(self, key: str) -> str | None:
        """Return the value for `key`, or None if absent."""
        ...

    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        """Store `value`; without `ttl` the entry is persistent and any old expiry is cleared."""
        ...

    async def set_existing(
        self,
        key: str,
        value: str,
        *,
        ttl: timedelta | None = None,
        keep_ttl: bool = False,
    ) -> bool:
        """Overwrite `key` only if it exists; return False when it does not."""
        ...

    async def expire(self, key: str, ttl: timedelta) -> bool:
        """Set a new expiry on `key`; return False when it does not exist."""
        ...

    async def ttl(self, key: str) -> TtlReading:
        """Return the remaining time to live of `key`."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete `key`; return False when it did not exist."""
        ...

    async def exists(self, key: str) -> bool:
        """Check if `key` exists."""
        ...

    def scan_keys(self, pattern: str = "*") -> AsyncIterator[str]:
        """Lazily yield keys matching a glob-style `pattern`."""
        ...

    async def ping(self) -> bool:
        """Return True if the store answers."""
        ...

    async def aclose(self) -> None:
        """Release connections held by the store."""
        ...
