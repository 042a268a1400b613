"""diskcache-backed implementation of KeyValueStore."""

from __future__ import annotations

import asyncio
import fnmatch
import sqlite3
import time
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import diskcache

from kv_cache_core.constants import MATCH_ALL_PATTERN
from kv_cache_core.exceptions import StoreOperationError, StoreUnavailableError
from kv_cache_core.models.entry import TtlReading

if TYPE_CHECKING:
    from kv_cache_core.config.settings import Settings

# diskcache returns (default, None) for a missing key; a private default
# keeps "missing" apart from "present without expiry".
_MISSING = object()


def ttl_from_expire_time(value: object, expire_time: float | None, now: float) -> TtlReading:
    """Normalize a diskcache ``(value, expire_time)`` pair into a TtlReading."""
    if value is _MISSING:
        return TtlReading.absent()
    if expire_time is None:
        return TtlReading.persistent()
    remaining = expire_time - now
    if remaining <= 0:
        return TtlReading.absent()
    return TtlReading.expiring(timedelta(seconds=remaining))


@contextmanager
def _translate_errors(operation: str, key: str | None = None) -> Iterator[None]:
    """Re-raise diskcache/sqlite failures as store faults."""
    try:
        yield
    except (diskcache.Timeout, sqlite3.OperationalError, OSError) as exc:
        raise StoreUnavailableError(
            f"disk cache unavailable during {operation}: {exc}", operation=operation, key=key
        ) from exc
    except sqlite3.Error as exc:
        raise StoreOperationError(
            f"disk cache failed {operation}: {exc}", operation=operation, key=key
        ) from exc


class DiskStore:
    """Persistent local store backed by diskcache (SQLite under the hood).

    Blocking diskcache calls run in worker threads. Conditional writes run
    inside ``Cache.transact()`` so the existence check and write commit
    together.
    """

    def __init__(self, cache_dir: Path) -> None:
        """Initialize with a cache directory."""
        cache_dir.mkdir(parents=True, exist_ok=True)
        self._cache = diskcache.Cache(str(cache_dir))

    @classmethod
    def from_settings(cls, settings: Settings) -> DiskStore:
        """Create a store in the configured directory."""
        return cls(settings.disk_cache_dir)

    @property
    def supports_conditional_write(self) -> bool:
        """Transactions make update-if-exists atomic."""
        return True

    async def get(self, key: str) -> str | None:
        """Retrieve a value by key."""
        with _translate_errors("get", key):
            result = await asyncio.to_thread(self._cache.get, key)
        if result is None:
            return None
        return str(result)

    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        """Store a value; without TTL the entry never expires."""
        expire = ttl.total_seconds() if ttl is not None else None
        with _translate_errors("set", key):
            await asyncio.to_thread(self._cache.set, key, value, expire=expire)

    async def set_existing(
        self,
        key: str,
        value: str,
        *,
        ttl: timedelta | None = None,
        keep_ttl: bool = False,
    ) -> bool:
        """Overwrite an existing key inside a transaction."""
        with _translate_errors("set_existing", key):
            return await asyncio.to_thread(self._set_existing_sync, key, value, ttl, keep_ttl)

    def _set_existing_sync(
        self, key: str, value: str, ttl: timedelta | None, keep_ttl: bool
    ) -> bool:
        with self._cache.transact():
            current, expire_time = self._cache.get(key, default=_MISSING, expire_time=True)
            reading = ttl_from_expire_time(current, expire_time, time.time())
            if not reading.exists:
                return False
            if keep_ttl:
                expire = reading.remaining.total_seconds() if reading.remaining else None
            else:
                expire = ttl.total_seconds() if ttl is not None else None
            self._cache.set(key, value, expire=expire)
        return True

    async def expire(self, key: str, ttl: timedelta) -> bool:
        """Set a new expiry with ``Cache.touch``."""
        with _translate_errors("expire", key):
            result = await asyncio.to_thread(self._cache.touch, key, ttl.total_seconds())
        return bool(result)

    async def ttl(self, key: str) -> TtlReading:
        """Derive the remaining expiry from the stored expire time."""
        with _translate_errors("ttl", key):
            value, expire_time = await asyncio.to_thread(
                self._cache.get, key, _MISSING, expire_time=True
            )
        return ttl_from_expire_time(value, expire_time, time.time())

    async def delete(self, key: str) -> bool:
        """Delete a key from the store."""
        with _translate_errors("delete", key):
            result = await asyncio.to_thread(self._cache.delete, key)
        return bool(result)

    async def exists(self, key: str) -> bool:
        """Check if a key exists and has not expired."""
        with _translate_errors("exists", key):
            result = await asyncio.to_thread(lambda: key in self._cache)
        return bool(result)

    async def scan_keys(self, pattern: str = MATCH_ALL_PATTERN) -> AsyncIterator[str]:
        """Yield live keys matching `pattern`.

        diskcache connections are per-thread, so keys are collected in one
        worker call after culling expired entries.
        """
        with _translate_errors("scan_keys"):
            keys = await asyncio.to_thread(self._live_keys)
        for key in keys:
            if fnmatch.fnmatchcase(key, pattern):
                yield key

    def _live_keys(self) -> list[str]:
        self._cache.expire()
        return [str(key) for key in self._cache.iterkeys()]

    async def ping(self) -> bool:
        """Touch the underlying database."""
        with _translate_errors("ping"):
            await asyncio.to_thread(self._cache.volume)
        return True

    async def aclose(self) -> None:
        """Close the cache."""
        self._cache.close()
