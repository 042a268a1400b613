"""Cache facade: the operation contract over a remote key-value store.

Every call is a live round trip; nothing is cached in process. Misses and
"did not apply" outcomes are ordinary return values, while store faults
propagate as :class:`~kv_cache_core.exceptions.StoreFaultError`.

Concurrent callers get no ordering guarantee. When the store has no
atomic update-if-exists primitive (or ``native_update`` is off),
``update(key, value)`` reads the TTL and then rewrites the value with it;
a TTL change made by another client between those two calls is lost.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from datetime import timedelta
from types import TracebackType
from typing import Any

import structlog

from kv_cache_core.constants import MATCH_ALL_PATTERN, MIN_TTL
from kv_cache_core.exceptions import StoreFaultError
from kv_cache_core.interfaces.store import KeyValueStore
from kv_cache_core.models.entry import CacheLookup, TtlReading, TtlState
from kv_cache_core.validation import TtlLike, coerce_ttl, validate_key
from kv_cache_service.observability.tracing import traced_operation

logger = structlog.get_logger()


class CacheFacade:
    """Read/write/update/delete/TTL operations against a KeyValueStore."""

    def __init__(self, store: KeyValueStore, *, native_update: bool = True) -> None:
        """Initialize with a store handle.

        Args:
            store: Backing key-value store; the facade owns its lifecycle.
            native_update: Use the store's conditional write for updates
                when it offers one.
        """
        self._store = store
        self._native_update = native_update

    @property
    def store(self) -> KeyValueStore:
        """Return the underlying store."""
        return self._store

    @property
    def uses_native_update(self) -> bool:
        """Whether updates go through a single conditional store call."""
        return self._native_update and self._store.supports_conditional_write

    async def __aenter__(self) -> CacheFacade:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @traced_operation("get")
    async def get(self, key: str) -> CacheLookup:
        """Look up `key`; a missing key is a miss, never an exception."""
        validate_key(key)
        value = await self._call("get", key, self._store.get(key))
        if value is None:
            logger.debug("cache_miss", key=key)
            return CacheLookup.missing(key)
        logger.debug("cache_hit", key=key)
        return CacheLookup.found(key, value)

    @traced_operation("exists")
    async def exists(self, key: str) -> bool:
        """Check whether `key` exists."""
        validate_key(key)
        return await self._call("exists", key, self._store.exists(key))

    @traced_operation("get_ttl")
    async def get_ttl(self, key: str) -> TtlReading:
        """Report whether `key` is absent, persistent, or expiring (and when)."""
        validate_key(key)
        return await self._call("ttl", key, self._store.ttl(key))

    async def list_all_keys(self, pattern: str = MATCH_ALL_PATTERN) -> AsyncIterator[str]:
        """Lazily yield every key matching `pattern` (all keys by default).

        This walks the whole key space. Bound it with ``asyncio.timeout``
        on large stores.
        """
        try:
            async for key in self._store.scan_keys(pattern):
                yield key
        except StoreFaultError as exc:
            logger.warning("store_fault", operation="scan_keys", error=str(exc))
            raise

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @traced_operation("put")
    async def put(self, key: str, value: str, ttl: TtlLike | None = None) -> None:
        """Store `value`, replacing any existing entry.

        Without `ttl` the entry is persistent and any previous expiry is
        cleared.
        """
        validate_key(key)
        duration = coerce_ttl(ttl) if ttl is not None else None
        await self._call("set", key, self._store.set(key, value, duration))
        logger.debug("cache_put", key=key, ttl_seconds=_seconds(duration))

    @traced_operation("update")
    async def update(self, key: str, value: str, ttl: TtlLike | None = None) -> bool:
        """Overwrite an existing entry; never creates one.

        Without `ttl` the remaining expiry (or persistence) is preserved;
        with `ttl` it is replaced.

        Returns:
            ``True`` if the key existed and was updated, ``False`` otherwise.
        """
        validate_key(key)
        duration = coerce_ttl(ttl) if ttl is not None else None

        if self.uses_native_update:
            updated = await self._call(
                "set_existing",
                key,
                self._store.set_existing(key, value, ttl=duration, keep_ttl=duration is None),
            )
        elif duration is None:
            updated = await self._update_preserving_ttl(key, value)
        else:
            updated = await self._update_replacing_ttl(key, value, duration)

        if updated:
            logger.debug("cache_updated", key=key, ttl_seconds=_seconds(duration))
        else:
            logger.debug("cache_update_skipped", key=key, reason="absent")
        return updated

    @traced_operation("update_ttl")
    async def update_ttl(self, key: str, ttl: TtlLike) -> bool:
        """Set a new expiry on `key` without touching its value."""
        validate_key(key)
        duration = coerce_ttl(ttl)
        updated = await self._call("expire", key, self._store.expire(key, duration))
        logger.debug("ttl_updated", key=key, ttl_seconds=_seconds(duration), applied=updated)
        return updated

    @traced_operation("delete")
    async def delete(self, key: str) -> bool:
        """Delete `key`; deleting an absent key returns False."""
        validate_key(key)
        deleted = await self._call("delete", key, self._store.delete(key))
        logger.debug("cache_deleted", key=key, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    async def get_json(self, key: str) -> Any:  # noqa: ANN401
        """Decode the stored JSON document, or return None on a miss."""
        lookup = await self.get(key)
        if not lookup.hit:
            return None
        return json.loads(lookup.value_or(""))

    async def put_json(self, key: str, document: Any, ttl: TtlLike | None = None) -> None:  # noqa: ANN401
        """Encode `document` as JSON and store it."""
        await self.put(key, json.dumps(document, separators=(",", ":")), ttl)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @traced_operation("ping")
    async def ping(self) -> bool:
        """Return True if the store answers."""
        return await self._call("ping", None, self._store.ping())

    async def aclose(self) -> None:
        """Release the store handle."""
        await self._store.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _update_preserving_ttl(self, key: str, value: str) -> bool:
        """Read-then-write fallback for ``update(key, value)``.

        The TTL read doubles as the existence check. Nothing may run
        between the read and the write.
        """
        reading = await self._call("ttl", key, self._store.ttl(key))
        if reading.state is TtlState.ABSENT:
            return False
        if reading.state is TtlState.PERSISTENT:
            keep: timedelta | None = None
        else:
            keep = max(reading.remaining or MIN_TTL, MIN_TTL)
        await self._call("set", key, self._store.set(key, value, keep))
        return True

    async def _update_replacing_ttl(self, key: str, value: str, ttl: timedelta) -> bool:
        """Check-then-write fallback for ``update(key, value, ttl)``."""
        if not await self._call("exists", key, self._store.exists(key)):
            return False
        await self._call("set", key, self._store.set(key, value, ttl))
        return True

    async def _call(self, operation: str, key: str | None, pending: Any) -> Any:  # noqa: ANN401
        """Await a store coroutine, logging faults before re-raising them."""
        try:
            return await pending
        except StoreFaultError as exc:
            logger.warning(
                "store_fault",
                operation=operation,
                key=key,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise


def _seconds(duration: timedelta | None) -> float | None:
    """Duration in seconds for log output."""
    return duration.total_seconds() if duration is not None else None
