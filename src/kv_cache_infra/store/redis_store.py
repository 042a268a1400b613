"""Redis-backed implementation of KeyValueStore."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from redis.asyncio import BlockingConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from kv_cache_core.constants import (
    DEFAULT_SCAN_COUNT,
    MATCH_ALL_PATTERN,
    REDIS_TTL_ABSENT,
    REDIS_TTL_PERSISTENT,
)
from kv_cache_core.exceptions import StoreOperationError, StoreUnavailableError
from kv_cache_core.models.entry import TtlReading
from kv_cache_core.validation import ttl_to_millis

if TYPE_CHECKING:
    from kv_cache_core.config.settings import Settings

logger = structlog.get_logger()


def ttl_from_pttl_reply(reply: int) -> TtlReading:
    """Normalize a Redis PTTL reply into a TtlReading.

    ``-2`` means the key does not exist and ``-1`` means it has no expiry.
    Any other negative reply is treated as absent.
    """
    if reply == REDIS_TTL_PERSISTENT:
        return TtlReading.persistent()
    if reply == REDIS_TTL_ABSENT or reply < 0:
        return TtlReading.absent()
    return TtlReading.expiring(timedelta(milliseconds=reply))


@contextmanager
def _translate_errors(operation: str, key: str | None = None) -> Iterator[None]:
    """Re-raise redis-py exceptions as store faults."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError, TimeoutError, OSError) as exc:
        # BlockingConnectionPool raises ConnectionError when no connection
        # frees up within its timeout.
        raise StoreUnavailableError(
            f"Redis unavailable during {operation}: {exc}", operation=operation, key=key
        ) from exc
    except RedisError as exc:
        raise StoreOperationError(
            f"Redis rejected {operation}: {exc}", operation=operation, key=key
        ) from exc


def create_redis_client(settings: Settings) -> Redis:  # type: ignore[type-arg]
    """Build a redis-py asyncio client over a bounded, blocking connection pool."""
    connection_kwargs: dict[str, object] = {
        "decode_responses": True,
        "socket_timeout": settings.redis_socket_timeout_seconds,
        "socket_connect_timeout": settings.redis_connect_timeout_seconds,
        "socket_keepalive": settings.redis_socket_keepalive,
        "health_check_interval": settings.redis_health_check_interval_seconds,
        "protocol": settings.redis_protocol,
        "retry": Retry(ExponentialBackoff(), settings.redis_retry_attempts),
    }
    if settings.redis_password is not None:
        connection_kwargs["password"] = settings.redis_password.get_secret_value()
    if settings.redis_ssl_ca_certs is not None:
        connection_kwargs["ssl_ca_certs"] = str(settings.redis_ssl_ca_certs)

    pool = BlockingConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        timeout=settings.redis_pool_timeout_seconds,
        **connection_kwargs,
    )
    logger.debug(
        "redis_pool_created",
        max_connections=settings.redis_max_connections,
        pool_timeout=settings.redis_pool_timeout_seconds,
    )
    return Redis(connection_pool=pool)


class RedisStore:
    """Key-value store backed by Redis.

    Conditional writes use ``SET ... XX`` with ``KEEPTTL`` or ``PX``, so
    :meth:`set_existing` is one atomic command (requires Redis >= 6.0).
    """

    def __init__(
        self,
        redis: Redis,  # type: ignore[type-arg]
        *,
        scan_count: int = DEFAULT_SCAN_COUNT,
        conditional_write: bool = True,
    ) -> None:
        """Initialize with a redis-py asyncio client."""
        self._redis = redis
        self._scan_count = scan_count
        self._conditional_write = conditional_write

    @classmethod
    def from_settings(cls, settings: Settings) -> RedisStore:
        """Create a store with its own connection pool."""
        return cls(
            create_redis_client(settings),
            scan_count=settings.keys_scan_count,
        )

    @property
    def supports_conditional_write(self) -> bool:
        """``SET XX KEEPTTL`` makes update-if-exists a single command."""
        return self._conditional_write

    async def get(self, key: str) -> str | None:
        """Retrieve a value by key."""
        with _translate_errors("get", key):
            value = await self._redis.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        """Store a value; plain SET drops any previous expiry."""
        with _translate_errors("set", key):
            if ttl is None:
                await self._redis.set(key, value)
            else:
                await self._redis.set(key, value, px=ttl_to_millis(ttl))

    async def set_existing(
        self,
        key: str,
        value: str,
        *,
        ttl: timedelta | None = None,
        keep_ttl: bool = False,
    ) -> bool:
        """Overwrite an existing key with ``SET XX``."""
        with _translate_errors("set_existing", key):
            if keep_ttl:
                result = await self._redis.set(key, value, xx=True, keepttl=True)
            elif ttl is not None:
                result = await self._redis.set(key, value, xx=True, px=ttl_to_millis(ttl))
            else:
                result = await self._redis.set(key, value, xx=True)
        return bool(result)

    async def expire(self, key: str, ttl: timedelta) -> bool:
        """Set a new expiry with PEXPIRE."""
        with _translate_errors("expire", key):
            result = await self._redis.pexpire(key, ttl_to_millis(ttl))
        return bool(result)

    async def ttl(self, key: str) -> TtlReading:
        """Read the remaining expiry with PTTL."""
        with _translate_errors("ttl", key):
            reply = await self._redis.pttl(key)
        return ttl_from_pttl_reply(int(reply))

    async def delete(self, key: str) -> bool:
        """Delete a key from the store."""
        with _translate_errors("delete", key):
            count = await self._redis.delete(key)
        return bool(count)

    async def exists(self, key: str) -> bool:
        """Check if a key exists."""
        with _translate_errors("exists", key):
            count = await self._redis.exists(key)
        return bool(count)

    async def scan_keys(self, pattern: str = MATCH_ALL_PATTERN) -> AsyncIterator[str]:
        """Iterate keys with SCAN instead of the blocking KEYS command."""
        with _translate_errors("scan_keys"):
            async for key in self._redis.scan_iter(match=pattern, count=self._scan_count):
                yield key.decode("utf-8") if isinstance(key, bytes) else str(key)

    async def ping(self) -> bool:
        """Send PING."""
        with _translate_errors("ping"):
            return bool(await self._redis.ping())

    async def aclose(self) -> None:
        """Close the client and disconnect its pool."""
        await self._redis.aclose(close_connection_pool=True)  # type: ignore[attr-defined]
