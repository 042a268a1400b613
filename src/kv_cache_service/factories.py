"""Factory functions for creating stores and facades from settings."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog

from kv_cache_core.interfaces.store import KeyValueStore
from kv_cache_service.facade import CacheFacade

if TYPE_CHECKING:
    from kv_cache_core.config.settings import Settings

logger = structlog.get_logger()


async def create_store(settings: Settings) -> KeyValueStore:
    """Create the store selected by ``settings.store_backend``.

    Returns ``RedisStore`` for ``redis``, ``DiskStore`` for ``disk`` and a
    ``DatabaseStore`` (with its table created) for ``db``.
    """
    if settings.store_backend == "disk":
        from kv_cache_infra.store.disk_store import DiskStore

        return DiskStore.from_settings(settings)

    if settings.store_backend == "db":
        from kv_cache_infra.store.db_store import DatabaseStore

        store = DatabaseStore.from_settings(settings)
        try:
            await store.create_schema()
        except BaseException:
            await store.aclose()
            raise
        return store

    from kv_cache_infra.store.redis_store import RedisStore

    return RedisStore.from_settings(settings)


def create_facade(store: KeyValueStore, settings: Settings) -> CacheFacade:
    """Wrap `store` in a CacheFacade configured from settings."""
    return CacheFacade(store, native_update=settings.native_conditional_update)


@asynccontextmanager
async def open_cache(settings: Settings) -> AsyncGenerator[CacheFacade, None]:
    """Open the shared store handle for the duration of the block.

    The connection pool is created on entry and released on exit, even if
    the block raises.
    """
    store = await create_store(settings)
    facade = create_facade(store, settings)
    logger.debug(
        "cache_opened",
        backend=settings.store_backend,
        native_update=facade.uses_native_update,
    )
    try:
        yield facade
    finally:
        await facade.aclose()
        logger.debug("cache_closed", backend=settings.store_backend)
