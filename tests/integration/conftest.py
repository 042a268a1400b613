"""Integration test fixtures: a real Redis on localhost, flushed per test."""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
import pytest_asyncio

from kv_cache_core.config.settings import Settings
from kv_cache_infra.store.redis_store import RedisStore
from kv_cache_service.facade import CacheFacade

# ---------------------------------------------------------------------------
# Service health checks (with retry for CI container start-up)
# ---------------------------------------------------------------------------


def _tcp_reachable(
    host: str,
    port: int,
    timeout: float = 1.0,
    retries: int = 15,
    delay: float = 2.0,
) -> bool:
    """Check if a TCP service is reachable, retrying on failure."""
    for attempt in range(retries):
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            if attempt < retries - 1:
                time.sleep(delay)
    return False


_redis_up = _tcp_reachable("localhost", 6379, retries=10)

require_redis = pytest.mark.skipif(
    not _redis_up,
    reason="Redis not reachable on localhost:6379; start one with `docker run -p 6379:6379 redis`",
)


# ---------------------------------------------------------------------------
# Redis fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def real_settings(tmp_path: Path) -> Settings:
    """Real Settings pointing at Redis DB 1."""
    from tests.mocks.mock_settings import make_real_settings

    return make_real_settings(tmp_path)


@pytest_asyncio.fixture
async def redis_store(real_settings: Settings) -> AsyncGenerator[RedisStore, None]:
    """Function-scoped RedisStore on test DB 1, flushed before and after each test."""
    if not _redis_up:
        pytest.skip("Redis not available")

    store = RedisStore.from_settings(real_settings)
    await store._redis.flushdb()
    yield store
    await store._redis.flushdb()
    await store.aclose()


@pytest.fixture(params=["native", "read_then_write"])
def redis_facade(request: pytest.FixtureRequest, redis_store: RedisStore) -> CacheFacade:
    """Facade over the test Redis, once per update strategy."""
    return CacheFacade(redis_store, native_update=request.param == "native")


# ---------------------------------------------------------------------------
# Logging cleanup
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_logging() -> Generator[None, None, None]:
    """Save and restore root logger handlers around tests that configure logging."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.level = original_level
