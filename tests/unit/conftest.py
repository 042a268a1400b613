"""Shared pytest fixtures for unit tests."""

from __future__ import annotations

import logging
from collections.abc import Generator
from unittest.mock import MagicMock

import pytest

from kv_cache_service.facade import CacheFacade
from tests.mocks.fake_store import FakeStore
from tests.mocks.mock_settings import make_settings


@pytest.fixture
def mock_settings() -> MagicMock:
    """Return a MagicMock Settings with sensible defaults."""
    return make_settings()


@pytest.fixture
def fake_store() -> FakeStore:
    """Return an in-memory store without a conditional-write primitive."""
    return FakeStore(conditional_write=False)


@pytest.fixture(params=["native", "read_then_write"])
def facade(request: pytest.FixtureRequest) -> CacheFacade:
    """Return a facade over a fresh FakeStore, once per update strategy."""
    store = FakeStore(conditional_write=request.param == "native")
    return CacheFacade(store)


@pytest.fixture(autouse=True)
def _reset_logging() -> Generator[None, None, None]:
    """Save and restore root logger handlers around tests that configure logging."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.level = original_level
