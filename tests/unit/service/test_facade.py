"""Tests for the CacheFacade operation contract."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from kv_cache_core.constants import MIN_TTL
from kv_cache_core.exceptions import (
    InvalidKeyError,
    InvalidTTLError,
    StoreOperationError,
    StoreUnavailableError,
)
from kv_cache_core.models.entry import TtlReading, TtlState
from kv_cache_service.facade import CacheFacade
from tests.mocks.fake_store import FakeStore


def _store(facade: CacheFacade) -> FakeStore:
    store = facade.store
    assert isinstance(store, FakeStore)
    return store


# ---------------------------------------------------------------------------
# Reads and writes
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestPutAndGet:
    """Round trips through put/get."""

    @pytest.mark.asyncio
    async def test_put_then_get_returns_value(self, facade: CacheFacade) -> None:
        """A stored value is returned exactly."""
        await facade.put("user:1", '{"name": "Ada"}')
        lookup = await facade.get("user:1")
        assert lookup.hit is True
        assert lookup.value == '{"name": "Ada"}'

    @pytest.mark.asyncio
    async def test_get_missing_key_is_a_miss(self, facade: CacheFacade) -> None:
        """A missing key is a miss, not an exception."""
        lookup = await facade.get("nope")
        assert lookup.hit is False
        assert lookup.value is None
        assert lookup.value_or("fallback") == "fallback"

    @pytest.mark.asyncio
    async def test_put_overwrites_existing_value(self, facade: CacheFacade) -> None:
        """Second put replaces the first."""
        await facade.put("k", "1")
        await facade.put("k", "2")
        assert (await facade.get("k")).value == "2"

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, facade: CacheFacade) -> None:
        """An entry written with a TTL is gone once the TTL elapses."""
        await facade.put("k", "v", ttl=5)
        _store(facade).clock.advance(5)
        assert (await facade.get("k")).hit is False
        assert await facade.exists("k") is False

    @pytest.mark.asyncio
    async def test_json_helpers(self, facade: CacheFacade) -> None:
        """put_json/get_json encode and decode documents."""
        await facade.put_json("doc", {"a": [1, 2], "b": None}, ttl=timedelta(minutes=1))
        assert await facade.get_json("doc") == {"a": [1, 2], "b": None}
        assert await facade.get_json("missing") is None


# ---------------------------------------------------------------------------
# TTL semantics
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestTtl:
    """Three-way TTL contract."""

    @pytest.mark.asyncio
    async def test_ttl_round_trip(self, facade: CacheFacade) -> None:
        """put with TTL reports a remaining duration in (0, ttl]."""
        await facade.put("k", "v", ttl=10)
        reading = await facade.get_ttl("k")
        assert reading.state is TtlState.EXPIRING
        assert reading.remaining is not None
        assert timedelta(0) < reading.remaining <= timedelta(seconds=10)

    @pytest.mark.asyncio
    async def test_three_way_distinction(self, facade: CacheFacade) -> None:
        """Absent, persistent, and expiring keys read differently."""
        await facade.put("persistent", "v")
        await facade.put("expiring", "v", ttl=30)

        assert (await facade.get_ttl("absent")).state is TtlState.ABSENT
        assert (await facade.get_ttl("persistent")).state is TtlState.PERSISTENT
        assert (await facade.get_ttl("expiring")).state is TtlState.EXPIRING

    @pytest.mark.asyncio
    async def test_plain_put_clears_ttl(self, facade: CacheFacade) -> None:
        """put without TTL makes a previously expiring key persistent."""
        await facade.put("k", "v1", ttl=10)
        await facade.put("k", "v2")
        assert await facade.get_ttl("k") == TtlReading.persistent()

    @pytest.mark.asyncio
    async def test_update_ttl_keeps_value(self, facade: CacheFacade) -> None:
        """update_ttl changes expiry only."""
        await facade.put("k", "v")
        assert await facade.update_ttl("k", 20) is True
        assert (await facade.get("k")).value == "v"
        assert (await facade.get_ttl("k")).remaining == timedelta(seconds=20)

    @pytest.mark.asyncio
    async def test_update_ttl_absent_key(self, facade: CacheFacade) -> None:
        """update_ttl on an absent key returns False and creates nothing."""
        assert await facade.update_ttl("ghost", 20) is False
        assert await facade.exists("ghost") is False


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestUpdate:
    """update() never creates keys and handles TTL as documented."""

    @pytest.mark.asyncio
    async def test_update_preserves_remaining_ttl(self, facade: CacheFacade) -> None:
        """update without TTL keeps the remaining expiry."""
        await facade.put("k", "v1", ttl=10)
        _store(facade).clock.advance(4)

        assert await facade.update("k", "v2") is True

        assert (await facade.get("k")).value == "v2"
        reading = await facade.get_ttl("k")
        assert reading.state is TtlState.EXPIRING
        assert reading.remaining == timedelta(seconds=6)

    @pytest.mark.asyncio
    async def test_update_keeps_persistent_key_persistent(self, facade: CacheFacade) -> None:
        """update without TTL does not add an expiry."""
        await facade.put("k", "v1")
        assert await facade.update("k", "v2") is True
        assert (await facade.get_ttl("k")).state is TtlState.PERSISTENT

    @pytest.mark.asyncio
    async def test_update_replaces_ttl(self, facade: CacheFacade) -> None:
        """update with TTL replaces the old expiry."""
        await facade.put("k", "v1", ttl=10)
        assert await facade.update("k", "v2", ttl=30) is True
        assert (await facade.get_ttl("k")).remaining == timedelta(seconds=30)

    @pytest.mark.asyncio
    async def test_update_absent_key_returns_false(self, facade: CacheFacade) -> None:
        """update never creates a key."""
        assert await facade.update("ghost", "v") is False
        assert await facade.update("ghost", "v", ttl=30) is False
        assert await facade.exists("ghost") is False

    @pytest.mark.asyncio
    async def test_update_deleted_key_returns_false(self, facade: CacheFacade) -> None:
        """A deleted key cannot be updated back into existence."""
        await facade.put("k", "v")
        await facade.delete("k")
        assert await facade.update("k", "v2") is False
        assert await facade.exists("k") is False

    @pytest.mark.asyncio
    async def test_update_expired_key_returns_false(self, facade: CacheFacade) -> None:
        """An expired key counts as absent."""
        await facade.put("k", "v", ttl=1)
        _store(facade).clock.advance(2)
        assert await facade.update("k", "v2") is False
        assert await facade.exists("k") is False


@pytest.mark.unit
class TestUpdateStrategy:
    """Which store calls each update strategy issues."""

    @pytest.mark.asyncio
    async def test_native_update_is_one_call(self) -> None:
        """A store with conditional writes gets a single set_existing."""
        store = FakeStore(conditional_write=True)
        facade = CacheFacade(store)
        await facade.put("k", "v", ttl=10)
        store.calls.clear()

        await facade.update("k", "v2")

        assert facade.uses_native_update is True
        assert store.calls == ["set_existing"]

    @pytest.mark.asyncio
    async def test_native_update_can_be_disabled(self) -> None:
        """native_update=False forces the read-then-write path."""
        store = FakeStore(conditional_write=True)
        facade = CacheFacade(store, native_update=False)
        await facade.put("k", "v", ttl=10)
        store.calls.clear()

        await facade.update("k", "v2")

        assert facade.uses_native_update is False
        assert store.calls == ["ttl", "set"]

    @pytest.mark.asyncio
    async def test_fallback_update_with_ttl_checks_existence(self, fake_store: FakeStore) -> None:
        """update(key, value, ttl) without native support is exists + set."""
        facade = CacheFacade(fake_store)
        await facade.put("k", "v")
        fake_store.calls.clear()

        await facade.update("k", "v2", ttl=5)

        assert fake_store.calls == ["exists", "set"]

    @pytest.mark.asyncio
    async def test_fallback_absent_key_skips_write(self, fake_store: FakeStore) -> None:
        """No write is issued when the TTL read reports the key absent."""
        facade = CacheFacade(fake_store)

        assert await facade.update("ghost", "v") is False
        assert fake_store.calls == ["ttl"]

    @pytest.mark.asyncio
    async def test_fallback_clamps_exhausted_ttl(self) -> None:
        """A remaining TTL of zero is rewritten as the minimum, not as persistent."""
        store = MagicMock()
        store.supports_conditional_write = False
        store.ttl = AsyncMock(return_value=TtlReading.expiring(timedelta(0)))
        store.set = AsyncMock()
        facade = CacheFacade(store)

        assert await facade.update("k", "v") is True
        store.set.assert_awaited_once_with("k", "v", MIN_TTL)


@pytest.mark.unit
class TestReadThenWriteRace:
    """The fallback update is not atomic; these tests pin down the known races."""

    @pytest.mark.asyncio
    async def test_concurrent_ttl_change_is_lost(self, fake_store: FakeStore) -> None:
        """A TTL set by another client between read and write is overwritten."""
        facade = CacheFacade(fake_store)
        other_client = CacheFacade(fake_store)
        await facade.put("k", "v1", ttl=10)

        async def _interleave() -> None:
            await other_client.update_ttl("k", 60)

        fake_store.before_set = _interleave
        assert await facade.update("k", "v2") is True

        reading = await facade.get_ttl("k")
        assert reading.remaining == timedelta(seconds=10)
        assert (await facade.get("k")).value == "v2"

    @pytest.mark.asyncio
    async def test_concurrent_delete_is_resurrected(self, fake_store: FakeStore) -> None:
        """A delete between read and write is undone by the write."""
        facade = CacheFacade(fake_store)
        other_client = CacheFacade(fake_store)
        await facade.put("k", "v1", ttl=10)

        async def _interleave() -> None:
            await other_client.delete("k")

        fake_store.before_set = _interleave
        assert await facade.update("k", "v2") is True
        assert await facade.exists("k") is True

    @pytest.mark.asyncio
    async def test_native_update_sees_concurrent_ttl_change(self) -> None:
        """With a conditional write the other client's TTL survives."""
        store = FakeStore(conditional_write=True)
        facade = CacheFacade(store)
        other_client = CacheFacade(store)
        await facade.put("k", "v1", ttl=10)

        await other_client.update_ttl("k", 60)
        assert await facade.update("k", "v2") is True

        assert (await facade.get_ttl("k")).remaining == timedelta(seconds=60)


# ---------------------------------------------------------------------------
# Delete, exists, keys
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestDeleteExistsKeys:
    """delete/exists/list_all_keys."""

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, facade: CacheFacade) -> None:
        """Deleting an absent key returns False; a present key True."""
        assert await facade.delete("k") is False
        await facade.put("k", "v")
        assert await facade.delete("k") is True
        assert await facade.exists("k") is False
        assert await facade.delete("k") is False

    @pytest.mark.asyncio
    async def test_exists_has_no_side_effect(self, facade: CacheFacade) -> None:
        """exists does not create or alter entries."""
        assert await facade.exists("k") is False
        await facade.put("k", "v", ttl=10)
        assert await facade.exists("k") is True
        assert (await facade.get_ttl("k")).remaining == timedelta(seconds=10)

    @pytest.mark.asyncio
    async def test_list_all_keys(self, facade: CacheFacade) -> None:
        """All live keys are listed; the pattern filters them."""
        await facade.put("user:1", "a")
        await facade.put("user:2", "b")
        await facade.put("order:1", "c", ttl=1)
        await facade.put("order:2", "d")
        _store(facade).clock.advance(2)

        all_keys = [key async for key in facade.list_all_keys()]
        user_keys = [key async for key in facade.list_all_keys("user:*")]

        assert sorted(all_keys) == ["order:2", "user:1", "user:2"]
        assert sorted(user_keys) == ["user:1", "user:2"]


# ---------------------------------------------------------------------------
# Faults and input validation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestFaults:
    """Store faults propagate and are never reported as misses or False."""

    @pytest.mark.asyncio
    async def test_get_fault_is_distinct_from_miss(self, fake_store: FakeStore) -> None:
        """An unreachable store raises instead of returning a miss."""
        facade = CacheFacade(fake_store)
        assert (await facade.get("k")).hit is False

        fake_store.fault = StoreUnavailableError("connection refused", operation="get", key="k")
        with pytest.raises(StoreUnavailableError, match="connection refused"):
            await facade.get("k")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "call",
        [
            lambda f: f.update("k", "v"),
            lambda f: f.update("k", "v", ttl=5),
            lambda f: f.delete("k"),
            lambda f: f.update_ttl("k", 5),
            lambda f: f.exists("k"),
            lambda f: f.get_ttl("k"),
            lambda f: f.put("k", "v"),
            lambda f: f.ping(),
        ],
    )
    async def test_fault_raises_for_every_operation(self, fake_store: FakeStore, call) -> None:  # type: ignore[no-untyped-def]
        """Boolean operations raise on faults instead of returning False."""
        facade = CacheFacade(fake_store)
        fake_store.fault = StoreOperationError("WRONGTYPE", operation="x")
        with pytest.raises(StoreOperationError):
            await call(facade)

    @pytest.mark.asyncio
    async def test_fault_during_key_listing(self, fake_store: FakeStore) -> None:
        """Enumeration surfaces faults to the consumer."""
        facade = CacheFacade(fake_store)
        fake_store.fault = StoreUnavailableError("timeout", operation="scan_keys")
        with pytest.raises(StoreUnavailableError):
            _ = [key async for key in facade.list_all_keys()]


@pytest.mark.unit
class TestInputValidation:
    """Malformed input is rejected before any store call."""

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, fake_store: FakeStore) -> None:
        """Empty keys never reach the store."""
        facade = CacheFacade(fake_store)
        with pytest.raises(InvalidKeyError):
            await facade.get("")
        with pytest.raises(InvalidKeyError):
            await facade.put("", "v")
        assert fake_store.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "ttl",
        [
            0,
            -1,
            timedelta(0),
            timedelta(microseconds=10),
            float("nan"),
            float("inf"),
            float("-inf"),
            1e20,
            timedelta(days=40000),
        ],
    )
    async def test_non_positive_ttl_rejected(self, fake_store: FakeStore, ttl: object) -> None:
        """Zero, negative, sub-millisecond, non-finite, and oversized TTLs fail fast."""
        facade = CacheFacade(fake_store)
        with pytest.raises(InvalidTTLError):
            await facade.put("k", "v", ttl=ttl)  # type: ignore[arg-type]
        with pytest.raises(InvalidTTLError):
            await facade.update_ttl("k", ttl)  # type: ignore[arg-type]
        with pytest.raises(InvalidTTLError):
            await facade.update("k", "v", ttl=ttl)  # type: ignore[arg-type]
        assert fake_store.calls == []

    @pytest.mark.asyncio
    async def test_input_error_is_value_error(self, fake_store: FakeStore) -> None:
        """Input errors can be caught as ValueError."""
        facade = CacheFacade(fake_store)
        with pytest.raises(ValueError):
            await facade.update_ttl("k", -5)


@pytest.mark.unit
class TestLifecycle:
    """Facade owns the store handle."""

    @pytest.mark.asyncio
    async def test_async_context_closes_store(self, fake_store: FakeStore) -> None:
        """Leaving the async with block closes the store."""
        async with CacheFacade(fake_store) as facade:
            await facade.put("k", "v")
        assert fake_store.closed is True

    @pytest.mark.asyncio
    async def test_ping(self, facade: CacheFacade) -> None:
        """ping reports store health."""
        assert await facade.ping() is True
