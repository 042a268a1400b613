"""Database-backed implementation of KeyValueStore using a key/value table."""

from __future__ import annotations

import fnmatch
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import (
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from kv_cache_core.constants import MATCH_ALL_PATTERN
from kv_cache_core.exceptions import StoreOperationError, StoreUnavailableError
from kv_cache_core.models.entry import TtlReading
from kv_cache_infra.db.engine import create_engine
from kv_cache_infra.db.models import CacheEntry
from kv_cache_infra.db.session import create_session_factory, init_db

if TYPE_CHECKING:
    from kv_cache_core.config.settings import Settings


def _as_utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def _live(now: datetime) -> Any:  # noqa: ANN401
    """SQL condition for rows that have not expired at `now`."""
    return or_(CacheEntry.expires_at.is_(None), CacheEntry.expires_at > now)


def ttl_from_entry(entry: CacheEntry | None, now: datetime) -> TtlReading:
    """Normalize a (possibly missing) row into a TtlReading."""
    if entry is None:
        return TtlReading.absent()
    if entry.expires_at is None:
        return TtlReading.persistent()
    remaining = _as_utc(entry.expires_at) - now
    if remaining <= timedelta(0):
        return TtlReading.absent()
    return TtlReading.expiring(remaining)


def _upsert(dialect: str, key: str, value: str, expires_at: datetime | None) -> Any:  # noqa: ANN401
    """Single-statement insert-or-overwrite for `dialect`."""
    row = {"key": key, "value": value, "expires_at": expires_at}
    changes = {"value": value, "expires_at": expires_at}
    if dialect == "sqlite":
        stmt = sqlite_insert(CacheEntry).values(**row)
        return stmt.on_conflict_do_update(index_elements=[CacheEntry.key], set_=changes)
    if dialect == "postgresql":
        stmt = pg_insert(CacheEntry).values(**row)
        return stmt.on_conflict_do_update(index_elements=[CacheEntry.key], set_=changes)
    if dialect in ("mysql", "mariadb"):
        return mysql_insert(CacheEntry).values(**row).on_duplicate_key_update(**changes)
    msg = f"database dialect {dialect!r} has no supported upsert"
    raise StoreOperationError(msg, operation="set", key=key)


@contextmanager
def _translate_errors(operation: str, key: str | None = None) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as store faults."""
    try:
        yield
    except (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError, OSError) as exc:
        raise StoreUnavailableError(
            f"database unavailable during {operation}: {exc}", operation=operation, key=key
        ) from exc
    except SQLAlchemyError as exc:
        raise StoreOperationError(
            f"database failed {operation}: {exc}", operation=operation, key=key
        ) from exc


class DatabaseStore:
    """Key-value store backed by the ``cache_entries`` table.

    Expired rows are invisible to every query and are purged lazily when
    touched, as the database has no native expiry.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        """Initialize with an async session factory (and the engine to dispose)."""
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_settings(cls, settings: Settings) -> DatabaseStore:
        """Create a store with its own engine."""
        engine = create_engine(settings)
        return cls(create_session_factory(engine), engine=engine)

    async def create_schema(self) -> None:
        """Create the cache table if needed."""
        if self._engine is not None:
            with _translate_errors("create_schema"):
                await init_db(self._engine)

    @property
    def supports_conditional_write(self) -> bool:
        """A single conditional UPDATE is atomic."""
        return True

    async def get(self, key: str) -> str | None:
        """Retrieve a value by key, or None if missing/expired."""
        now = datetime.now(UTC)
        stmt = select(CacheEntry.value).where(CacheEntry.key == key, _live(now))
        with _translate_errors("get", key):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()

    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        """Insert or overwrite a row; without TTL the row never expires."""
        expires_at = datetime.now(UTC) + ttl if ttl is not None else None
        with _translate_errors("set", key):
            async with self._session_factory() as session:
                stmt = _upsert(session.get_bind().dialect.name, key, value, expires_at)
                await session.execute(stmt)
                await session.commit()

    async def set_existing(
        self,
        key: str,
        value: str,
        *,
        ttl: timedelta | None = None,
        keep_ttl: bool = False,
    ) -> bool:
        """Overwrite a live row with one conditional UPDATE."""
        now = datetime.now(UTC)
        values: dict[str, object] = {"value": value}
        if not keep_ttl:
            values["expires_at"] = now + ttl if ttl is not None else None
        stmt = (
            update(CacheEntry)
            .where(CacheEntry.key == key, _live(now))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return await self._execute_rowcount("set_existing", key, stmt) > 0

    async def expire(self, key: str, ttl: timedelta) -> bool:
        """Move the expiry of a live row."""
        now = datetime.now(UTC)
        stmt = (
            update(CacheEntry)
            .where(CacheEntry.key == key, _live(now))
            .values(expires_at=now + ttl)
            .execution_options(synchronize_session=False)
        )
        return await self._execute_rowcount("expire", key, stmt) > 0

    async def ttl(self, key: str) -> TtlReading:
        """Derive the remaining expiry from ``expires_at``."""
        now = datetime.now(UTC)
        stmt = select(CacheEntry).where(CacheEntry.key == key, _live(now))
        with _translate_errors("ttl", key):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                entry = result.scalar_one_or_none()
        return ttl_from_entry(entry, now)

    async def delete(self, key: str) -> bool:
        """Delete a live row; an expired leftover is purged but reported as absent."""
        now = datetime.now(UTC)
        with _translate_errors("delete", key):
            async with self._session_factory() as session:
                live = await session.execute(
                    delete(CacheEntry)
                    .where(CacheEntry.key == key, _live(now))
                    .execution_options(synchronize_session=False)
                )
                await session.execute(
                    delete(CacheEntry)
                    .where(CacheEntry.key == key)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        return live.rowcount > 0  # type: ignore[attr-defined]

    async def exists(self, key: str) -> bool:
        """Check if a live row exists."""
        now = datetime.now(UTC)
        stmt = select(func.count()).select_from(CacheEntry).where(
            CacheEntry.key == key, _live(now)
        )
        with _translate_errors("exists", key):
            async with self._session_factory() as session:
                count = (await session.execute(stmt)).scalar_one()
        return count > 0

    async def scan_keys(self, pattern: str = MATCH_ALL_PATTERN) -> AsyncIterator[str]:
        """Stream live keys and yield those matching the glob `pattern`."""
        now = datetime.now(UTC)
        stmt = select(CacheEntry.key).where(_live(now)).order_by(CacheEntry.key)
        with _translate_errors("scan_keys"):
            async with self._session_factory() as session:
                keys = await session.stream_scalars(stmt)
                async for key in keys:
                    if fnmatch.fnmatchcase(key, pattern):
                        yield key

    async def ping(self) -> bool:
        """Run ``SELECT 1``."""
        with _translate_errors("ping"):
            async with self._session_factory() as session:
                await session.execute(select(1))
        return True

    async def aclose(self) -> None:
        """Dispose of the engine's connection pool."""
        if self._engine is not None:
            await self._engine.dispose()

    async def _execute_rowcount(self, operation: str, key: str, stmt: Any) -> int:  # noqa: ANN401
        with _translate_errors(operation, key):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        return int(result.rowcount)  # type: ignore[attr-defined]
