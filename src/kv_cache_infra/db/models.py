"""SQLAlchemy ORM table models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kv_cache_core.constants import CACHE_KEY_MAX_LENGTH, CACHE_TABLE_NAME


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class CacheEntry(Base):
    """Key/value cache table with optional expiry."""

    __tablename__ = CACHE_TABLE_NAME

    key: Mapped[str] = mapped_column(String(CACHE_KEY_MAX_LENGTH), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
