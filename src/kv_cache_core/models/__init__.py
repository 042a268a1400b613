"""Domain models for kv-cache-facade."""

from kv_cache_core.models.entry import CacheLookup, TtlReading, TtlState

__all__ = [
    "CacheLookup",
    "TtlReading",
    "TtlState",
]
