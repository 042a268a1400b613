"""Public interface re-exports for kv_cache_core."""

from kv_cache_core.interfaces.store import KeyValueStore

__all__ = [
    "KeyValueStore",
]
