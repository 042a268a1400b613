"""Custom exception hierarchy for kv-cache-facade."""

from __future__ import annotations


class KVCacheError(Exception):
    """Base exception for all kv-cache-facade errors."""


class CacheInputError(KVCacheError, ValueError):
    """Raised when an argument is rejected before reaching the store."""


class InvalidKeyError(CacheInputError):
    """Raised when a cache key is empty or not a string."""


class InvalidTTLError(CacheInputError):
    """Raised when a TTL is not a positive duration."""


class StoreFaultError(KVCacheError):
    """Raised when the backing store fails to serve a request."""

    def __init__(self, message: str, *, operation: str, key: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.key = key


class StoreUnavailableError(StoreFaultError):
    """Raised on connection failure, timeout, or pool exhaustion."""


class StoreOperationError(StoreFaultError):
    """Raised when the store answers a command with an error."""
