"""Argument checks applied before any store round trip."""

from __future__ import annotations

import math
from datetime import timedelta

from kv_cache_core.constants import MAX_TTL, MIN_TTL
from kv_cache_core.exceptions import InvalidKeyError, InvalidTTLError

TtlLike = timedelta | int | float


def validate_key(key: object) -> str:
    """Return `key` unchanged, or raise InvalidKeyError if it is empty or not a str."""
    if not isinstance(key, str):
        msg = f"cache key must be a str, got {type(key).__name__}"
        raise InvalidKeyError(msg)
    if not key:
        msg = "cache key must not be empty"
        raise InvalidKeyError(msg)
    return key


def coerce_ttl(ttl: TtlLike) -> timedelta:
    """Convert a TTL given as timedelta or seconds into a validated timedelta.

    Raises:
        InvalidTTLError: if the TTL is not a finite number/timedelta, is
            shorter than the 1 ms store resolution, or exceeds MAX_TTL.
    """
    if isinstance(ttl, bool):
        msg = "ttl must be a timedelta or a number of seconds, got bool"
        raise InvalidTTLError(msg)
    if isinstance(ttl, timedelta):
        duration = ttl
    elif isinstance(ttl, int | float):
        if not math.isfinite(ttl):
            msg = f"ttl must be a finite number of seconds, got {ttl}"
            raise InvalidTTLError(msg)
        try:
            duration = timedelta(seconds=ttl)
        except (OverflowError, ValueError) as exc:
            msg = f"ttl must be at most {MAX_TTL.days} days, got {ttl} seconds"
            raise InvalidTTLError(msg) from exc
    else:
        msg = f"ttl must be a timedelta or a number of seconds, got {type(ttl).__name__}"
        raise InvalidTTLError(msg)

    if duration < MIN_TTL:
        msg = f"ttl must be at least {MIN_TTL.total_seconds() * 1000:.0f} ms, got {duration}"
        raise InvalidTTLError(msg)
    if duration > MAX_TTL:
        msg = f"ttl must be at most {MAX_TTL.days} days, got {duration}"
        raise InvalidTTLError(msg)
    return duration


def ttl_to_millis(ttl: timedelta) -> int:
    """Whole milliseconds in `ttl`, never below 1."""
    return max(1, int(ttl.total_seconds() * 1000))
