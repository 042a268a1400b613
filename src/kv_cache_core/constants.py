"""Shared constants for kv-cache-facade."""

from __future__ import annotations

from datetime import timedelta

# Smallest TTL every backend can represent (Redis PX resolution)
MIN_TTL = timedelta(milliseconds=1)

# Largest TTL accepted; keeps expiry timestamps representable in every backend
MAX_TTL = timedelta(days=36500)

# Redis PTTL/TTL reply sentinels (Redis >= 2.8)
REDIS_TTL_ABSENT = -2
REDIS_TTL_PERSISTENT = -1

# Key enumeration
MATCH_ALL_PATTERN = "*"
DEFAULT_SCAN_COUNT = 500

# Default table name for the database-backed store
CACHE_TABLE_NAME = "cache_entries"
CACHE_KEY_MAX_LENGTH = 512
