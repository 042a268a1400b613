"""Tagged results returned by cache reads and TTL queries."""

from __future__ import annotations

import math
from datetime import timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TtlState(StrEnum):
    """Observable expiry states of a key."""

    ABSENT = "absent"  # Key does not exist
    PERSISTENT = "persistent"  # Key exists without expiry
    EXPIRING = "expiring"  # Key exists and expires after `remaining`


class TtlReading(BaseModel):
    """Normalized answer to "how long does this key have left?"."""

    model_config = ConfigDict(frozen=True)

    state: TtlState = Field(description="Expiry state of the key")
    remaining: timedelta | None = Field(
        default=None, description="Time left before expiry (EXPIRING only)"
    )

    @model_validator(mode="after")
    def validate_remaining(self) -> TtlReading:
        """Require `remaining` exactly when the key is expiring."""
        if self.state is TtlState.EXPIRING:
            if self.remaining is None:
                msg = "remaining is required for an expiring key"
                raise ValueError(msg)
            if self.remaining < timedelta(0):
                msg = "remaining must not be negative"
                raise ValueError(msg)
        elif self.remaining is not None:
            msg = f"remaining must be None for state={self.state.value}"
            raise ValueError(msg)
        return self

    @classmethod
    def absent(cls) -> TtlReading:
        """Reading for a key that does not exist."""
        return cls(state=TtlState.ABSENT)

    @classmethod
    def persistent(cls) -> TtlReading:
        """Reading for a key without expiry."""
        return cls(state=TtlState.PERSISTENT)

    @classmethod
    def expiring(cls, remaining: timedelta) -> TtlReading:
        """Reading for a key with `remaining` time to live."""
        return cls(state=TtlState.EXPIRING, remaining=remaining)

    @property
    def exists(self) -> bool:
        """Whether the key existed when the reading was taken."""
        return self.state is not TtlState.ABSENT

    @property
    def seconds(self) -> int | None:
        """Remaining whole seconds, rounded up; None unless expiring."""
        if self.remaining is None:
            return None
        return math.ceil(self.remaining.total_seconds())


class CacheLookup(BaseModel):
    """Result of a point read: a hit carrying the value, or a miss."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(description="Key that was looked up")
    value: str | None = Field(default=None, description="Stored value on a hit")

    @classmethod
    def found(cls, key: str, value: str) -> CacheLookup:
        """Build a hit."""
        return cls(key=key, value=value)

    @classmethod
    def missing(cls, key: str) -> CacheLookup:
        """Build a miss."""
        return cls(key=key)

    @property
    def hit(self) -> bool:
        """True when the key was present."""
        return self.value is not None

    def value_or(self, default: str) -> str:
        """Return the value on a hit, otherwise `default`."""
        return self.value if self.value is not None else default
