"""
Core cache data structures.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class DataDomain(Enum):
    """Data domains sharing the cache, each with its own default TTL."""
    WEATHER = "weather"     # current conditions, 10 minutes
    FORECAST = "forecast"   # 10 minutes
    FEED = "feed"           # feed articles, 30 minutes


class CacheSource(Enum):
    """Where the data returned to a caller came from."""
    FRESH = "fresh"             # Cache hit within TTL
    UPSTREAM = "upstream"       # Direct fetch
    RELAY = "relay"             # Fetched through a relay endpoint
    STALE = "stale"             # Expired entry served because every fetch failed
    SUBSTITUTE = "substitute"   # Generated locally while offline


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached payload with its cache and expiry timestamps.

    Entries are owned by the CacheStore and replaced, never mutated.
    """
    key: str
    payload: Any
    cached_at: datetime
    expires_at: datetime

    def __post_init__(self):
        if self.expires_at <= self.cached_at:
            raise ValueError(
                f"expires_at must be after cached_at for {self.key!r}"
            )

    @property
    def ttl_seconds(self) -> float:
        return (self.expires_at - self.cached_at).total_seconds()

    def is_fresh(self, now: datetime) -> bool:
        """Check if the entry is still within its TTL."""
        return now <= self.expires_at

    def age_seconds(self, now: datetime) -> float:
        """Seconds since the payload was cached."""
        return (now - self.cached_at).total_seconds()
