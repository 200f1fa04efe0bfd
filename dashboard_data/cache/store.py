"""
TTL-keyed cache store shared by every data domain.
"""
import logging
import threading
from datetime import timedelta
from typing import Any, Dict, Optional

from dashboard_data.clock import Clock, SystemClock

from .core import CacheEntry
from .ttl_policies import CLEANUP_HORIZON_SECONDS

logger = logging.getLogger("cache.store")

# Sentinel returned by get() on a miss, so a cached None is still a hit
MISS = object()


class CacheStore:
    """
    Keyed cache with per-entry TTL and lazy eviction.

    - get() returns a payload only while now <= expires_at; an expired entry
      is evicted on read and moved to a last-known shelf
    - get_stale() reads the shelf (or a live entry) for stale-on-error serving
    - purge() drops anything cached longer ago than the cleanup horizon
    - One lock guards both maps; each key is timed independently
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        cleanup_horizon_seconds: int = CLEANUP_HORIZON_SECONDS,
    ):
        """
        Initialize the cache store.

        Args:
            clock: Time source (defaults to wall-clock time)
            cleanup_horizon_seconds: Age after which entries are purged outright
        """
        self._clock = clock or SystemClock()
        self._cleanup_horizon = cleanup_horizon_seconds
        self._entries: Dict[str, CacheEntry] = {}
        self._shelf: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

        # Stats tracking
        self._stats = {
            "hits": 0,
            "misses": 0,
            "expirations": 0,
            "purged": 0,
        }

    def get(self, key: str) -> Any:
        """
        Get a fresh payload.

        Returns:
            The payload, or MISS if absent or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                logger.debug(f"CACHE MISS: {key}")
                return MISS

            now = self._clock.now()
            if entry.is_fresh(now):
                self._stats["hits"] += 1
                logger.debug(f"CACHE HIT: {key} [age={entry.age_seconds(now):.1f}s]")
                return entry.payload

            # Lazy eviction, keeping the entry for stale-on-error fallback
            del self._entries[key]
            self._shelf[key] = entry
            self._stats["expirations"] += 1
            self._stats["misses"] += 1
            logger.info(f"CACHE EXPIRED: {key} [age={entry.age_seconds(now):.1f}s]")
            return MISS

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Get the fresh entry (with timestamps) or None. Same eviction rules as get()."""
        with self._lock:
            if self.get(key) is MISS:
                return None
            return self._entries[key]

    def get_stale(self, key: str) -> Optional[CacheEntry]:
        """
        Get the last-known entry for a key, expired or not.

        Used only as a last resort when every fetch has failed.
        """
        with self._lock:
            return self._entries.get(key) or self._shelf.get(key)

    def set(self, key: str, payload: Any, ttl_seconds: float) -> CacheEntry:
        """
        Create or overwrite an entry expiring ttl_seconds from now.

        Raises:
            ValueError: If ttl_seconds is not positive
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        now = self._clock.now()
        entry = CacheEntry(
            key=key,
            payload=payload,
            cached_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        with self._lock:
            self._entries[key] = entry
            self._shelf.pop(key, None)
            self._purge_locked(self._cleanup_horizon)
        return entry

    def clear(self, key_prefix: Optional[str] = None) -> int:
        """
        Remove all entries, or all entries whose key starts with key_prefix.

        Returns:
            Number of distinct keys removed
        """
        with self._lock:
            if key_prefix is None:
                removed = set(self._entries) | set(self._shelf)
                self._entries.clear()
                self._shelf.clear()
            else:
                removed = {
                    k for k in list(self._entries) + list(self._shelf)
                    if k.startswith(key_prefix)
                }
                for k in removed:
                    self._entries.pop(k, None)
                    self._shelf.pop(k, None)
            if removed:
                logger.info(
                    f"Cleared {len(removed)} cache entries"
                    + (f" matching '{key_prefix}'" if key_prefix else "")
                )
            return len(removed)

    def expire(self, key_prefix: Optional[str] = None) -> int:
        """
        Force the next read of matching keys to miss, keeping each entry on
        the shelf so it can still be served stale.

        Returns:
            Number of entries expired
        """
        with self._lock:
            expired = [
                k for k in self._entries
                if key_prefix is None or k.startswith(key_prefix)
            ]
            for k in expired:
                self._shelf[k] = self._entries.pop(k)
            self._stats["expirations"] += len(expired)
            if expired:
                logger.info(
                    f"Expired {len(expired)} cache entries"
                    + (f" matching '{key_prefix}'" if key_prefix else "")
                )
            return len(expired)

    def purge(self, horizon_seconds: Optional[float] = None) -> int:
        """
        Remove every entry cached longer ago than the horizon.

        Returns:
            Number of entries purged
        """
        with self._lock:
            return self._purge_locked(
                self._cleanup_horizon if horizon_seconds is None else horizon_seconds
            )

    def _purge_locked(self, horizon_seconds: float) -> int:
        cutoff = self._clock.now() - timedelta(seconds=horizon_seconds)
        purged = 0
        for table in (self._entries, self._shelf):
            old = [k for k, e in table.items() if e.cached_at < cutoff]
            for k in old:
                del table[k]
            purged += len(old)
        if purged:
            self._stats["purged"] += purged
            logger.info(f"Purged {purged} cache entries older than {horizon_seconds}s")
        return purged

    def keys(self):
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
            return {
                "entries": len(self._entries),
                "stale_entries": len(self._shelf),
                "hits": self._stats["hits"],
                "misses": self._stats["misses"],
                "expirations": self._stats["expirations"],
                "purged": self._stats["purged"],
                "hit_rate_percent": round(hit_rate, 1),
            }
