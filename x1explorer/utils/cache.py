"""Tiered in-memory cache for RPC responses."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

import structlog

from ..config.settings import Settings

logger = structlog.get_logger(__name__)


class CacheDuration(Enum):
    """Expiry tier chosen by the call site."""
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


DEFAULT_TIER_TTLS = {
    CacheDuration.SHORT: 3.0,
    CacheDuration.MEDIUM: 45.0,
    CacheDuration.LONG: 600.0,
}

TierLike = Union[CacheDuration, str]


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float


class ResponseCache:
    """Key/value store with per-entry expiry and a hard size cap.

    Expired entries are dropped lazily on read. When the cap is reached,
    set() evicts the entries closest to expiry before inserting, so no
    background sweeper is needed.
    """

    def __init__(
        self,
        max_entries: int = 50,
        evict_batch: int = 10,
        tier_ttls: Optional[Dict[CacheDuration, float]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize cache.

        Args:
            max_entries: Hard cap on the number of stored entries
            evict_batch: Entries removed when the cap is hit
            tier_ttls: Seconds to live per CacheDuration tier
            clock: Time source in seconds (injectable for tests)
        """
        self.max_entries = max_entries
        self.evict_batch = evict_batch
        self.tier_ttls = dict(DEFAULT_TIER_TTLS)
        if tier_ttls:
            self.tier_ttls.update(tier_ttls)
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> "ResponseCache":
        return cls(
            max_entries=settings.cache_max_entries,
            evict_batch=settings.cache_evict_batch,
            tier_ttls={CacheDuration(name): ttl for name, ttl in settings.tier_ttls.items()},
            clock=clock,
        )

    def ttl_for(self, tier: TierLike) -> float:
        """Seconds to live for a tier; unknown tiers fall back to short."""
        try:
            tier = CacheDuration(tier) if not isinstance(tier, CacheDuration) else tier
        except ValueError:
            tier = CacheDuration.SHORT
        return self.tier_ttls[tier]

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if self._clock() > entry.expires_at:
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return entry.value

    def set(self, key: str, value: Any, tier: TierLike = CacheDuration.SHORT) -> None:
        """Store a value under a tier's TTL, evicting first if at capacity."""
        if len(self._entries) >= self.max_entries:
            self._evict()

        expires_at = self._clock() + self.ttl_for(tier)
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

    def _evict(self) -> None:
        soonest = sorted(self._entries.values(), key=lambda e: e.expires_at)
        for entry in soonest[:self.evict_batch]:
            del self._entries[entry.key]
            self.evictions += 1
        logger.debug("cache_evicted", count=min(self.evict_batch, len(soonest)), remaining=len(self._entries))

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cache."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get_statistics(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Statistics dictionary
        """
        total_requests = self.hits + self.misses
        hit_rate = self.hits / max(total_requests, 1)

        return {
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': hit_rate,
            'evictions': self.evictions,
            'entries': len(self._entries),
            'max_entries': self.max_entries,
        }
