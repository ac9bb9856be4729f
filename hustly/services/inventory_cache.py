"""In-memory TTL cache for inventory result sets, keyed by filter fingerprint."""

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from hustly.models.listing import Listing
from hustly.utils.config import InventoryConfig
from hustly.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


@dataclass
class CacheEntry:
    """A cached result set and when it was stored."""
    listings: list[Listing]
    stored_at: float
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def age(self, now: float) -> float:
        return now - self.stored_at


class InventoryCache:
    """
    TTL cache with two horizons.

    Entries younger than ``ttl_seconds`` are fresh and short-circuit repeat
    queries. Entries younger than ``stale_seconds`` may still be served as
    stale fallback data after a failed fetch. Older entries are evicted lazily
    on access. When ``max_entries`` is reached the least recently used entry
    is evicted on insert.
    """

    def __init__(
        self,
        ttl_seconds: float = InventoryConfig.CACHE_TTL_SECONDS,
        stale_seconds: float = InventoryConfig.CACHE_STALE_SECONDS,
        max_entries: Optional[int] = InventoryConfig.CACHE_MAX_ENTRIES,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.stale_seconds = max(stale_seconds, ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self._lookup(key, self.stale_seconds) is not None

    def _lookup(self, key: str, max_age: float) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        age = entry.age(self._clock())
        if age >= self.stale_seconds:
            del self._entries[key]
            logger.debug("Evicted expired inventory cache entry", cache_key=key, age_seconds=round(age, 2))
            return None
        if age >= max_age:
            return None

        self._entries.move_to_end(key)
        return entry

    def get(self, key: str) -> Optional[list[Listing]]:
        """Fresh listings for ``key`` or None on a miss."""
        entry = self._lookup(key, self.ttl_seconds)
        if entry is None:
            return None
        return list(entry.listings)

    def get_stale(self, key: str) -> Optional[CacheEntry]:
        """Entry for ``key`` still inside the stale window, fresh or not."""
        return self._lookup(key, self.stale_seconds)

    def set(self, key: str, listings: list[Listing]) -> None:
        """Replace the entry for ``key`` wholesale."""
        self._entries.pop(key, None)

        if self.max_entries is not None and self.max_entries > 0:
            while len(self._entries) >= self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug("Evicted least recently used inventory cache entry", cache_key=evicted_key)

        self._entries[key] = CacheEntry(listings=list(listings), stored_at=self._clock())

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one entry, or every entry when ``key`` is None."""
        if key is None:
            count = len(self._entries)
            self._entries.clear()
            logger.info("Inventory cache cleared", entries_removed=count)
        else:
            self._entries.pop(key, None)


# Process-wide cache: created on first use, cleared only by explicit command
_inventory_cache: Optional[InventoryCache] = None


def get_inventory_cache() -> InventoryCache:
    """Get or create the process-wide inventory cache."""
    global _inventory_cache
    if _inventory_cache is None:
        _inventory_cache = InventoryCache()
    return _inventory_cache


def reset_inventory_cache() -> None:
    """Discard the process-wide inventory cache."""
    global _inventory_cache
    if _inventory_cache is not None:
        _inventory_cache.invalidate()
    _inventory_cache = None
