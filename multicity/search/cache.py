"""In-memory result cache with lazy TTL checks.

Holds the merged state of every remote search started by this process,
keyed by segment key. Entries are never evicted in the background;
readers decide whether an entry is still fresh.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from multicity.models import CacheEntry

logger = logging.getLogger(__name__)

_DEFAULT_TTL_SECONDS = 5 * 60


class ResultCache:
    """Mapping of segment key to CacheEntry with a fixed time-to-live."""

    def __init__(self, ttl_seconds: float = _DEFAULT_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for a key, fresh or not.

        Callers check :meth:`is_fresh` before trusting the entry.
        """
        return self._entries.get(key)

    def get_fresh(self, key: str, ttl_seconds: Optional[float] = None) -> Optional[CacheEntry]:
        """Return the entry only if it is within the TTL (or ``ttl_seconds`` when given)."""
        entry = self._entries.get(key)
        if entry is None or not self.is_fresh(entry, ttl_seconds=ttl_seconds):
            return None
        return entry

    def is_fresh(
        self, entry: CacheEntry, now: Optional[float] = None, ttl_seconds: Optional[float] = None
    ) -> bool:
        """Whether an entry is younger than the TTL."""
        now = time.time() if now is None else now
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return now - entry.timestamp < ttl

    def put(self, key: str, entry: CacheEntry) -> CacheEntry:
        """Store an entry, overwriting any previous one, stamped with the current time."""
        stamped = entry.model_copy(update={"timestamp": time.time()})
        self._entries[key] = stamped
        return stamped

    def clear(self) -> int:
        """Drop every entry. Returns how many were dropped."""
        count = len(self._entries)
        self._entries.clear()
        if count:
            logger.debug("Result cache cleared (%d entries)", count)
        return count

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


_default_cache: Optional[ResultCache] = None


def default_cache() -> ResultCache:
    """Process-wide cache shared by orchestrators that are not given one."""
    global _default_cache
    if _default_cache is None:
        _default_cache = ResultCache()
    return _default_cache
