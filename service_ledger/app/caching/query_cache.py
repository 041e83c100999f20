"""
In-process TTL cache for remote store reads.
"""

import copy
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger
from .fingerprint import collection_of

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheEntry:
    """Cached store result and the clock reading it was stored at."""
    value: Any
    stored_at: float


class QueryCache:
    """
    Fingerprint -> CacheEntry map with lazy TTL expiry.

    One instance is meant to live for the whole process and be shared by
    reference; a second instance would not see invalidations made through the
    first. Every method is synchronous, so under asyncio each call completes
    without interleaving with other coroutines.

    Entries are also indexed by collection so ``invalidate`` touches only the
    fingerprints cached under that exact collection name.

    Values are deep-copied on the way in and on the way out; callers never
    hold a reference into a cached entry.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("ledger.query_cache")
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._collections: Dict[str, str] = {}
        self._index: Dict[str, Set[str]] = {}
        self._hits = 0
        self._misses = 0
        self._invalidations = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._entries

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at <= self.ttl_seconds

    def get(self, fingerprint: str) -> Optional[Any]:
        """Return a copy of the cached value, or None when absent or stale."""
        entry = self._entries.get(fingerprint)
        collection = self._collections.get(fingerprint) or collection_of(fingerprint)

        if entry is None:
            self._record_lookup(collection, "miss")
            return None

        if not self.is_fresh(entry):
            self._discard(fingerprint)
            self._record_lookup(collection, "stale")
            self.logger.debug("Query cache entry expired", fingerprint=fingerprint)
            return None

        self._record_lookup(collection, "hit")
        return copy.deepcopy(entry.value)

    def set(self, fingerprint: str, value: Any, collection: Optional[str] = None) -> None:
        """Store a snapshot of ``value`` under ``fingerprint``, replacing any previous entry."""
        collection = collection or collection_of(fingerprint)
        previous = self._collections.get(fingerprint)
        if previous is not None and previous != collection:
            self._discard(fingerprint)

        self._entries[fingerprint] = CacheEntry(value=copy.deepcopy(value), stored_at=self._clock())
        self._collections[fingerprint] = collection
        self._index.setdefault(collection, set()).add(fingerprint)
        self._update_size_gauge()

    def invalidate(self, collection: str) -> int:
        """Drop every entry cached for ``collection``; returns the number removed."""
        fingerprints = self._index.pop(collection, set())
        for fingerprint in fingerprints:
            self._entries.pop(fingerprint, None)
            self._collections.pop(fingerprint, None)

        removed = len(fingerprints)
        self._invalidations += removed
        if removed:
            self.logger.info("Invalidated query cache", collection=collection, entries=removed)
            if self.metrics:
                self.metrics.increment_counter("query_cache_invalidations_total", removed, collection=collection)
        self._update_size_gauge()
        return removed

    def clear(self) -> None:
        """Remove all entries."""
        removed = len(self._entries)
        self._entries.clear()
        self._collections.clear()
        self._index.clear()
        self.logger.info("Cleared query cache", entries=removed)
        self._update_size_gauge()

    def purge_expired(self) -> int:
        """Eagerly drop stale entries; returns the number removed."""
        stale = [fingerprint for fingerprint, entry in self._entries.items() if not self.is_fresh(entry)]
        for fingerprint in stale:
            self._discard(fingerprint)
        if stale:
            self.logger.debug("Purged expired query cache entries", entries=len(stale))
        self._update_size_gauge()
        return len(stale)

    def stats(self) -> Dict[str, Any]:
        """Snapshot of cache size and hit ratio."""
        lookups = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "collections": {name: len(keys) for name, keys in sorted(self._index.items())},
            "hits": self._hits,
            "misses": self._misses,
            "hit_ratio": self._hits / lookups if lookups else 0.0,
            "invalidated_entries": self._invalidations,
            "ttl_seconds": self.ttl_seconds,
        }

    def _discard(self, fingerprint: str) -> None:
        self._entries.pop(fingerprint, None)
        collection = self._collections.pop(fingerprint, None)
        if collection is None:
            return
        keys = self._index.get(collection)
        if keys is not None:
            keys.discard(fingerprint)
            if not keys:
                del self._index[collection]

    def _record_lookup(self, collection: str, result: str) -> None:
        if result == "hit":
            self._hits += 1
        else:
            self._misses += 1
        if self.metrics:
            self.metrics.increment_counter("query_cache_requests_total", collection=collection, result=result)

    def _update_size_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("query_cache_entries", len(self._entries))
