"""
In-memory caches for parsed queries and query results.

Two instances are used per service: the parse cache maps a natural-language
message to the StructuredQuery the model produced, and the result cache maps
a fully limited query to its serialized FeatureCollection.

Entries expire a fixed time after they were written. Reads refresh recency,
and a write at capacity evicts the least recently used entry.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from geoquery.query.models import StructuredQuery

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A cached value and the time it was stored."""
    value: V
    created_at: float

    def age_seconds(self, now: float) -> float:
        return now - self.created_at


def make_cache_key(text: str) -> str:
    """First 16 hex characters of the SHA-256 of the text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def canonical_query_json(query: StructuredQuery) -> str:
    """Stable JSON for a query: wire names, sorted keys, no nulls."""
    return json.dumps(query.to_wire(), sort_keys=True, separators=(",", ":"))


def result_cache_key(query: StructuredQuery, simplify_tolerance_deg: float) -> str:
    return make_cache_key(f"{canonical_query_json(query)}|{simplify_tolerance_deg!r}")


class QueryCache(Generic[V]):
    """
    Bounded cache with per-entry time-to-live.

    Thread-safe: every map mutation happens under one lock.
    """

    def __init__(
        self,
        max_size: int,
        ttl_seconds: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            max_size: Maximum number of entries
            ttl_seconds: Lifetime of an entry from the moment it is stored
            name: Label used in log messages
            clock: Monotonic time source, injectable for tests
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.age_seconds(self._clock()) > self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                logger.debug(f"{self.name}: entry {key} expired")
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: V) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"{self.name}: evicted {evicted}")
            self._entries[key] = CacheEntry(value=value, created_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info(f"{self.name} cleared")

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._entries),
                "maxSize": self.max_size,
                "hitRate": self._hits / lookups if lookups else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
