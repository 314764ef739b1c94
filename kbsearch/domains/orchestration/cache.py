"""
Result Cache - In-memory LRU cache with TTL for ranked search results.

Memoizes base rankings so repeated queries and page turns skip retrieval.

Features:
- Strict LRU eviction (get and set both refresh recency)
- Lazy TTL expiry on get
- Predicate-based invalidation
- Hit/miss/eviction statistics
- Thread-safe operations
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from .models import CacheEntry, CacheStats

logger = logging.getLogger(__name__)

__all__ = ["ResultCache"]

DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL_MS = 5 * 60 * 1000


class _Node:
    __slots__ = ("key", "entry", "prev", "next")

    def __init__(self, key: str = "", entry: CacheEntry | None = None) -> None:
        self.key = key
        self.entry = entry
        self.prev: _Node | None = None
        self.next: _Node | None = None


def _canonical_filter(node: Any) -> Any:
    if isinstance(node, BaseModel):
        node = node.model_dump(mode="json")
    if isinstance(node, Mapping):
        data = dict(node)
        if "children" in data:
            data["children"] = _canonical_filters(data["children"])
        return data
    return node


def _canonical_filters(filters: Any) -> list[Any]:
    if filters is None:
        return []
    if isinstance(filters, (BaseModel, Mapping)):
        filters = [filters]
    canonical = [_canonical_filter(f) for f in filters]
    return sorted(canonical, key=_filter_sort_key)


def _filter_sort_key(node: Any) -> tuple[str, str, str]:
    if isinstance(node, Mapping) and "children" not in node:
        return (
            str(node.get("field", "")),
            str(node.get("operator", "")),
            json.dumps(node.get("value"), sort_keys=True, default=str)
            + json.dumps(node.get("negate", False)),
        )
    return ("~", "", json.dumps(node, sort_keys=True, default=str))


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    return value


class ResultCache:
    """
    LRU cache with TTL for ranked search results.

    Entries live in a dict for lookup and in a doubly-linked recency list
    bounded by sentinel nodes (head side is most recent).

    Example:
        >>> cache = ResultCache(max_size=100)
        >>> key = cache.generate_key("oauth", limit=20)
        >>> cache.set(key, CacheEntry(results=[], total=0))
        >>> cache.get(key) is not None
        True
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize cache.

        Args:
            max_size: Maximum number of entries
            default_ttl_ms: TTL applied when ``set`` gets none
            clock: Monotonic time source in seconds
        """
        self._validate(max_size, default_ttl_ms)
        self._max_size = max_size
        self._default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._lock = threading.Lock()

        self._map: dict[str, _Node] = {}
        self._head = _Node()
        self._tail = _Node()
        self._head.next = self._tail
        self._tail.prev = self._head

        # Metrics
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def _validate(max_size: int | None, default_ttl_ms: int | None) -> None:
        if max_size is not None and max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        if default_ttl_ms is not None and default_ttl_ms <= 0:
            raise ValueError(f"default_ttl_ms must be positive, got {default_ttl_ms}")

    def configure(self, max_size: int | None = None, default_ttl_ms: int | None = None) -> None:
        """Update limits. Shrinking evicts least recently used entries immediately."""
        self._validate(max_size, default_ttl_ms)
        with self._lock:
            if default_ttl_ms is not None:
                self._default_ttl_ms = default_ttl_ms
            if max_size is not None:
                self._max_size = max_size
                while len(self._map) > self._max_size:
                    self._evict_lru()
        logger.info(
            "Cache configured: max_size=%d, default_ttl_ms=%d",
            self._max_size,
            self._default_ttl_ms,
        )

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def default_ttl_ms(self) -> int:
        return self._default_ttl_ms

    # --- Keys ---

    @staticmethod
    def generate_key(
        query: str,
        *,
        limit: int,
        weights: Any = None,
        filters: Any = None,
        search_type: str = "hybrid",
        metadata_filters: Any = None,
    ) -> str:
        """
        Build a deterministic key for a request shape.

        Filter lists are sorted by field, operator and value (groups
        recursively) so input order does not matter. Page number is never
        part of the key.
        """
        payload = {
            "query": query.strip(),
            "searchType": search_type,
            "limit": limit,
            "weights": _dump(weights),
            "filters": _canonical_filters(filters),
            "metadata": _dump(metadata_filters) or None,
        }
        serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
        digest = hashlib.sha256(serialized.encode()).hexdigest()[:16]
        return f"search:{search_type}:{digest}"

    # --- Access ---

    def get(self, key: str) -> CacheEntry | None:
        """Get a live entry. Expired entries are removed and count as misses."""
        with self._lock:
            node = self._map.get(key)
            if node is None:
                self._misses += 1
                return None

            entry = node.entry
            if self._is_expired(entry):
                self._unlink(node)
                del self._map[key]
                self._misses += 1
                logger.debug("Cache entry expired: %s", key)
                return None

            self._move_to_front(node)
            self._hits += 1
            return entry

    def set(self, key: str, entry: CacheEntry, ttl_ms: int | None = None) -> None:
        """Store an entry and mark it most recently used."""
        ttl = ttl_ms if ttl_ms is not None else self._default_ttl_ms
        if ttl <= 0:
            raise ValueError(f"ttl_ms must be positive, got {ttl}")

        with self._lock:
            stamped = entry.model_copy(update={"inserted_at": self._clock(), "ttl_ms": ttl})
            node = self._map.get(key)
            if node is not None:
                node.entry = stamped
                self._move_to_front(node)
                return

            if len(self._map) >= self._max_size:
                self._evict_lru()

            node = _Node(key, stamped)
            self._map[key] = node
            self._push_front(node)

        logger.debug("Cached results: %s (TTL: %dms)", key, ttl)

    def invalidate_all(self) -> int:
        """Drop every entry. Statistics are kept."""
        with self._lock:
            count = len(self._map)
            self._map.clear()
            self._head.next = self._tail
            self._tail.prev = self._head
        logger.info("Cleared %d cache entries", count)
        return count

    def invalidate_where(self, predicate: Callable[[str], bool]) -> int:
        """Drop entries whose key satisfies ``predicate``."""
        with self._lock:
            doomed = [key for key in self._map if predicate(key)]
            for key in doomed:
                self._unlink(self._map.pop(key))
        logger.info("Invalidated %d cache entries", len(doomed))
        return len(doomed)

    # --- Statistics ---

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        with self._lock:
            lookups = self._hits + self._misses
            return CacheStats(
                size=len(self._map),
                hits=self._hits,
                misses=self._misses,
                hit_rate=(self._hits / lookups * 100) if lookups else 0.0,
                evictions=self._evictions,
                max_size=self._max_size,
            )

    def clear_stats(self) -> None:
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def get_size_in_bytes(self) -> int:
        """Rough footprint estimate from serialized keys and entries."""
        with self._lock:
            entries = [(key, node.entry) for key, node in self._map.items()]
        return sum(
            len(key.encode()) + len(entry.model_dump_json()) for key, entry in entries if entry
        )

    def keys(self) -> Iterable[str]:
        """Keys from most to least recently used."""
        with self._lock:
            ordered = []
            node = self._head.next
            while node is not None and node is not self._tail:
                ordered.append(node.key)
                node = node.next
            return ordered

    def __len__(self) -> int:
        return len(self._map)

    def __contains__(self, key: object) -> bool:
        return key in self._map

    # --- Recency list ---

    def _is_expired(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.inserted_at) * 1000 >= entry.ttl_ms

    def _evict_lru(self) -> None:
        node = self._tail.prev
        if node is None or node is self._head:
            return
        self._unlink(node)
        del self._map[node.key]
        self._evictions += 1
        logger.debug("Evicted least recently used entry: %s", node.key)

    def _push_front(self, node: _Node) -> None:
        first = self._head.next
        node.prev = self._head
        node.next = first
        self._head.next = node
        if first is not None:
            first.prev = node

    def _unlink(self, node: _Node) -> None:
        if node.prev is not None:
            node.prev.next = node.next
        if node.next is not None:
            node.next.prev = node.prev
        node.prev = None
        node.next = None

    def _move_to_front(self, node: _Node) -> None:
        self._unlink(node)
        self._push_front(node)
