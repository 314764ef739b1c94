"""
Orchestration Contracts - Interfaces for orchestration domain.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from kbsearch.domains.search.models import SearchQuery

from .models import CacheEntry, CacheStats, SearchResponse


@runtime_checkable
class SearchResultCache(Protocol):
    """Contract for ranked result caching."""

    def get(self, key: str) -> CacheEntry | None:
        """Get a live entry, or None on miss or expiry."""
        ...

    def set(self, key: str, entry: CacheEntry, ttl_ms: int | None = None) -> None:
        """Store an entry, evicting the least recently used if full."""
        ...

    def invalidate_all(self) -> int:
        """Drop every entry."""
        ...

    def invalidate_where(self, predicate: Callable[[str], bool]) -> int:
        """Drop entries whose key satisfies ``predicate``."""
        ...

    def get_stats(self) -> CacheStats:
        ...


@runtime_checkable
class SearchOrchestrator(Protocol):
    """Contract for cached, paginated search."""

    async def search(self, query: SearchQuery, page: int = 1) -> SearchResponse:
        """
        Execute a search through the cache.

        Args:
            query: Search request
            page: 1-based page number

        Returns:
            One page of results
        """
        ...
