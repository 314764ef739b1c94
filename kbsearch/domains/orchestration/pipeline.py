"""
Search Pipeline - Cached, paginated search over the fusion engine.

The engine ranks to a fixed depth once per request shape; pages are sliced
from the cached base ranking.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import TYPE_CHECKING

from kbsearch.config.errors import QueryValidationError

from .cache import ResultCache
from .models import CacheEntry, CacheStats, Facets, SearchResponse

if TYPE_CHECKING:
    from kbsearch.domains.search import FusionEngine, RankedItem, SearchQuery

logger = logging.getLogger(__name__)

__all__ = ["SearchPipeline", "compute_facets"]

FACET_FIELDS = ("type", "category")


def compute_facets(items: list[RankedItem]) -> Facets:
    """Value counts per facet field over the whole base ranking."""
    facets: Facets = {}
    for field in FACET_FIELDS:
        counts = Counter(
            getattr(item.unit, field) for item in items if item.unit and getattr(item.unit, field)
        )
        facets[field] = dict(counts.most_common())
    return facets


class SearchPipeline:
    """
    Main search orchestration.

    Coordinates:
    - Cache key generation and lookup
    - Fusion on miss, ranked to ``limit * max_pages``
    - Page slicing and response shaping

    Example:
        >>> pipeline = SearchPipeline(engine, ResultCache())
        >>> response = await pipeline.search(SearchQuery(query="oauth"), page=2)
    """

    def __init__(
        self,
        engine: FusionEngine,
        cache: ResultCache | None = None,
        *,
        max_pages: int = 5,
    ) -> None:
        """
        Initialize pipeline.

        Args:
            engine: Fusion engine
            cache: Result cache
            max_pages: Pages served from one cached base ranking
        """
        if max_pages < 1:
            raise ValueError(f"max_pages must be at least 1, got {max_pages}")
        self._engine = engine
        self._cache = cache or ResultCache()
        self._max_pages = max_pages

    @property
    def cache(self) -> ResultCache:
        return self._cache

    async def search(self, query: SearchQuery, page: int = 1) -> SearchResponse:
        """
        Execute a search through the cache.

        Raises:
            QueryValidationError: Page out of range, or invalid query parts
            LexicalIndexUnavailableError: Full-text store unreachable
        """
        if page < 1 or page > self._max_pages:
            raise QueryValidationError(
                f"Page must be between 1 and {self._max_pages}",
                {"page": page},
            )

        start_time = time.perf_counter()
        weights = query.weights or self._engine.config.default_weights
        filters = list(query.filters) or None
        cache_key = self._cache.generate_key(
            query.query,
            limit=query.limit,
            weights=weights,
            filters=filters,
            metadata_filters=query.metadata,
        )

        degraded = False
        entry = self._cache.get(cache_key)
        cache_hit = entry is not None
        if entry is None:
            result = await self._engine.execute(
                query.query,
                query.limit * self._max_pages,
                weights,
                filters,
                query.metadata,
            )
            degraded = result.degraded
            entry = CacheEntry(
                results=result.items,
                total=len(result.items),
                query_time_ms=(time.perf_counter() - start_time) * 1000,
                facets=compute_facets(result.items),
            )
            # Degraded rankings are served once but never memoized
            if degraded:
                logger.info("Not caching degraded results for key %s", cache_key)
            else:
                self._cache.set(cache_key, entry)

        offset = (page - 1) * query.limit
        total_duration = (time.perf_counter() - start_time) * 1000

        logger.info(
            "Search: query='%s' page=%d -> %d/%d results (cache_hit=%s, %.1fms)",
            query.query[:50],
            page,
            len(entry.results[offset : offset + query.limit]),
            entry.total,
            cache_hit,
            total_duration,
        )

        return SearchResponse(
            query=query.query,
            results=entry.results[offset : offset + query.limit],
            total=entry.total,
            page=page,
            limit=query.limit,
            query_time_ms=total_duration,
            cache_hit=cache_hit,
            degraded=degraded,
            facets=entry.facets,
        )

    def cache_stats(self) -> CacheStats:
        return self._cache.get_stats()

    def invalidate_all(self) -> int:
        """Drop all cached rankings, e.g. after ingestion."""
        return self._cache.invalidate_all()
