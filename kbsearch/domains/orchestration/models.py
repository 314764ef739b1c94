"""
Orchestration Models - Data types for caching and the search pipeline.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from kbsearch.domains.search.models import RankedItem

Facets = dict[str, dict[str, int]]


class CacheEntry(BaseModel):
    """Memoized base ranking for one request shape."""

    results: list[RankedItem] = Field(default_factory=list)
    total: int = 0
    query_time_ms: float = 0.0
    facets: Facets | None = None
    inserted_at: float = 0.0  # cache clock, seconds
    ttl_ms: int = 0

    model_config = {"frozen": True}


class CacheStats(BaseModel):
    """Counters since the last ``clear_stats``."""

    size: int
    hits: int
    misses: int
    hit_rate: float  # percent
    evictions: int
    max_size: int


class SearchResponse(BaseModel):
    """One page of search results."""

    query: str
    results: list[RankedItem] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20
    query_time_ms: float = 0.0
    cache_hit: bool = False
    degraded: bool = False
    facets: Facets | None = None

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total
