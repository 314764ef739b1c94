"""
Orchestration Domain - Result caching and pipeline coordination.

This domain handles:
- LRU + TTL result caching
- Cache key canonicalization
- Cached, paginated search pipeline
"""

from .cache import ResultCache
from .contracts import SearchOrchestrator, SearchResultCache
from .models import CacheEntry, CacheStats, Facets, SearchResponse
from .pipeline import SearchPipeline, compute_facets

__all__ = [
    # Contracts
    "SearchResultCache",
    "SearchOrchestrator",
    # Models
    "CacheEntry",
    "CacheStats",
    "Facets",
    "SearchResponse",
    # Implementations
    "ResultCache",
    "SearchPipeline",
    "compute_facets",
]
