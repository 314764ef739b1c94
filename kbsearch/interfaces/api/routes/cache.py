"""
Cache Routes - Result cache statistics and invalidation.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from kbsearch.domains.orchestration import CacheStats, SearchPipeline
from kbsearch.interfaces.api.deps import get_search_pipeline

router = APIRouter()


@router.get("/stats", response_model=CacheStats)
async def cache_stats(pipeline: SearchPipeline = Depends(get_search_pipeline)) -> CacheStats:
    """Hit/miss/eviction counters and current size."""
    return pipeline.cache_stats()


@router.delete("")
async def invalidate_cache(
    pipeline: SearchPipeline = Depends(get_search_pipeline),
) -> dict[str, int]:
    """Drop every cached ranking, e.g. after ingestion."""
    return {"invalidated": pipeline.invalidate_all()}
