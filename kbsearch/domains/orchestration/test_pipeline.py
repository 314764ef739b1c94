"""
Tests for the cached search pipeline.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from kbsearch.config.errors import QueryValidationError
from kbsearch.domains.search.models import (
    FusionConfig,
    FusionResult,
    RankedItem,
    SearchQuery,
    SearchWeights,
    Unit,
    VectorDegraded,
    VectorRetrieved,
)

from .cache import ResultCache
from .pipeline import SearchPipeline, compute_facets


def make_items(count: int) -> list[RankedItem]:
    return [
        RankedItem(
            unit_id=f"u{i}",
            lexical_rank=i,
            combined_score=1.0 / (i + 61),
            unit=Unit(id=f"u{i}", type="code" if i % 2 else "message", category="auth"),
        )
        for i in range(count)
    ]


@pytest.fixture
def mock_engine() -> MagicMock:
    """Engine returning 25 ranked items."""
    engine = MagicMock()
    engine.config = FusionConfig()
    engine.execute = AsyncMock(
        return_value=FusionResult(items=make_items(25), vector=VectorRetrieved())
    )
    return engine


@pytest.fixture
def pipeline(mock_engine: MagicMock) -> SearchPipeline:
    """Create a pipeline with a fresh cache."""
    return SearchPipeline(mock_engine, ResultCache(), max_pages=5)


# --- Facet Tests ---


def test_compute_facets() -> None:
    """Test facet counts per field."""
    facets = compute_facets(make_items(5))
    assert facets["type"] == {"message": 3, "code": 2}
    assert facets["category"] == {"auth": 5}


# --- Pipeline Tests ---


async def test_miss_ranks_to_full_depth(pipeline: SearchPipeline, mock_engine: MagicMock) -> None:
    """Test a miss asks the engine for limit * max_pages results."""
    response = await pipeline.search(SearchQuery(query="oauth", limit=10))

    args = mock_engine.execute.call_args.args
    assert args[0] == "oauth"
    assert args[1] == 50
    assert args[2] == SearchWeights()
    assert response.cache_hit is False
    assert response.total == 25
    assert [r.unit_id for r in response.results] == [f"u{i}" for i in range(10)]


async def test_second_request_hits_cache(pipeline: SearchPipeline, mock_engine: MagicMock) -> None:
    """Test a repeated query is served from the cache."""
    await pipeline.search(SearchQuery(query="oauth", limit=10))
    response = await pipeline.search(SearchQuery(query="oauth", limit=10))

    assert response.cache_hit is True
    assert mock_engine.execute.await_count == 1
    assert pipeline.cache_stats().hits == 1


async def test_pages_share_one_ranking(pipeline: SearchPipeline, mock_engine: MagicMock) -> None:
    """Test page turns reuse the cached base ranking."""
    first = await pipeline.search(SearchQuery(query="oauth", limit=10), page=1)
    third = await pipeline.search(SearchQuery(query="oauth", limit=10), page=3)

    assert mock_engine.execute.await_count == 1
    assert third.cache_hit is True
    assert [r.unit_id for r in third.results] == [f"u{i}" for i in range(20, 25)]
    assert first.has_more is True
    assert third.has_more is False


async def test_page_bounds(pipeline: SearchPipeline) -> None:
    """Test pages outside 1..max_pages are rejected."""
    with pytest.raises(QueryValidationError):
        await pipeline.search(SearchQuery(query="oauth"), page=0)
    with pytest.raises(QueryValidationError):
        await pipeline.search(SearchQuery(query="oauth"), page=6)


async def test_filter_order_shares_cache_entry(
    pipeline: SearchPipeline,
    mock_engine: MagicMock,
) -> None:
    """Test equivalent filter sets in different order hit the same entry."""
    f1 = {"field": "type", "operator": "=", "value": "code"}
    f2 = {"field": "tags", "operator": "contains", "value": "auth"}

    await pipeline.search(SearchQuery(query="oauth", filters=[f1, f2]))
    response = await pipeline.search(SearchQuery(query="oauth", filters=[f2, f1]))

    assert response.cache_hit is True
    assert mock_engine.execute.await_count == 1


async def test_degraded_results_are_not_cached(
    pipeline: SearchPipeline,
    mock_engine: MagicMock,
) -> None:
    """Test lexical-only results are returned but not memoized."""
    mock_engine.execute.return_value = FusionResult(
        items=make_items(3),
        vector=VectorDegraded(reason="timed out"),
    )

    response = await pipeline.search(SearchQuery(query="oauth"))
    assert response.degraded is True
    assert len(pipeline.cache) == 0

    await pipeline.search(SearchQuery(query="oauth"))
    assert mock_engine.execute.await_count == 2


async def test_response_carries_facets(pipeline: SearchPipeline) -> None:
    """Test facets cover the whole base ranking, not just the page."""
    response = await pipeline.search(SearchQuery(query="oauth", limit=5))
    assert sum(response.facets["type"].values()) == 25


async def test_invalidate_all_forces_recompute(
    pipeline: SearchPipeline,
    mock_engine: MagicMock,
) -> None:
    """Test invalidation drops cached rankings."""
    await pipeline.search(SearchQuery(query="oauth"))
    assert pipeline.invalidate_all() == 1

    response = await pipeline.search(SearchQuery(query="oauth"))
    assert response.cache_hit is False
    assert mock_engine.execute.await_count == 2


def test_max_pages_must_be_positive(mock_engine: MagicMock) -> None:
    """Test pipeline construction validates max_pages."""
    with pytest.raises(ValueError):
        SearchPipeline(mock_engine, max_pages=0)
