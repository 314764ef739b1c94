"""
Search Routes - Hybrid search, tag lookup and filter presets.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from kbsearch.config import get_settings
from kbsearch.config.errors import ErrorCode, InvalidFilterError, KBSearchError
from kbsearch.domains.filters import FilterCompiler, get_preset, list_presets
from kbsearch.domains.orchestration import Facets, SearchPipeline
from kbsearch.domains.search import (
    FusionEngine,
    MetadataFilters,
    RankedItem,
    SearchQuery,
    SearchWeights,
    Unit,
)
from kbsearch.interfaces.api.deps import get_fusion_engine, get_search_pipeline
from kbsearch.interfaces.api.middleware import record_search_outcome

router = APIRouter()

SNIPPET_LENGTH = 500


class SearchRequest(BaseModel):
    """Search request body."""

    query: str = Field(..., min_length=1, description="Search query")
    limit: int = Field(default_factory=lambda: get_settings().search_default_limit, ge=1, le=100)
    page: int = Field(default=1, ge=1)
    weights: SearchWeights | None = None
    filters: list[dict[str, Any]] = Field(default_factory=list)
    preset: str | None = Field(default=None, description="Built-in filter preset id")
    source: str | None = None
    format: str | None = None
    date_from: str | None = None
    date_to: str | None = None


class SearchResultItem(BaseModel):
    """Single search result."""

    unit_id: str
    title: str
    content: str
    type: str
    category: str | None
    tags: list[str]
    score: float
    boost: float
    lexical_rank: int | None
    vector_rank: int | None
    document_id: str | None
    conversation_id: str | None
    timestamp: datetime


class SearchResponse(BaseModel):
    """Search response."""

    query: str
    results: list[SearchResultItem]
    total: int
    page: int
    limit: int
    has_more: bool
    query_time_ms: float
    cache_hit: bool
    degraded: bool
    facets: Facets | None = None


class TagUnit(BaseModel):
    """Unit listed by tag."""

    unit_id: str
    title: str
    type: str
    tags: list[str]
    timestamp: datetime


class PresetItem(BaseModel):
    """Filter preset summary."""

    id: str
    name: str
    description: str
    filters: list[dict[str, Any]]
    facets: list[str]


def _to_result_item(item: RankedItem) -> SearchResultItem:
    unit = item.unit or Unit(id=item.unit_id)
    return SearchResultItem(
        unit_id=item.unit_id,
        title=unit.title,
        content=unit.content[:SNIPPET_LENGTH],
        type=unit.type,
        category=unit.category,
        tags=unit.tags,
        score=item.combined_score,
        boost=item.boost,
        lexical_rank=item.lexical_rank,
        vector_rank=item.vector_rank,
        document_id=unit.document_id,
        conversation_id=unit.conversation_id,
        timestamp=unit.timestamp,
    )


def build_search_query(request: SearchRequest) -> SearchQuery:
    """Validate filters, expand the preset and assemble the domain query."""
    compiler = FilterCompiler()
    nodes: list[Any] = []

    if request.preset:
        preset = get_preset(request.preset)
        if preset is None:
            raise KBSearchError(
                ErrorCode.NOT_FOUND,
                f"Unknown filter preset: {request.preset}",
                {"preset": request.preset},
            )
        nodes.extend(preset.filters)

    if request.filters:
        if not compiler.validate(request.filters):
            raise InvalidFilterError("Invalid filter", {"filters": request.filters})
        parsed = compiler.parse(request.filters)
        nodes.extend(parsed if isinstance(parsed, list) else [parsed])

    return SearchQuery(
        query=request.query,
        limit=request.limit,
        weights=request.weights,
        filters=tuple(nodes),
        metadata=MetadataFilters(
            source=request.source,
            format=request.format,
            date_from=request.date_from,
            date_to=request.date_to,
        ),
    )


@router.post("", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    http_request: Request,
    pipeline: SearchPipeline = Depends(get_search_pipeline),
) -> SearchResponse:
    """
    Hybrid lexical and semantic search.

    - **query**: Search query text
    - **limit**: Results per page (1-100)
    - **page**: Page number, served from the cached base ranking
    - **weights**: Lexical and semantic fusion weights
    - **filters**: Filter tree nodes, combined with AND
    - **preset**: Built-in filter preset applied before `filters`
    - **source** / **format**: Document constraints
    - **date_from** / **date_to**: Unit timestamp bounds
    """
    result = await pipeline.search(build_search_query(request), page=request.page)
    record_search_outcome(http_request, cache_hit=result.cache_hit, degraded=result.degraded)

    return SearchResponse(
        query=result.query,
        results=[_to_result_item(item) for item in result.results],
        total=result.total,
        page=result.page,
        limit=result.limit,
        has_more=result.has_more,
        query_time_ms=result.query_time_ms,
        cache_hit=result.cache_hit,
        degraded=result.degraded,
        facets=result.facets,
    )


@router.get("/tag/{tag}", response_model=list[TagUnit])
async def search_by_tag(
    tag: str,
    engine: FusionEngine = Depends(get_fusion_engine),
) -> list[TagUnit]:
    """List units carrying a tag, newest first."""
    units = await engine.search_by_tag(tag)
    return [
        TagUnit(
            unit_id=unit.id,
            title=unit.title,
            type=unit.type,
            tags=unit.tags,
            timestamp=unit.timestamp,
        )
        for unit in units
    ]


@router.get("/presets", response_model=list[PresetItem])
async def presets() -> list[PresetItem]:
    """List built-in filter presets."""
    return [
        PresetItem(
            id=preset.id,
            name=preset.name,
            description=preset.description,
            filters=[node.model_dump(mode="json") for node in preset.filters],
            facets=list(preset.facets),
        )
        for preset in list_presets()
    ]
