"""
Hybrid Search Engine - Combines vector and keyword search with weighted RRF.

Features:
- Concurrent lexical and embed-then-vector retrieval
- Weighted Reciprocal Rank Fusion (RRF)
- Tag boosts for multi-chunk and image-bearing units
- Document source/format and date post-filters
- Lexical-only degradation when the vector path fails or times out
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from kbsearch.config.errors import QueryValidationError
from kbsearch.domains.filters import FilterCompiler
from kbsearch.domains.filters.compiler import FilterInput
from kbsearch.domains.filters.dates import parse_date
from kbsearch.domains.filters.models import CompiledVectorFilter

from .contracts import EmbeddingProvider, LexicalIndex, UnitStore, VectorIndex
from .models import (
    DocumentMeta,
    FusionConfig,
    FusionResult,
    LexicalHit,
    MetadataFilters,
    RankedItem,
    SearchWeights,
    Unit,
    VectorDegraded,
    VectorHit,
    VectorOutcome,
    VectorRetrieved,
)

logger = logging.getLogger(__name__)

__all__ = ["FusionEngine", "reciprocal_rank_fusion", "apply_boosts"]


def reciprocal_rank_fusion(
    lexical_ids: Sequence[str],
    vector_ids: Sequence[str],
    weights: SearchWeights,
    k: int = 60,
) -> dict[str, RankedItem]:
    """
    Merge two ranked id lists.

    Ranks are positions in each list (0 is best). Each list contributes
    ``weight / (rank + k + 1)``; a unit in both lists gets the sum.
    """
    items: dict[str, RankedItem] = {}

    for rank, unit_id in enumerate(lexical_ids):
        if unit_id in items:
            continue
        items[unit_id] = RankedItem(
            unit_id=unit_id,
            lexical_rank=rank,
            combined_score=weights.lexical / (rank + k + 1),
        )

    for rank, unit_id in enumerate(vector_ids):
        item = items.get(unit_id)
        if item is None:
            items[unit_id] = RankedItem(
                unit_id=unit_id,
                vector_rank=rank,
                combined_score=weights.semantic / (rank + k + 1),
            )
        elif item.vector_rank is None:
            item.vector_rank = rank
            item.combined_score += weights.semantic / (rank + k + 1)

    return items


def apply_boosts(items: Iterable[RankedItem], config: FusionConfig) -> None:
    """Add tag boosts in place. Items without a resolved unit are left alone."""
    for item in items:
        if item.unit is None:
            continue
        boost = 0.0
        if any(tag.startswith(config.multi_chunk_tag_prefix) for tag in item.unit.tags):
            boost += config.boost_multi_chunk
        if config.image_tag in item.unit.tags:
            boost += config.boost_has_image
        item.boost = boost
        item.combined_score += boost


def _sort_key(item: RankedItem) -> tuple[float, float, str]:
    lexical_rank = math.inf if item.lexical_rank is None else item.lexical_rank
    return (-item.combined_score, lexical_rank, item.unit_id)


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _ordered_ids(hits: Iterable[LexicalHit | VectorHit]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for hit in sorted(hits, key=lambda h: h.rank):
        if hit.unit_id not in seen:
            seen.add(hit.unit_id)
            ordered.append(hit.unit_id)
    return ordered


class FusionEngine:
    """
    Hybrid search combining lexical and vector retrieval.

    The lexical store is required; the vector path is best-effort.

    Example:
        >>> engine = FusionEngine(sqlite_repo, faiss_index, embedder, sqlite_repo)
        >>> items = await engine.search("oauth refresh tokens", limit=10)
    """

    def __init__(
        self,
        lexical_index: LexicalIndex,
        vector_index: VectorIndex,
        embedder: EmbeddingProvider,
        unit_store: UnitStore,
        *,
        config: FusionConfig | None = None,
        compiler: FilterCompiler | None = None,
    ) -> None:
        """
        Initialize fusion engine.

        Args:
            lexical_index: Full-text store
            vector_index: Nearest-neighbor store
            embedder: Query embedding provider
            unit_store: Unit and document resolver
            config: Ranking constants
            compiler: Filter compiler
        """
        self._lexical = lexical_index
        self._vector = vector_index
        self._embedder = embedder
        self._units = unit_store
        self._config = config or FusionConfig()
        self._compiler = compiler or FilterCompiler()

    @property
    def config(self) -> FusionConfig:
        return self._config

    async def search(
        self,
        query_text: str,
        limit: int,
        weights: SearchWeights | None = None,
        filters: FilterInput | None = None,
        metadata_filters: MetadataFilters | None = None,
    ) -> list[RankedItem]:
        """
        Execute hybrid search.

        Args:
            query_text: Free-text query
            limit: Maximum number of results
            weights: RRF weights, defaults from config
            filters: Structured filter tree or list of trees (AND)
            metadata_filters: Document source/format and date bounds

        Returns:
            Ranked items with resolved units, best first

        Raises:
            QueryValidationError: Bad weights, filters, dates or limit
            LexicalIndexUnavailableError: Full-text store unreachable
        """
        result = await self.execute(query_text, limit, weights, filters, metadata_filters)
        return result.items

    async def execute(
        self,
        query_text: str,
        limit: int,
        weights: SearchWeights | None = None,
        filters: FilterInput | None = None,
        metadata_filters: MetadataFilters | None = None,
    ) -> FusionResult:
        """Same as ``search`` but also reports how the vector stage concluded."""
        weights = weights or self._config.default_weights
        weights.ensure_valid()
        if not query_text or not query_text.strip():
            raise QueryValidationError("Query text must not be empty")
        if limit < 1:
            raise QueryValidationError("Limit must be at least 1", {"limit": limit})

        metadata = metadata_filters or MetadataFilters()
        date_from, date_to = self._date_bounds(metadata)

        nodes = None
        if filters:
            nodes = self._compiler.parse(filters)
        lexical_filter = self._compiler.compile_lexical(nodes)
        vector_filter = self._compiler.compile_vector_filter(nodes)

        fetch_limit = limit * self._config.candidate_multiplier
        lexical_hits, outcome = await asyncio.gather(
            self._lexical.query_text(query_text, lexical_filter, fetch_limit),
            self._vector_search(query_text, vector_filter, fetch_limit),
        )

        if isinstance(outcome, VectorDegraded):
            logger.warning("Vector retrieval degraded, using lexical only: %s", outcome.reason)
            vector_hits: list[VectorHit] = []
        else:
            vector_hits = outcome.hits

        fused = reciprocal_rank_fusion(
            _ordered_ids(lexical_hits),
            _ordered_ids(vector_hits),
            weights,
            self._config.rrf_k,
        )

        units = await self._units.resolve_many(list(fused))
        items: list[RankedItem] = []
        for unit_id, item in fused.items():
            unit = units.get(unit_id)
            if unit is None:
                logger.debug("Dropping unresolved unit %s", unit_id)
                continue
            item.unit = unit
            items.append(item)

        if nodes is not None and not vector_filter.is_complete:
            items = [
                item
                for item in items
                if item.lexical_rank is not None
                or self._compiler.matches(nodes, item.unit.to_record())
            ]

        apply_boosts(items, self._config)

        if metadata.has_document_constraint:
            items = await self._filter_by_document(items, metadata)
        if date_from is not None or date_to is not None:
            items = [item for item in items if self._within(item.unit, date_from, date_to)]

        items.sort(key=_sort_key)
        items = items[:limit]

        logger.info(
            "Hybrid search: query='%s' -> %d results (lexical=%d, vector=%d%s)",
            query_text[:50],
            len(items),
            len(lexical_hits),
            len(vector_hits),
            ", degraded" if isinstance(outcome, VectorDegraded) else "",
        )

        return FusionResult(items=items, vector=outcome, lexical_count=len(lexical_hits))

    async def search_by_tag(self, tag: str) -> list[Unit]:
        """Units carrying ``tag``. No ranking."""
        return await self._units.units_by_tag(tag)

    async def _vector_search(
        self,
        query_text: str,
        vector_filter: CompiledVectorFilter,
        limit: int,
    ) -> VectorOutcome:
        """Embed then query, bounded by the configured timeout. Never raises."""
        where = vector_filter.where if vector_filter.is_complete else None
        try:
            hits = await asyncio.wait_for(
                self._embed_and_query(query_text, where, limit),
                timeout=self._config.vector_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return VectorDegraded(
                reason=f"timed out after {self._config.vector_timeout_seconds}s"
            )
        except Exception as e:
            return VectorDegraded(reason=f"{type(e).__name__}: {e}")
        return VectorRetrieved(hits=hits)

    async def _embed_and_query(
        self,
        query_text: str,
        where: dict[str, Any] | None,
        limit: int,
    ) -> list[VectorHit]:
        vector = await self._embedder.embed(query_text)
        return await self._vector.query_vector(vector, where, limit)

    async def _filter_by_document(
        self,
        items: list[RankedItem],
        metadata: MetadataFilters,
    ) -> list[RankedItem]:
        document_ids = sorted({i.unit.document_id for i in items if i.unit.document_id})
        resolved = await asyncio.gather(
            *(self._units.resolve_document(doc_id) for doc_id in document_ids)
        )
        documents = dict(zip(document_ids, resolved))
        return [
            item
            for item in items
            if self._matches_document(item.unit, documents.get(item.unit.document_id or ""), metadata)
        ]

    def _matches_document(
        self,
        unit: Unit,
        document: DocumentMeta | None,
        metadata: MetadataFilters,
    ) -> bool:
        if unit.document_id is None:
            # Conversation units have no document but belong to the conversation source
            return (
                metadata.format is None
                and metadata.source is not None
                and metadata.source == self._config.conversation_source
                and unit.conversation_id is not None
            )
        if document is None:
            return False
        if metadata.source and document.source_id != metadata.source:
            return False
        if metadata.format and document.format != metadata.format:
            return False
        return True

    @staticmethod
    def _date_bounds(metadata: MetadataFilters) -> tuple[datetime | None, datetime | None]:
        date_from = _naive_utc(parse_date(metadata.date_from)) if metadata.date_from else None
        date_to = None
        if metadata.date_to:
            date_to = _naive_utc(parse_date(metadata.date_to))
            if len(metadata.date_to.strip()) == 10:
                date_to += timedelta(days=1) - timedelta(microseconds=1)
        if date_from is not None and date_to is not None and date_from > date_to:
            raise QueryValidationError(
                "date_from is after date_to",
                {"date_from": metadata.date_from, "date_to": metadata.date_to},
            )
        return date_from, date_to

    @staticmethod
    def _within(unit: Unit, date_from: datetime | None, date_to: datetime | None) -> bool:
        moment = _naive_utc(unit.timestamp)
        if date_from is not None and moment < date_from:
            return False
        if date_to is not None and moment > date_to:
            return False
        return True

