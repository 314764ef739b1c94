"""
Search Contracts - Interfaces for search domain.

The engine consumes these; adapters implement them.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from kbsearch.domains.filters.models import CompiledLexicalFilter

from .models import DocumentMeta, LexicalHit, RankedItem, SearchWeights, Unit, VectorHit


@runtime_checkable
class LexicalIndex(Protocol):
    """Keyword/full-text store."""

    async def query_text(
        self,
        text: str,
        compiled_filter: CompiledLexicalFilter | None = None,
        limit: int = 20,
    ) -> list[LexicalHit]:
        """Return ranked unit ids for a text query."""
        ...


@runtime_checkable
class VectorIndex(Protocol):
    """Nearest-neighbor store over unit embeddings."""

    async def query_vector(
        self,
        vector: Sequence[float],
        compiled_filter: dict[str, Any] | None = None,
        limit: int = 20,
    ) -> list[VectorHit]:
        """Return ranked neighbors with distances."""
        ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns query text into a vector. Network call, may fail."""

    async def embed(self, text: str) -> Sequence[float]:
        """Embed a single text."""
        ...


@runtime_checkable
class UnitStore(Protocol):
    """Resolves unit ids to records and documents to metadata."""

    async def resolve(self, unit_id: str) -> Unit | None:
        ...

    async def resolve_many(self, unit_ids: Sequence[str]) -> dict[str, Unit]:
        ...

    async def resolve_document(self, document_id: str) -> DocumentMeta | None:
        ...

    async def units_by_tag(self, tag: str) -> list[Unit]:
        ...


@runtime_checkable
class SearchEngine(Protocol):
    """Contract for search implementations."""

    async def search(
        self,
        query_text: str,
        limit: int,
        weights: SearchWeights | None = None,
        filters: Any = None,
        metadata_filters: Any = None,
    ) -> list[RankedItem]:
        """Execute search and return ranked items."""
        ...
