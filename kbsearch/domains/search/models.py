"""
Search Models - Data types for search domain.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from kbsearch.config.errors import InvalidWeightsError
from kbsearch.domains.filters.models import FilterNode


class Unit(BaseModel):
    """Atomic knowledge unit as resolved from the unit store."""

    id: str
    type: str = "message"
    title: str = ""
    content: str = ""
    context: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)
    created: datetime | None = None
    conversation_id: str | None = None
    document_id: str | None = None
    embedding_status: str = "pending"

    def to_record(self) -> dict[str, Any]:
        """Column values as stored in the lexical store."""
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "content": self.content,
            "context": self.context,
            "category": self.category,
            "tags": " ".join(self.tags),
            "keywords": " ".join(self.keywords),
            "timestamp": self.timestamp.isoformat(),
            "created": (self.created or self.timestamp).isoformat(),
            "conversation_id": self.conversation_id,
            "document_id": self.document_id,
            "embedding_status": self.embedding_status,
        }


class DocumentMeta(BaseModel):
    """Owning document metadata used for source/format post-filtering."""

    id: str
    source_id: str | None = None
    format: str | None = None


class LexicalHit(BaseModel):
    """One full-text match. Rank 0 is best."""

    unit_id: str
    rank: int


class VectorHit(BaseModel):
    """One nearest neighbor. Rank 0 is best."""

    unit_id: str
    rank: int
    distance: float = 0.0


class SearchWeights(BaseModel):
    """Per-source RRF weights. They need not sum to 1."""

    lexical: float = 0.4
    semantic: float = 0.6

    model_config = {"frozen": True}

    def ensure_valid(self) -> None:
        """Reject negative weights, or both zero."""
        if self.lexical < 0 or self.semantic < 0:
            raise InvalidWeightsError(
                "Weights must be non-negative",
                {"lexical": self.lexical, "semantic": self.semantic},
            )
        if self.lexical == 0 and self.semantic == 0:
            raise InvalidWeightsError("At least one weight must be positive")


class MetadataFilters(BaseModel):
    """Document-level constraints applied after scoring."""

    source: str | None = None
    format: str | None = None
    date_from: str | None = None
    date_to: str | None = None

    model_config = {"frozen": True}

    @property
    def has_document_constraint(self) -> bool:
        return bool(self.source or self.format)


class SearchQuery(BaseModel):
    """Search request."""

    query: str = Field(..., min_length=1)
    limit: int = Field(default=20, ge=1, le=100)
    weights: SearchWeights | None = None
    filters: tuple[FilterNode, ...] = ()
    metadata: MetadataFilters = Field(default_factory=MetadataFilters)

    model_config = {"frozen": True}


class RankedItem(BaseModel):
    """Fusion accumulator. A unit may come from only one source ranking."""

    unit_id: str
    lexical_rank: int | None = None
    vector_rank: int | None = None
    combined_score: float = 0.0
    boost: float = 0.0
    unit: Unit | None = None


class VectorRetrieved(BaseModel):
    """Vector stage succeeded."""

    status: Literal["ok"] = "ok"
    hits: list[VectorHit] = Field(default_factory=list)


class VectorDegraded(BaseModel):
    """Vector stage failed or timed out; fusion continues lexical-only."""

    status: Literal["degraded"] = "degraded"
    reason: str


VectorOutcome = Annotated[Union[VectorRetrieved, VectorDegraded], Field(discriminator="status")]


class FusionResult(BaseModel):
    """Ranked items plus how the vector stage concluded."""

    items: list[RankedItem]
    vector: VectorOutcome
    lexical_count: int = 0

    @property
    def degraded(self) -> bool:
        return isinstance(self.vector, VectorDegraded)


class FusionConfig(BaseModel):
    """Ranking constants. k and the boosts are empirical."""

    rrf_k: int = 60
    default_weights: SearchWeights = Field(default_factory=SearchWeights)
    boost_multi_chunk: float = 0.05
    boost_has_image: float = 0.02
    multi_chunk_tag_prefix: str = "chunk-strategy-"
    image_tag: str = "has-image"
    candidate_multiplier: int = Field(default=5, ge=1)
    vector_timeout_seconds: float = 5.0
    conversation_source: str | None = "claude"

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, settings: Any) -> FusionConfig:
        """Build from application settings."""
        return cls(
            rrf_k=settings.rrf_k,
            default_weights=SearchWeights(
                lexical=settings.lexical_weight,
                semantic=settings.semantic_weight,
            ),
            boost_multi_chunk=settings.boost_multi_chunk,
            boost_has_image=settings.boost_has_image,
            candidate_multiplier=settings.candidate_multiplier,
            vector_timeout_seconds=settings.vector_timeout_seconds,
            conversation_source=settings.conversation_source,
        )
