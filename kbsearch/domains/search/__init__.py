"""
Search Domain - Hybrid lexical and vector search.

This domain handles:
- Keyword search (SQLite FTS5) and vector similarity search (FAISS)
- Weighted Reciprocal Rank Fusion
- Tag boosts and document metadata post-filters
- Degradation to lexical-only results
"""

from .contracts import EmbeddingProvider, LexicalIndex, SearchEngine, UnitStore, VectorIndex
from .hybrid_search import FusionEngine, apply_boosts, reciprocal_rank_fusion
from .models import (
    DocumentMeta,
    FusionConfig,
    FusionResult,
    LexicalHit,
    MetadataFilters,
    RankedItem,
    SearchQuery,
    SearchWeights,
    Unit,
    VectorDegraded,
    VectorHit,
    VectorRetrieved,
)

__all__ = [
    # Contracts
    "SearchEngine",
    "LexicalIndex",
    "VectorIndex",
    "EmbeddingProvider",
    "UnitStore",
    # Models
    "Unit",
    "DocumentMeta",
    "LexicalHit",
    "VectorHit",
    "SearchWeights",
    "MetadataFilters",
    "SearchQuery",
    "RankedItem",
    "VectorRetrieved",
    "VectorDegraded",
    "FusionResult",
    "FusionConfig",
    # Engine
    "FusionEngine",
    "reciprocal_rank_fusion",
    "apply_boosts",
]
