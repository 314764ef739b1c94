"""
FAISS Index - Vector similarity search over unit embeddings.

Features:
- Async-compatible operations
- Index persistence
- Per-vector unit metadata for filter evaluation
- Over-fetching when a metadata filter is applied
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import faiss
import numpy as np

from kbsearch.config.errors import VectorIndexError
from kbsearch.domains.filters import FilterField, matches_where
from kbsearch.domains.search.models import Unit, VectorHit

logger = logging.getLogger(__name__)

__all__ = ["FAISSIndex", "unit_metadata"]

FILTER_OVERFETCH = 4


def unit_metadata(unit: Unit, embedding_status: str | None = None) -> dict[str, Any]:
    """Filterable metadata keyed by filter field names."""
    if embedding_status is not None:
        unit = unit.model_copy(update={"embedding_status": embedding_status})
    record = unit.to_record()
    return {field.value: record[field.column] for field in FilterField}


class FAISSIndex:
    """
    FAISS vector index for semantic search.

    Example:
        >>> index = FAISSIndex(dimension=384)
        >>> await index.add_units(embeddings, units)
        >>> hits = await index.query_vector(query_embedding, {"type": {"$eq": "code"}}, 10)
    """

    def __init__(
        self,
        dimension: int = 384,
        index_type: str = "Flat",
        nlist: int = 100,
    ) -> None:
        """
        Initialize FAISS index.

        Args:
            dimension: Vector dimension (384 for MiniLM, 768 for MPNet)
            index_type: Index type ("Flat", "IVFFlat", "HNSW")
            nlist: Number of clusters for IVF index
        """
        self.dimension = dimension
        self.index_type = index_type
        self.nlist = nlist

        self._index: faiss.Index | None = None
        # Positional, aligned with FAISS labels; None marks a replaced vector
        self._metadata: list[dict[str, Any] | None] = []
        self._positions: dict[str, int] = {}
        self._is_trained = False

    def _create_index(self) -> faiss.Index:
        """Create FAISS index based on type. All types use inner product."""
        if self.index_type == "IVFFlat":
            quantizer = faiss.IndexFlatIP(self.dimension)
            return faiss.IndexIVFFlat(
                quantizer, self.dimension, self.nlist, faiss.METRIC_INNER_PRODUCT
            )
        if self.index_type == "HNSW":
            return faiss.IndexHNSWFlat(self.dimension, 32, faiss.METRIC_INNER_PRODUCT)
        return faiss.IndexFlatIP(self.dimension)

    async def initialize(self) -> None:
        """Initialize empty index."""
        self._index = self._create_index()
        self._metadata = []
        self._positions = {}
        self._is_trained = False
        logger.info(
            "FAISS index initialized: dimension=%d, type=%s",
            self.dimension,
            self.index_type,
        )

    async def add_units(self, vectors: np.ndarray, units: Sequence[Unit]) -> None:
        """
        Add unit embeddings; metadata is derived from each unit.

        Indexed units are recorded as embedded, matching the status the
        unit store holds once the batch is marked.
        """
        await self.add_vectors(
            vectors, [unit_metadata(unit, embedding_status="completed") for unit in units]
        )

    async def add_vectors(
        self,
        vectors: np.ndarray,
        metadata: list[dict[str, Any]],
    ) -> None:
        """
        Add vectors with metadata.

        Args:
            vectors: numpy array of shape (n, dimension)
            metadata: List of metadata dicts with an "id" key (same length as vectors)
        """
        if len(vectors) != len(metadata):
            raise ValueError(
                f"Got {len(vectors)} vectors but {len(metadata)} metadata entries"
            )
        if self._index is None:
            await self.initialize()

        vectors = np.ascontiguousarray(np.asarray(vectors, dtype="float32"))

        # Normalize for inner product (cosine similarity)
        faiss.normalize_L2(vectors)

        # Train IVF index if needed
        if self.index_type == "IVFFlat" and not self._is_trained:
            if len(vectors) < self.nlist:
                raise VectorIndexError(
                    f"IVFFlat needs at least {self.nlist} vectors to train, got {len(vectors)}"
                )
            await asyncio.to_thread(self._index.train, vectors)
            self._is_trained = True

        await asyncio.to_thread(self._index.add, vectors)
        replaced = 0
        for meta in metadata:
            previous = self._positions.get(meta["id"])
            if previous is not None:
                self._metadata[previous] = None
                replaced += 1
            self._positions[meta["id"]] = len(self._metadata)
            self._metadata.append(meta)

        logger.debug("Added %d vectors to index (%d replaced)", len(vectors), replaced)

    async def query_vector(
        self,
        vector: Sequence[float] | np.ndarray,
        compiled_filter: dict[str, Any] | None = None,
        limit: int = 20,
    ) -> list[VectorHit]:
        """
        Search for similar units.

        Args:
            vector: Query vector of shape (dimension,) or (1, dimension)
            compiled_filter: Metadata filter in the vector filter language
            limit: Number of results

        Returns:
            Hits with rank (0 best) and cosine distance

        Raises:
            VectorIndexError: Dimension mismatch or FAISS failure
        """
        if self._index is None or self._index.ntotal == 0:
            return []

        query = np.asarray(vector, dtype="float32")
        if query.ndim == 1:
            query = query.reshape(1, -1)
        if query.shape[1] != self.dimension:
            raise VectorIndexError(
                "Query vector dimension mismatch",
                {"expected": self.dimension, "got": int(query.shape[1])},
            )
        query = np.ascontiguousarray(query)
        faiss.normalize_L2(query)

        ntotal = self._index.ntotal
        k = min(limit * FILTER_OVERFETCH if compiled_filter else limit, ntotal)
        while True:
            try:
                scores, indices = await asyncio.to_thread(self._index.search, query, k)
            except RuntimeError as e:
                raise VectorIndexError("FAISS search failed", {"reason": str(e)}) from e

            hits = self._collect(scores[0], indices[0], compiled_filter, limit)
            if len(hits) >= limit or k >= ntotal:
                return hits
            k = min(k * 2, ntotal)

    def _collect(
        self,
        scores: np.ndarray,
        indices: np.ndarray,
        compiled_filter: dict[str, Any] | None,
        limit: int,
    ) -> list[VectorHit]:
        hits: list[VectorHit] = []
        for score, idx in zip(scores, indices):
            if idx < 0 or idx >= len(self._metadata):
                continue
            meta = self._metadata[idx]
            if meta is None:
                continue
            if not matches_where(compiled_filter, meta):
                continue
            hits.append(
                VectorHit(unit_id=meta["id"], rank=len(hits), distance=1.0 - float(score))
            )
            if len(hits) >= limit:
                break
        return hits

    async def save(self, path: str | Path) -> None:
        """
        Save index to disk.

        Args:
            path: Directory to save index
        """
        if self._index is None:
            await self.initialize()

        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)

        # Save FAISS index
        index_path = path / "faiss_index.bin"
        await asyncio.to_thread(faiss.write_index, self._index, str(index_path))

        # Save metadata (use to_thread to avoid blocking)
        metadata_path = path / "metadata.json"
        metadata = {
            "dimension": self.dimension,
            "index_type": self.index_type,
            "nlist": self.nlist,
            "is_trained": self._is_trained,
            "metadata": self._metadata,
        }
        await asyncio.to_thread(self._write_json, metadata_path, metadata)

        logger.info("Index saved to %s (%d vectors)", path, self.size)

    @staticmethod
    def _write_json(path: Path, data: dict[str, Any]) -> None:
        """Write JSON file (sync helper for to_thread)."""
        with open(path, "w") as f:
            json.dump(data, f)

    async def load(self, path: str | Path) -> None:
        """
        Load index from disk.

        Args:
            path: Directory containing saved index
        """
        path = Path(path)

        # Load FAISS index
        index_path = path / "faiss_index.bin"
        self._index = await asyncio.to_thread(faiss.read_index, str(index_path))

        # Load metadata (use to_thread to avoid blocking)
        metadata_path = path / "metadata.json"
        data = await asyncio.to_thread(self._read_json, metadata_path)
        self.dimension = data["dimension"]
        self.index_type = data["index_type"]
        self.nlist = data["nlist"]
        self._is_trained = data["is_trained"]
        self._metadata = data["metadata"]
        self._positions = {
            meta["id"]: position
            for position, meta in enumerate(self._metadata)
            if meta is not None
        }

        logger.info("Index loaded from %s (%d vectors)", path, self.size)

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        """Read JSON file (sync helper for to_thread)."""
        with open(path) as f:
            result: dict[str, Any] = json.load(f)
            return result

    @staticmethod
    def exists(path: str | Path) -> bool:
        path = Path(path)
        return (path / "faiss_index.bin").exists() and (path / "metadata.json").exists()

    @property
    def size(self) -> int:
        """Number of live (not replaced) unit vectors."""
        return len(self._positions)
