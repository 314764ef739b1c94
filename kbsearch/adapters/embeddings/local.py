"""
Sentence Transformer Embedder - Local query and unit embeddings.

Features:
- Lazy model loading
- Encoding in a worker thread
- Normalized vectors for cosine similarity
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

from kbsearch.config.errors import EmbeddingError

logger = logging.getLogger(__name__)

__all__ = ["SentenceTransformerEmbedder"]


class SentenceTransformerEmbedder:
    """
    Embedding provider backed by a local sentence-transformers model.

    Example:
        >>> embedder = SentenceTransformerEmbedder("all-MiniLM-L6-v2")
        >>> vector = await embedder.embed("oauth refresh tokens")
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2") -> None:
        self.model_name = model_name
        self._model: SentenceTransformer | None = None
        self._lock = asyncio.Lock()

    async def _get_model(self) -> SentenceTransformer:
        """Load the model once, off the event loop."""
        async with self._lock:
            if self._model is None:
                logger.info("Loading embedding model: %s", self.model_name)
                try:
                    self._model = await asyncio.to_thread(SentenceTransformer, self.model_name)
                except Exception as e:
                    raise EmbeddingError(
                        f"Failed to load embedding model {self.model_name}",
                        {"reason": str(e)},
                    ) from e
        return self._model

    async def embed(self, text: str) -> np.ndarray:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """Embed texts into an array of shape (n, dimension)."""
        model = await self._get_model()
        try:
            return await asyncio.to_thread(
                model.encode,
                list(texts),
                normalize_embeddings=True,
                convert_to_numpy=True,
            )
        except Exception as e:
            raise EmbeddingError("Embedding failed", {"reason": str(e)}) from e
