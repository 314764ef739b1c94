"""
Ollama Embedder - Embeddings from a local Ollama server.

Features:
- Async HTTP client
- Retries with exponential backoff on transport errors
- Batch embedding
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
import numpy as np
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kbsearch.config.errors import EmbeddingError

logger = logging.getLogger(__name__)

__all__ = ["OllamaEmbedder"]


class OllamaEmbedder:
    """
    Ollama embedding provider.

    Example:
        >>> embedder = OllamaEmbedder(model="nomic-embed-text")
        >>> vector = await embedder.embed("oauth refresh tokens")
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize Ollama embedder.

        Args:
            model: Embedding model name
            base_url: Ollama server URL
            timeout: Request timeout in seconds
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def embed(self, text: str) -> np.ndarray:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """
        Embed texts.

        Returns:
            Array of shape (n, dimension)

        Raises:
            EmbeddingError: Server unreachable or malformed response
        """
        try:
            data = await self._post_embed(list(texts))
        except httpx.HTTPError as e:
            raise EmbeddingError(
                "Ollama embedding request failed",
                {"model": self.model, "reason": str(e)},
            ) from e

        embeddings = data.get("embeddings")
        if not embeddings or len(embeddings) != len(texts):
            raise EmbeddingError(
                "Ollama returned no embeddings",
                {"model": self.model, "expected": len(texts)},
            )
        return np.asarray(embeddings, dtype="float32")

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _post_embed(self, inputs: list[str]) -> dict[str, Any]:
        client = await self._get_client()
        response = await client.post("/api/embed", json={"model": self.model, "input": inputs})
        response.raise_for_status()
        result: dict[str, Any] = response.json()
        return result

    async def list_models(self) -> list[str]:
        """List available models."""
        client = await self._get_client()
        response = await client.get("/api/tags")
        response.raise_for_status()

        data = response.json()
        return [m["name"] for m in data.get("models", [])]

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
