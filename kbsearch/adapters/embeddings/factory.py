"""
Embedder Factory - Pick an embedding provider from settings.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kbsearch.adapters.ollama import OllamaEmbedder

from .local import SentenceTransformerEmbedder

if TYPE_CHECKING:
    from kbsearch.config.settings import Settings
    from kbsearch.domains.search.contracts import EmbeddingProvider

logger = logging.getLogger(__name__)

__all__ = ["create_embedder"]


def create_embedder(settings: Settings) -> EmbeddingProvider:
    """
    Build the configured embedding provider.

    Raises:
        ValueError: Unknown provider name
    """
    provider = settings.embedding_provider.lower()
    if provider == "sentence_transformers":
        return SentenceTransformerEmbedder(settings.embedding_model)
    if provider == "ollama":
        return OllamaEmbedder(
            model=settings.ollama_embedding_model,
            base_url=settings.ollama_url,
        )
    raise ValueError(f"Unknown embedding provider: {settings.embedding_provider}")
