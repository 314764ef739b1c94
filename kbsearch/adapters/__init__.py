"""
Adapters - External service integrations.

All storage and model calls are wrapped here to isolate domains from third-party changes.
"""

from .embeddings import SentenceTransformerEmbedder, create_embedder
from .faiss import FAISSIndex
from .ollama import OllamaEmbedder
from .sqlite import SQLiteRepository

__all__ = [
    "SQLiteRepository",
    "FAISSIndex",
    "SentenceTransformerEmbedder",
    "OllamaEmbedder",
    "create_embedder",
]
