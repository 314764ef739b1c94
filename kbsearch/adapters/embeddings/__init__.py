"""
Embeddings Adapter - Query and unit embedding providers.
"""

from .factory import create_embedder
from .local import SentenceTransformerEmbedder

__all__ = ["SentenceTransformerEmbedder", "create_embedder"]
