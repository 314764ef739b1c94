"""
Settings - Application configuration using Pydantic Settings.

Loads from environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Paths
    data_dir: Path = Path("data")
    db_path: Path = Path("data/knowledge.db")
    faiss_index_path: Path = Path("data/indices/faiss")

    # Embeddings: "sentence_transformers" (local) or "ollama"
    embedding_provider: str = "sentence_transformers"
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dimension: int = 384
    ollama_url: str = "http://localhost:11434"
    ollama_embedding_model: str = "nomic-embed-text"

    # Ranking (k and boosts are empirical, keep them tunable)
    rrf_k: int = 60
    lexical_weight: float = 0.4
    semantic_weight: float = 0.6
    boost_multi_chunk: float = 0.05
    boost_has_image: float = 0.02
    candidate_multiplier: int = 5
    vector_timeout_seconds: float = 5.0
    conversation_source: str = "claude"

    # Paging
    search_default_limit: int = 20
    search_max_pages: int = 5

    # Result cache
    cache_max_size: int = 1000
    cache_default_ttl_ms: int = 5 * 60 * 1000

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
