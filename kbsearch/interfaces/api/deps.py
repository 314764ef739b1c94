"""
API Dependencies - Dependency injection for FastAPI routes.

Provides singleton instances of storage, index and search objects.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from kbsearch.adapters.embeddings import create_embedder
from kbsearch.adapters.faiss import FAISSIndex
from kbsearch.adapters.sqlite import SQLiteRepository
from kbsearch.config import get_settings
from kbsearch.domains.orchestration import ResultCache, SearchPipeline
from kbsearch.domains.search import EmbeddingProvider, FusionConfig, FusionEngine

logger = logging.getLogger(__name__)


@lru_cache
def get_sqlite_repository() -> SQLiteRepository:
    """Get SQLite repository singleton."""
    settings = get_settings()
    return SQLiteRepository(settings.db_path)


@lru_cache
def get_faiss_index() -> FAISSIndex:
    """Get FAISS index singleton."""
    settings = get_settings()
    return FAISSIndex(dimension=settings.embedding_dimension)


@lru_cache
def get_embedder() -> EmbeddingProvider:
    """Get embedding provider singleton."""
    return create_embedder(get_settings())


@lru_cache
def get_result_cache() -> ResultCache:
    """Get result cache singleton."""
    settings = get_settings()
    return ResultCache(
        max_size=settings.cache_max_size,
        default_ttl_ms=settings.cache_default_ttl_ms,
    )


@lru_cache
def get_fusion_engine() -> FusionEngine:
    """Get fusion engine singleton."""
    repo = get_sqlite_repository()
    return FusionEngine(
        repo,
        get_faiss_index(),
        get_embedder(),
        repo,
        config=FusionConfig.from_settings(get_settings()),
    )


@lru_cache
def get_search_pipeline() -> SearchPipeline:
    """Get cached search pipeline singleton."""
    return SearchPipeline(
        get_fusion_engine(),
        get_result_cache(),
        max_pages=get_settings().search_max_pages,
    )


async def init_services() -> None:
    """
    Initialize services on startup.

    This should be called from the FastAPI lifespan handler.
    """
    settings = get_settings()

    # Initialize SQLite
    repo = get_sqlite_repository()
    await repo.initialize()

    # Load vector index if one has been built
    index = get_faiss_index()
    if FAISSIndex.exists(settings.faiss_index_path):
        await index.load(settings.faiss_index_path)
    else:
        logger.warning(
            "No vector index at %s, searches will be lexical-only until `kbsearch init`",
            settings.faiss_index_path,
        )


async def cleanup_services() -> None:
    """Cleanup services on shutdown."""
    repo = get_sqlite_repository()
    await repo.close()

    embedder = get_embedder()
    close = getattr(embedder, "close", None)
    if close is not None:
        await close()
