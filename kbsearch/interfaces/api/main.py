"""
FastAPI Main Application - Search API entry point.

Run with: uvicorn kbsearch.interfaces.api.main:app --reload
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kbsearch import __version__
from kbsearch.config import get_settings

from .deps import cleanup_services, init_services
from .middleware import ErrorHandlerMiddleware, SearchContextMiddleware
from .routes import cache, health, search

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting KBSearch API...")
    logger.info("  Database: %s", settings.db_path)
    logger.info("  Vector index: %s", settings.faiss_index_path)

    # Initialize resources (SQLite, vector index)
    await init_services()
    logger.info("  Services initialized")

    yield

    # Cleanup
    logger.info("Shutting down KBSearch API...")
    await cleanup_services()


def create_app() -> FastAPI:
    """Create FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="KBSearch API",
        description="Hybrid lexical and semantic search over a personal knowledge base",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Last added runs outermost: request context wraps error rendering
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(SearchContextMiddleware)

    # CORS (framework middleware)
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]
    if settings.api_debug:
        allowed_origins.append("http://localhost:*")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(search.router, prefix="/api/search", tags=["Search"])
    app.include_router(cache.router, prefix="/api/cache", tags=["Cache"])

    return app


# Create app instance
app = create_app()
