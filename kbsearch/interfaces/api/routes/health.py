"""
Health Routes - System health and status endpoints.
"""

from typing import Any

from fastapi import APIRouter

from kbsearch import __version__

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": "kbsearch"}


@router.get("/api")
async def api_info() -> dict[str, Any]:
    """API info endpoint."""
    return {
        "name": "KB Search API",
        "version": __version__,
        "description": "Hybrid lexical and semantic search over a personal knowledge base",
        "docs": "/docs",
    }
