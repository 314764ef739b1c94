"""
CLI Interface - Command-line tools for KBSearch.

Provides commands for:
- Hybrid search queries
- Tag lookup
- Database and vector index setup
- Serving the API
"""

from .main import app, main

__all__ = ["app", "main"]
