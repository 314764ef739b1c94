"""
SQLite Adapter - Unit storage and full-text search.
"""

from .repository import SQLiteRepository, build_match_query

__all__ = ["SQLiteRepository", "build_match_query"]
