"""
API Routes.
"""

from . import cache, health, search

__all__ = ["health", "search", "cache"]
