"""
Configuration - Application settings and error taxonomy.
"""

from .errors import (
    EmbeddingError,
    ErrorCode,
    InvalidDateError,
    InvalidFilterError,
    InvalidWeightsError,
    KBSearchError,
    LexicalIndexUnavailableError,
    QueryValidationError,
    StorageError,
    VectorIndexError,
)
from .settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Errors
    "ErrorCode",
    "KBSearchError",
    "QueryValidationError",
    "InvalidFilterError",
    "InvalidDateError",
    "InvalidWeightsError",
    "LexicalIndexUnavailableError",
    "VectorIndexError",
    "EmbeddingError",
    "StorageError",
]
