"""
Error Taxonomy - Consistent error codes across the search engine.

Usage:
    from kbsearch.config.errors import ErrorCode, KBSearchError

    raise InvalidFilterError("Unknown filter field", {"field": "password"})
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes for machine-readable error responses."""

    # Validation errors (client side, never retried)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SEARCH_INVALID_QUERY = "SEARCH_INVALID_QUERY"
    SEARCH_INVALID_FILTER = "SEARCH_INVALID_FILTER"
    SEARCH_INVALID_DATE = "SEARCH_INVALID_DATE"
    SEARCH_INVALID_WEIGHTS = "SEARCH_INVALID_WEIGHTS"

    # Upstream errors
    SEARCH_INDEX_UNAVAILABLE = "SEARCH_INDEX_UNAVAILABLE"
    VECTOR_INDEX_UNAVAILABLE = "VECTOR_INDEX_UNAVAILABLE"
    EMBEDDING_FAILED = "EMBEDDING_FAILED"

    # Storage errors
    STORAGE_CONNECTION_FAILED = "STORAGE_CONNECTION_FAILED"
    STORAGE_READ_FAILED = "STORAGE_READ_FAILED"
    STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    NOT_FOUND = "NOT_FOUND"


class KBSearchError(Exception):
    """Base exception with error code support."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to API-friendly dictionary."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class QueryValidationError(KBSearchError):
    """Request rejected before any I/O."""

    default_code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(self.default_code, message, details)


class InvalidFilterError(QueryValidationError):
    """Unknown filter field, combinator or malformed filter tree."""

    default_code = ErrorCode.SEARCH_INVALID_FILTER


class InvalidDateError(QueryValidationError):
    """Date string that matches none of the accepted formats."""

    default_code = ErrorCode.SEARCH_INVALID_DATE


class InvalidWeightsError(QueryValidationError):
    """Negative fusion weights, or both weights zero."""

    default_code = ErrorCode.SEARCH_INVALID_WEIGHTS


class LexicalIndexUnavailableError(KBSearchError):
    """Full-text store unreachable. Fatal for the request."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.SEARCH_INDEX_UNAVAILABLE, message, details)


class VectorIndexError(KBSearchError):
    """Vector store failure. Search degrades to lexical-only."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.VECTOR_INDEX_UNAVAILABLE, message, details)


class EmbeddingError(KBSearchError):
    """Query embedding failure. Search degrades to lexical-only."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.EMBEDDING_FAILED, message, details)


class StorageError(KBSearchError):
    """Storage/database errors. The code tells connection, read and write failures apart."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.STORAGE_CONNECTION_FAILED,
    ) -> None:
        super().__init__(code, message, details)
