"""
API Middleware - Request context and error taxonomy.

Provides:
- Request ID propagation and per-request latency
- Search outcome reporting (cache hit, lexical-only degradation)
- KBSearchError to JSON conversion with HTTP status mapping
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from kbsearch.config.errors import ErrorCode, KBSearchError

logger = logging.getLogger(__name__)

__all__ = [
    "SearchContextMiddleware",
    "ErrorHandlerMiddleware",
    "record_search_outcome",
    "status_for",
]

REQUEST_ID_HEADER = "X-Request-ID"

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.SEARCH_INVALID_QUERY: 400,
    ErrorCode.SEARCH_INVALID_FILTER: 400,
    ErrorCode.SEARCH_INVALID_DATE: 400,
    ErrorCode.SEARCH_INVALID_WEIGHTS: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.SEARCH_INDEX_UNAVAILABLE: 503,
    ErrorCode.VECTOR_INDEX_UNAVAILABLE: 503,
    ErrorCode.EMBEDDING_FAILED: 503,
    ErrorCode.STORAGE_CONNECTION_FAILED: 503,
    ErrorCode.STORAGE_READ_FAILED: 503,
    ErrorCode.STORAGE_WRITE_FAILED: 503,
}


def status_for(code: ErrorCode) -> int:
    """HTTP status for an error code; unknown codes are server errors."""
    return _STATUS_BY_CODE.get(code, 500)


def record_search_outcome(request: Request, *, cache_hit: bool, degraded: bool) -> None:
    """Called by search routes so the context middleware can report the outcome."""
    request.state.search_outcome = (cache_hit, degraded)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


class SearchContextMiddleware(BaseHTTPMiddleware):
    """
    Tag each request with an ID and time it.

    Search responses additionally carry ``X-Cache`` (hit/miss) and
    ``X-Search-Degraded`` headers, and both flags appear in the access log.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        start = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"

        outcome = getattr(request.state, "search_outcome", None)
        if outcome is None:
            logger.info(
                "%s %s -> %d in %.1fms [%s]",
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
                request.state.request_id,
            )
            return response

        cache_hit, degraded = outcome
        response.headers["X-Cache"] = "hit" if cache_hit else "miss"
        response.headers["X-Search-Degraded"] = "true" if degraded else "false"
        log = logger.warning if degraded else logger.info
        log(
            "%s %s -> %d in %.1fms cache=%s degraded=%s [%s]",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            "hit" if cache_hit else "miss",
            degraded,
            request.state.request_id,
        )
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Render KBSearchError as ``{"error": {...}, "request_id": ...}``."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except KBSearchError as e:
            status = status_for(e.code)
            # Client mistakes are routine; upstream outages are not
            if status < 500:
                logger.info("Rejected request [%s]: %s", _request_id(request), e)
            else:
                logger.error("Search backend failure [%s]: %s %s", _request_id(request), e, e.details)
            return _error_response(status, e.to_dict(), request)
        except Exception:
            logger.exception("Unhandled error [%s]", _request_id(request))
            return _error_response(
                500,
                {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": "Internal server error",
                    "details": {},
                },
                request,
            )


def _error_response(status: int, error: dict[str, object], request: Request) -> JSONResponse:
    request_id = _request_id(request)
    return JSONResponse(
        status_code=status,
        content={"error": error, "request_id": request_id},
        headers={REQUEST_ID_HEADER: request_id},
    )
