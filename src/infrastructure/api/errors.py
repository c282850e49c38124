from __future__ import annotations

import logging

from fastapi import HTTPException

from src.domain.exceptions import SectionEngineError

logger = logging.getLogger(__name__)


def http_error(exc: SectionEngineError) -> HTTPException:
    """Translate an engine error into the HTTP error the routes raise."""
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(level, "%s (%d): %s", exc.code, exc.status_code, exc.message)
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": exc.code, "message": exc.message, "retryable": exc.retryable},
    )


ERROR_RESPONSES = {
    400: {"description": "Bad Request - Values out of range or inconsistent"},
    401: {"description": "Unauthorized - Invalid or missing authentication token"},
    404: {"description": "Not Found - Section or image does not exist"},
    409: {"description": "Conflict - The section changed concurrently; reload and retry"},
    422: {"description": "Validation Error - Invalid request format or undecodable image"},
    502: {"description": "Bad Gateway - The image model produced no usable result (retryable)"},
    503: {"description": "Service Unavailable - Storage upload failed (retryable)"},
}
