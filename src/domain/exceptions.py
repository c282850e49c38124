"""Error taxonomy for the section image engine.

Every error carries an HTTP status and whether retrying the same request can
help. Ownership failures (401/403) are raised by the auth layer, not here.
"""
from __future__ import annotations


class SectionEngineError(Exception):
    """Base exception for all engine errors."""

    code = "engine_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(SectionEngineError):
    """Raised when request values are out of range or inconsistent."""

    code = "invalid_request"
    status_code = 400


class NotFoundError(SectionEngineError):
    """Raised when a section or image does not exist."""

    code = "not_found"
    status_code = 404


class ConcurrentEditError(SectionEngineError):
    """Raised when a section pointer moved between capture and repoint."""

    code = "concurrent_edit"
    status_code = 409
    retryable = True


class RasterError(SectionEngineError):
    """Raised when image data cannot be decoded, extracted or resized."""

    code = "raster_error"
    status_code = 422


class ModelUnavailableError(SectionEngineError):
    """Raised when the generative model fails or returns no usable image."""

    code = "model_unavailable"
    status_code = 502
    retryable = True

    def __init__(
        self,
        message: str = "Could not synthesize the requested content; "
        "try a different prompt or selection.",
    ) -> None:
        super().__init__(message)


class UploadFailedError(SectionEngineError):
    """Raised when the blob store rejects a write."""

    code = "upload_failed"
    status_code = 503
    retryable = True
