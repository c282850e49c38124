"""Common DTOs for API responses and error handling."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Body of every engine error (the `detail` of the HTTP error response)."""
    error: str = Field(..., description="Machine-readable error code", example="not_found")
    message: str = Field(..., description="Human-readable explanation", example="Section 12 not found")
    retryable: bool = Field(..., description="Whether sending the same request again may succeed", example=False)


class ErrorResponse(BaseModel):
    """Standard error response model."""
    detail: ErrorDetail = Field(..., description="Error code, message and retry hint")


class SuccessResponse(BaseModel):
    """Standard success response model."""
    success: bool = Field(True, description="Indicates the operation was successful")
    message: Optional[str] = Field(None, description="Optional success message")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Health status", example="healthy")


class RootResponse(BaseModel):
    """Root endpoint response model."""
    status: str = Field(..., description="API status", example="ok")
    service: str = Field(..., description="Service name", example="stackseam-backend")
    version: str = Field(..., description="API version", example="0.1.0")


class ImageRef(BaseModel):
    """A stored image as returned by edit operations."""
    id: Optional[str] = Field(None, description="Image id; absent when only uploaded", example="img_42")
    path: str = Field(..., description="Storage path of the image file", example="user123/section-cropped-3f2a.png")
    url: str = Field(..., description="Public URL to access the image", example="/local-storage/user123/section-cropped-3f2a.png")
    width: Optional[int] = Field(None, description="Width in pixels", example=800, gt=0)
    height: Optional[int] = Field(None, description="Height in pixels", example=1200, gt=0)
