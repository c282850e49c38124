from __future__ import annotations

import os

from fastapi import FastAPI

from src.application.dtos.common_dto import HealthResponse, RootResponse
from src.infrastructure.api.middlewares import add_default_middlewares
from src.infrastructure.api.routes.history_routes import router as history_router
from src.infrastructure.api.routes.section_routes import router as section_router
from src.infrastructure.logging_config import setup_logging


def create_app() -> FastAPI:
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    app = FastAPI(
        title="Stackseam Backend",
        version="0.1.0",
        description="""
        ## Stackseam Backend API

        Editing engine for landing pages built from a vertical stack of section
        images. Keeps adjacent sections visually continuous while they are cut,
        extended with AI, regenerated or reverted.

        ### Features
        - **Boundary Adjustment**: Move the seam between two sections by redistributing pixels
        - **Boundary Design**: Replace a seam with a generated bridge section
        - **Extension**: Restore content above or below a section image with AI outpainting
        - **New Sections**: Generate an image that continues its neighbors
        - **Crop & Split**: Store editor-cropped images
        - **History**: Every image change is recorded and can be reverted

        ### Authentication
        All endpoints (except root and health) require authentication via Bearer token
        in the Authorization header:
        ```
        Authorization: Bearer your-jwt-token
        ```

        ### Error Responses
        Engine errors return `{"detail": {"error", "message", "retryable"}}`:
        - **400 Bad Request**: Values out of range or inconsistent
        - **401 Unauthorized**: Missing or invalid authentication token
        - **404 Not Found**: Section or image does not exist
        - **409 Conflict**: The section changed concurrently (retryable)
        - **422 Unprocessable Entity**: Validation error or undecodable image
        - **502 Bad Gateway**: The image model produced no usable result (retryable)
        - **503 Service Unavailable**: Storage upload failed (retryable)
        """,
    )
    add_default_middlewares(app)

    @app.get(
        "/",
        response_model=RootResponse,
        summary="API Root",
        description="Get basic information about the Stackseam API",
        response_description="API information including status and version",
    )
    def root():
        """Get API root information."""
        return {"status": "ok", "service": "stackseam-backend", "version": app.version}

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health Check",
        description="Check if the API service is running and healthy",
        response_description="Health status of the API service",
    )
    def health():
        """Check API health status."""
        return {"status": "healthy"}

    app.include_router(section_router)
    app.include_router(history_router)
    return app


app = create_app()
