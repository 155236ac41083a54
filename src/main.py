from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from src.application.dtos.common_dto import HealthResponse, RootResponse
from src.application.preview_sessions import PreviewSessionStore
from src.infrastructure.api.middlewares import add_default_middlewares
from src.infrastructure.api.routes.auth_routes import router as auth_router
from src.infrastructure.api.routes.equipment_image_routes import router as equipment_image_router
from src.infrastructure.api.routes.preview_routes import router as preview_router


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Equipment Images",
        version="0.1.0",
        description="""
        ## Equipment Images API

        Image intake for equipment records of the asset-management system, backed by
        Supabase for auth, the `equipment_images` table, and storage.

        ### Workflow
        1. **Stage**: select files; they are validated (JPEG/PNG/GIF/WebP, max 10MB),
           resized to fit 1920x1080 and re-encoded, then held as pending previews
        2. **Review**: remove previews or pick the primary image
        3. **Upload**: every preview is stored concurrently and recorded against the
           equipment; per-image failures are reported without failing the batch

        ### Authentication
        All endpoints except root, health and preview URLs require a Bearer token:
        ```
        Authorization: Bearer your-jwt-token
        ```

        ### Error Responses
        - **400 Bad Request**: rejected files or nothing to upload
        - **401 Unauthorized**: missing or invalid authentication token
        - **404 Not Found**: preview or image does not exist
        - **502 Bad Gateway**: the database rejected a metadata write
        """,
    )
    app.state.preview_sessions = PreviewSessionStore()
    add_default_middlewares(app)

    @app.get("/", response_model=RootResponse, summary="API Root")
    def root():
        """Get API root information."""
        return RootResponse(status="ok", service="equipment-images", version=app.version)

    @app.get("/health", response_model=HealthResponse, summary="Health Check")
    def health():
        """Check API health status."""
        return HealthResponse(status="healthy")

    app.include_router(auth_router)
    app.include_router(equipment_image_router)
    app.include_router(preview_router)
    return app


app = create_app()
