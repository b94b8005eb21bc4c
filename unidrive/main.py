"""
FastAPI application entrypoint for the unified drive service.
"""

from __future__ import annotations

from fastapi import FastAPI

from unidrive.api.routes import router as api_router
from unidrive.core.config import get_settings
from unidrive.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Unidrive",
        version="0.1.0",
        description="Browse, search and open files across Google Drive, Dropbox and OneDrive accounts.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
