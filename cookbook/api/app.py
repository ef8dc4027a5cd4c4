"""FastAPI application entry point for cookbook ingest."""

from __future__ import annotations

import logging
import os
from typing import Final

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cookbook.api.routes import router
from cookbook.config.settings import CookbookConfig

_DEVELOPMENT_ENVIRONMENTS: Final[set[str]] = {"dev", "development", "local"}

VERSION = "0.1.0"


def _resolve_cors_origins() -> list[str]:
    environment = os.getenv("COOKBOOK_ENV", "development").strip().lower()
    origins_raw = os.getenv("COOKBOOK_ALLOWED_ORIGINS", "")
    origins = [origin.strip() for origin in origins_raw.split(",") if origin.strip()]

    if origins:
        return origins

    if environment not in _DEVELOPMENT_ENVIRONMENTS:
        raise RuntimeError(
            "Production CORS configuration error: COOKBOOK_ALLOWED_ORIGINS must be set "
            "to a comma-separated list of trusted origins when COOKBOOK_ENV is not "
            "development/local/dev."
        )

    return []


def create_app() -> FastAPI:
    """Factory function for creating the FastAPI application."""
    logging.basicConfig(level=CookbookConfig().log_level.upper())

    app = FastAPI(
        title="Cookbook Ingest",
        description="Hybrid recipe extraction and learning pipeline",
        version=VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_resolve_cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "service": "cookbook-ingest", "version": VERSION}

    return app


app = create_app()
