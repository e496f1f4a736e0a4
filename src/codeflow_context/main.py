"""
Context Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures logging and global exception handling, and provides a
test-friendly application factory.

Design Goals
------------
- Deterministic startup
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
- `codeflow-context` console script serves the default app with Uvicorn
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from .config import settings
from .core.errors import invalid_project_handler, unhandled_exception_handler
from .embeddings.registry import save_all_project_indexes
from .projects import InvalidProjectError, get_data_root
from .sessions.store import session_store

from .api import (
    context_routes,
    health_routes,
    index_routes,
    session_routes,
)


logger = logging.getLogger("codeflow.app")


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    configure_logging()

    app = FastAPI(
        title="codeflow-context",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(InvalidProjectError, invalid_project_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(index_routes.router)
    app.include_router(context_routes.router)
    app.include_router(session_routes.router)

    # --------------------------------------------------------------
    # Lifecycle Hooks
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup() -> None:
        logger.info(
            "Starting codeflow-context (data_root=%s, model=%s, metric=%s)",
            get_data_root(),
            settings.embedding_model,
            settings.vector_metric,
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        """
        Flush loaded indexes and drop editor sessions.
        """
        saved = save_all_project_indexes()
        session_store.clear_all()
        logger.info("Shutting down codeflow-context (saved %d indexes)", saved)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()


def run() -> None:
    """Serve the default application (`codeflow-context` console script)."""
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
