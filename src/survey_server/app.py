"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that loads the survey and dynamic config, opens the
    connection pool and verifies the referenced tables once
  - CORS middleware
  - Global exception handlers (SDK errors → 422/500/503/404)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness probes

The ``cli()`` function is the ``survey-server`` console-script entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from survey_fields.errors import ConfigError, PoolExhaustedError, ValidationFailure

from survey_server.config import ServerSettings, load_settings
from survey_server.errors import (
    config_error_handler,
    generic_error_handler,
    key_error_handler,
    pool_exhausted_handler,
    validation_failure_handler,
)
from survey_server.routes import register_routes
from survey_server.runtime import SurveyRuntime, build_runtime

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Lifespan: runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup, tear down on shutdown.

    Startup:
      1. Load the survey JSON and the dynamic config
      2. Open the database pool and verify configured tables/columns
      3. Stash the runtime on ``app.state`` for dependency injection

    A runtime supplied to :func:`create_app` is used as-is.

    Shutdown:
      1. Wait for queued progress saves
      2. Dispose the connection pool
    """
    settings: ServerSettings = app.state.settings

    runtime: SurveyRuntime | None = getattr(app.state, "runtime", None)
    if runtime is None:
        runtime = await build_runtime(settings)
        app.state.runtime = runtime

    yield

    # --- Shutdown ---
    await runtime.close()
    logger.info("Survey runtime closed")


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(
    settings: ServerSettings | None = None,
    *,
    runtime: SurveyRuntime | None = None,
) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = runtime.settings if runtime is not None else load_settings()

    # --- Configure logging ---
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="Survey API Server",
        description="REST API for database-backed surveys with dynamic fields",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings so the lifespan handler can read them
    app.state.settings = settings
    if runtime is not None:
        app.state.runtime = runtime

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers ---
    app.add_exception_handler(ValidationFailure, validation_failure_handler)
    app.add_exception_handler(ConfigError, config_error_handler)
    app.add_exception_handler(PoolExhaustedError, pool_exhausted_handler)
    app.add_exception_handler(KeyError, key_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness probe — verifies DB connectivity."""
        runtime: SurveyRuntime = app.state.runtime
        try:
            if runtime.pool is not None:
                async with runtime.pool.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            return {"status": "ok", "sessions": len(runtime.registry)}
        except Exception as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error", "detail": str(exc)}

    # --- Mount all API routes ---
    register_routes(app)

    return app


# ------------------------------------------------------------------
# Module-level ASGI export (for uvicorn survey_server.app:app)
# ------------------------------------------------------------------
app = create_app()


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``survey-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "survey_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
