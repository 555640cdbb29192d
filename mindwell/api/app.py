"""
FastAPI application factory.

``create_app()`` assembles the application with CORS, auth, error handlers,
routers, and the health endpoint. The module-level ``app`` instance allows
``uvicorn mindwell.api.app:app --reload``.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mindwell.api.middleware.auth import BearerAuthMiddleware
from mindwell.api.middleware.error_handler import register_error_handlers
from mindwell.api.routes import entries, jobs
from mindwell.core.config import get_settings
from mindwell.core.models import HealthResponse
from mindwell.services.finalizer import EntryFinalizer
from mindwell.services.pipeline import ProcessingPipeline, create_pipeline
from mindwell.services.storage.database import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    Startup: create tables, fail jobs orphaned by a previous process, start
    the retention sweeper. Shutdown: interrupt running jobs, then dispose
    the DB engine.
    """
    settings = get_settings()
    logging.getLogger("mindwell").setLevel(settings.log_level.upper())

    await init_db()
    if getattr(app.state, "pipeline", None) is None:
        app.state.pipeline = create_pipeline(settings)
    pipeline: ProcessingPipeline = app.state.pipeline

    await pipeline.recover_interrupted()
    pipeline.start_sweeper()
    logger.info("MindWell journal API ready")
    yield
    await pipeline.shutdown()
    await close_db()


def create_app(
    pipeline: ProcessingPipeline | None = None,
    finalizer: EntryFinalizer | None = None,
) -> FastAPI:
    """Build and return a fully configured FastAPI application.

    Args:
        pipeline: Pre-built pipeline (tests inject one with mocked
            providers). Built from settings at startup when omitted.
        finalizer: Entry finalizer; a default one is created when omitted.
    """
    app = FastAPI(
        title="MindWell Journal",
        description="Voice journal capture with transcription, mood analysis, and categorization.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    if finalizer is None:
        finalizer = EntryFinalizer(retention_seconds=pipeline.retention_seconds if pipeline else None)
    app.state.finalizer = finalizer

    # -- CORS --
    settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- Auth --
    app.add_middleware(BearerAuthMiddleware)

    # -- Error handlers --
    register_error_handlers(app)

    # -- Health check (root-level, not under /api/v1) --
    @app.get("/health", response_model=HealthResponse, tags=["system"])
    async def health() -> HealthResponse:
        return HealthResponse(timestamp=datetime.now(UTC))

    # -- REST routes --
    app.include_router(jobs.router, prefix="/api/v1")
    app.include_router(entries.router, prefix="/api/v1")

    return app


app = create_app()
