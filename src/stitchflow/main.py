"""FastAPI application factory and lifespan management."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stitchflow.config import settings
from stitchflow.logging_config import configure_logging

# Configure logging at import time
configure_logging(log_level=settings.log_level, json_output=settings.json_logs)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    from stitchflow.orchestration.orchestrator import build_orchestrator
    from stitchflow.workers.scheduler import run_scheduler

    orchestrator = build_orchestrator(settings)
    app.state.orchestrator = orchestrator
    await orchestrator.start()

    # Start background maintenance
    scheduler_task = asyncio.create_task(run_scheduler(app, settings))

    logger.info(
        "stitchflow API started (store=%s, degraded=%s, merge_workers=%d)",
        settings.store_backend, orchestrator.store.degraded, settings.merge_workers,
    )
    yield

    # Shutdown
    scheduler_task.cancel()
    try:
        await scheduler_task
    except asyncio.CancelledError:
        pass
    await orchestrator.stop()
    logger.info("stitchflow API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="stitchflow API",
        version="1.0.0",
        description="Generates two AI video renders per request, stitches them and publishes the result.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from stitchflow.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(TraceIdMiddleware)

    # Register error handlers
    from stitchflow.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    # Import and mount routers
    from stitchflow.api.router import api_router
    app.include_router(api_router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "stitchflow API",
            "version": "1.0.0",
            "endpoints": {
                "health": "GET /api/v1/health",
                "generate_video": "POST /api/v1/videos",
                "process_record": "POST /api/v1/process-record",
                "process_master_prompt": "POST /api/v1/process-master-prompt",
                "job_status": "GET /api/v1/jobs/{job_id}",
            },
        }

    return app


app = create_app()
