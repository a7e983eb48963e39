"""Health check endpoints."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from stitchflow.dependencies import OrchestratorDep

router = APIRouter()

SERVICE_NAME = "stitchflow"
VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """Return service health status."""
    return {"status": "healthy", "service": SERVICE_NAME, "version": VERSION, "mode": "async-callback"}


@router.get("/health/live")
async def liveness():
    """Liveness probe: always returns 200 if process is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(orchestrator: OrchestratorDep):
    """Readiness probe: reports job store degraded mode and merge pipeline state.

    A degraded job store still returns 200: renders keep flowing untracked.
    """
    store = orchestrator.store
    store_ok = await store.ping()
    scheduler = orchestrator.scheduler

    checks = {
        "job_store": "ok" if store_ok else f"degraded: {store.last_error}",
        "merge_workers": "ok" if scheduler.running else "stopped",
    }
    overall_ok = scheduler.running
    return JSONResponse(
        status_code=200 if overall_ok else 503,
        content={
            "status": "ready" if overall_ok else "not_ready",
            "degraded": store.degraded,
            "checks": checks,
            "merge_queue_depth": scheduler.queue_depth,
            "active_merges": scheduler.active_merges,
        },
    )
