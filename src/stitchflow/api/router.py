"""Master API router mounted at /api/v1."""

from fastapi import APIRouter

from stitchflow.api.routes import callbacks, health, jobs, videos

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(videos.router)
api_router.include_router(callbacks.router)
api_router.include_router(jobs.router)
