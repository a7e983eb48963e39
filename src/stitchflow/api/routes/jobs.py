"""Job status polling and render task lookup endpoints."""

from fastapi import APIRouter

from stitchflow.dependencies import OrchestratorDep
from stitchflow.errors.exceptions import NotFoundError
from stitchflow.models.job import JobStatusModel

router = APIRouter(tags=["Jobs"])


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, orchestrator: OrchestratorDep) -> dict:
    job = await orchestrator.get_job(job_id)
    if not job:
        raise NotFoundError("Job", job_id)
    return JobStatusModel.from_job(job).model_dump(mode="json", exclude_none=True)


@router.get("/render-tasks/{task_id}")
async def get_render_task(task_id: str, orchestrator: OrchestratorDep) -> dict:
    """Ask the render provider directly about a task (manual checks)."""
    return await orchestrator.render_client.query_task(task_id)
