"""Video generation routes: dispatch from prompts, records or a master prompt."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from stitchflow.config import settings
from stitchflow.dependencies import OrchestratorDep
from stitchflow.models.enums import RenderFormat
from stitchflow.orchestration.orchestrator import Orchestrator

router = APIRouter(tags=["Videos"])


# --- Request models ---


class GenerateVideoRequest(BaseModel):
    prompt1: str = ""
    prompt2: str = ""
    record_id: str | None = Field(None, alias="recordId")
    aspect_ratio: RenderFormat = Field(RenderFormat.LANDSCAPE, alias="aspectRatio")

    model_config = {"populate_by_name": True}


class ProcessRecordRequest(BaseModel):
    record_id: str = Field(..., alias="recordId", min_length=1)
    aspect_ratio: RenderFormat = Field(RenderFormat.LANDSCAPE, alias="aspectRatio")

    model_config = {"populate_by_name": True}


class GeneratePromptsRequest(BaseModel):
    master_prompt: str = Field("", alias="masterPrompt")
    aspect_ratio: RenderFormat = Field(RenderFormat.LANDSCAPE, alias="aspectRatio")

    model_config = {"populate_by_name": True}


class ProcessMasterPromptRequest(BaseModel):
    record_id: str = Field(..., alias="recordId", min_length=1)
    master_prompt: str = Field("", alias="masterPrompt")
    aspect_ratio: RenderFormat = Field(RenderFormat.LANDSCAPE, alias="aspectRatio")

    model_config = {"populate_by_name": True}


# --- Helpers ---


async def _accepted(orchestrator: Orchestrator, job_id: str) -> dict:
    job = await orchestrator.get_job(job_id)
    task_ids = [slot.task_id for slot in job.slots] if job else []
    return {
        "job_id": job_id,
        "status": job.status if job else None,
        "task_ids": task_ids,
        "status_url": f"{settings.public_url.rstrip('/')}/api/v1/jobs/{job_id}",
        "message": "Video generation started. Use the job_id to check status.",
    }


# --- Routes ---


@router.post("/videos", status_code=202)
async def generate_video(body: GenerateVideoRequest, orchestrator: OrchestratorDep) -> dict:
    job_id = await orchestrator.dispatch(body.prompt1, body.prompt2, body.record_id, body.aspect_ratio)
    return await _accepted(orchestrator, job_id)


@router.post("/process-record", status_code=202)
async def process_record(body: ProcessRecordRequest, orchestrator: OrchestratorDep) -> dict:
    job_id = await orchestrator.dispatch_record(body.record_id, body.aspect_ratio)
    return await _accepted(orchestrator, job_id)


@router.post("/generate-prompts")
async def generate_prompts(body: GeneratePromptsRequest, orchestrator: OrchestratorDep) -> dict:
    pair = await orchestrator.generate_prompts(body.master_prompt, body.aspect_ratio)
    return {
        "prompt1": pair.prompt1,
        "voiceover1": pair.voiceover1,
        "prompt2": pair.prompt2,
        "voiceover2": pair.voiceover2,
    }


@router.post("/process-master-prompt", status_code=202)
async def process_master_prompt(body: ProcessMasterPromptRequest, orchestrator: OrchestratorDep) -> dict:
    job_id, pair = await orchestrator.dispatch_master_prompt(
        body.record_id, body.master_prompt, body.aspect_ratio
    )
    response = await _accepted(orchestrator, job_id)
    response["prompts"] = {"prompt1": pair.prompt1, "prompt2": pair.prompt2}
    return response
