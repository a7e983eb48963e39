"""Inbound render-provider callbacks."""

import logging

from fastapi import APIRouter, BackgroundTasks, Request

from stitchflow.dependencies import OrchestratorDep
from stitchflow.errors.exceptions import ValidationError
from stitchflow.integrations.adapters.sora import parse_render_callback

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Callbacks"])


@router.post("/callbacks/render")
async def render_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: OrchestratorDep,
) -> dict:
    """Acknowledge at once; correlation runs after the response is sent.

    Anything except a payload without a task id gets a 200, so the provider
    does not retry deliveries we have already seen.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Invalid callback data")

    task_id, outcome = parse_render_callback(payload)
    logger.info("Render callback received for task %s (state=%s)", task_id, payload["data"].get("state"))

    if outcome is None:
        return {"success": True, "message": "Callback received (no final state)"}

    background_tasks.add_task(orchestrator.on_task_result, task_id, outcome)
    return {"success": True, "message": "Callback received"}
