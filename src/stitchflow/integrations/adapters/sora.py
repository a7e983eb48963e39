"""Sora 2 text-to-video adapter for the kie.ai jobs API.

Tasks are created with a callback URL; the provider later POSTs the same
payload its ``recordInfo`` query returns. ``parse_render_callback`` reduces
that payload to a task id plus a normalized outcome.
"""

from __future__ import annotations

import json
import logging

import httpx

from stitchflow.errors.exceptions import SubmissionError, ValidationError
from stitchflow.integrations.adapters.base import RenderClient
from stitchflow.models.enums import RenderFormat
from stitchflow.models.job import RenderFailure, RenderOutcome, RenderSuccess

logger = logging.getLogger(__name__)


class SoraRenderClient(RenderClient):
    """Creates and queries Sora render tasks."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str = "sora-2-pro-text-to-video",
        n_frames: str = "15",
        size: str = "standard",
        remove_watermark: bool = True,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.n_frames = n_frames
        self.size = size
        self.remove_watermark = remove_watermark
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def submit(self, prompt: str, render_format: RenderFormat, callback_url: str) -> str:
        body = {
            "model": self.model,
            "input": {
                "prompt": prompt,
                "aspect_ratio": render_format.value,
                "n_frames": self.n_frames,
                "size": self.size,
                "remove_watermark": self.remove_watermark,
            },
        }
        if callback_url:
            body["callBackUrl"] = callback_url

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/jobs/createTask",
                    json=body,
                    headers=self._headers(),
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Render task submission failed: %s", exc)
            raise SubmissionError(f"Failed to create render task: {exc}") from exc

        if data.get("code") != 200:
            raise SubmissionError(
                f"Failed to create render task: {data.get('msg', 'unknown error')}",
                details={"code": data.get("code")},
            )

        task_id = (data.get("data") or {}).get("taskId")
        if not task_id:
            raise SubmissionError("Render provider response did not include a task id")
        logger.info("Render task %s created (format=%s)", task_id, render_format)
        return task_id

    async def query_task(self, task_id: str) -> dict:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}/jobs/recordInfo",
                    params={"taskId": task_id},
                    headers=self._headers(),
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SubmissionError(f"Failed to query render task: {exc}") from exc

        if data.get("code") != 200:
            raise SubmissionError(f"Failed to query render task: {data.get('msg', 'unknown error')}")
        return data.get("data") or {}


def _extract_video_url(task_data: dict) -> str | None:
    result = task_data.get("resultJson")
    if isinstance(result, str):
        try:
            result = json.loads(result)
        except ValueError:
            logger.warning("Unparseable resultJson for task %s", task_data.get("taskId"))
            return None
    if not isinstance(result, dict):
        if result is not None:
            logger.warning("Unexpected resultJson shape for task %s", task_data.get("taskId"))
        return None
    urls = result.get("resultUrls")
    if not isinstance(urls, list) or not urls:
        return None
    return urls[0] if isinstance(urls[0], str) and urls[0] else None


def parse_render_callback(payload: dict) -> tuple[str, RenderOutcome | None]:
    """Normalize a provider callback body.

    Returns:
        ``(task_id, outcome)``; outcome is None for non-final states
        (queued/generating pings) which carry no result.

    Raises:
        ValidationError: The payload has no ``data.taskId``.
    """
    task_data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(task_data, dict) or not task_data.get("taskId"):
        raise ValidationError("Invalid callback data")

    task_id = str(task_data["taskId"])
    state = task_data.get("state")

    if state == "fail":
        reason = task_data.get("failMsg") or "Unknown error"
        if task_data.get("failCode"):
            reason = f"{reason} (code {task_data['failCode']})"
        return task_id, RenderFailure(reason)

    if state == "success":
        url = _extract_video_url(task_data)
        if not url:
            return task_id, RenderFailure("render completed but no URL found")
        return task_id, RenderSuccess(url)

    return task_id, None
