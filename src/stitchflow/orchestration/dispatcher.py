"""Render dispatcher: creates a job and submits its two render tasks."""

import asyncio
import logging

from stitchflow.errors.exceptions import SubmissionError, ValidationError
from stitchflow.integrations.adapters.base import RenderClient
from stitchflow.logging_config import bound_job_context
from stitchflow.models.enums import JobStatus, RecordStatus, RenderFormat
from stitchflow.models.job import Job
from stitchflow.orchestration.failures import FailureHandler
from stitchflow.orchestration.store import JobStore

logger = logging.getLogger(__name__)


class RenderDispatcher:
    """Creates jobs and hands both prompts to the render provider.

    Submissions run concurrently and each task id is mapped to its slot as
    soon as the provider returns it. Submission failures fail the job
    immediately; nothing is retried here.
    """

    def __init__(
        self,
        store: JobStore,
        render_client: RenderClient,
        failures: FailureHandler,
        callback_url: str,
    ):
        self.store = store
        self.render_client = render_client
        self.failures = failures
        self.callback_url = callback_url

    async def dispatch(
        self,
        prompt1: str,
        prompt2: str,
        external_ref: str | None = None,
        render_format: RenderFormat = RenderFormat.LANDSCAPE,
    ) -> str:
        """Start a job and return its id without waiting for the renders.

        Raises:
            ValidationError: A prompt is empty.
            SubmissionError: A render submission failed; the job is already
                marked failed when this is raised.
        """
        prompts = [prompt1, prompt2]
        if not all(p and p.strip() for p in prompts):
            raise ValidationError("Both prompt1 and prompt2 are required")

        job = await self.store.create_job(prompts, external_ref=external_ref, render_format=render_format)
        job_id = job.job_id
        with bound_job_context(job_id):
            await self.store.advance(job_id, JobStatus.DISPATCHED)

            results = await asyncio.gather(
                *(self._submit_slot(job, slot, prompt) for slot, prompt in enumerate(prompts)),
                return_exceptions=True,
            )
            errors = [(slot, exc) for slot, exc in enumerate(results) if isinstance(exc, Exception)]
            if errors:
                await self._fail_submission(job, errors)

            await self.store.advance(job_id, JobStatus.AWAITING)
            logger.info("Job %s awaiting renders (tasks=%s)", job_id, ", ".join(results))
        return job_id

    async def _submit_slot(self, job: Job, slot: int, prompt: str) -> str:
        task_id = await self.render_client.submit(prompt, job.render_format, self.callback_url)
        await self.store.map_task(task_id, job.job_id, slot)
        async with self.store.lock(job.job_id):
            current = await self.store.get_job(job.job_id)
            if current is not None:
                slots = list(current.slots)
                slots[slot] = slots[slot].model_copy(update={"task_id": task_id})
                await self.store.update_locked(job.job_id, slots=slots)
        return task_id

    async def _fail_submission(self, job: Job, errors: list[tuple[int, Exception]]) -> None:
        for slot, exc in errors:
            if not isinstance(exc, SubmissionError):
                logger.error("Unexpected error submitting render %d", slot + 1, exc_info=exc)
        reason = "; ".join(f"render {slot + 1} submission failed: {exc}" for slot, exc in errors)

        failed = await self.failures.fail(job.job_id, reason)
        if failed is None and self.store.degraded:
            # Untracked job: the record still needs to hear about it.
            await self.failures.propagator.set_status(job.external_ref, RecordStatus.FAILED, reason)
        raise SubmissionError(reason, details={"job_id": job.job_id}) from errors[0][1]
