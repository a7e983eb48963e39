"""Callback correlator: applies render results to job slots.

Each callback resolves its task id to ``(job_id, slot)`` and then runs a
read-modify-write of the job under that job's lock, so two callbacks for the
same job can never both see themselves as the first or the second arrival.
The consumed task mapping is deleted inside the same critical section,
which makes redelivered callbacks resolve to nothing.
"""

import logging

from stitchflow.errors.exceptions import CorrelationMiss
from stitchflow.logging_config import bound_job_context
from stitchflow.models.enums import JobStatus, SlotState
from stitchflow.models.job import Job, RenderFailure, RenderOutcome, RenderSuccess, TaskMapping
from stitchflow.orchestration.failures import FailureHandler
from stitchflow.orchestration.scheduler import MergeScheduler
from stitchflow.orchestration.store import JobStore

logger = logging.getLogger(__name__)


class CallbackCorrelator:
    def __init__(self, store: JobStore, failures: FailureHandler, scheduler: MergeScheduler):
        self.store = store
        self.failures = failures
        self.scheduler = scheduler

    async def on_task_result(self, task_id: str, outcome: RenderOutcome) -> Job | None:
        """Apply one task outcome.

        Returns the updated job, or None when the callback was a no-op
        (unknown, consumed or expired task; terminal job; filled slot).
        Never raises for correlation problems.
        """
        mapping = await self.store.resolve_task(task_id)
        if mapping is None:
            logger.warning(CorrelationMiss(task_id).message)
            return None

        with bound_job_context(mapping.job_id):
            async with self.store.lock(mapping.job_id):
                job = await self._apply(mapping, outcome)
                await self.store.release_task(task_id)

            if job is None:
                return None
            if job.status == JobStatus.FAILED:
                await self.failures.propagate(job)
            elif job.status == JobStatus.READY:
                logger.info("Both renders ready for job %s, queueing merge", job.job_id)
                self.scheduler.submit(job.job_id)
            else:
                logger.info("Job %s waiting for the other render (slot %d done)", job.job_id, mapping.slot)
            return job

    async def _apply(self, mapping: TaskMapping, outcome: RenderOutcome) -> Job | None:
        job = await self.store.get_job(mapping.job_id)
        if job is None:
            logger.warning("Job %s for task %s not found (expired?)", mapping.job_id, mapping.task_id)
            return None
        if job.status.is_terminal:
            logger.info("Ignoring late callback for task %s: job is %s", mapping.task_id, job.status)
            return None

        slot = job.slots[mapping.slot]
        if not slot.is_empty:
            logger.info("Ignoring duplicate callback for task %s (slot %d)", mapping.task_id, mapping.slot)
            return None

        slots = list(job.slots)
        if isinstance(outcome, RenderFailure):
            slots[mapping.slot] = slot.model_copy(
                update={"task_id": mapping.task_id, "state": SlotState.FAILED, "error": outcome.reason}
            )
            reason = f"Render {mapping.slot + 1} generation failed: {outcome.reason}"
            return await self.failures.fail_locked(job.job_id, reason, slots=slots)

        if not isinstance(outcome, RenderSuccess):
            raise TypeError(f"Unsupported render outcome: {outcome!r}")

        slots[mapping.slot] = slot.model_copy(
            update={"task_id": mapping.task_id, "state": SlotState.SUCCEEDED, "artifact_ref": outcome.artifact_ref}
        )
        logger.info("Render %d succeeded for job %s: %s", mapping.slot + 1, job.job_id, outcome.artifact_ref)
        status = JobStatus.READY if all(s.succeeded for s in slots) else JobStatus.AWAITING
        return await self.store.update_locked(job.job_id, status=status, slots=slots)
