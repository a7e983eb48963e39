"""Terminal-failure bookkeeping and best-effort record status propagation."""

import logging
from collections.abc import Collection

from stitchflow.errors.exceptions import RecordStoreError
from stitchflow.integrations.adapters.base import RecordStore
from stitchflow.models.enums import JobStatus, RecordStatus
from stitchflow.models.job import Job
from stitchflow.orchestration.store import JobStore

logger = logging.getLogger(__name__)


class StatusPropagator:
    """Mirrors job milestones onto the originating record, never raising."""

    def __init__(self, records: RecordStore | None):
        self.records = records

    async def set_status(self, record_id: str | None, status: RecordStatus, error: str | None = None) -> bool:
        if self.records is None or not record_id:
            return False
        try:
            await self.records.set_status(record_id, status, error)
        except RecordStoreError as exc:
            logger.warning("Could not set record %s status to %s: %s", record_id, status, exc)
            return False
        return True


class FailureHandler:
    """Single place where jobs become ``failed``.

    The job store is authoritative; propagation to the record store happens
    after the store write and its failure is only logged.
    """

    def __init__(self, store: JobStore, propagator: StatusPropagator):
        self.store = store
        self.propagator = propagator

    async def fail(
        self,
        job_id: str,
        reason: str,
        expected: Collection[JobStatus] | None = None,
        **fields,
    ) -> Job | None:
        """Fail a job; a no-op for absent or already-terminal jobs.

        Args:
            expected: When given, only fail if the job is currently in one of
                these states.
        """
        async with self.store.lock(job_id):
            job = await self.store.get_job(job_id)
            if job is not None and expected is not None and job.status not in expected:
                return None
            failed = await self.fail_locked(job_id, reason, **fields)
        if failed is not None:
            await self.propagate(failed)
        return failed

    async def fail_locked(self, job_id: str, reason: str, **fields) -> Job | None:
        """Record the failure; the caller must hold ``store.lock(job_id)``."""
        job = await self.store.get_job(job_id)
        if job is None:
            logger.warning("Cannot fail job %s: not found (%s)", job_id, reason)
            return None
        if job.status.is_terminal:
            logger.info("Job %s already %s, ignoring failure: %s", job_id, job.status, reason)
            return None

        failed = await self.store.update_locked(
            job_id,
            status=JobStatus.FAILED,
            error=reason or "unknown error",
            failed_at=self.store.now(),
            **fields,
        )
        if failed is not None:
            logger.error("Job %s failed: %s", job_id, failed.error)
        return failed

    async def propagate(self, job: Job) -> None:
        await self.propagator.set_status(job.external_ref, RecordStatus.FAILED, job.error)
