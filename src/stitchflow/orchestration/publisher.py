"""Publisher: pushes a merged artifact out and completes the job."""

import logging
from pathlib import Path

from stitchflow.errors.exceptions import PublishError, RecordStoreError
from stitchflow.integrations.adapters.base import ArtifactHost, RecordStore
from stitchflow.models.enums import JobStatus, RecordStatus
from stitchflow.models.job import Job
from stitchflow.orchestration.failures import FailureHandler, StatusPropagator
from stitchflow.orchestration.store import JobStore

logger = logging.getLogger(__name__)


class Publisher:
    def __init__(
        self,
        store: JobStore,
        host: ArtifactHost,
        failures: FailureHandler,
        propagator: StatusPropagator,
        records: RecordStore | None = None,
    ):
        self.store = store
        self.host = host
        self.failures = failures
        self.propagator = propagator
        self.records = records

    async def publish(self, job: Job, path: Path) -> str | None:
        """Upload ``path``, attach it to the job's record and complete the job.

        The local file is deleted whatever happens. Returns the public URL,
        or None if the job could not be published.
        """
        try:
            if await self.store.advance(job.job_id, JobStatus.PUBLISHING) is None:
                logger.warning("Job %s left the merge stage, dropping merged output", job.job_id)
                return None

            url = await self.host.upload(path)
            if job.external_ref and self.records is not None:
                try:
                    await self.records.attach_video(job.external_ref, url)
                except RecordStoreError as exc:
                    raise PublishError(f"attaching video to record failed: {exc}") from exc

            completed = await self.store.advance(
                job.job_id,
                JobStatus.COMPLETED,
                completed_at=self.store.now(),
                result_url=url,
            )
            if completed is None:
                logger.warning("Job %s published to %s but could not be marked completed", job.job_id, url)
                return url

            await self.propagator.set_status(job.external_ref, RecordStatus.COMPLETED)
            logger.info("Job %s completed: %s", job.job_id, url)
            return url
        except PublishError as exc:
            await self.failures.fail(job.job_id, f"publish failed: {exc}")
            return None
        finally:
            path.unlink(missing_ok=True)
