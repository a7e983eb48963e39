"""Merge scheduler: bounded-concurrency fetch -> merge -> publish pipeline.

``submit`` claims a ready job (``ready -> merging``) and downloads its
artifacts in the background; downloads are plain I/O and are not limited.
Downloaded jobs then wait in a FIFO queue served by a fixed pool of merge
workers. The merge step itself is guarded by a semaphore of the pool size,
so no more than ``workers`` merges ever run at once. Each job's work
directory is removed before its worker picks up the next job.
"""

import asyncio
import logging
import shutil
from pathlib import Path

from stitchflow.errors.exceptions import FetchError, MergeError
from stitchflow.integrations.adapters.base import ArtifactFetcher, Merger
from stitchflow.logging_config import bound_job_context
from stitchflow.models.enums import JobStatus, RecordStatus
from stitchflow.models.job import Job
from stitchflow.orchestration.failures import FailureHandler, StatusPropagator
from stitchflow.orchestration.publisher import Publisher
from stitchflow.orchestration.store import JobStore

logger = logging.getLogger(__name__)


def _remove_tree(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)


class MergeScheduler:
    def __init__(
        self,
        store: JobStore,
        fetcher: ArtifactFetcher,
        merger: Merger,
        publisher: Publisher,
        failures: FailureHandler,
        propagator: StatusPropagator,
        work_dir: Path,
        workers: int = 1,
    ):
        if workers < 1:
            raise ValueError("merge scheduler needs at least one worker")
        self.store = store
        self.fetcher = fetcher
        self.merger = merger
        self.publisher = publisher
        self.failures = failures
        self.propagator = propagator
        self.work_dir = Path(work_dir)
        self.workers = workers

        self._queue: asyncio.Queue[tuple[Job, list[Path], Path]] = asyncio.Queue()
        self._merge_slots = asyncio.Semaphore(workers)
        self._worker_tasks: list[asyncio.Task] = []
        self._fetch_tasks: set[asyncio.Task] = set()
        self.active_merges = 0
        self.peak_merges = 0

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return bool(self._worker_tasks)

    async def start(self) -> None:
        if self._worker_tasks:
            return
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self._worker_tasks = [
            asyncio.create_task(self._worker_loop(n), name=f"merge-worker-{n}")
            for n in range(self.workers)
        ]
        logger.info("Merge scheduler started (workers=%d, work_dir=%s)", self.workers, self.work_dir)

    async def stop(self) -> None:
        tasks = [*self._worker_tasks, *self._fetch_tasks]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._worker_tasks = []

        while not self._queue.empty():
            job, _, work_dir = self._queue.get_nowait()
            _remove_tree(work_dir)
            self._queue.task_done()
            logger.warning("Merge for job %s dropped at shutdown", job.job_id)
        logger.info("Merge scheduler stopped")

    def submit(self, job_id: str) -> None:
        """Queue a ready job for merging; returns immediately."""
        task = asyncio.create_task(self._prepare(job_id), name=f"fetch-{job_id}")
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_tasks.discard)

    async def join(self) -> None:
        """Wait until every submitted job has been fetched, merged and published."""
        while self._fetch_tasks:
            await asyncio.gather(*list(self._fetch_tasks), return_exceptions=True)
        await self._queue.join()

    # --- Stage 1: claim and fetch ---

    async def _prepare(self, job_id: str) -> None:
        with bound_job_context(job_id):
            job = await self.store.advance(job_id, JobStatus.MERGING)
            if job is None:
                return
            await self.propagator.set_status(job.external_ref, RecordStatus.STITCHING)

            work_dir = self.work_dir / job_id
            queued = False
            try:
                inputs = await self._fetch_all(job, work_dir)
                self._queue.put_nowait((job, inputs, work_dir))
                queued = True
                logger.info("Job %s fetched, queued for merge (depth=%d)", job_id, self.queue_depth)
            except FetchError as exc:
                await self.failures.fail(job_id, f"Artifact download failed: {exc}")
            except Exception as exc:
                logger.exception("Unexpected error fetching artifacts for job %s", job_id)
                await self.failures.fail(job_id, f"Artifact download failed: {exc}")
            finally:
                if not queued:
                    _remove_tree(work_dir)

    async def _fetch_all(self, job: Job, work_dir: Path) -> list[Path]:
        work_dir.mkdir(parents=True, exist_ok=True)
        results = await asyncio.gather(
            *(
                self.fetcher.fetch(ref, work_dir / f"input_{slot}.mp4")
                for slot, ref in enumerate(job.result_refs)
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    # --- Stage 2: merge and publish ---

    async def _worker_loop(self, n: int) -> None:
        while True:
            job, inputs, work_dir = await self._queue.get()
            try:
                with bound_job_context(job.job_id):
                    await self._merge_and_publish(job, inputs, work_dir)
            except Exception as exc:
                logger.exception("Merge worker %d failed on job %s", n, job.job_id)
                await self.failures.fail(job.job_id, f"Merge pipeline error: {exc}")
            finally:
                _remove_tree(work_dir)
                self._queue.task_done()

    async def _merge_and_publish(self, job: Job, inputs: list[Path], work_dir: Path) -> None:
        output = work_dir / "merged.mp4"
        try:
            async with self._merge_slots:
                self.active_merges += 1
                self.peak_merges = max(self.peak_merges, self.active_merges)
                try:
                    merged = await self.merger.merge(inputs, output)
                finally:
                    self.active_merges -= 1
        except MergeError as exc:
            await self.failures.fail(job.job_id, f"Merge failed: {exc}")
            return

        await self.publisher.publish(job, merged)
