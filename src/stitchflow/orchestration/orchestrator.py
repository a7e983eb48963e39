"""Orchestrator facade wiring the job store, dispatcher, correlator and merge pipeline."""

import logging
from datetime import timedelta
from pathlib import Path

from stitchflow.config import Settings
from stitchflow.errors.exceptions import PromptGenerationError, RecordStoreError, ValidationError
from stitchflow.integrations.adapters.base import (
    ArtifactFetcher,
    ArtifactHost,
    Merger,
    PromptGenerator,
    PromptPair,
    RecordStore,
    RenderClient,
)
from stitchflow.integrations.adapters.airtable import read_prompts
from stitchflow.models.enums import JobStatus, RecordStatus, RenderFormat
from stitchflow.models.job import Job, RenderOutcome
from stitchflow.orchestration.correlator import CallbackCorrelator
from stitchflow.orchestration.dispatcher import RenderDispatcher
from stitchflow.orchestration.failures import FailureHandler, StatusPropagator
from stitchflow.orchestration.publisher import Publisher
from stitchflow.orchestration.scheduler import MergeScheduler
from stitchflow.orchestration.store import JobStore, MemoryBackend, RedisBackend

logger = logging.getLogger(__name__)

STALE_STATES = (JobStatus.DISPATCHED, JobStatus.AWAITING)


class Orchestrator:
    """Entry points used by the API layer and the background scheduler."""

    def __init__(
        self,
        store: JobStore,
        render_client: RenderClient,
        fetcher: ArtifactFetcher,
        merger: Merger,
        host: ArtifactHost,
        *,
        callback_url: str,
        work_dir: Path,
        merge_workers: int = 1,
        records: RecordStore | None = None,
        prompt_generator: PromptGenerator | None = None,
    ):
        self.store = store
        self.render_client = render_client
        self.records = records
        self.prompt_generator = prompt_generator

        self.propagator = StatusPropagator(records)
        self.failures = FailureHandler(store, self.propagator)
        self.publisher = Publisher(store, host, self.failures, self.propagator, records)
        self.scheduler = MergeScheduler(
            store,
            fetcher,
            merger,
            self.publisher,
            self.failures,
            self.propagator,
            work_dir=work_dir,
            workers=merge_workers,
        )
        self.dispatcher = RenderDispatcher(store, render_client, self.failures, callback_url)
        self.correlator = CallbackCorrelator(store, self.failures, self.scheduler)

    async def start(self) -> None:
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.store.close()

    # --- Core operations ---

    async def dispatch(
        self,
        prompt1: str,
        prompt2: str,
        external_ref: str | None = None,
        render_format: RenderFormat = RenderFormat.LANDSCAPE,
    ) -> str:
        return await self.dispatcher.dispatch(prompt1, prompt2, external_ref, render_format)

    async def on_task_result(self, task_id: str, outcome: RenderOutcome) -> Job | None:
        return await self.correlator.on_task_result(task_id, outcome)

    async def get_job(self, job_id: str) -> Job | None:
        return await self.store.get_job(job_id)

    # --- Record-driven flows ---

    def _require_records(self) -> RecordStore:
        if self.records is None:
            raise ValidationError("Record store is not configured")
        return self.records

    async def dispatch_record(self, record_id: str, render_format: RenderFormat) -> str:
        """Dispatch using the prompts stored on a record."""
        records = self._require_records()
        try:
            fields = await records.get_record(record_id)
            prompts = read_prompts(fields)
            if prompts is None:
                raise ValidationError('Record must have "Prompt 1" and "Prompt 2" fields (or "Prompt1" and "Prompt2")')
        except (RecordStoreError, ValidationError) as exc:
            await self.propagator.set_status(record_id, RecordStatus.FAILED, exc.message)
            raise
        return await self.dispatch(prompts[0], prompts[1], record_id, render_format)

    async def generate_prompts(self, master_prompt: str, render_format: RenderFormat) -> PromptPair:
        if not master_prompt or not master_prompt.strip():
            raise ValidationError("master_prompt is required")
        if self.prompt_generator is None:
            raise PromptGenerationError("Prompt generation is not configured")
        return await self.prompt_generator.generate(master_prompt, render_format)

    async def dispatch_master_prompt(
        self,
        record_id: str,
        master_prompt: str,
        render_format: RenderFormat,
    ) -> tuple[str, PromptPair]:
        """Generate prompts from a master prompt, store them on the record, dispatch."""
        records = self._require_records()
        try:
            pair = await self.generate_prompts(master_prompt, render_format)
            await records.update_fields(
                record_id,
                {
                    "Prompt 1": pair.prompt1,
                    "Prompt 2": pair.prompt2,
                    "Voiceover 1": pair.voiceover1,
                    "Voiceover 2": pair.voiceover2,
                    "Status": RecordStatus.PROCESSING.value,
                },
            )
        except (PromptGenerationError, RecordStoreError, ValidationError) as exc:
            await self.propagator.set_status(record_id, RecordStatus.FAILED, exc.message)
            raise
        job_id = await self.dispatch(pair.prompt1, pair.prompt2, record_id, render_format)
        return job_id, pair

    # --- Maintenance ---

    async def fail_stale_jobs(self, max_age_seconds: int) -> int:
        """Fail jobs still waiting on render callbacks after ``max_age_seconds``."""
        cutoff = self.store.now() - timedelta(seconds=max_age_seconds)
        failed = 0
        for job_id in await self.store.list_job_ids():
            job = await self.store.get_job(job_id)
            if job is None or job.status not in STALE_STATES or job.created_at > cutoff:
                continue
            if await self.failures.fail(job_id, "render callback timeout", expected=STALE_STATES):
                failed += 1
        if failed:
            logger.warning("Failed %d jobs stuck waiting for render callbacks", failed)
        return failed


def build_job_store(settings: Settings) -> JobStore:
    """Create the job store for the configured backend."""
    if settings.store_backend == "redis":
        try:
            import redis.asyncio as aioredis

            backend = RedisBackend(aioredis.from_url(settings.redis_url, decode_responses=True))
        except Exception as exc:
            logger.warning("Redis not available, job tracking disabled: %s", exc)
            return JobStore(None, ttl_seconds=settings.job_ttl_seconds)
        return JobStore(backend, ttl_seconds=settings.job_ttl_seconds)
    if settings.store_backend == "memory":
        return JobStore(MemoryBackend(), ttl_seconds=settings.job_ttl_seconds)
    raise ValueError(f"Unknown store backend: {settings.store_backend}")


def build_orchestrator(settings: Settings) -> Orchestrator:
    """Wire the production adapters from settings."""
    from stitchflow.integrations.adapters.airtable import AirtableRecordStore
    from stitchflow.integrations.adapters.downloader import HttpArtifactFetcher
    from stitchflow.integrations.adapters.ffmpeg import FfmpegMerger
    from stitchflow.integrations.adapters.sora import SoraRenderClient
    from stitchflow.integrations.adapters.temp_host import TempFileHost
    from stitchflow.services.prompt_generation import OpenAIPromptGenerator

    records = None
    if settings.airtable_configured:
        records = AirtableRecordStore(
            api_key=settings.airtable_api_key,
            base_id=settings.airtable_base_id,
            table_name=settings.airtable_table_name,
            api_url=settings.airtable_api_url,
            video_field=settings.airtable_video_field,
        )
    else:
        logger.warning("Airtable not configured, record status will not be propagated")

    prompt_generator = None
    if settings.openai_api_key:
        prompt_generator = OpenAIPromptGenerator(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
        )

    return Orchestrator(
        store=build_job_store(settings),
        render_client=SoraRenderClient(
            base_url=settings.render_api_base_url,
            api_key=settings.render_api_key,
            model=settings.render_model,
            n_frames=settings.render_n_frames,
            size=settings.render_size,
            remove_watermark=settings.render_remove_watermark,
            timeout=settings.render_timeout_seconds,
        ),
        fetcher=HttpArtifactFetcher(timeout=settings.fetch_timeout_seconds),
        merger=FfmpegMerger(
            ffmpeg_path=settings.ffmpeg_path,
            timeout=settings.merge_timeout_seconds,
            reencode=settings.merge_reencode,
        ),
        host=TempFileHost(hosts=settings.publish_hosts, timeout=settings.publish_timeout_seconds),
        callback_url=settings.render_callback_url,
        work_dir=Path(settings.temp_dir) / "jobs",
        merge_workers=settings.merge_workers,
        records=records,
        prompt_generator=prompt_generator,
    )
