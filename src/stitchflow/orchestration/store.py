"""TTL-bounded job store with a task-id secondary index.

Two namespaces share one retention window: job records keyed by job id and
task mappings keyed by the render provider's task id. Records are stored as
JSON so the in-memory and Redis backends behave identically.

Backend outages never propagate to callers. The store switches into an
explicit *degraded* mode (``JobStore.degraded``), logs a warning, and treats
reads as misses and writes as dropped until the backend answers again.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from stitchflow.errors.exceptions import StoreUnavailable
from stitchflow.models.enums import JobStatus, RenderFormat
from stitchflow.models.job import Job, TaskMapping
from stitchflow.orchestration.state import IllegalTransition, can_transition, check_transition

logger = logging.getLogger(__name__)

_KEY_PREFIX = "stitchflow"
_JOB_NS = f"{_KEY_PREFIX}:job:"
_TASK_NS = f"{_KEY_PREFIX}:task:"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


# --- Backends ---


class StoreBackend(ABC):
    """Key-value storage with per-key expiry."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]: ...

    @abstractmethod
    async def ping(self) -> None: ...

    async def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        return 0

    async def close(self) -> None:
        return None


class MemoryBackend(StoreBackend):
    """In-process backend with expiry against a monotonic clock.

    Expired keys are dropped when read, on every ``purge_interval`` writes and
    by ``purge_expired`` (called from the maintenance sweep).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, purge_interval: int = 256):
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self._purge_interval = purge_interval
        self._writes = 0

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)
        self._writes += 1
        if self._writes % self._purge_interval == 0:
            self._drop_expired()

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str) -> list[str]:
        self._drop_expired()
        return [k for k in self._data if k.startswith(prefix)]

    async def ping(self) -> None:
        return None

    async def purge_expired(self) -> int:
        return self._drop_expired()

    def _drop_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (_, exp) in self._data.items() if now >= exp]
        for key in expired:
            del self._data[key]
        return len(expired)


class RedisBackend(StoreBackend):
    """Backend over a ``redis.asyncio`` client (created with ``decode_responses=True``)."""

    def __init__(self, redis):
        self._redis = redis

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._translate_errors():
            await self._redis.set(key, value, ex=ttl_seconds)

    async def get(self, key: str) -> str | None:
        async with self._translate_errors():
            return await self._redis.get(key)

    async def delete(self, key: str) -> None:
        async with self._translate_errors():
            await self._redis.delete(key)

    async def keys(self, prefix: str) -> list[str]:
        async with self._translate_errors():
            return [key async for key in self._redis.scan_iter(match=f"{prefix}*")]

    async def ping(self) -> None:
        async with self._translate_errors():
            await self._redis.ping()

    async def close(self) -> None:
        await self._redis.aclose()

    @asynccontextmanager
    async def _translate_errors(self) -> AsyncIterator[None]:
        from redis.exceptions import RedisError

        try:
            yield
        except (RedisError, OSError) as exc:
            raise StoreUnavailable(f"Redis error: {exc}") from exc


# --- Per-job locking ---


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# --- Store facade ---


class JobStore:
    """Job records plus task mappings, all expiring after ``ttl_seconds``.

    Job TTL is refreshed on every write and never on read. Read-modify-write
    sequences must run inside ``lock(job_id)``; the lock is held only around
    store calls, never across network I/O.
    """

    def __init__(
        self,
        backend: StoreBackend | None,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._backend = backend
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._locks = KeyedLock()
        self.degraded = backend is None
        self.last_error: str | None = "no job store configured" if backend is None else None
        if backend is None:
            logger.warning("Job store not configured - running without job tracking")

    def now(self) -> datetime:
        return self._clock()

    def lock(self, job_id: str):
        """Async context manager serializing read-modify-write on one job."""
        return self._locks.hold(job_id)

    # --- Jobs ---

    async def create_job(
        self,
        prompts: list[str],
        external_ref: str | None = None,
        render_format: RenderFormat = RenderFormat.LANDSCAPE,
    ) -> Job:
        """Create a pending job. In degraded mode the job is returned untracked."""
        now = self.now()
        job = Job(
            job_id=new_job_id(),
            status=JobStatus.PENDING,
            external_ref=external_ref,
            render_format=render_format,
            prompts=list(prompts),
            created_at=now,
            updated_at=now,
        )
        await self._write_job(job, "create_job")
        logger.info("Job %s created (external_ref=%s)", job.job_id, external_ref)
        return job

    async def get_job(self, job_id: str) -> Job | None:
        raw = await self._guard("get_job", lambda b: b.get(_JOB_NS + job_id))
        if raw is None:
            return None
        return Job.model_validate_json(raw)

    async def update_job(self, job_id: str, **fields) -> Job | None:
        """Merge ``fields`` into the job under its lock and refresh its TTL.

        Returns None when the job is absent, the store is degraded, or the
        update carries an illegal status change (which is logged and dropped).
        """
        async with self.lock(job_id):
            return await self.update_locked(job_id, **fields)

    async def update_locked(self, job_id: str, **fields) -> Job | None:
        """Same as ``update_job``; the caller must hold ``lock(job_id)``."""
        job = await self.get_job(job_id)
        if job is None:
            logger.warning("Job %s not found for update", job_id)
            return None

        target = fields.get("status")
        if target is not None and target != job.status:
            try:
                check_transition(job.status, target)
            except IllegalTransition as exc:
                logger.warning("Rejected update for job %s: %s", job_id, exc)
                return None

        updated = Job.model_validate({**job.model_dump(), **fields, "updated_at": self.now()})
        if not await self._write_job(updated, "update_job"):
            return None
        return updated

    async def advance(self, job_id: str, target: JobStatus, **fields) -> Job | None:
        """Locked transition to ``target``; None if the job is gone or not eligible."""
        async with self.lock(job_id):
            job = await self.get_job(job_id)
            if job is None:
                return None
            if not can_transition(job.status, target):
                logger.info("Job %s is %s, not advancing to %s", job_id, job.status, target)
                return None
            return await self.update_locked(job_id, status=target, **fields)

    async def list_job_ids(self) -> list[str]:
        keys = await self._guard("list_job_ids", lambda b: b.keys(_JOB_NS), default=[])
        return [key[len(_JOB_NS):] for key in keys]

    # --- Task mappings ---

    async def map_task(self, task_id: str, job_id: str, slot: int) -> None:
        mapping = TaskMapping(task_id=task_id, job_id=job_id, slot=slot)
        await self._guard(
            "map_task",
            lambda b: b.set(_TASK_NS + task_id, mapping.model_dump_json(), self.ttl_seconds),
        )
        logger.info("Task %s mapped to job %s slot %d", task_id, job_id, slot)

    async def resolve_task(self, task_id: str) -> TaskMapping | None:
        raw = await self._guard("resolve_task", lambda b: b.get(_TASK_NS + task_id))
        if raw is None:
            return None
        return TaskMapping.model_validate_json(raw)

    async def release_task(self, task_id: str) -> None:
        """Delete a consumed mapping so repeated callbacks resolve to nothing."""
        await self._guard("release_task", lambda b: b.delete(_TASK_NS + task_id))

    # --- Retention ---

    async def purge_expired(self) -> int:
        """Evict records past their retention window (backends without native expiry)."""
        removed = await self._guard("purge_expired", lambda b: b.purge_expired(), default=0)
        if removed:
            logger.info("Evicted %d expired job store entries", removed)
        return removed

    # --- Health ---

    async def ping(self) -> bool:
        if self._backend is None:
            return False
        await self._guard("ping", lambda b: b.ping())
        return not self.degraded

    async def close(self) -> None:
        if self._backend is not None:
            await self._backend.close()

    # --- Internals ---

    async def _write_job(self, job: Job, op: str) -> bool:
        written = await self._guard(
            op,
            lambda b: b.set(_JOB_NS + job.job_id, job.model_dump_json(), self.ttl_seconds),
            default=False,
            success=True,
        )
        return bool(written)

    async def _guard(self, op: str, call, default=None, success=None):
        """Run a backend call, switching to degraded mode on StoreUnavailable."""
        if self._backend is None:
            return default
        try:
            result = await call(self._backend)
        except StoreUnavailable as exc:
            if not self.degraded:
                logger.warning("Job store unavailable during %s, degrading to untracked mode: %s", op, exc)
            else:
                logger.warning("Job store still unavailable (%s): %s", op, exc)
            self.degraded = True
            self.last_error = str(exc)
            return default
        if self.degraded:
            logger.info("Job store reachable again, leaving degraded mode")
            self.degraded = False
            self.last_error = None
        return result if success is None else success
