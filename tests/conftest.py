"""Shared test fixtures and in-process collaborator fakes."""

import asyncio
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from stitchflow.errors.exceptions import (
    FetchError,
    MergeError,
    PromptGenerationError,
    PublishError,
    RecordStoreError,
    SubmissionError,
)
from stitchflow.integrations.adapters.base import (
    ArtifactFetcher,
    ArtifactHost,
    Merger,
    PromptGenerator,
    PromptPair,
    RecordStore,
    RenderClient,
)
from stitchflow.orchestration.orchestrator import Orchestrator
from stitchflow.orchestration.store import JobStore, MemoryBackend


class FakeRenderClient(RenderClient):
    """Hands out sequential task ids; prompts listed in ``fail_prompts`` are rejected."""

    def __init__(self):
        self.submitted: list[tuple[str, str]] = []
        self.fail_prompts: set[str] = set()
        self._counter = 0

    async def submit(self, prompt, render_format, callback_url):
        await asyncio.sleep(0)
        if prompt in self.fail_prompts:
            raise SubmissionError(f"provider rejected {prompt!r}")
        self._counter += 1
        task_id = f"task_{self._counter}"
        self.submitted.append((task_id, prompt))
        return task_id

    async def query_task(self, task_id):
        return {"taskId": task_id, "state": "generating"}


class FakeFetcher(ArtifactFetcher):
    """Writes the artifact reference itself as the file content."""

    def __init__(self):
        self.fail_refs: set[str] = set()
        self.fetched: list[str] = []

    async def fetch(self, ref, dest):
        await asyncio.sleep(0)
        if ref in self.fail_refs:
            raise FetchError(f"Failed to download {ref}: 404")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(ref)
        self.fetched.append(ref)
        return dest


class FakeMerger(Merger):
    """Concatenates text inputs, tracking how many merges overlap."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.fail = False
        self.active = 0
        self.peak = 0
        self.calls: list[list[Path]] = []
        self.before_merge = None  # async hook called with the inputs

    async def merge(self, inputs, output):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            self.calls.append(list(inputs))
            if self.before_merge is not None:
                await self.before_merge(list(inputs))
            await asyncio.sleep(self.delay)
            if self.fail:
                raise MergeError("ffmpeg exited with code 1")
            output.write_text("|".join(p.read_text() for p in inputs))
            return output
        finally:
            self.active -= 1


class FakeHost(ArtifactHost):
    """Remembers uploaded content keyed by the returned URL."""

    def __init__(self):
        self.fail = False
        self.uploads: dict[str, str] = {}

    async def upload(self, path):
        if self.fail:
            raise PublishError("All temporary hosting services failed")
        url = f"https://files.test/{len(self.uploads) + 1}/{path.name}"
        self.uploads[url] = path.read_text()
        return url


class FakeRecordStore(RecordStore):
    def __init__(self, records: dict | None = None):
        self.records: dict[str, dict] = records or {}
        self.updates: list[tuple[str, dict]] = []
        self.fail_updates = False

    async def get_record(self, record_id):
        if record_id not in self.records:
            raise RecordStoreError(f"Airtable GET {record_id} failed: 404")
        return dict(self.records[record_id])

    async def update_fields(self, record_id, fields):
        if self.fail_updates:
            raise RecordStoreError(f"Airtable PATCH {record_id} failed: 503")
        self.updates.append((record_id, dict(fields)))
        self.records.setdefault(record_id, {}).update(fields)
        return self.records[record_id]

    async def attach_video(self, record_id, url):
        return await self.update_fields(record_id, {"Video": [{"url": url}]})

    def statuses(self, record_id: str) -> list[str]:
        return [f["Status"] for rid, f in self.updates if rid == record_id and "Status" in f]


class FakePromptGenerator(PromptGenerator):
    def __init__(self):
        self.fail = False

    async def generate(self, master_prompt, render_format):
        if self.fail:
            raise PromptGenerationError("Prompt model returned invalid JSON")
        return PromptPair(
            prompt1=f"{master_prompt} part one ({render_format})",
            prompt2=f"{master_prompt} part two ({render_format})",
            voiceover1="first line",
            voiceover2="second line",
        )


@pytest.fixture
def store():
    return JobStore(MemoryBackend(), ttl_seconds=3600)


@pytest.fixture
def render_client():
    return FakeRenderClient()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def merger():
    return FakeMerger()


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def records():
    return FakeRecordStore({"rec_1": {"Prompt 1": "sunrise", "Prompt 2": "sunset"}})


@pytest.fixture
def prompt_generator():
    return FakePromptGenerator()


@pytest.fixture
async def orchestrator(store, render_client, fetcher, merger, host, records, prompt_generator, tmp_path):
    """Started orchestrator over in-memory fakes."""
    orch = Orchestrator(
        store,
        render_client,
        fetcher,
        merger,
        host,
        callback_url="http://test/api/v1/callbacks/render",
        work_dir=tmp_path / "jobs",
        merge_workers=1,
        records=records,
        prompt_generator=prompt_generator,
    )
    await orch.start()
    yield orch
    await orch.stop()


@pytest.fixture
def app(orchestrator):
    """Create a test application instance wired to the fake orchestrator."""
    from stitchflow.main import create_app

    _app = create_app()
    _app.state.orchestrator = orchestrator
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
