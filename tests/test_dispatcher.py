"""Tests for render dispatch."""

import pytest

from stitchflow.errors.exceptions import SubmissionError, ValidationError
from stitchflow.models.enums import JobStatus, RecordStatus, RenderFormat
from stitchflow.orchestration.store import JobStore


@pytest.mark.asyncio
async def test_dispatch_maps_both_tasks(orchestrator, store, render_client):
    job_id = await orchestrator.dispatch("sunrise", "sunset", "rec_1", RenderFormat.SQUARE)

    job = await store.get_job(job_id)
    assert job.status == JobStatus.AWAITING
    assert job.prompts == ["sunrise", "sunset"]
    assert job.render_format == RenderFormat.SQUARE

    by_prompt = {prompt: task_id for task_id, prompt in render_client.submitted}
    assert [slot.task_id for slot in job.slots] == [by_prompt["sunrise"], by_prompt["sunset"]]
    for index, slot in enumerate(job.slots):
        mapping = await store.resolve_task(slot.task_id)
        assert mapping.job_id == job_id
        assert mapping.slot == index


@pytest.mark.asyncio
@pytest.mark.parametrize("prompts", [("", "b"), ("a", "   ")])
async def test_dispatch_requires_both_prompts(orchestrator, store, render_client, prompts):
    with pytest.raises(ValidationError):
        await orchestrator.dispatch(*prompts)
    assert render_client.submitted == []
    assert await store.list_job_ids() == []


@pytest.mark.asyncio
async def test_submission_failure_fails_job(orchestrator, store, render_client, records):
    render_client.fail_prompts.add("sunset")

    with pytest.raises(SubmissionError) as exc_info:
        await orchestrator.dispatch("sunrise", "sunset", "rec_1")

    job_id = exc_info.value.details["job_id"]
    job = await store.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert "render 2 submission failed" in job.error
    assert job.failed_at is not None
    assert records.statuses("rec_1") == [RecordStatus.FAILED]


@pytest.mark.asyncio
async def test_submission_failure_in_degraded_mode_still_marks_record(
    render_client, fetcher, merger, host, records, tmp_path
):
    from stitchflow.orchestration.orchestrator import Orchestrator

    orch = Orchestrator(
        JobStore(None),
        render_client,
        fetcher,
        merger,
        host,
        callback_url="http://test/cb",
        work_dir=tmp_path,
        records=records,
    )
    render_client.fail_prompts.add("sunrise")

    with pytest.raises(SubmissionError):
        await orch.dispatch("sunrise", "sunset", "rec_1")
    assert records.statuses("rec_1") == [RecordStatus.FAILED]


@pytest.mark.asyncio
async def test_degraded_dispatch_still_submits(render_client, fetcher, merger, host, tmp_path):
    from stitchflow.orchestration.orchestrator import Orchestrator

    orch = Orchestrator(
        JobStore(None),
        render_client,
        fetcher,
        merger,
        host,
        callback_url="http://test/cb",
        work_dir=tmp_path,
    )
    job_id = await orch.dispatch("sunrise", "sunset")
    assert job_id.startswith("job_")
    assert len(render_client.submitted) == 2
    assert await orch.get_job(job_id) is None
