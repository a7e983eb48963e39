"""Job, slot and task-mapping models."""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from stitchflow.models.enums import JobStatus, RenderFormat, SlotState

SLOT_COUNT = 2


class Slot(BaseModel):
    """Result holder for one render task of a job."""

    task_id: str | None = None
    state: SlotState = SlotState.EMPTY
    artifact_ref: str | None = None
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.state == SlotState.EMPTY

    @property
    def succeeded(self) -> bool:
        return self.state == SlotState.SUCCEEDED


def _empty_slots() -> list[Slot]:
    return [Slot() for _ in range(SLOT_COUNT)]


class Job(BaseModel):
    """Unit of orchestration: two render tasks correlated into one merged output."""

    job_id: str = Field(..., pattern=r"^job_[A-Za-z0-9_-]+$")
    status: JobStatus = JobStatus.PENDING
    slots: list[Slot] = Field(default_factory=_empty_slots)
    external_ref: str | None = None
    render_format: RenderFormat = RenderFormat.LANDSCAPE
    prompts: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    error: str | None = None
    result_url: str | None = None

    @property
    def result_refs(self) -> list[str | None]:
        """Artifact references in slot order."""
        return [slot.artifact_ref for slot in self.slots]


class TaskMapping(BaseModel):
    """Correlates an external render task id back to its job and slot."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    job_id: str
    slot: int = Field(..., ge=0, lt=SLOT_COUNT)


@dataclass(frozen=True)
class RenderSuccess:
    """Render task finished and produced an artifact."""

    artifact_ref: str


@dataclass(frozen=True)
class RenderFailure:
    """Render task finished without an artifact."""

    reason: str


RenderOutcome = RenderSuccess | RenderFailure


class JobStatusModel(BaseModel):
    """Public view of a job returned by the status endpoint."""

    job_id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    external_ref: str | None = None
    slots: list[Slot] | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    error: str | None = None
    result_refs: list[str | None] | None = None
    result_url: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusModel":
        data = {
            "job_id": job.job_id,
            "status": job.status,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
            "external_ref": job.external_ref,
        }
        if job.status == JobStatus.COMPLETED:
            data.update(
                completed_at=job.completed_at,
                result_refs=job.result_refs,
                result_url=job.result_url,
            )
        elif job.status == JobStatus.FAILED:
            data.update(failed_at=job.failed_at, error=job.error)
        else:
            data["slots"] = job.slots
        return cls(**data)
