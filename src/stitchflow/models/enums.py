"""String enums for job lifecycle and collaborator vocabularies."""

from enum import StrEnum


class JobStatus(StrEnum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    AWAITING = "awaiting"
    READY = "ready"
    MERGING = "merging"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class SlotState(StrEnum):
    EMPTY = "empty"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RenderFormat(StrEnum):
    """Aspect ratio requested from the render provider."""

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    SQUARE = "square"


class RecordStatus(StrEnum):
    """Values written to the record store's Status field."""

    PROCESSING = "Processing"
    STITCHING = "Stitching"
    COMPLETED = "Completed"
    FAILED = "Failed"
