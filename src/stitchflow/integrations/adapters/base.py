"""Abstract base classes for the external collaborators of the orchestrator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from stitchflow.models.enums import RecordStatus, RenderFormat


class RenderClient(ABC):
    """Submits text-to-video render tasks to the render provider."""

    @abstractmethod
    async def submit(self, prompt: str, render_format: RenderFormat, callback_url: str) -> str:
        """Submit one render task.

        Returns:
            The provider's opaque task id.

        Raises:
            SubmissionError: The provider rejected the task or was unreachable.
        """
        ...

    async def query_task(self, task_id: str) -> dict:
        """Fetch the provider's current view of a task (manual checks)."""
        raise NotImplementedError(f"{type(self).__name__} does not support task queries")


class ArtifactFetcher(ABC):
    """Downloads a rendered artifact to local storage."""

    @abstractmethod
    async def fetch(self, ref: str, dest: Path) -> Path:
        """Download ``ref`` to ``dest``; raises FetchError and leaves no partial file."""
        ...


class Merger(ABC):
    """Combines local artifacts, in order, into one output file."""

    @abstractmethod
    async def merge(self, inputs: Sequence[Path], output: Path) -> Path:
        """Merge ``inputs`` into ``output``.

        Must not modify the inputs and must leave no partial output on failure.

        Raises:
            MergeError: Inputs are incompatible or the merge process failed.
        """
        ...


class ArtifactHost(ABC):
    """Publishes a local file at a durable, externally fetchable URL."""

    @abstractmethod
    async def upload(self, path: Path) -> str:
        """Upload ``path`` and return its public URL; raises PublishError."""
        ...


class RecordStore(ABC):
    """Tabular record store holding the inputs and outputs of each request."""

    @abstractmethod
    async def get_record(self, record_id: str) -> dict:
        """Return the record's fields; raises RecordStoreError."""
        ...

    @abstractmethod
    async def update_fields(self, record_id: str, fields: dict) -> dict:
        """Patch the record's fields; raises RecordStoreError."""
        ...

    async def attach_video(self, record_id: str, url: str) -> dict:
        """Attach a video URL to the record's attachment field."""
        raise NotImplementedError(f"{type(self).__name__} does not support attachments")

    async def set_status(self, record_id: str, status: RecordStatus, error: str | None = None) -> None:
        fields: dict = {"Status": status.value}
        if error:
            fields["Error"] = error
        await self.update_fields(record_id, fields)


@dataclass(frozen=True)
class PromptPair:
    """Two render prompts with the voiceover lines spoken in each."""

    prompt1: str
    prompt2: str
    voiceover1: str = ""
    voiceover2: str = ""

    @property
    def prompts(self) -> list[str]:
        return [self.prompt1, self.prompt2]


class PromptGenerator(ABC):
    """Turns a master prompt (theme) into the two render prompts."""

    @abstractmethod
    async def generate(self, master_prompt: str, render_format: RenderFormat) -> PromptPair:
        """Raises PromptGenerationError."""
        ...
