"""HTTP artifact fetcher streaming rendered clips to disk."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from stitchflow.errors.exceptions import FetchError
from stitchflow.integrations.adapters.base import ArtifactFetcher

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


class HttpArtifactFetcher(ArtifactFetcher):
    """Downloads artifact URLs with a streaming GET."""

    def __init__(self, timeout: float = 120.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, ref: str, dest: Path) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(dest.name + ".part")
        logger.info("Downloading artifact %s -> %s", ref, dest)
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.timeout,
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", ref) as response:
                    response.raise_for_status()
                    with partial.open("wb") as fh:
                        async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                            fh.write(chunk)
            partial.replace(dest)
        except (httpx.HTTPError, OSError) as exc:
            raise FetchError(f"Failed to download {ref}: {exc}") from exc
        finally:
            partial.unlink(missing_ok=True)

        logger.info("Artifact downloaded (%d bytes): %s", dest.stat().st_size, dest)
        return dest
