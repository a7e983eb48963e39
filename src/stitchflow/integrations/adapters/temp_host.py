"""Temporary public file hosts used to publish merged videos.

Airtable only accepts attachments by URL, so the merged file is first pushed
to an anonymous temporary host. Hosts are tried in order until one succeeds.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from stitchflow.errors.exceptions import PublishError
from stitchflow.integrations.adapters.base import ArtifactHost

logger = logging.getLogger(__name__)


def _url_0x0(response: httpx.Response) -> str:
    url = response.text.strip()
    if not url.startswith("http"):
        raise ValueError(f"unexpected response body: {url[:100]!r}")
    return url


def _url_tmpfiles(response: httpx.Response) -> str:
    data = response.json()
    if data.get("status") != "success":
        raise ValueError("tmpfiles.org upload failed")
    # Direct-download links live under /dl/
    return data["data"]["url"].replace("tmpfiles.org/", "tmpfiles.org/dl/", 1)


def _url_file_io(response: httpx.Response) -> str:
    data = response.json()
    if not data.get("success"):
        raise ValueError("file.io upload failed")
    return data["link"]


# name -> (upload endpoint, response parser)
HOSTS = {
    "0x0.st": ("https://0x0.st", _url_0x0),
    "tmpfiles.org": ("https://tmpfiles.org/api/v1/upload", _url_tmpfiles),
    "file.io": ("https://file.io", _url_file_io),
}


class TempFileHost(ArtifactHost):
    """Uploads to the first configured host that accepts the file."""

    def __init__(
        self,
        hosts: list[str] | None = None,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        names = hosts or list(HOSTS)
        unknown = [name for name in names if name not in HOSTS]
        if unknown:
            raise ValueError(f"Unknown temp hosts: {', '.join(unknown)}")
        self.hosts = names
        self.timeout = timeout
        self._transport = transport

    async def upload(self, path: Path) -> str:
        errors: dict[str, str] = {}
        for name in self.hosts:
            endpoint, parse = HOSTS[name]
            try:
                logger.info("Attempting upload of %s to %s", path.name, name)
                async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                    with path.open("rb") as fh:
                        response = await client.post(
                            endpoint,
                            files={"file": (path.name, fh, "video/mp4")},
                        )
                response.raise_for_status()
                url = parse(response)
            except (httpx.HTTPError, OSError, ValueError, KeyError) as exc:
                logger.warning("Upload to %s failed: %s", name, exc)
                errors[name] = str(exc)
                continue
            logger.info("Uploaded %s to %s: %s", path.name, name, url)
            return url

        raise PublishError("All temporary hosting services failed", details=errors)
