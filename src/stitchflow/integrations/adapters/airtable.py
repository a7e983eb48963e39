"""Airtable REST adapter for the request/response record table."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from stitchflow.errors.exceptions import RecordStoreError
from stitchflow.integrations.adapters.base import RecordStore

logger = logging.getLogger(__name__)


class AirtableRecordStore(RecordStore):
    """Reads and patches records of one Airtable table.

    Attachments are written by URL; Airtable downloads the file itself
    shortly after the PATCH, so the URL must stay reachable for a while.
    """

    def __init__(
        self,
        api_key: str,
        base_id: str,
        table_name: str,
        api_url: str = "https://api.airtable.com/v0",
        video_field: str = "Video",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_id = base_id
        self.table_name = table_name
        self.api_url = api_url.rstrip("/")
        self.video_field = video_field
        self.timeout = timeout
        self._transport = transport

    def _record_url(self, record_id: str) -> str:
        return f"{self.api_url}/{self.base_id}/{quote(self.table_name, safe='')}/{record_id}"

    async def _request(self, method: str, record_id: str, json: dict | None = None) -> dict:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    self._record_url(record_id),
                    json=json,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise RecordStoreError(f"Airtable {method} {record_id} failed: {exc}") from exc

    async def get_record(self, record_id: str) -> dict:
        logger.info("Fetching Airtable record %s", record_id)
        data = await self._request("GET", record_id)
        return data.get("fields", {})

    async def update_fields(self, record_id: str, fields: dict) -> dict:
        data = await self._request("PATCH", record_id, json={"fields": fields})
        logger.info("Airtable record %s updated (%s)", record_id, ", ".join(fields))
        return data.get("fields", {})

    async def attach_video(self, record_id: str, url: str) -> dict:
        return await self.update_fields(record_id, {self.video_field: [{"url": url}]})


def read_prompts(fields: dict) -> tuple[str, str] | None:
    """Pull the two render prompts from a record, accepting both column spellings."""
    prompt1 = fields.get("Prompt 1") or fields.get("Prompt1")
    prompt2 = fields.get("Prompt 2") or fields.get("Prompt2")
    if not prompt1 or not prompt2:
        return None
    return prompt1, prompt2
