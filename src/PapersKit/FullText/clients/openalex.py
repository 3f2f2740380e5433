"""OpenAlex binding: work metadata through ``pyalex`` plus the content API PDF.

``pyalex`` is synchronous, so lookups run in a worker thread. The content
API is fetched over the shared ``httpx.AsyncClient``; the API key travels as
a query parameter and is never part of a logged URL.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
import pyalex
import requests
from pyalex import Works

from ..config.models import HttpConfig, PapersSettings
from ..errors import RemoteApiError
from ..types import WorkRecord
from .http import SleepFn, is_pdf_response, request_with_retries

LOGGER = logging.getLogger(__name__)

__all__ = ["OpenAlexClient", "normalize_work_id"]

SERVICE = "openalex"


def normalize_work_id(work_id: str) -> str:
    """Accept ``W…`` IDs, OpenAlex URLs, DOI URLs, ``doi:`` forms and bare DOIs."""
    value = work_id.strip()
    lowered = value.lower()
    if lowered.startswith("doi:"):
        return f"https://doi.org/{value[4:].strip()}"
    if lowered.startswith("10.") and "/" in value:
        return f"https://doi.org/{value}"
    return value


class OpenAlexClient:
    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        mailto: Optional[str] = None,
        content_base_url: str = "https://content.openalex.org",
        http_cfg: Optional[HttpConfig] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._content_base_url = content_base_url.rstrip("/")
        self._http_cfg = http_cfg or HttpConfig()
        self._sleep = sleep
        if mailto:
            pyalex.config.email = mailto
        if api_key:
            pyalex.config.api_key = api_key

    @classmethod
    def from_settings(cls, settings: PapersSettings, client: httpx.AsyncClient) -> "OpenAlexClient":
        return cls(
            client=client,
            api_key=settings.openalex.api_key,
            mailto=settings.openalex.mailto,
            content_base_url=settings.openalex.content_base_url,
            http_cfg=settings.http,
        )

    @property
    def has_content_access(self) -> bool:
        return bool(self._api_key)

    async def get_work(self, work_id: str) -> WorkRecord:
        """Fetch one work record by OpenAlex ID or DOI."""
        lookup = normalize_work_id(work_id)
        try:
            payload: Dict[str, Any] = await asyncio.to_thread(Works().__getitem__, lookup)
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise RemoteApiError(
                f"work {work_id} lookup failed", status=status, service=SERVICE
            ) from exc
        except requests.RequestException as exc:
            raise RemoteApiError(str(exc), service=SERVICE) from exc
        return WorkRecord.from_openalex(payload)

    async def download_content_pdf(self, work: WorkRecord) -> Optional[bytes]:
        """PDF bytes from the content API, or ``None`` when unavailable."""
        if not (work.has_content_pdf and self._api_key):
            return None
        url = f"{self._content_base_url}/works/{work.short_id}.pdf"
        response = await request_with_retries(
            self._client,
            "GET",
            url,
            cfg=self._http_cfg,
            service=SERVICE,
            raise_for_status=False,
            sleep=self._sleep,
            params={"api_key": self._api_key},
        )
        if not is_pdf_response(response):
            LOGGER.info(f"Content API has no PDF for {work.short_id} (HTTP {response.status_code})")
            return None
        return response.content
