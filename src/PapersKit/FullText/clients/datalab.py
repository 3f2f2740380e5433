"""DataLab Marker API binding: submit a PDF, poll until conversion finishes."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config.models import DatalabConfig, HttpConfig, PapersSettings
from ..errors import ExtractionFailed, RemoteApiError
from .http import SleepFn, request_with_retries

LOGGER = logging.getLogger(__name__)

__all__ = ["DatalabClient", "MarkerResult"]

SERVICE = "datalab"


@dataclass(frozen=True)
class MarkerResult:
    """Completed conversion: markdown plus the block-structure JSON."""

    markdown: str
    json_text: Optional[str] = None
    page_count: Optional[int] = None


class DatalabClient:
    def __init__(
        self,
        api_key: str,
        *,
        client: httpx.AsyncClient,
        cfg: Optional[DatalabConfig] = None,
        http_cfg: Optional[HttpConfig] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self._api_key = api_key
        self._client = client
        self._cfg = cfg or DatalabConfig()
        self._http_cfg = http_cfg or HttpConfig()
        self._sleep = sleep or asyncio.sleep
        self._base_url = self._cfg.base_url.rstrip("/")

    @classmethod
    def from_settings(
        cls, settings: PapersSettings, client: httpx.AsyncClient
    ) -> Optional["DatalabClient"]:
        if not settings.datalab.api_key:
            return None
        return cls(
            settings.datalab.api_key,
            client=client,
            cfg=settings.datalab,
            http_cfg=settings.http,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await request_with_retries(
            self._client,
            method,
            url,
            cfg=self._http_cfg,
            service=SERVICE,
            sleep=self._sleep,
            headers={"X-API-Key": self._api_key},
            **kwargs,
        )

    async def submit(self, pdf_bytes: bytes, filename: str, mode: str) -> str:
        """``POST /api/v1/marker``; returns the request id to poll."""
        response = await self._request(
            "POST",
            f"{self._base_url}/api/v1/marker",
            files={"file": (filename, pdf_bytes, "application/pdf")},
            data={"output_format": "markdown,json", "mode": mode},
        )
        payload = response.json()
        request_id = payload.get("request_id")
        if not request_id:
            raise RemoteApiError(
                payload.get("error") or "submission returned no request_id", service=SERVICE
            )
        LOGGER.info(f"Submitted {filename} to DataLab ({mode}), request {request_id}")
        return str(request_id)

    async def convert(self, pdf_bytes: bytes, filename: str, mode: str) -> MarkerResult:
        """Submit ``pdf_bytes`` and wait for the conversion result.

        Raises:
            ExtractionFailed: the service reported a failed conversion or never
                finished within ``max_polls`` status checks.
            RemoteApiError: a request failed after retries.
        """
        request_id = await self.submit(pdf_bytes, filename, mode)
        url = f"{self._base_url}/api/v1/marker/{request_id}"

        for _ in range(self._cfg.max_polls):
            await self._sleep(self._cfg.poll_interval_s)
            payload = (await self._request("GET", url)).json()
            status = payload.get("status")
            if status == "complete":
                raw_json = payload.get("json")
                return MarkerResult(
                    markdown=payload.get("markdown") or "",
                    json_text=json.dumps(raw_json) if raw_json is not None else None,
                    page_count=payload.get("page_count"),
                )
            if status == "failed":
                raise ExtractionFailed(
                    f"DataLab conversion failed: {payload.get('error') or 'unknown error'}",
                    source=SERVICE,
                )

        raise ExtractionFailed(
            f"DataLab conversion {request_id} did not finish after {self._cfg.max_polls} checks",
            source=SERVICE,
        )
