"""Open-access PDF URLs from the work's locations, trusted domains only."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence
from urllib.parse import urlsplit

import httpx

from ..clients.http import SleepFn, is_pdf_response, request_with_retries
from ..config.models import HttpConfig
from ..errors import RemoteApiError
from ..types import DirectUrl, WorkRecord
from . import PdfHit

LOGGER = logging.getLogger(__name__)

__all__ = ["fetch_direct_pdf", "fetch_pdf", "is_allowed_url"]


def is_allowed_url(url: str, domains: Iterable[str]) -> bool:
    """True when the URL's host is one of ``domains`` or a subdomain of one."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return False
    host = parts.hostname.lower()
    return any(host == domain or host.endswith(f".{domain}") for domain in domains)


async def fetch_pdf(
    client: httpx.AsyncClient,
    url: str,
    *,
    http_cfg: HttpConfig,
    sleep: Optional[SleepFn] = None,
) -> Optional[bytes]:
    """Body of ``url`` when it answers 2xx with a PDF content type, else ``None``."""
    try:
        response = await request_with_retries(
            client,
            "GET",
            url,
            cfg=http_cfg,
            service="pdf",
            raise_for_status=False,
            sleep=sleep,
        )
    except RemoteApiError as exc:
        LOGGER.info(f"PDF fetch failed for {url}: {exc}")
        return None
    if not is_pdf_response(response):
        LOGGER.info(
            f"Not a PDF at {url} (HTTP {response.status_code}, "
            f"{response.headers.get('content-type', 'no content type')})"
        )
        return None
    return response.content


async def fetch_direct_pdf(
    client: httpx.AsyncClient,
    work: WorkRecord,
    *,
    domains: Sequence[str],
    http_cfg: HttpConfig,
    sleep: Optional[SleepFn] = None,
) -> Optional[PdfHit]:
    for url in work.pdf_urls:
        if not is_allowed_url(url, domains):
            LOGGER.debug(f"Skipping untrusted PDF host: {url}")
            continue
        data = await fetch_pdf(client, url, http_cfg=http_cfg, sleep=sleep)
        if data:
            return PdfHit(
                pdf_bytes=data,
                source=DirectUrl(url=url),
                cache_key=work.short_id,
                filename=f"{work.short_id}.pdf",
            )
    return None
