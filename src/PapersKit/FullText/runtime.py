"""Wiring of store, clients and pipeline from ``PapersSettings``.

Both entry points (``cli`` and ``mcp_server``) open the same bundle of
services for the duration of one command or one server session.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from .acquisition import AcquisitionPipeline
from .clients.datalab import DatalabClient
from .clients.http import build_async_client
from .clients.openalex import OpenAlexClient
from .clients.zotero import ZoteroClient
from .config.models import PapersSettings
from .extraction import TextExtractor
from .fallback.coordinator import InteractiveFallbackCoordinator
from .store import LocalExtractionStore, default_cache_root
from .sync import SyncExecutor

LOGGER = logging.getLogger(__name__)

__all__ = ["Services", "open_services"]


@dataclass
class Services:
    settings: PapersSettings
    http_client: httpx.AsyncClient
    store: LocalExtractionStore
    pipeline: AcquisitionPipeline
    coordinator: InteractiveFallbackCoordinator
    zotero: Optional[ZoteroClient] = None

    def sync_executor(self) -> Optional[SyncExecutor]:
        if self.zotero is None:
            return None
        return SyncExecutor(self.store, self.zotero, codec=self.pipeline.codec)


@asynccontextmanager
async def open_services(
    settings: PapersSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[Services]:
    """Build every service over one shared HTTP client and close it afterwards."""
    client = build_async_client(settings.http, transport=transport, mailto=settings.openalex.mailto)
    try:
        store = LocalExtractionStore(default_cache_root(settings.cache_root))
        zotero = ZoteroClient.from_settings(settings, client)
        datalab = DatalabClient.from_settings(settings, client)
        pipeline = AcquisitionPipeline(
            store=store,
            metadata=OpenAlexClient.from_settings(settings, client),
            http_client=client,
            library=zotero,
            extractor=TextExtractor(datalab),
            settings=settings,
        )
        coordinator = InteractiveFallbackCoordinator(pipeline, polling=settings.polling)
        LOGGER.debug(
            f"Services ready: cache={store.cache_root} zotero={'yes' if zotero else 'no'} "
            f"datalab={'yes' if datalab else 'no'}"
        )
        yield Services(
            settings=settings,
            http_client=client,
            store=store,
            pipeline=pipeline,
            coordinator=coordinator,
            zotero=zotero,
        )
    finally:
        await client.aclose()
