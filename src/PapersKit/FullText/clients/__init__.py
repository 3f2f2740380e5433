"""Collaborator bindings: Zotero Web API, OpenAlex, DataLab Marker.

The protocols below are the exact call shapes the store, sync engine and
acquisition pipeline depend on. The concrete clients in this package satisfy
them over ``httpx``; tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from ..types import WorkRecord
from .datalab import DatalabClient, MarkerResult
from .http import build_async_client, is_pdf_response, request_with_retries
from .openalex import OpenAlexClient
from .zotero import ZoteroClient, ZoteroItem, is_zotero_key

__all__ = [
    "DatalabClient",
    "ExtractionService",
    "LibraryClient",
    "MarkerResult",
    "MetadataClient",
    "OpenAlexClient",
    "ZoteroClient",
    "ZoteroItem",
    "build_async_client",
    "is_pdf_response",
    "is_zotero_key",
    "request_with_retries",
]


class LibraryClient(Protocol):
    """Remote reference library (Zotero Web API)."""

    user_id: str

    async def list_items(
        self,
        *,
        item_type: Optional[str] = None,
        q: Optional[str] = None,
        qmode: Optional[str] = None,
    ) -> List[ZoteroItem]: ...

    async def list_top_items(
        self, *, q: Optional[str] = None, qmode: Optional[str] = None
    ) -> List[ZoteroItem]: ...

    async def get_items(self, keys: Sequence[str]) -> List[ZoteroItem]: ...

    async def get_item(self, key: str) -> ZoteroItem: ...

    async def list_item_children(self, key: str) -> List[ZoteroItem]: ...

    async def create_attachment(self, parent_key: str, filename: str, content_type: str) -> str: ...

    async def upload_attachment_file(self, key: str, filename: str, data: bytes) -> bool: ...

    async def download_item_file(self, key: str) -> bytes: ...


class MetadataClient(Protocol):
    """Bibliographic metadata provider (OpenAlex)."""

    async def get_work(self, work_id: str) -> WorkRecord: ...

    async def download_content_pdf(self, work: WorkRecord) -> Optional[bytes]: ...


class ExtractionService(Protocol):
    """Remote PDF-to-markdown service (DataLab Marker)."""

    async def convert(self, pdf_bytes: bytes, filename: str, mode: str) -> MarkerResult: ...
