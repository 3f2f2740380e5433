"""Text sources tried by the acquisition pipeline, in order.

1. ``zotero.read_local_pdf``       PDF in the local Zotero data directory
2. ``zotero.download_remote_pdf``  PDF attachment through the Web API
3. ``direct_url.fetch_direct_pdf`` open-access PDF URL on a trusted domain
4. ``openalex_content.fetch_content_pdf``  OpenAlex content API

Each returns a :class:`PdfHit` or ``None``; none of them extracts text.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..types import PdfSource

__all__ = ["PdfHit"]


@dataclass(frozen=True)
class PdfHit:
    """PDF bytes plus provenance and the cache key they will be stored under."""

    pdf_bytes: bytes
    source: PdfSource
    cache_key: str
    filename: str

    def __repr__(self) -> str:
        return (
            f"PdfHit(source={self.source!r}, cache_key={self.cache_key!r}, "
            f"size={len(self.pdf_bytes)})"
        )
