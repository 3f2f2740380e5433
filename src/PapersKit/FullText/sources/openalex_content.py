"""OpenAlex content API as the last automatic source."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..types import ContentApi, WorkRecord
from . import PdfHit

if TYPE_CHECKING:
    from ..clients import MetadataClient

__all__ = ["fetch_content_pdf"]


async def fetch_content_pdf(metadata: "MetadataClient", work: WorkRecord) -> Optional[PdfHit]:
    if not work.has_content_pdf:
        return None
    data = await metadata.download_content_pdf(work)
    if not data:
        return None
    return PdfHit(
        pdf_bytes=data,
        source=ContentApi(),
        cache_key=work.short_id,
        filename=f"{work.short_id}.pdf",
    )
