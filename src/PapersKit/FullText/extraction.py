"""PDF bytes → markdown text, locally with PyMuPDF or through DataLab Marker."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import fitz

from .errors import ExtractionFailed
from .types import ProcessingMode

if TYPE_CHECKING:
    from .clients import ExtractionService

LOGGER = logging.getLogger(__name__)

__all__ = ["ExtractedText", "TextExtractor", "extract_pdf_text"]


@dataclass(frozen=True)
class ExtractedText:
    markdown: str
    json_text: Optional[str]
    processing_mode: Optional[ProcessingMode] = None


def extract_pdf_text(pdf_bytes: bytes) -> ExtractedText:
    """Plain-text extraction with PyMuPDF, one page after another.

    The JSON sidecar lists the text of each page.

    Raises:
        ExtractionFailed: unreadable PDF or no text layer at all.
    """
    try:
        with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
            pages = [page.get_text() for page in doc]
    except (RuntimeError, ValueError) as exc:
        raise ExtractionFailed(f"Could not read PDF: {exc}", source="pymupdf") from exc

    text = "\n".join(pages)
    if not text.strip():
        raise ExtractionFailed("PDF has no extractable text layer", source="pymupdf")

    sidecar = {
        "extractor": "pymupdf",
        "page_count": len(pages),
        "pages": [{"page": number, "text": body} for number, body in enumerate(pages, start=1)],
    }
    return ExtractedText(markdown=text, json_text=json.dumps(sidecar, ensure_ascii=False))


class TextExtractor:
    """Chooses the extraction route for a request."""

    def __init__(self, datalab: Optional["ExtractionService"] = None) -> None:
        self.datalab = datalab

    def uses_datalab(self, mode: Optional[ProcessingMode]) -> bool:
        return mode is not None and self.datalab is not None

    async def extract(
        self,
        pdf_bytes: bytes,
        *,
        filename: str,
        mode: Optional[ProcessingMode] = None,
    ) -> ExtractedText:
        if mode is not None and self.datalab is None:
            LOGGER.warning(
                f"{mode.value} mode requested but DataLab is not configured; using PyMuPDF"
            )
        if not self.uses_datalab(mode):
            return await asyncio.to_thread(extract_pdf_text, pdf_bytes)

        assert mode is not None and self.datalab is not None
        result = await self.datalab.convert(pdf_bytes, filename, mode.value)
        if not result.markdown.strip():
            raise ExtractionFailed("DataLab returned empty markdown", source="datalab")
        return ExtractedText(
            markdown=result.markdown, json_text=result.json_text, processing_mode=mode
        )
