from __future__ import annotations

import asyncio
import json
from typing import List, Tuple

import fitz
import pytest

from PapersKit.FullText.clients.datalab import MarkerResult
from PapersKit.FullText.errors import ExtractionFailed
from PapersKit.FullText.extraction import TextExtractor, extract_pdf_text
from PapersKit.FullText.types import ProcessingMode


def _pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for body in pages:
        page = doc.new_page()
        if body:
            page.insert_text((72, 72), body)
    data = doc.tobytes()
    doc.close()
    return data


class _Marker:
    def __init__(self, markdown: str = "# Marker output") -> None:
        self.markdown = markdown
        self.calls: List[Tuple[str, str]] = []

    async def convert(self, pdf_bytes: bytes, filename: str, mode: str) -> MarkerResult:
        self.calls.append((filename, mode))
        return MarkerResult(markdown=self.markdown, json_text="{}", page_count=1)


def test_pymupdf_extracts_each_page() -> None:
    extracted = extract_pdf_text(_pdf("First page text", "Second page text"))

    assert "First page text" in extracted.markdown
    assert extracted.markdown.index("First") < extracted.markdown.index("Second")
    sidecar = json.loads(extracted.json_text)
    assert sidecar["extractor"] == "pymupdf"
    assert sidecar["page_count"] == 2
    assert extracted.processing_mode is None


def test_pdf_without_text_layer_fails() -> None:
    with pytest.raises(ExtractionFailed, match="no extractable text"):
        extract_pdf_text(_pdf(""))


def test_garbage_bytes_fail() -> None:
    with pytest.raises(ExtractionFailed) as excinfo:
        extract_pdf_text(b"this is not a pdf")

    assert excinfo.value.source == "pymupdf"


def test_default_mode_uses_pymupdf_even_with_datalab() -> None:
    marker = _Marker()
    extractor = TextExtractor(datalab=marker)

    extracted = asyncio.run(extractor.extract(_pdf("Local text"), filename="p.pdf"))

    assert "Local text" in extracted.markdown
    assert marker.calls == []


def test_advanced_mode_routes_to_datalab() -> None:
    marker = _Marker()
    extractor = TextExtractor(datalab=marker)

    extracted = asyncio.run(
        extractor.extract(b"%PDF", filename="p.pdf", mode=ProcessingMode.ACCURATE)
    )

    assert extracted.markdown == "# Marker output"
    assert extracted.processing_mode is ProcessingMode.ACCURATE
    assert marker.calls == [("p.pdf", "accurate")]


def test_advanced_mode_without_datalab_falls_back_to_pymupdf() -> None:
    extractor = TextExtractor()

    extracted = asyncio.run(
        extractor.extract(_pdf("Fallback text"), filename="p.pdf", mode=ProcessingMode.FAST)
    )

    assert "Fallback text" in extracted.markdown
    assert extracted.processing_mode is None
    assert not extractor.uses_datalab(ProcessingMode.FAST)


def test_empty_datalab_markdown_fails() -> None:
    extractor = TextExtractor(datalab=_Marker(markdown="  \n"))

    with pytest.raises(ExtractionFailed):
        asyncio.run(extractor.extract(b"%PDF", filename="p.pdf", mode=ProcessingMode.BALANCED))
