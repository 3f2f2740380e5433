"""Locate a work in the Zotero library and read its stored PDF.

A record matches when its DOI equals the work's DOI (case-insensitive,
``https://doi.org/`` stripped). When either side lacks a DOI the titles are
compared case-insensitively instead. The library is searched by DOI first,
then by title, both with ``qmode=everything``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..clients.zotero import ZoteroItem
from ..errors import RemoteApiError
from ..types import LocalLibrary, RemoteLibrary, WorkRecord, bare_doi
from . import PdfHit

if TYPE_CHECKING:
    from ..clients import LibraryClient

LOGGER = logging.getLogger(__name__)

__all__ = ["LibraryMatch", "download_remote_pdf", "find_library_match", "read_local_pdf"]


@dataclass(frozen=True)
class LibraryMatch:
    """Matching parent record and its stored PDF attachments."""

    parent: ZoteroItem
    pdf_attachments: Tuple[ZoteroItem, ...]

    @property
    def has_pdf(self) -> bool:
        return bool(self.pdf_attachments)


def _norm_title(title: Optional[str]) -> str:
    return " ".join((title or "").split()).casefold()


def record_matches(item: ZoteroItem, work: WorkRecord) -> bool:
    work_doi = work.bare_doi
    item_doi = bare_doi(item.doi)
    if work_doi and item_doi:
        return work_doi.lower() == item_doi.lower()
    work_title = _norm_title(work.title)
    return bool(work_title) and work_title == _norm_title(item.title)


def _queries(work: WorkRecord) -> List[str]:
    queries = []
    if work.bare_doi:
        queries.append(work.bare_doi)
    if work.title and work.title not in queries:
        queries.append(work.title)
    return queries


async def find_library_match(remote: "LibraryClient", work: WorkRecord) -> Optional[LibraryMatch]:
    """Search the library for ``work``; ``None`` when no record matches."""
    for query in _queries(work):
        items = await remote.list_top_items(q=query, qmode="everything")
        for item in items:
            if item.item_type in ("attachment", "note") or not record_matches(item, work):
                continue
            children = await remote.list_item_children(item.key)
            pdfs = tuple(child for child in children if child.is_stored_pdf)
            LOGGER.debug(f"Library record {item.key} matches {work.short_id} ({len(pdfs)} PDFs)")
            return LibraryMatch(parent=item, pdf_attachments=pdfs)
    return None


async def read_local_pdf(match: LibraryMatch, data_dir: Path) -> Optional[PdfHit]:
    """PDF from ``<data_dir>/storage/<attachment key>/<filename>`` if present."""
    for attachment in match.pdf_attachments:
        path = attachment.local_path(data_dir)
        if path is None or not path.is_file():
            continue
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            LOGGER.warning(f"Cannot read local Zotero file {path}: {exc}")
            continue
        return PdfHit(
            pdf_bytes=data,
            source=LocalLibrary(path=str(path)),
            cache_key=match.parent.key,
            filename=attachment.filename or f"{match.parent.key}.pdf",
        )
    return None


async def download_remote_pdf(remote: "LibraryClient", match: LibraryMatch) -> Optional[PdfHit]:
    """First PDF attachment that downloads with content."""
    for attachment in match.pdf_attachments:
        try:
            data = await remote.download_item_file(attachment.key)
        except RemoteApiError as exc:
            LOGGER.info(f"Attachment {attachment.key} download failed: {exc}")
            continue
        if not data:
            continue
        return PdfHit(
            pdf_bytes=data,
            source=RemoteLibrary(item_key=attachment.key),
            cache_key=match.parent.key,
            filename=attachment.filename or f"{match.parent.key}.pdf",
        )
    return None
