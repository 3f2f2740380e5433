"""
Canonical Types for FullText Acquisition and Sync

Provides the data model shared by the acquisition pipeline, the interactive
fallback coordinator, the local extraction store and the sync engine.

Data Flow:
  MetadataClient.get_work() → WorkRecord
  AcquisitionPipeline.get_text(work_id) → WorkTextResult(source=PdfSource)
  LocalExtractionStore.write(key, markdown, json, ExtractionMeta)
  SyncPlanner.plan_list(...) → ListEntry(remote_status=RemoteStatus)

Design Principles:
  - PdfSource is a closed union of frozen dataclasses, one arm per provenance
  - RemoteStatus and ProcessingMode are enums, never bare strings
  - ExtractionMeta is a pydantic model because it round-trips through meta.json
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ContentApi",
    "DirectUrl",
    "ExtractionMeta",
    "ListEntry",
    "LocalLibrary",
    "PdfSource",
    "ProcessingMode",
    "RemoteLibrary",
    "RemoteStatus",
    "WorkRecord",
    "WorkTextResult",
    "bare_doi",
    "pdf_source_from_dict",
    "short_openalex_id",
]

DOI_URL_PREFIX = "https://doi.org/"
OPENALEX_URL_PREFIX = "https://openalex.org/"


# ============================================================================
# Enumerations
# ============================================================================


class ProcessingMode(str, Enum):
    """Quality tier of the remote extraction service."""

    FAST = "fast"
    BALANCED = "balanced"
    ACCURATE = "accurate"


class RemoteStatus(str, Enum):
    """Derived remote state of one cache key (never stored)."""

    OK = "ok"
    NO_BACKUP = "no_backup"
    NO_ITEM = "no_item"


# ============================================================================
# PdfSource: where the PDF came from
# ============================================================================


@dataclass(frozen=True, slots=True)
class LocalLibrary:
    """PDF read from the local Zotero data directory."""

    path: str
    kind: ClassVar[str] = "local_library"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "path": self.path}


@dataclass(frozen=True, slots=True)
class RemoteLibrary:
    """PDF downloaded from a Zotero attachment through the Web API."""

    item_key: str
    kind: ClassVar[str] = "remote_library"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "item_key": self.item_key}


@dataclass(frozen=True, slots=True)
class DirectUrl:
    """PDF fetched from an open-access URL."""

    url: str
    kind: ClassVar[str] = "direct_url"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "url": self.url}


@dataclass(frozen=True, slots=True)
class ContentApi:
    """PDF served by the metadata provider's content API."""

    kind: ClassVar[str] = "content_api"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind}


PdfSource = Union[LocalLibrary, RemoteLibrary, DirectUrl, ContentApi]


def pdf_source_from_dict(payload: Optional[Mapping[str, Any]]) -> Optional[PdfSource]:
    """Parse a serialized PdfSource; unknown or malformed payloads yield None."""
    if not isinstance(payload, Mapping):
        return None
    kind = payload.get("type")
    try:
        if kind == LocalLibrary.kind:
            return LocalLibrary(path=str(payload["path"]))
        if kind == RemoteLibrary.kind:
            return RemoteLibrary(item_key=str(payload["item_key"]))
        if kind == DirectUrl.kind:
            return DirectUrl(url=str(payload["url"]))
        if kind == ContentApi.kind:
            return ContentApi()
    except KeyError:
        return None
    return None


# ============================================================================
# Identifier helpers
# ============================================================================


def bare_doi(doi: Optional[str]) -> Optional[str]:
    """Strip the ``https://doi.org/`` prefix, returning the bare DOI."""
    if not doi:
        return None
    if doi.lower().startswith(DOI_URL_PREFIX):
        return doi[len(DOI_URL_PREFIX) :]
    return doi


def short_openalex_id(full_id: str) -> str:
    """``https://openalex.org/W123`` → ``W123``."""
    if full_id.startswith(OPENALEX_URL_PREFIX):
        return full_id[len(OPENALEX_URL_PREFIX) :]
    return full_id


# ============================================================================
# Work metadata
# ============================================================================


@dataclass(frozen=True)
class WorkRecord:
    """
    Subset of OpenAlex work metadata read by the acquisition pipeline.

    Attributes:
        id: Full OpenAlex ID (``https://openalex.org/W...``)
        title: Work title (``title`` falling back to ``display_name``)
        doi: DOI as returned by OpenAlex (usually a ``https://doi.org/`` URL)
        authors: Author display names in authorship order
        publication_date: ISO date string
        item_type: OpenAlex work type (article, preprint, ...)
        publication_title: Host venue display name
        pdf_urls: Candidate PDF URLs, best OA location first, no duplicates
        has_content_pdf: Whether the content API advertises a PDF
    """

    id: str
    title: Optional[str] = None
    doi: Optional[str] = None
    authors: Tuple[str, ...] = ()
    publication_date: Optional[str] = None
    item_type: Optional[str] = None
    publication_title: Optional[str] = None
    pdf_urls: Tuple[str, ...] = ()
    has_content_pdf: bool = False

    @property
    def short_id(self) -> str:
        return short_openalex_id(self.id)

    @property
    def bare_doi(self) -> Optional[str]:
        return bare_doi(self.doi)

    @classmethod
    def from_openalex(cls, work: Mapping[str, Any]) -> "WorkRecord":
        """Build a record from an OpenAlex work JSON object."""
        urls: List[str] = []
        for loc in _iter_locations(work):
            url = loc.get("pdf_url")
            if url and url not in urls:
                urls.append(url)

        authors = tuple(
            (a.get("author") or {}).get("display_name")
            for a in work.get("authorships") or []
            if (a.get("author") or {}).get("display_name")
        )
        primary = work.get("primary_location") or {}
        source = primary.get("source") or {}
        has_content = work.get("has_content") or {}

        return cls(
            id=str(work.get("id") or ""),
            title=work.get("title") or work.get("display_name"),
            doi=work.get("doi"),
            authors=authors,
            publication_date=work.get("publication_date"),
            item_type=work.get("type"),
            publication_title=source.get("display_name"),
            pdf_urls=tuple(urls),
            has_content_pdf=bool(has_content.get("pdf")),
        )


def _iter_locations(work: Mapping[str, Any]):
    for name in ("best_oa_location", "primary_location"):
        loc = work.get(name)
        if isinstance(loc, Mapping):
            yield loc
    for loc in work.get("locations") or []:
        if isinstance(loc, Mapping):
            yield loc


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class WorkTextResult:
    """Full text of a work plus where it came from."""

    text: str
    source: PdfSource
    work_id: str
    title: Optional[str] = None
    doi: Optional[str] = None
    cache_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "source": self.source.to_dict(),
            "work_id": self.work_id,
            "title": self.title,
            "doi": self.doi,
        }


class ExtractionMeta(BaseModel):
    """Contents of ``meta.json`` beside a cached extraction."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore")

    item_key: str
    zotero_user_id: Optional[str] = None
    title: Optional[str] = None
    authors: Optional[List[str]] = None
    item_type: Optional[str] = None
    date: Optional[str] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    publication_title: Optional[str] = None
    extracted_at: Optional[str] = None
    processing_mode: Optional[Literal["fast", "balanced", "accurate"]] = None
    pdf_source: Optional[Dict[str, Any]] = Field(default=None)

    @property
    def source(self) -> Optional[PdfSource]:
        return pdf_source_from_dict(self.pdf_source)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, exclude_none=True)


@dataclass(frozen=True)
class ListEntry:
    """One row of the extraction listing."""

    key: str
    local: bool
    remote_status: RemoteStatus
    title: str
    meta: Optional[ExtractionMeta] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "local": self.local,
            "remote_status": self.remote_status.value,
            "title": self.title,
        }
