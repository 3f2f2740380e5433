# === NAVMAP v1 ===
# {
#   "module": "PapersKit.FullText.errors",
#   "purpose": "Error taxonomy and actionable messages for full-text acquisition.",
#   "sections": [
#     {
#       "id": "paperserror",
#       "name": "PapersError",
#       "anchor": "class-paperserror",
#       "kind": "class"
#     },
#     {
#       "id": "nopdffound",
#       "name": "NoPdfFound",
#       "anchor": "class-nopdffound",
#       "kind": "class"
#     },
#     {
#       "id": "remoteapierror",
#       "name": "RemoteApiError",
#       "anchor": "class-remoteapierror",
#       "kind": "class"
#     },
#     {
#       "id": "no-pdf-message",
#       "name": "no_pdf_message",
#       "anchor": "function-no-pdf-message",
#       "kind": "function"
#     },
#     {
#       "id": "timed-out-message",
#       "name": "timed_out_message",
#       "anchor": "function-timed-out-message",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy and actionable messages for full-text acquisition.

Responsibilities
----------------
- Define the exception kinds raised across the store, sync engine, collaborator
  clients and acquisition pipeline, all rooted at :class:`PapersError`.
- Keep ``NoPdfFound`` recoverable: it carries the work identifiers that the
  interactive fallback needs and is never logged as a crash.
- Translate terminal failures into user-facing text via
  :func:`no_pdf_message` and :func:`timed_out_message`.

Design Notes
------------
- Absence from the local store is not an exception for readers; they return
  ``None``. :func:`require_markdown` raises :class:`NotCached` where a hit is
  mandatory.
- ``RemoteApiError`` is raised only after the HTTP retry policy is exhausted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from .types import bare_doi

if TYPE_CHECKING:
    from .fallback.types import FallbackOutcome
    from .store import LocalExtractionStore
    from .types import WorkRecord

__all__ = [
    "BundleFormatError",
    "ExtractionFailed",
    "NoPdfFound",
    "NotCached",
    "PapersError",
    "PollingTimedOut",
    "RemoteApiError",
    "no_pdf_message",
    "require_markdown",
    "timed_out_message",
]


class PapersError(Exception):
    """Base class for every FullText failure."""


class NotCached(PapersError):
    """Raised when a cache hit is mandatory but the key has no markdown."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"No cached extraction for {key}")


class NoPdfFound(PapersError):
    """No text source had a PDF for the work.

    Recoverable: callers with an interactive environment escalate to the
    fallback coordinator. ``outcome`` is attached when the fallback ran and
    ended without a result.
    """

    def __init__(
        self,
        work_id: str,
        *,
        title: Optional[str] = None,
        doi: Optional[str] = None,
        work: Optional["WorkRecord"] = None,
    ) -> None:
        self.work_id = work_id
        self.title = title
        self.doi = doi
        self.work = work
        self.outcome: Optional["FallbackOutcome"] = None
        suffix = f" ({title})" if title else ""
        super().__init__(f"No PDF found for work {work_id}{suffix}")

    @property
    def display_title(self) -> str:
        return self.title or self.work_id

    @property
    def landing_url(self) -> Optional[str]:
        doi = bare_doi(self.doi)
        return f"https://doi.org/{doi}" if doi else None


class ExtractionFailed(PapersError):
    """PDF bytes could not be turned into text."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        self.source = source
        super().__init__(message)


class RemoteApiError(PapersError):
    """A collaborator call failed after retries."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        service: Optional[str] = None,
        url: Optional[str] = None,
    ) -> None:
        self.status = status
        self.service = service
        self.url = url
        prefix = f"{service} " if service else ""
        code = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"{prefix}request failed{code}: {message}")


class PollingTimedOut(PapersError):
    """The work did not appear in the library within the polling budget."""

    def __init__(self, work_id: str, *, title: Optional[str] = None, attempts: int = 0) -> None:
        self.work_id = work_id
        self.title = title
        self.attempts = attempts
        super().__init__(
            f"Timed out waiting for {title or work_id} to appear in Zotero "
            f"after {attempts} checks"
        )


class BundleFormatError(PapersError):
    """A backup archive is not a zip or lacks the markdown member."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid backup bundle for {key}: {reason}")


def require_markdown(store: "LocalExtractionStore", key: str) -> str:
    """Return cached markdown for ``key`` or raise :class:`NotCached`."""
    text = store.read_markdown(key)
    if text is None:
        raise NotCached(key)
    return text


def no_pdf_message(err: NoPdfFound, *, library_configured: bool) -> str:
    """User-facing text for a work whose PDF could not be found."""
    lines = [f'No PDF found for "{err.display_title}".']
    landing = err.landing_url
    if landing:
        lines.append(f"Open {landing} and save the paper to your Zotero library, then retry.")
    else:
        lines.append("The work has no DOI; add the paper to your Zotero library manually.")
    if not library_configured:
        lines.append(
            "Zotero is not configured: set ZOTERO_USER_ID and ZOTERO_API_KEY to "
            "search your library."
        )
    return "\n".join(lines)


def timed_out_message(err: PollingTimedOut) -> str:
    """User-facing text when polling exhausted its budget."""
    return (
        f'"{err.title or err.work_id}" did not appear in Zotero in time. '
        "Once the PDF has synced, run the request again."
    )
