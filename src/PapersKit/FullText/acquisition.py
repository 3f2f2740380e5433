# === NAVMAP v1 ===
# {
#   "module": "PapersKit.FullText.acquisition",
#   "purpose": "Ordered, short-circuiting full-text acquisition for one work.",
#   "sections": [
#     {
#       "id": "acquisitionpipeline",
#       "name": "AcquisitionPipeline",
#       "anchor": "class-acquisitionpipeline",
#       "kind": "class"
#     },
#     {
#       "id": "acquire-with-fallback",
#       "name": "acquire_with_fallback",
#       "anchor": "function-acquire-with-fallback",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Full-Text Acquisition Pipeline

Flow for ``get_text(work_id, mode)``:

    metadata.get_work ─► cache hit on short OpenAlex ID? ─► return
            │
            ▼
    library match (DOI, then title) ─► cache hit on parent key? ─► return
            │
            ├─► 1. local Zotero storage     → LocalLibrary{path}
            ├─► 2. Web API attachment        → RemoteLibrary{item_key}
            ├─► 3. trusted open-access URL   → DirectUrl{url}
            └─► 4. OpenAlex content API      → ContentApi
                        │
                        ▼
              extract (PyMuPDF, or DataLab in advanced mode)
                        │
                        ▼
              store.write(key, md, json, meta) ─► WorkTextResult

The first source that yields PDF bytes which extract successfully wins. A
source failure (remote error, unreadable PDF) moves on to the next source.
Exhaustion raises :class:`NoPdfFound`, which interactive callers hand to
the fallback coordinator through :func:`acquire_with_fallback`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Tuple

import httpx

from .bundle import BundleCodec, key_from_backup_filename
from .clients.zotero import is_zotero_key
from .config.models import PapersSettings
from .errors import BundleFormatError, ExtractionFailed, NoPdfFound, PollingTimedOut, RemoteApiError
from .extraction import TextExtractor
from .sources import PdfHit
from .sources.direct_url import fetch_direct_pdf
from .sources.openalex_content import fetch_content_pdf
from .sources.zotero import LibraryMatch, download_remote_pdf, find_library_match, read_local_pdf
from .store import LocalExtractionStore
from .types import (
    DirectUrl,
    ExtractionMeta,
    LocalLibrary,
    ProcessingMode,
    RemoteLibrary,
    WorkRecord,
    WorkTextResult,
)

if TYPE_CHECKING:
    from .clients import LibraryClient, MetadataClient
    from .clients.http import SleepFn
    from .fallback.coordinator import InteractiveFallbackCoordinator
    from .fallback.types import FallbackEnvironment

LOGGER = logging.getLogger(__name__)

__all__ = ["AcquisitionPipeline", "acquire_with_fallback"]

SourceStep = Tuple[str, Callable[[], Awaitable[Optional[PdfHit]]]]


class AcquisitionPipeline:
    """Finds, extracts and caches the full text of one work per call."""

    def __init__(
        self,
        *,
        store: LocalExtractionStore,
        metadata: "MetadataClient",
        http_client: httpx.AsyncClient,
        library: Optional["LibraryClient"] = None,
        extractor: Optional[TextExtractor] = None,
        settings: Optional[PapersSettings] = None,
        codec: Optional[BundleCodec] = None,
        sleep: Optional["SleepFn"] = None,
    ) -> None:
        self.store = store
        self.metadata = metadata
        self.http_client = http_client
        self.library = library
        self.extractor = extractor or TextExtractor()
        self.settings = settings or PapersSettings()
        self.codec = codec or BundleCodec(store)
        self.sleep = sleep

    @property
    def library_configured(self) -> bool:
        return self.library is not None

    @property
    def zotero_data_dir(self) -> Path:
        return self.settings.zotero.resolved_data_dir()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def get_text(
        self, work_id: str, *, mode: Optional[ProcessingMode] = None
    ) -> WorkTextResult:
        """Full text of ``work_id`` from the first source that has it.

        Raises:
            NoPdfFound: every source was tried without success.
            RemoteApiError: the work metadata could not be fetched.
        """
        work = await self.metadata.get_work(work_id)

        cached = self.cached_result(work, work.short_id, mode=mode)
        if cached is not None:
            LOGGER.info(f"Cache hit for {work.short_id}")
            return cached

        match: Optional[LibraryMatch] = None
        if self.library is not None:
            try:
                match = await find_library_match(self.library, work)
            except RemoteApiError as exc:
                LOGGER.warning(f"Library search failed for {work.short_id}: {exc}")
            if match is not None:
                cached = self.cached_result(work, match.parent.key, mode=mode)
                if cached is not None:
                    LOGGER.info(f"Cache hit for library record {match.parent.key}")
                    if self.extractor.uses_datalab(mode):
                        await self._ensure_backup(match.parent.key)
                    return cached

        for label, step in self._steps(work, match):
            try:
                hit = await step()
            except (RemoteApiError, httpx.HTTPError) as exc:
                LOGGER.warning(f"{label} failed for {work.short_id}: {exc}")
                continue
            if hit is None:
                LOGGER.debug(f"{label}: nothing for {work.short_id}")
                continue
            try:
                return await self.extract_and_store(work, hit, mode=mode)
            except (ExtractionFailed, RemoteApiError) as exc:
                LOGGER.warning(f"Extraction from {label} failed for {work.short_id}: {exc}")
                continue

        LOGGER.info(f"No PDF found for {work.short_id}")
        raise NoPdfFound(work.id, title=work.title, doi=work.doi, work=work)

    def _steps(self, work: WorkRecord, match: Optional[LibraryMatch]) -> List[SourceStep]:
        steps: List[SourceStep] = []
        library = self.library
        if match is not None and match.has_pdf and library is not None:
            data_dir = self.zotero_data_dir
            steps.append(("local library", lambda: read_local_pdf(match, data_dir)))
            steps.append(("remote library", lambda: download_remote_pdf(library, match)))
        steps.append(
            (
                "direct URL",
                lambda: fetch_direct_pdf(
                    self.http_client,
                    work,
                    domains=self.settings.acquisition.pdf_domains,
                    http_cfg=self.settings.http,
                    sleep=self.sleep,
                ),
            )
        )
        steps.append(("content API", lambda: fetch_content_pdf(self.metadata, work)))
        return steps

    # ------------------------------------------------------------------
    # Library lookup shared with the polling fallback
    # ------------------------------------------------------------------

    async def try_library(
        self, work: WorkRecord, *, mode: Optional[ProcessingMode] = None
    ) -> Optional[WorkTextResult]:
        """Match ``work`` in the library and extract its PDF, if it has one.

        Search failures propagate as :class:`RemoteApiError`; extraction
        failures as :class:`ExtractionFailed`.
        """
        if self.library is None:
            return None
        match = await find_library_match(self.library, work)
        if match is None or not match.has_pdf:
            return None
        hit = await read_local_pdf(match, self.zotero_data_dir)
        if hit is None:
            hit = await download_remote_pdf(self.library, match)
        if hit is None:
            return None
        return await self.extract_and_store(work, hit, mode=mode)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def cached_result(
        self, work: WorkRecord, key: str, *, mode: Optional[ProcessingMode] = None
    ) -> Optional[WorkTextResult]:
        """Stored text for ``key``, if the entry satisfies ``mode``.

        When ``mode`` routes through DataLab only an entry recorded with a
        processing mode counts; a plain PyMuPDF entry is a miss.
        """
        text = self.store.read_markdown(key)
        if text is None:
            return None
        meta = self.store.read_meta(key)
        if self.extractor.uses_datalab(mode) and (meta is None or meta.processing_mode is None):
            LOGGER.debug(f"Cached {key} has no advanced extraction")
            return None
        source = meta.source if meta is not None else None
        if source is None:
            source = LocalLibrary(path=str(self.store.entry_dir(key) / f"{key}.md"))
        return WorkTextResult(
            text=text,
            source=source,
            work_id=work.id,
            title=work.title,
            doi=work.doi,
            cache_key=key,
        )

    async def _restore_backup(self, key: str) -> bool:
        """Download the library backup bundle for ``key`` into the store."""
        if self.library is None or not is_zotero_key(key):
            return False
        try:
            children = await self.library.list_item_children(key)
            for child in children:
                if key_from_backup_filename(child.filename) == key:
                    await self.codec.download(self.library, key, child.key)
                    LOGGER.info(f"Restored {key} from library backup")
                    return True
        except (RemoteApiError, BundleFormatError, OSError) as exc:
            LOGGER.warning(f"Could not restore backup for {key}: {exc}")
        return False

    async def _ensure_backup(self, key: str) -> None:
        """Upload the stored extraction of ``key`` unless the library has it.

        Best effort: a read-only key (HTTP 403) is skipped quietly and any
        other failure is logged, never raised.
        """
        if self.library is None or not is_zotero_key(key):
            return
        try:
            children = await self.library.list_item_children(key)
            if any(key_from_backup_filename(child.filename) == key for child in children):
                return
            receipt = await self.codec.upload(self.library, key)
            LOGGER.info(f"Backed up {key} to library ({receipt.size} bytes)")
        except RemoteApiError as exc:
            if exc.status == 403:
                LOGGER.debug(f"Read-only library key; skipped backup of {key}")
            else:
                LOGGER.warning(f"Could not back up {key}: {exc}")
        except OSError as exc:
            LOGGER.warning(f"Could not back up {key}: {exc}")

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    async def extract_and_store(
        self, work: WorkRecord, hit: PdfHit, *, mode: Optional[ProcessingMode] = None
    ) -> WorkTextResult:
        """Extract ``hit`` and write the artifact triple under ``hit.cache_key``.

        In advanced mode an existing advanced entry for the key is reused, and
        a library backup bundle is restored before paying for a conversion.
        A DataLab result under a library key is then backed up to the library
        if no backup exists yet.
        """
        key = hit.cache_key
        if self.extractor.uses_datalab(mode):
            cached = self.cached_result(work, key, mode=mode)
            if cached is None and await self._restore_backup(key):
                cached = self.cached_result(work, key, mode=mode)
            if cached is not None:
                await self._ensure_backup(key)
                return cached

        extracted = await self.extractor.extract(hit.pdf_bytes, filename=hit.filename, mode=mode)
        meta = self._build_meta(work, hit, extracted.processing_mode)
        self.store.write(key, extracted.markdown, extracted.json_text, meta)
        if extracted.processing_mode is not None:
            await self._ensure_backup(key)
        return WorkTextResult(
            text=extracted.markdown,
            source=hit.source,
            work_id=work.id,
            title=work.title,
            doi=work.doi,
            cache_key=key,
        )

    def _build_meta(
        self, work: WorkRecord, hit: PdfHit, mode: Optional[ProcessingMode]
    ) -> ExtractionMeta:
        from_library = isinstance(hit.source, (LocalLibrary, RemoteLibrary))
        if isinstance(hit.source, DirectUrl):
            url: Optional[str] = hit.source.url
        elif work.bare_doi:
            url = f"https://doi.org/{work.bare_doi}"
        else:
            url = work.id or None
        return ExtractionMeta(
            item_key=hit.cache_key,
            zotero_user_id=self.library.user_id if (from_library and self.library) else None,
            title=work.title,
            authors=list(work.authors) or None,
            item_type=work.item_type,
            date=work.publication_date,
            doi=work.bare_doi,
            url=url,
            publication_title=work.publication_title,
            extracted_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            processing_mode=mode.value if mode is not None else None,
            pdf_source=hit.source.to_dict(),
        )


async def acquire_with_fallback(
    pipeline: AcquisitionPipeline,
    work_id: str,
    *,
    mode: Optional[ProcessingMode] = None,
    coordinator: Optional["InteractiveFallbackCoordinator"] = None,
    environment: Optional["FallbackEnvironment"] = None,
) -> WorkTextResult:
    """Run the pipeline and, when it finds nothing, the interactive fallback.

    Raises:
        PollingTimedOut: the user added the work but it never showed up.
        NoPdfFound: no fallback ran, or it was declined or unavailable. The
            error's ``outcome`` describes what the fallback did.
    """
    try:
        return await pipeline.get_text(work_id, mode=mode)
    except NoPdfFound as err:
        if environment is None:
            raise
        if coordinator is None:
            from .fallback.coordinator import InteractiveFallbackCoordinator

            coordinator = InteractiveFallbackCoordinator(
                pipeline, polling=pipeline.settings.polling, sleep=pipeline.sleep
            )
        outcome = await coordinator.run(err, environment, mode=mode)
        if outcome.result is not None:
            return outcome.result
        if outcome.timed_out:
            raise PollingTimedOut(err.work_id, title=err.title, attempts=outcome.attempts) from err
        err.outcome = outcome
        raise
