# === NAVMAP v1 ===
# {
#   "module": "PapersKit.FullText.sync",
#   "purpose": "Plan and run reconciliation between the local cache and library backups.",
#   "sections": [
#     {
#       "id": "syncplanner",
#       "name": "SyncPlanner",
#       "anchor": "class-syncplanner",
#       "kind": "class"
#     },
#     {
#       "id": "syncexecutor",
#       "name": "SyncExecutor",
#       "anchor": "class-syncexecutor",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Plan and run reconciliation between the local cache and library backups.

Responsibilities
----------------
- :class:`SyncPlanner` is pure: it turns key sets into listing rows and
  upload/download plans. Neither plan ever selects a key whose destination
  already holds a copy, so sync never overwrites either side.
- :class:`SyncExecutor` gathers the key sets (store scan, one backup search,
  one batch parent lookup), plans, and runs transfers key by key. A failing
  key is recorded in the :class:`SyncReport` and the run continues.

Design Notes
------------
- Uploads never create parent records; keys without one are skipped with
  reason ``"not in Zotero"``.
- Dry runs compute identical plans and issue read-only calls only.
- Nothing is transactional: a key interrupted mid-upload may leave an
  attachment without content, and the next listing reports it as backed up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Set, Tuple

from .bundle import BundleCodec
from .errors import BundleFormatError, RemoteApiError
from .remote_index import RemoteBackupIndex
from .store import LocalExtractionStore
from .types import ExtractionMeta, ListEntry, RemoteStatus

if TYPE_CHECKING:
    from .clients import LibraryClient

LOGGER = logging.getLogger(__name__)

__all__ = [
    "DownloadPlan",
    "KeyOutcome",
    "NOT_IN_LIBRARY",
    "SyncExecutor",
    "SyncPlanner",
    "SyncReport",
    "TITLE_NOT_IN_LIBRARY",
    "TITLE_UNKNOWN",
    "UploadPlan",
]

TITLE_UNKNOWN = "(title unknown)"
TITLE_NOT_IN_LIBRARY = "(not in Zotero)"
NOT_IN_LIBRARY = "not in Zotero"


# ============================================================================
# Plans
# ============================================================================


@dataclass(frozen=True)
class UploadPlan:
    to_upload: Tuple[str, ...]
    skipped: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class DownloadPlan:
    to_download: Tuple[str, ...]


class SyncPlanner:
    """Pure planning over key sets."""

    @staticmethod
    def resolve_title(
        key: str,
        meta: Optional[ExtractionMeta],
        title_map: Mapping[str, str],
        backed_up: Set[str],
    ) -> str:
        if meta is not None and meta.title:
            return meta.title
        remote_title = title_map.get(key)
        if remote_title:
            return remote_title
        if key in backed_up or key in title_map:
            return TITLE_UNKNOWN
        return TITLE_NOT_IN_LIBRARY

    @staticmethod
    def remote_status(key: str, backed_up: Set[str], title_map: Mapping[str, str]) -> RemoteStatus:
        if key in backed_up:
            return RemoteStatus.OK
        if key in title_map:
            return RemoteStatus.NO_BACKUP
        return RemoteStatus.NO_ITEM

    def plan_list(
        self,
        local: Set[str],
        backed_up: Set[str],
        title_map: Mapping[str, str],
        metas: Optional[Mapping[str, Optional[ExtractionMeta]]] = None,
    ) -> List[ListEntry]:
        """One row per key in the union of the three key sets, sorted by key."""
        metas = metas or {}
        rows = []
        for key in sorted(set(local) | set(backed_up) | set(title_map)):
            meta = metas.get(key)
            rows.append(
                ListEntry(
                    key=key,
                    local=key in local,
                    remote_status=self.remote_status(key, backed_up, title_map),
                    title=self.resolve_title(key, meta, title_map, backed_up),
                    meta=meta,
                )
            )
        return rows

    def plan_upload(self, local: Set[str], backed_up: Set[str], existing: Set[str]) -> UploadPlan:
        candidates = sorted(set(local) - set(backed_up))
        to_upload = tuple(key for key in candidates if key in existing)
        skipped = tuple((key, NOT_IN_LIBRARY) for key in candidates if key not in existing)
        return UploadPlan(to_upload=to_upload, skipped=skipped)

    def plan_download(self, backed_up: Set[str], local: Set[str]) -> DownloadPlan:
        return DownloadPlan(to_download=tuple(sorted(set(backed_up) - set(local))))


# ============================================================================
# Execution
# ============================================================================


@dataclass(frozen=True)
class KeyOutcome:
    key: str
    # uploaded, downloaded, would_upload, would_download, skipped or failed
    status: str
    detail: str = ""


@dataclass
class SyncReport:
    operation: str
    dry_run: bool = False
    outcomes: List[KeyOutcome] = field(default_factory=list)

    def add(self, key: str, status: str, detail: str = "") -> None:
        self.outcomes.append(KeyOutcome(key=key, status=status, detail=detail))

    def keys_with(self, status: str) -> List[str]:
        return [o.key for o in self.outcomes if o.status == status]

    @property
    def failed(self) -> List[KeyOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]

    def counts(self) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for outcome in self.outcomes:
            totals[outcome.status] = totals.get(outcome.status, 0) + 1
        return totals


class SyncExecutor:
    """Runs listing, upload and download against one library."""

    def __init__(
        self,
        store: LocalExtractionStore,
        remote: "LibraryClient",
        *,
        index: Optional[RemoteBackupIndex] = None,
        planner: Optional[SyncPlanner] = None,
        codec: Optional[BundleCodec] = None,
    ) -> None:
        self.store = store
        self.remote = remote
        self.index = index or RemoteBackupIndex()
        self.planner = planner or SyncPlanner()
        self.codec = codec or BundleCodec(store)

    async def list(self) -> List[ListEntry]:
        local = self.store.list_keys()
        backed_up = await self.index.backed_up_keys(self.remote)
        titles = await self.index.title_map(self.remote, local | backed_up)
        metas = {key: self.store.read_meta(key) for key in local}
        return self.planner.plan_list(local, backed_up, titles, metas)

    async def upload(self, *, dry_run: bool = False) -> SyncReport:
        report = SyncReport(operation="upload", dry_run=dry_run)
        local = self.store.list_keys()
        backed_up = await self.index.backed_up_keys(self.remote)
        candidates = local - backed_up
        existing = await self.index.item_exists(self.remote, candidates)
        plan = self.planner.plan_upload(local, backed_up, existing)

        for key, reason in plan.skipped:
            report.add(key, "skipped", reason)

        for key in plan.to_upload:
            if dry_run:
                report.add(key, "would_upload")
                continue
            try:
                receipt = await self.codec.upload(self.remote, key)
            except (RemoteApiError, OSError, ValueError) as exc:
                LOGGER.error(f"Backup upload failed for {key}: {exc}")
                report.add(key, "failed", str(exc))
                continue
            detail = "" if receipt.transferred else "content already present"
            report.add(key, "uploaded", detail)
        return report

    async def download(self, *, dry_run: bool = False) -> SyncReport:
        report = SyncReport(operation="download", dry_run=dry_run)
        attachments = await self.index.backup_attachments(self.remote)
        local = self.store.list_keys()
        plan = self.planner.plan_download(set(attachments), local)

        for key in plan.to_download:
            if dry_run:
                report.add(key, "would_download")
                continue
            try:
                await self.codec.download(self.remote, key, attachments[key])
            except (RemoteApiError, BundleFormatError, OSError, ValueError) as exc:
                LOGGER.error(f"Backup download failed for {key}: {exc}")
                report.add(key, "failed", str(exc))
                continue
            report.add(key, "downloaded")
        return report
