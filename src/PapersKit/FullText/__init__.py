# === NAVMAP v1 ===
# {
#   "module": "PapersKit.FullText",
#   "purpose": "Full-text acquisition public API facade",
#   "sections": []
# }
# === /NAVMAP ===

"""
PapersKit.FullText turns a scholarly work identifier into cached, extracted
full text and keeps that cache backed up in the user's Zotero library.

Core modules and how they interrelate:

- ``store`` owns the local extraction cache: one directory per key holding
  ``<key>.md``, ``<key>.json`` and ``meta.json``. Markdown presence defines
  membership, and writes commit the markdown last.
- ``bundle`` packs a store entry into ``papers_extract_<key>.zip`` and
  restores it, and drives the Zotero attachment upload handshake.
- ``remote_index`` answers which keys have a backup attachment and which
  parent items exist, with batched Web API reads.
- ``sync`` plans and executes ``list``, ``upload`` and ``download`` from
  those two views. Planning is pure; per-key failures never abort a run.
- ``acquisition`` resolves a work through OpenAlex, reuses the cache, and
  otherwise tries local Zotero storage, the Web API, trusted open-access URLs
  and the OpenAlex content API before extracting with PyMuPDF or DataLab.
- ``fallback`` escalates exhausted requests interactively: model sampling,
  then asking the user to save the paper, then polling the library.
- ``clients`` holds the httpx/tenacity bindings for Zotero, OpenAlex and
  DataLab; ``config`` the pydantic settings; ``cli`` and ``mcp_server`` the
  two entry points.
"""

from __future__ import annotations

# --- Globals ---

__all__ = (
    "AcquisitionPipeline",
    "BundleCodec",
    "ExtractionMeta",
    "InteractiveFallbackCoordinator",
    "LocalExtractionStore",
    "NoPdfFound",
    "PapersError",
    "PapersSettings",
    "PollingTimedOut",
    "ProcessingMode",
    "RemoteApiError",
    "RemoteBackupIndex",
    "SyncExecutor",
    "SyncPlanner",
    "WorkTextResult",
    "acquire_with_fallback",
    "load_config",
)


# --- Re-exports ---

from .acquisition import AcquisitionPipeline, acquire_with_fallback
from .bundle import BundleCodec
from .config import PapersSettings, load_config
from .errors import NoPdfFound, PapersError, PollingTimedOut, RemoteApiError
from .fallback import InteractiveFallbackCoordinator
from .remote_index import RemoteBackupIndex
from .store import LocalExtractionStore
from .sync import SyncExecutor, SyncPlanner
from .types import ExtractionMeta, ProcessingMode, WorkTextResult
