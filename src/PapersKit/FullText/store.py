# === NAVMAP v1 ===
# {
#   "module": "PapersKit.FullText.store",
#   "purpose": "Filesystem cache of per-key extraction artifacts.",
#   "sections": [
#     {
#       "id": "default-cache-root",
#       "name": "default_cache_root",
#       "anchor": "function-default-cache-root",
#       "kind": "function"
#     },
#     {
#       "id": "localextractionstore",
#       "name": "LocalExtractionStore",
#       "anchor": "class-localextractionstore",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Local Extraction Store

Each cache key owns one directory under the cache root::

    <cache_root>/<key>/<key>.md
    <cache_root>/<key>/<key>.json
    <cache_root>/<key>/meta.json

A key counts as cached when ``<key>.md`` exists. Readers never raise for a
missing or unreadable file; they return ``None``. ``write`` is the only
authoritative write path and commits the markdown file last, so a reader
that sees the markdown also sees its siblings.

Entries are never deleted by this module.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable, Mapping, Optional, Set, Tuple

from pydantic import ValidationError

from .io_utils import atomic_write_bytes
from .types import ExtractionMeta

__all__ = ["LocalExtractionStore", "META_FILENAME", "default_cache_root", "member_names"]

LOGGER = logging.getLogger(__name__)

META_FILENAME = "meta.json"


def default_cache_root(configured: Optional[Path] = None) -> Path:
    """Configured root, else ``PAPERS_EXTRACT_CACHE_DIR``, else ``<user cache>/papers/extract``."""
    if configured:
        return Path(configured)
    env_root = os.environ.get("PAPERS_EXTRACT_CACHE_DIR")
    if env_root:
        return Path(env_root)
    from platformdirs import user_cache_dir

    return Path(user_cache_dir("papers")) / "extract"


def member_names(key: str) -> Tuple[str, str, str]:
    """Artifact file names for ``key`` in commit order (markdown last)."""
    return (f"{key}.json", META_FILENAME, f"{key}.md")


def _validate_key(key: str) -> str:
    if not key or key.startswith(".") or "/" in key or "\\" in key or os.sep in key:
        raise ValueError(f"Invalid cache key: {key!r}")
    return key


class LocalExtractionStore:
    """Directory-per-key cache of extracted text."""

    def __init__(self, cache_root: Path) -> None:
        self.cache_root = Path(cache_root)

    def __repr__(self) -> str:
        return f"LocalExtractionStore({str(self.cache_root)!r})"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def entry_dir(self, key: str) -> Path:
        return self.cache_root / _validate_key(key)

    def _path(self, key: str, name: str) -> Path:
        return self.entry_dir(key) / name

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_keys(self) -> Set[str]:
        """Keys whose directory holds ``<key>.md``. Scans the root every call."""
        if not self.cache_root.is_dir():
            return set()
        keys: Set[str] = set()
        for child in self.cache_root.iterdir():
            if child.name.startswith("."):
                continue
            if child.is_dir() and (child / f"{child.name}.md").is_file():
                keys.add(child.name)
        return keys

    def has(self, key: str) -> bool:
        return self._path(key, f"{key}.md").is_file()

    def read_member(self, key: str, name: str) -> Optional[bytes]:
        try:
            return self._path(key, name).read_bytes()
        except OSError:
            return None

    def read_markdown(self, key: str) -> Optional[str]:
        return self._read_text(key, f"{key}.md")

    def read_json(self, key: str) -> Optional[str]:
        return self._read_text(key, f"{key}.json")

    def read_meta(self, key: str) -> Optional[ExtractionMeta]:
        raw = self._read_text(key, META_FILENAME)
        if raw is None:
            return None
        try:
            return ExtractionMeta.model_validate_json(raw)
        except ValidationError as exc:
            LOGGER.warning(f"Ignoring unreadable meta.json for {key}: {exc.error_count()} errors")
            return None

    def _read_text(self, key: str, name: str) -> Optional[str]:
        data = self.read_member(key, name)
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            LOGGER.warning(f"Ignoring non-UTF-8 cache file {name} for {key}")
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write(
        self,
        key: str,
        markdown: str,
        json_text: Optional[str],
        meta: ExtractionMeta,
    ) -> Path:
        """Write the full artifact triple for ``key``, replacing any previous one."""
        if meta.item_key != key:
            meta = meta.model_copy(update={"item_key": key})
        if json_text is None:
            json_text = json.dumps({})
        members = {
            f"{key}.json": json_text.encode("utf-8"),
            META_FILENAME: meta.to_json().encode("utf-8"),
            f"{key}.md": markdown.encode("utf-8"),
        }
        self.write_members(key, members)
        LOGGER.info(f"Cached extraction for {key} ({len(markdown)} chars)")
        return self.entry_dir(key)

    def write_members(self, key: str, members: Mapping[str, bytes]) -> None:
        """Atomically write the given artifact files, markdown last.

        Only the three artifact names of ``key`` are accepted.
        """
        allowed = member_names(key)
        unknown = set(members) - set(allowed)
        if unknown:
            raise ValueError(f"Unexpected cache members for {key}: {sorted(unknown)}")
        directory = self.entry_dir(key)
        directory.mkdir(parents=True, exist_ok=True)
        for name in _ordered(members, allowed):
            atomic_write_bytes(directory / name, members[name])


def _ordered(members: Mapping[str, bytes], order: Iterable[str]) -> Iterable[str]:
    return [name for name in order if name in members]
