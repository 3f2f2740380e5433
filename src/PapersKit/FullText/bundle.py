"""
Backup Bundle Codec

A bundle is a deflated zip holding the flat members ``<key>.md``,
``<key>.json`` and ``meta.json`` of one cache entry. In the library it is
stored as an ``imported_file`` attachment named ``papers_extract_<key>.zip``
under the parent record ``<key>``; that name is the only thing that marks an
attachment as a backup.

Transfer protocols:

- upload: create the attachment, then register/transfer the content. When
  the library reports the content already exists the transfer is skipped.
- download: fetch the attachment file and unpack it into the store.
"""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional, Set

from .errors import BundleFormatError
from .store import LocalExtractionStore, member_names

if TYPE_CHECKING:
    from .clients import LibraryClient

LOGGER = logging.getLogger(__name__)

__all__ = [
    "BACKUP_CONTENT_TYPE",
    "BundleCodec",
    "UploadReceipt",
    "backup_filename",
    "key_from_backup_filename",
]

BACKUP_PREFIX = "papers_extract_"
BACKUP_SUFFIX = ".zip"
BACKUP_CONTENT_TYPE = "application/zip"
BACKUP_QUERY = "papers_extract"


def backup_filename(key: str) -> str:
    return f"{BACKUP_PREFIX}{key}{BACKUP_SUFFIX}"


def key_from_backup_filename(filename: Optional[str]) -> Optional[str]:
    """Inverse of :func:`backup_filename`; ``None`` for any other name."""
    if not filename:
        return None
    if not (filename.startswith(BACKUP_PREFIX) and filename.endswith(BACKUP_SUFFIX)):
        return None
    key = filename[len(BACKUP_PREFIX) : -len(BACKUP_SUFFIX)]
    return key or None


@dataclass(frozen=True)
class UploadReceipt:
    key: str
    attachment_key: str
    transferred: bool
    size: int


class BundleCodec:
    """Packs cache entries into bundles and moves them to and from the library."""

    def __init__(self, store: LocalExtractionStore) -> None:
        self.store = store

    def pack(self, key: str) -> bytes:
        """Zip whichever artifact files of ``key`` exist."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name in sorted(member_names(key)):
                data = self.store.read_member(key, name)
                if data is not None:
                    archive.writestr(name, data)
        return buffer.getvalue()

    def unpack(self, data: bytes, key: str) -> Set[str]:
        """Write the bundle's artifact members for ``key`` into the store.

        Members other than the three artifact names are ignored. The archive
        is fully read before anything is written, so a rejected bundle leaves
        the store untouched.

        Raises:
            BundleFormatError: not a zip, unreadable member, or no markdown.
        """
        wanted = set(member_names(key))
        members: Dict[str, bytes] = {}
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                for info in archive.infolist():
                    if info.is_dir() or info.filename not in wanted:
                        continue
                    members[info.filename] = archive.read(info)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError) as exc:
            raise BundleFormatError(key, f"not a readable zip archive ({exc})") from exc

        if f"{key}.md" not in members:
            raise BundleFormatError(key, f"archive has no {key}.md")

        self.store.write_members(key, members)
        LOGGER.info(f"Restored {sorted(members)} for {key} from backup bundle")
        return set(members)

    async def upload(self, remote: "LibraryClient", key: str) -> UploadReceipt:
        """Create the backup attachment for ``key`` and transfer the bundle."""
        data = self.pack(key)
        filename = backup_filename(key)
        attachment_key = await remote.create_attachment(key, filename, BACKUP_CONTENT_TYPE)
        transferred = await remote.upload_attachment_file(attachment_key, filename, data)
        return UploadReceipt(
            key=key, attachment_key=attachment_key, transferred=transferred, size=len(data)
        )

    async def download(self, remote: "LibraryClient", key: str, attachment_key: str) -> Set[str]:
        """Fetch the backup attachment's bytes and unpack them for ``key``."""
        data = await remote.download_item_file(attachment_key)
        return self.unpack(data, key)
