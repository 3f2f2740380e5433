"""Which keys have backups in the library, and which have parent records.

Each query is a constant number of listing calls regardless of how many keys
are involved: one paginated attachment search for backups, one batch fetch
(chunked by the client) for parent records. Collaborator failures propagate
as :class:`~PapersKit.FullText.errors.RemoteApiError`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, Set

from .bundle import BACKUP_QUERY, key_from_backup_filename

if TYPE_CHECKING:
    from .clients import LibraryClient

LOGGER = logging.getLogger(__name__)

__all__ = ["RemoteBackupIndex"]


class RemoteBackupIndex:
    """Stateless queries against the library; nothing is cached between calls."""

    async def backup_attachments(self, remote: "LibraryClient") -> Dict[str, str]:
        """Map item key → backup attachment key from one attachment search."""
        items = await remote.list_items(item_type="attachment", q=BACKUP_QUERY)
        found: Dict[str, str] = {}
        for item in items:
            key = key_from_backup_filename(item.filename)
            if key is None:
                continue
            found.setdefault(key, item.key)
        LOGGER.debug(f"Backup search returned {len(items)} attachments, {len(found)} backups")
        return found

    async def backed_up_keys(self, remote: "LibraryClient") -> Set[str]:
        return set(await self.backup_attachments(remote))

    async def title_map(self, remote: "LibraryClient", keys: Iterable[str]) -> Dict[str, str]:
        """Titles of the parent records that exist among ``keys``.

        Keys missing from the result have no parent record. A record without
        a title maps to ``""``.
        """
        wanted = set(keys)
        if not wanted:
            return {}
        items = await remote.get_items(sorted(wanted))
        return {item.key: item.title or "" for item in items if item.key in wanted}

    async def item_exists(self, remote: "LibraryClient", keys: Iterable[str]) -> Set[str]:
        return set(await self.title_map(remote, keys))
