"""
Zotero Web API v3 Binding

Covers the handful of endpoints FullText needs:

- item listing with ``itemType`` / ``q`` / ``qmode`` filters (paginated)
- batch fetch by ``itemKey`` (50 keys per request)
- child listing for a parent record
- attachment creation and the file upload handshake
  (register → storage POST → register completion)
- attachment file download

Every request carries ``Zotero-API-Version: 3`` and ``Zotero-API-Key``.
Failures surface as :class:`RemoteApiError` once the retry policy gives up.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from ..config.models import HttpConfig, PapersSettings
from ..errors import RemoteApiError
from .http import SleepFn, request_with_retries

LOGGER = logging.getLogger(__name__)

__all__ = ["ZoteroClient", "ZoteroItem", "is_zotero_key"]

SERVICE = "zotero"
API_VERSION = "3"
PAGE_SIZE = 100
BATCH_KEY_LIMIT = 50

_KEY_PATTERN = re.compile(r"^[23456789ABCDEFGHIJKLMNPQRSTUVWXYZ]{8}$")


def is_zotero_key(value: str) -> bool:
    """True when ``value`` has the shape of a Zotero item key."""
    return bool(_KEY_PATTERN.match(value or ""))


@dataclass(frozen=True)
class ZoteroItem:
    """The fields of a Zotero item record that FullText reads."""

    key: str
    item_type: str
    title: str = ""
    doi: Optional[str] = None
    parent_item: Optional[str] = None
    link_mode: Optional[str] = None
    content_type: Optional[str] = None
    filename: Optional[str] = None

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "ZoteroItem":
        data = payload.get("data") or {}
        return cls(
            key=str(payload.get("key") or data.get("key") or ""),
            item_type=str(data.get("itemType") or ""),
            title=str(data.get("title") or ""),
            doi=data.get("DOI") or None,
            parent_item=data.get("parentItem") or None,
            link_mode=data.get("linkMode") or None,
            content_type=data.get("contentType") or None,
            filename=data.get("filename") or None,
        )

    @property
    def is_stored_pdf(self) -> bool:
        """PDF attachment whose file lives in Zotero storage."""
        return self.content_type == "application/pdf" and self.link_mode in (
            "imported_file",
            "imported_url",
        )

    def local_path(self, data_dir: Path) -> Optional[Path]:
        """Where Zotero desktop keeps this attachment's file."""
        if not self.filename:
            return None
        return Path(data_dir) / "storage" / self.key / self.filename


class ZoteroClient:
    """Async client for one user library."""

    def __init__(
        self,
        user_id: str,
        api_key: str,
        *,
        client: httpx.AsyncClient,
        http_cfg: Optional[HttpConfig] = None,
        base_url: str = "https://api.zotero.org",
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.user_id = str(user_id)
        self._api_key = api_key
        self._client = client
        self._http_cfg = http_cfg or HttpConfig()
        self._base_url = base_url.rstrip("/")
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, settings: PapersSettings, client: httpx.AsyncClient
    ) -> Optional["ZoteroClient"]:
        """Build a client, or ``None`` when credentials are not configured."""
        zotero = settings.zotero
        if not zotero.configured:
            return None
        return cls(
            zotero.user_id or "",
            zotero.api_key or "",
            client=client,
            http_cfg=settings.http,
            base_url=zotero.base_url,
        )

    def __repr__(self) -> str:
        return f"ZoteroClient(user_id={self.user_id!r})"

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @property
    def _prefix(self) -> str:
        return f"{self._base_url}/users/{self.user_id}"

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Zotero-API-Version": API_VERSION, "Zotero-API-Key": self._api_key}
        if extra:
            headers.update(extra)
        return headers

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = kwargs.pop("headers", None)
        return await request_with_retries(
            self._client,
            method,
            url,
            cfg=self._http_cfg,
            service=SERVICE,
            sleep=self._sleep,
            headers=self._headers(headers),
            **kwargs,
        )

    async def _get_items(self, url: str, params: Dict[str, Any]) -> List[ZoteroItem]:
        response = await self._request("GET", url, params=params)
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteApiError("invalid JSON in item listing", service=SERVICE, url=url) from exc
        if isinstance(payload, dict):
            payload = [payload]
        return [ZoteroItem.from_json(entry) for entry in payload]

    async def _get_all_pages(self, url: str, params: Dict[str, Any]) -> List[ZoteroItem]:
        items: List[ZoteroItem] = []
        start = 0
        while True:
            page_params = dict(params, limit=PAGE_SIZE, start=start)
            response = await self._request("GET", url, params=page_params)
            try:
                payload = response.json()
            except ValueError as exc:
                raise RemoteApiError(
                    "invalid JSON in item listing",
                    status=response.status_code,
                    service=SERVICE,
                    url=url,
                ) from exc
            page = [ZoteroItem.from_json(entry) for entry in payload]
            items.extend(page)
            total = _int_header(response, "Total-Results")
            start += len(page)
            if len(page) < PAGE_SIZE or (total is not None and start >= total):
                return items

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_items(
        self,
        *,
        item_type: Optional[str] = None,
        q: Optional[str] = None,
        qmode: Optional[str] = None,
    ) -> List[ZoteroItem]:
        """``GET /users/<id>/items`` following pagination."""
        params: Dict[str, Any] = {}
        if item_type:
            params["itemType"] = item_type
        if q:
            params["q"] = q
        if qmode:
            params["qmode"] = qmode
        return await self._get_all_pages(f"{self._prefix}/items", params)

    async def list_top_items(
        self, *, q: Optional[str] = None, qmode: Optional[str] = None
    ) -> List[ZoteroItem]:
        """``GET /users/<id>/items/top``; first page only."""
        params: Dict[str, Any] = {"limit": 25}
        if q:
            params["q"] = q
        if qmode:
            params["qmode"] = qmode
        return await self._get_items(f"{self._prefix}/items/top", params)

    async def get_items(self, keys: Sequence[str]) -> List[ZoteroItem]:
        """Batch fetch by key, chunked to the API's 50-key limit."""
        unique = sorted(set(keys))
        items: List[ZoteroItem] = []
        for offset in range(0, len(unique), BATCH_KEY_LIMIT):
            chunk = unique[offset : offset + BATCH_KEY_LIMIT]
            params = {"itemKey": ",".join(chunk), "limit": BATCH_KEY_LIMIT}
            items.extend(await self._get_items(f"{self._prefix}/items", params))
        return items

    async def get_item(self, key: str) -> ZoteroItem:
        items = await self._get_items(f"{self._prefix}/items/{key}", {})
        return items[0]

    async def list_item_children(self, key: str) -> List[ZoteroItem]:
        return await self._get_items(f"{self._prefix}/items/{key}/children", {})

    async def download_item_file(self, key: str) -> bytes:
        """``GET /users/<id>/items/<key>/file`` (follows the storage redirect)."""
        response = await self._request("GET", f"{self._prefix}/items/{key}/file")
        return response.content

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_attachment(self, parent_key: str, filename: str, content_type: str) -> str:
        """Create an ``imported_file`` child attachment and return its key."""
        body = [
            {
                "itemType": "attachment",
                "parentItem": parent_key,
                "linkMode": "imported_file",
                "title": filename,
                "filename": filename,
                "contentType": content_type,
                "tags": [],
                "collections": [],
            }
        ]
        url = f"{self._prefix}/items"
        response = await self._request(
            "POST",
            url,
            content=json.dumps(body),
            headers={"Content-Type": "application/json"},
        )
        result = response.json()
        created = (result.get("successful") or {}).get("0") or {}
        key = created.get("key")
        if not key:
            failed = (result.get("failed") or {}).get("0") or {}
            raise RemoteApiError(
                f"attachment not created: {failed.get('message', 'no key returned')}",
                status=failed.get("code"),
                service=SERVICE,
                url=url,
            )
        LOGGER.info(f"Created attachment {key} ({filename}) under {parent_key}")
        return str(key)

    async def upload_attachment_file(self, key: str, filename: str, data: bytes) -> bool:
        """Upload file content for attachment ``key``.

        Returns ``False`` when Zotero reports the content already exists and
        nothing was transferred, ``True`` after a completed upload.
        """
        url = f"{self._prefix}/items/{key}/file"
        form_headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "If-None-Match": "*",
        }
        register = await self._request(
            "POST",
            url,
            data={
                "md5": hashlib.md5(data).hexdigest(),
                "filename": filename,
                "filesize": str(len(data)),
                "mtime": str(int(time.time() * 1000)),
            },
            headers=form_headers,
        )
        auth = register.json()
        if auth.get("exists") == 1:
            LOGGER.info(f"Attachment {key} already has this file; skipping transfer")
            return False

        for field in ("url", "contentType", "uploadKey"):
            if not auth.get(field):
                raise RemoteApiError(
                    f"upload authorization missing {field}", service=SERVICE, url=url
                )

        body = (auth.get("prefix") or "").encode() + data + (auth.get("suffix") or "").encode()
        await request_with_retries(
            self._client,
            "POST",
            auth["url"],
            cfg=self._http_cfg,
            service=SERVICE,
            sleep=self._sleep,
            content=body,
            headers={"Content-Type": auth["contentType"]},
        )

        await self._request(
            "POST", url, data={"upload": auth["uploadKey"]}, headers=form_headers
        )
        LOGGER.info(f"Uploaded {len(data)} bytes to attachment {key}")
        return True


def _int_header(response: httpx.Response, name: str) -> Optional[int]:
    value = response.headers.get(name)
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None
