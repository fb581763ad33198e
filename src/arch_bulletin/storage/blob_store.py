# src/arch_bulletin/storage/blob_store.py

from __future__ import annotations

"""
Blob-store adapter (Vercel Blob style API).

The blob API has no notion of a version token, so CAS cannot be enforced by the backend.
Two modes, chosen by configuration:
- emulated: read the current bytes, compare their SHA-256 with the caller's token, then write;
            a concurrent writer inside that window wins silently (reported via capabilities)
- rejected: any conditional write (update/delete with a token) raises UnsupportedOperationError,
            only create-once writes are accepted
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..core.errors import (
    ConflictError,
    NotFoundError,
    StorageError,
    UnavailableError,
    UnsupportedOperationError,
)
from .store_models import (
    CasSupport,
    EntryKind,
    StoreCapabilities,
    StoredContent,
    StoreEntry,
    content_sha256,
    normalize_path,
    require_message,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://blob.vercel-storage.com"
API_VERSION = "7"


class BlobDocumentStore:
    def __init__(
        self,
        *,
        token: str,
        public_url: str,
        api_url: str = DEFAULT_API_URL,
        cas_mode: CasSupport | str = CasSupport.EMULATED,
        connect_timeout: float = 5.0,
        request_timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token or not token.strip():
            raise ValueError("Blob read/write token is required. Set BULLETIN_BLOB_TOKEN.")
        if not public_url or not public_url.strip():
            raise ValueError("Blob public store URL is required. Set BULLETIN_BLOB_PUBLIC_URL.")

        mode = CasSupport(cas_mode)
        if mode == CasSupport.NATIVE:
            raise ValueError("Blob store cannot provide native CAS; use 'emulated' or 'rejected'.")

        self.api_url = api_url.rstrip("/")
        self.public_url = public_url.rstrip("/")
        self._auth = {"authorization": f"Bearer {token.strip()}", "x-api-version": API_VERSION}
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=connect_timeout, read=request_timeout, write=request_timeout, pool=connect_timeout)
        )
        if mode == CasSupport.EMULATED:
            desc = "blob store; read-compare-write, last write wins inside the race window"
        else:
            desc = "blob store; conditional writes refused"
        self._capabilities = StoreCapabilities(cas=mode, description=desc)

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- low-level helpers ----

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise UnavailableError(detail=f"{method} {url}: timeout") from e
        except httpx.TransportError as e:
            raise UnavailableError(detail=f"{method} {url}: {e.__class__.__name__}") from e
        if resp.status_code >= 500 or resp.status_code == 429:
            raise UnavailableError(detail=f"{method} {url}: HTTP {resp.status_code}")
        return resp

    def _public(self, path: str) -> str:
        return f"{self.public_url}/{quote(path, safe='/')}"

    async def _check_token(self, path: str, version_token: str | None) -> None:
        current = await self.get(path)
        if version_token is None:
            if current is not None:
                raise ConflictError(detail=f"{path} already exists")
            return
        if self._capabilities.cas == CasSupport.REJECTED:
            raise UnsupportedOperationError(detail="blob store is configured to refuse conditional writes")
        if current is None:
            raise ConflictError(detail=f"{path} no longer exists")
        if current.version_token != version_token:
            raise ConflictError(detail=f"{path} token mismatch")

    # ---- public API ----

    async def get(self, path: str) -> StoredContent | None:
        p = normalize_path(path)
        resp = await self._request("GET", self._public(p), headers={"cache-control": "no-cache"})
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise StorageError(detail=f"GET {p}: HTTP {resp.status_code}")
        data = resp.content
        return StoredContent(content=data, version_token=content_sha256(data))

    async def put(
        self,
        path: str,
        content: bytes,
        *,
        message: str,
        version_token: str | None = None,
        content_type: str = "application/json",
    ) -> str:
        msg = require_message(message)
        p = normalize_path(path)
        await self._check_token(p, version_token)

        headers = {
            **self._auth,
            "x-content-type": content_type,
            "x-add-random-suffix": "0",
            "x-allow-overwrite": "1",
            "x-cache-control-max-age": "0",
        }
        resp = await self._request("PUT", f"{self.api_url}/{quote(p, safe='/')}", content=content, headers=headers)
        if resp.status_code not in (200, 201):
            raise StorageError(detail=f"PUT {p}: HTTP {resp.status_code}")
        logger.info("Stored blob %s (%s)", p, msg)
        return content_sha256(content)

    async def delete(self, path: str, version_token: str, *, message: str) -> None:
        msg = require_message(message)
        p = normalize_path(path)
        if self._capabilities.cas == CasSupport.REJECTED:
            raise UnsupportedOperationError(detail="blob store is configured to refuse conditional writes")
        current = await self.get(p)
        if current is None:
            raise NotFoundError(detail=p)
        if current.version_token != version_token:
            raise ConflictError(detail=f"{p} token mismatch")

        resp = await self._request(
            "POST", f"{self.api_url}/delete", json={"urls": [self._public(p)]}, headers=self._auth
        )
        if resp.status_code not in (200, 204):
            raise StorageError(detail=f"delete {p}: HTTP {resp.status_code}")
        logger.info("Deleted blob %s (%s)", p, msg)

    async def list(self, prefix: str) -> list[StoreEntry]:
        base = normalize_path(prefix) + "/"
        out: list[StoreEntry] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"prefix": base, "mode": "folded", "limit": 1000}
            if cursor:
                params["cursor"] = cursor
            resp = await self._request("GET", self.api_url, params=params, headers=self._auth)
            if resp.status_code == 404:
                return []
            if resp.status_code != 200:
                raise StorageError(detail=f"list {base}: HTTP {resp.status_code}")
            body = resp.json()

            for folder in body.get("folders", []) or []:
                rel = str(folder).rstrip("/")
                out.append(StoreEntry(name=rel.rsplit("/", 1)[-1], path=rel, kind=EntryKind.DIR))
            for blob in body.get("blobs", []) or []:
                rel = str(blob.get("pathname") or "")
                if rel:
                    out.append(StoreEntry(name=rel.rsplit("/", 1)[-1], path=rel, kind=EntryKind.FILE))

            if not body.get("hasMore"):
                break
            cursor = body.get("cursor")

        out.sort(key=lambda e: e.name)
        return out

    async def put_binary(self, path: str, data: bytes, *, message: str) -> str:
        return await self.put(path, data, message=message, content_type="application/octet-stream")

    async def get_binary(self, path: str) -> bytes | None:
        found = await self.get(path)
        return found.content if found is not None else None
