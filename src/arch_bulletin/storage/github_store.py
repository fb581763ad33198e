# src/arch_bulletin/storage/github_store.py

from __future__ import annotations

"""
Commit-versioned document store on top of the GitHub REST contents API.

Every put/delete is a commit on the configured branch. The contents API only allows
"replace if the current blob SHA equals X", which is exactly the optimistic CAS the
rest of the app relies on:
- create: no sha in the payload, GitHub answers 422 if the file already exists
- update/delete: sha of the blob last read, GitHub answers 409 if it moved on
"""

import base64
import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..core.errors import (
    ConflictError,
    CorruptDataError,
    NotFoundError,
    StorageError,
    UnavailableError,
)
from .store_models import (
    CasSupport,
    EntryKind,
    StoreCapabilities,
    StoredContent,
    StoreEntry,
    normalize_path,
    require_message,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
USER_AGENT = "arch-bulletin/1.0"


def _make_timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect_s, read=read_s, write=read_s, pool=connect_s)


def _is_rate_limited(resp: httpx.Response) -> bool:
    if resp.status_code == 429:
        return True
    if resp.status_code == 403:
        return resp.headers.get("x-ratelimit-remaining") == "0" or "rate limit" in resp.text.lower()
    return False


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or "")
    return ""


class GitHubDocumentStore:
    """
    Document store backed by a GitHub repository (owner/repo@branch).

    IMPORTANT:
    - No request is made at construction time.
    - Transport failures, 5xx and rate limits surface as UnavailableError;
      retrying is the caller's decision (see DocumentRepository).
    """

    def __init__(
        self,
        *,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
        api_url: str = DEFAULT_API_URL,
        connect_timeout: float = 5.0,
        request_timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token or not token.strip():
            raise ValueError("GitHub token is required. Set BULLETIN_GITHUB_TOKEN in your .env.")
        if not owner or not owner.strip():
            raise ValueError("GitHub repository owner is required. Set BULLETIN_GITHUB_OWNER.")
        if not repo or not repo.strip():
            raise ValueError("GitHub repository name is required. Set BULLETIN_GITHUB_REPO.")

        self.owner = owner.strip()
        self.repo = repo.strip()
        self.branch = (branch or "main").strip()

        headers = {
            "Authorization": f"Bearer {token.strip()}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if client is None:
            client = httpx.AsyncClient(
                base_url=api_url.rstrip("/"),
                headers=headers,
                timeout=_make_timeout(connect_timeout, request_timeout),
            )
        else:
            client.headers.update(headers)
        self._client = client
        self._capabilities = StoreCapabilities(
            cas=CasSupport.NATIVE,
            description=f"github contents API {self.owner}/{self.repo}@{self.branch}",
        )

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- low-level helpers ----

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{quote(path, safe='/')}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise UnavailableError(detail=f"{method} {url}: timeout") from e
        except httpx.TransportError as e:
            raise UnavailableError(detail=f"{method} {url}: {e.__class__.__name__}") from e

        if resp.status_code >= 500 or _is_rate_limited(resp):
            raise UnavailableError(detail=f"{method} {url}: HTTP {resp.status_code}")
        return resp

    def _raise_for_write(self, resp: httpx.Response, path: str, version_token: str | None) -> None:
        if resp.status_code in (200, 201):
            return
        message = _error_message(resp)
        if resp.status_code == 409:
            raise ConflictError(detail=f"{path}: {message or 'sha mismatch'}")
        if resp.status_code == 422 and ("sha" in message.lower() or version_token is None):
            raise ConflictError(detail=f"{path}: {message or 'already exists'}")
        if resp.status_code == 404:
            if version_token is not None:
                # Updating a file that was deleted in the meantime.
                raise ConflictError(detail=f"{path}: no longer exists")
            raise StorageError(detail=f"{path}: repository or branch not found")
        raise StorageError(detail=f"{path}: HTTP {resp.status_code} {message}")

    async def _fetch_blob(self, sha: str) -> bytes:
        resp = await self._request("GET", f"/repos/{self.owner}/{self.repo}/git/blobs/{sha}")
        if resp.status_code != 200:
            raise StorageError(detail=f"blob {sha}: HTTP {resp.status_code}")
        body = resp.json()
        return self._decode(body, f"blob {sha}")

    @staticmethod
    def _decode(body: dict[str, Any], where: str) -> bytes:
        raw = body.get("content") or ""
        encoding = body.get("encoding") or "base64"
        if encoding != "base64":
            return str(raw).encode("utf-8")
        try:
            return base64.b64decode(str(raw).replace("\n", ""), validate=True)
        except ValueError as e:
            raise CorruptDataError(detail=f"{where}: invalid base64 content") from e

    # ---- public API ----

    async def get(self, path: str) -> StoredContent | None:
        p = normalize_path(path)
        resp = await self._request("GET", self._contents_url(p), params={"ref": self.branch})
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise StorageError(detail=f"GET {p}: HTTP {resp.status_code} {_error_message(resp)}")

        body = resp.json()
        if not isinstance(body, dict) or body.get("type", "file") != "file":
            raise CorruptDataError(detail=f"{p} is not a file")

        sha = str(body.get("sha") or "")
        if not sha:
            raise CorruptDataError(detail=f"{p}: response without sha")

        # Files above the contents API inline limit come back with encoding "none".
        if body.get("encoding") == "none" or (not body.get("content") and int(body.get("size") or 0) > 0):
            data = await self._fetch_blob(sha)
        else:
            data = self._decode(body, p)
        return StoredContent(content=data, version_token=sha)

    async def put(
        self,
        path: str,
        content: bytes,
        *,
        message: str,
        version_token: str | None = None,
    ) -> str:
        p = normalize_path(path)
        payload: dict[str, Any] = {
            "message": require_message(message),
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if version_token is not None:
            payload["sha"] = version_token

        resp = await self._request("PUT", self._contents_url(p), json=payload)
        self._raise_for_write(resp, p, version_token)

        body = resp.json()
        new_sha = str((body.get("content") or {}).get("sha") or "")
        if not new_sha:
            raise StorageError(detail=f"PUT {p}: response without content sha")
        logger.info("Committed %s (%s) sha=%s", p, payload["message"], new_sha[:10])
        return new_sha

    async def delete(self, path: str, version_token: str, *, message: str) -> None:
        p = normalize_path(path)
        payload = {"message": require_message(message), "sha": version_token, "branch": self.branch}
        resp = await self._request("DELETE", self._contents_url(p), json=payload)
        if resp.status_code == 404:
            raise NotFoundError(detail=p)
        self._raise_for_write(resp, p, version_token)
        logger.info("Deleted %s (%s)", p, payload["message"])

    async def list(self, prefix: str) -> list[StoreEntry]:
        p = normalize_path(prefix)
        resp = await self._request("GET", self._contents_url(p), params={"ref": self.branch})
        if resp.status_code == 404:
            return []
        if resp.status_code != 200:
            raise StorageError(detail=f"GET {p}: HTTP {resp.status_code} {_error_message(resp)}")

        body = resp.json()
        items = body if isinstance(body, list) else [body]
        out: list[StoreEntry] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            kind = EntryKind.DIR if item.get("type") == "dir" else EntryKind.FILE
            out.append(StoreEntry(name=str(item.get("name") or ""), path=str(item.get("path") or ""), kind=kind))
        return out

    async def put_binary(self, path: str, data: bytes, *, message: str) -> str:
        return await self.put(path, data, message=message)

    async def get_binary(self, path: str) -> bytes | None:
        found = await self.get(path)
        return found.content if found is not None else None
