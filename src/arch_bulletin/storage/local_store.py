# src/arch_bulletin/storage/local_store.py

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from ..core.errors import ConflictError, NotFoundError, StorageError
from .store_models import (
    CasSupport,
    EntryKind,
    StoreCapabilities,
    StoredContent,
    StoreEntry,
    git_blob_sha,
    normalize_path,
    require_message,
)

logger = logging.getLogger(__name__)


class LocalFileStore:
    """
    Filesystem-backed document store (local / demo mode).

    Layout mirrors the remote repository: posts/, config/, uploads/ under `root`.
    Version tokens are git blob SHAs, so a local data directory can be pushed to a
    data repository as-is.

    Thread-safety:
    - compare-and-swap is serialized by a process-local lock; writes use os.replace
    - two processes sharing a directory only get emulated CAS
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._capabilities = StoreCapabilities(
            cas=CasSupport.EMULATED,
            description="local filesystem; CAS is exact within one process only",
        )
        logger.info("LocalFileStore ready root=%s", self._root)

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    @property
    def root(self) -> Path:
        return self._root

    async def aclose(self) -> None:
        """Compatibility hook for shutdown (no persistent handles to close)."""
        return

    # ---- low-level helpers ----

    def _resolve(self, path: str) -> Path:
        return self._root / normalize_path(path)

    @staticmethod
    def _read(target: Path) -> bytes | None:
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None
        except IsADirectoryError:
            raise StorageError(detail=f"{target} is a directory") from None
        except OSError as e:
            raise StorageError(detail=str(e)) from e

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f".{target.name}.tmp")
        tmp.write_bytes(content)
        os.replace(tmp, target)

    def _check_token(self, path: str, current: bytes | None, version_token: str | None) -> None:
        if version_token is None:
            if current is not None:
                raise ConflictError(detail=f"{path} already exists")
            return
        if current is None:
            raise ConflictError(detail=f"{path} no longer exists")
        if git_blob_sha(current) != version_token:
            raise ConflictError(detail=f"{path} token mismatch")

    # ---- public API ----

    async def get(self, path: str) -> StoredContent | None:
        data = self._read(self._resolve(path))
        if data is None:
            return None
        return StoredContent(content=data, version_token=git_blob_sha(data))

    async def put(
        self,
        path: str,
        content: bytes,
        *,
        message: str,
        version_token: str | None = None,
    ) -> str:
        msg = require_message(message)
        target = self._resolve(path)
        with self._lock:
            self._check_token(path, self._read(target), version_token)
            self._write(target, content)
        token = git_blob_sha(content)
        logger.debug("local put %s token=%s msg=%s", path, token, msg)
        return token

    async def delete(self, path: str, version_token: str, *, message: str) -> None:
        msg = require_message(message)
        target = self._resolve(path)
        with self._lock:
            current = self._read(target)
            if current is None:
                raise NotFoundError(detail=path)
            if git_blob_sha(current) != version_token:
                raise ConflictError(detail=f"{path} token mismatch")
            target.unlink()
        logger.debug("local delete %s msg=%s", path, msg)

    async def list(self, prefix: str) -> list[StoreEntry]:
        base = self._resolve(prefix)
        if not base.is_dir():
            return []
        out: list[StoreEntry] = []
        for child in sorted(base.iterdir(), key=lambda p: p.name):
            if child.name.startswith("."):
                continue
            kind = EntryKind.DIR if child.is_dir() else EntryKind.FILE
            rel = child.relative_to(self._root).as_posix()
            out.append(StoreEntry(name=child.name, path=rel, kind=kind))
        return out

    async def put_binary(self, path: str, data: bytes, *, message: str) -> str:
        return await self.put(path, data, message=message)

    async def get_binary(self, path: str) -> bytes | None:
        found = await self.get(path)
        return found.content if found is not None else None
