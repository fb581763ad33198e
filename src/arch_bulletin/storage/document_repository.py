# src/arch_bulletin/storage/document_repository.py

from __future__ import annotations

"""
JSON document repository on top of a DocumentStore.

Responsibilities:
- encode/decode documents (UTF-8 JSON, indent=2) and keep the version token beside them
- bound every backend call by a deadline and retry transient failures with backoff
- read-apply-write merges that re-read and re-apply on a stale token, but only for
  merges that are safe to repeat (appending a comment, a proof batch, a list entry)

State transitions are never retried here: a ConflictError is surfaced so the caller
can reload and decide again.
"""

import asyncio
import copy
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.errors import ConflictError, CorruptDataError, NotFoundError, UnavailableError
from ..core.ports import DocumentStore
from .store_models import Found, StoreCapabilities, StoreEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

Document = dict[str, Any]
MergeFn = Callable[[Document], Document]


def encode_document(data: Document) -> bytes:
    return json.dumps(data, ensure_ascii=False, indent=2).encode("utf-8")


def decode_document(raw: bytes, path: str) -> Document:
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptDataError(detail=f"{path}: {e}") from e
    if not isinstance(data, dict):
        raise CorruptDataError(detail=f"{path}: expected a JSON object, got {type(data).__name__}")
    return data


class DocumentRepository:
    def __init__(
        self,
        store: DocumentStore,
        *,
        retry_attempts: int = 3,
        conflict_attempts: int = 3,
        backoff_seconds: float = 0.5,
        backoff_max_seconds: float = 8.0,
        op_timeout_seconds: float = 30.0,
    ) -> None:
        self.store = store
        self.retry_attempts = max(1, int(retry_attempts))
        self.conflict_attempts = max(1, int(conflict_attempts))
        self.backoff_seconds = max(0.0, float(backoff_seconds))
        self.backoff_max_seconds = max(self.backoff_seconds, float(backoff_max_seconds))
        self.op_timeout_seconds = float(op_timeout_seconds)

    @classmethod
    def from_settings(cls, store: DocumentStore, settings) -> DocumentRepository:
        return cls(
            store,
            retry_attempts=getattr(settings, "retry_attempts", 3),
            conflict_attempts=getattr(settings, "conflict_attempts", 3),
            backoff_seconds=getattr(settings, "retry_backoff_seconds", 0.5),
            backoff_max_seconds=getattr(settings, "retry_backoff_max_seconds", 8.0),
            op_timeout_seconds=getattr(settings, "operation_timeout_seconds", 30.0),
        )

    @property
    def capabilities(self) -> StoreCapabilities:
        return self.store.capabilities

    # ---- call wrapper ----

    async def _call(self, op: str, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run one adapter call under a deadline, retrying UnavailableError with backoff."""

        async def _once() -> T:
            try:
                async with asyncio.timeout(self.op_timeout_seconds):
                    return await fn(*args, **kwargs)
            except TimeoutError as e:
                raise UnavailableError(detail=f"{op}: no answer within {self.op_timeout_seconds}s") from e

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.backoff_max_seconds),
            retry=retry_if_exception_type(UnavailableError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            return await retrying(_once)
        except UnavailableError as e:
            logger.error("%s gave up after %d attempts: %s", op, self.retry_attempts, e.detail)
            raise

    async def _put(
        self,
        op: str,
        put: Callable[..., Awaitable[str]],
        path: str,
        payload: bytes,
        **kwargs: Any,
    ) -> str:
        """
        Write `payload` through `_call`.

        A put whose answer was lost may still have been committed, so its retry can land on
        a ConflictError against our own write. In that case the stored bytes are read back:
        if they are exactly `payload` the earlier attempt succeeded and its token is returned.
        """
        attempts = 0

        async def _attempt() -> str:
            nonlocal attempts
            attempts += 1
            return await put(path, payload, **kwargs)

        try:
            return await self._call(op, _attempt)
        except ConflictError:
            if attempts < 2:
                raise
            stored = await self._call(f"get {path}", self.store.get, path)
            if stored is None or stored.content != payload:
                raise
            logger.warning("%s: conflict on retry but the stored copy matches, keeping it", op)
            return stored.version_token

    # ---- basic operations ----

    async def read(self, path: str) -> Found | None:
        stored = await self._call(f"get {path}", self.store.get, path)
        if stored is None:
            return None
        return Found(document=decode_document(stored.content, path), version_token=stored.version_token)

    async def create(self, path: str, data: Document, *, message: str) -> Found:
        token = await self._put(f"create {path}", self.store.put, path, encode_document(data), message=message)
        return Found(document=data, version_token=token)

    async def write(self, path: str, data: Document, *, message: str, version_token: str) -> Found:
        token = await self._put(
            f"write {path}",
            self.store.put,
            path,
            encode_document(data),
            message=message,
            version_token=version_token,
        )
        return Found(document=data, version_token=token)

    async def delete(self, path: str, version_token: str, *, message: str) -> None:
        await self._call(f"delete {path}", self.store.delete, path, version_token, message=message)

    async def list(self, prefix: str) -> list[StoreEntry]:
        return await self._call(f"list {prefix}", self.store.list, prefix)

    async def put_binary(self, path: str, data: bytes, *, message: str) -> str:
        return await self._put(f"put_binary {path}", self.store.put_binary, path, data, message=message)

    async def get_binary(self, path: str) -> bytes | None:
        return await self._call(f"get_binary {path}", self.store.get_binary, path)

    async def get_raw(self, path: str):
        """Stored bytes and token without JSON decoding (binary deletes need the token)."""
        return await self._call(f"get {path}", self.store.get, path)

    # ---- read-modify-write ----

    async def mutate(
        self,
        path: str,
        fn: MergeFn,
        *,
        message: str,
        idempotent: bool = False,
        expected_token: str | None = None,
        default: Document | Callable[[], Document] | None = None,
    ) -> Found:
        """
        Read the document, apply `fn` to a copy and write it back with the token just read.

        - `default` seeds a missing document (written with create semantics); without it a
          missing document raises NotFoundError
        - `expected_token` pins the version the caller saw; if the stored token differs the
          call fails with ConflictError and nothing is written
        - with `idempotent=True` and no pinned token, a ConflictError on write re-reads and
          re-applies `fn`, up to conflict_attempts
        - if `fn` returns an unchanged document no write is made
        """
        attempts = self.conflict_attempts if idempotent and expected_token is None else 1

        for attempt in range(1, attempts + 1):
            found = await self.read(path)
            if found is None:
                if expected_token is not None:
                    raise ConflictError(detail=f"{path} no longer exists")
                if default is None:
                    raise NotFoundError(detail=path)
                current = default() if callable(default) else copy.deepcopy(default)
                token = None
            else:
                if expected_token is not None and found.version_token != expected_token:
                    raise ConflictError(detail=f"{path} changed since it was read")
                current = found.document
                token = found.version_token

            updated = fn(copy.deepcopy(current))
            if found is not None and updated == found.document:
                logger.debug("mutate %s: no change", path)
                return found

            try:
                if token is None:
                    return await self.create(path, updated, message=message)
                return await self.write(path, updated, message=message, version_token=token)
            except ConflictError:
                if attempt >= attempts:
                    raise
                logger.warning("Conflict writing %s (attempt %d/%d), re-reading", path, attempt, attempts)

        raise AssertionError("unreachable")
