# src/arch_bulletin/storage/s3_store.py

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ..core.errors import ConflictError, NotFoundError, StorageError, UnavailableError
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

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}
_CONFLICT_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}
_TRANSIENT_CODES = {"SlowDown", "ServiceUnavailable", "InternalError", "RequestTimeout", "503", "500"}


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code") or "")


def _etag(raw: str | None) -> str:
    return (raw or "").strip('"')


def _audit_metadata(message: str) -> dict[str, str]:
    # S3 user metadata must be ASCII.
    return {"audit-message": message.encode("ascii", "replace").decode("ascii")[:1024]}


class S3DocumentStore:
    """
    Object-store adapter (AWS S3 or compatible).

    Version tokens are ETags. With `conditional_writes` the bucket enforces CAS itself
    (IfNoneMatch="*" on create, IfMatch=<etag> on update/delete). Without it the adapter
    falls back to head-then-write, which is reported as emulated CAS.

    boto3 is blocking, so calls run in worker threads. Cancelling the awaiting task
    abandons the call but cannot recall a request already sent.
    """

    def __init__(
        self,
        *,
        bucket: str,
        region: str = "us-east-1",
        prefix: str = "",
        endpoint_url: str | None = None,
        conditional_writes: bool = True,
        connect_timeout: float = 5.0,
        request_timeout: float = 15.0,
        client: Any | None = None,
    ) -> None:
        if not bucket or not bucket.strip():
            raise ValueError("S3 bucket name is required. Set BULLETIN_S3_BUCKET.")
        if not region or not region.strip():
            raise ValueError("AWS region is required. Set BULLETIN_S3_REGION.")

        self.bucket = bucket.strip()
        self.prefix = prefix.strip("/")
        self.conditional_writes = conditional_writes

        if client is None:
            cfg = Config(
                region_name=region,
                connect_timeout=connect_timeout,
                read_timeout=request_timeout,
                retries={"max_attempts": 1},
            )
            kwargs: dict[str, Any] = {"config": cfg}
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("s3", **kwargs)
        self._s3 = client

        if conditional_writes:
            self._capabilities = StoreCapabilities(
                cas=CasSupport.NATIVE,
                description=f"s3://{self.bucket} with conditional writes",
            )
        else:
            self._capabilities = StoreCapabilities(
                cas=CasSupport.EMULATED,
                description=f"s3://{self.bucket}; head-then-write, last write wins inside the race window",
            )

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    async def aclose(self) -> None:
        close = getattr(self._s3, "close", None)
        if callable(close):
            await asyncio.to_thread(close)

    # ---- low-level helpers ----

    def _key(self, path: str) -> str:
        p = normalize_path(path)
        return f"{self.prefix}/{p}" if self.prefix else p

    def _rel(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix + "/"):
            return key[len(self.prefix) + 1 :]
        return key

    async def _call(self, op: str, **kwargs: Any) -> Any:
        fn = getattr(self._s3, op)
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, BotoConnectionError) as e:
            raise UnavailableError(detail=f"s3 {op}: {e.__class__.__name__}") from e
        except ClientError as e:
            code = _error_code(e)
            if code in _TRANSIENT_CODES:
                raise UnavailableError(detail=f"s3 {op}: {code}") from e
            raise
        except BotoCoreError as e:
            raise StorageError(detail=f"s3 {op}: {e}") from e

    async def _head_etag(self, key: str) -> str | None:
        try:
            head = await self._call("head_object", Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None
            raise StorageError(detail=f"head {key}: {_error_code(e)}") from e
        return _etag(head.get("ETag"))

    async def _emulate_check(self, key: str, version_token: str | None) -> None:
        current = await self._head_etag(key)
        if version_token is None and current is not None:
            raise ConflictError(detail=f"{key} already exists")
        if version_token is not None and current != version_token:
            raise ConflictError(detail=f"{key} token mismatch")

    # ---- public API ----

    async def get(self, path: str) -> StoredContent | None:
        key = self._key(path)
        try:
            obj = await self._call("get_object", Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None
            raise StorageError(detail=f"get {key}: {_error_code(e)}") from e
        data = await asyncio.to_thread(obj["Body"].read)
        return StoredContent(content=data, version_token=_etag(obj.get("ETag")))

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
        key = self._key(path)
        kwargs: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": content,
            "ContentType": content_type,
            "Metadata": _audit_metadata(msg),
        }
        if self.conditional_writes:
            if version_token is None:
                kwargs["IfNoneMatch"] = "*"
            else:
                kwargs["IfMatch"] = version_token
        else:
            await self._emulate_check(key, version_token)

        try:
            resp = await self._call("put_object", **kwargs)
        except ClientError as e:
            code = _error_code(e)
            if code in _CONFLICT_CODES:
                raise ConflictError(detail=f"{key}: {code}") from e
            if code in _MISSING_CODES and version_token is not None:
                raise ConflictError(detail=f"{key} no longer exists") from e
            raise StorageError(detail=f"put {key}: {code}") from e

        token = _etag(resp.get("ETag"))
        logger.info("Stored s3://%s/%s (%s)", self.bucket, key, msg)
        return token

    async def delete(self, path: str, version_token: str, *, message: str) -> None:
        msg = require_message(message)
        key = self._key(path)
        current = await self._head_etag(key)
        if current is None:
            raise NotFoundError(detail=key)

        kwargs: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if self.conditional_writes:
            kwargs["IfMatch"] = version_token
        elif current != version_token:
            raise ConflictError(detail=f"{key} token mismatch")

        try:
            await self._call("delete_object", **kwargs)
        except ClientError as e:
            code = _error_code(e)
            if code in _CONFLICT_CODES:
                raise ConflictError(detail=f"{key}: {code}") from e
            raise StorageError(detail=f"delete {key}: {code}") from e
        logger.info("Deleted s3://%s/%s (%s)", self.bucket, key, msg)

    async def list(self, prefix: str) -> list[StoreEntry]:
        base = self._key(prefix) + "/"
        out: list[StoreEntry] = []
        token: str | None = None
        while True:
            kwargs: dict[str, Any] = {"Bucket": self.bucket, "Prefix": base, "Delimiter": "/"}
            if token:
                kwargs["ContinuationToken"] = token
            try:
                page = await self._call("list_objects_v2", **kwargs)
            except ClientError as e:
                raise StorageError(detail=f"list {base}: {_error_code(e)}") from e

            for cp in page.get("CommonPrefixes", []) or []:
                rel = self._rel(str(cp.get("Prefix", "")).rstrip("/"))
                out.append(StoreEntry(name=rel.rsplit("/", 1)[-1], path=rel, kind=EntryKind.DIR))
            for obj in page.get("Contents", []) or []:
                rel = self._rel(str(obj.get("Key", "")))
                out.append(StoreEntry(name=rel.rsplit("/", 1)[-1], path=rel, kind=EntryKind.FILE))

            if not page.get("IsTruncated"):
                break
            token = page.get("NextContinuationToken")

        out.sort(key=lambda e: e.name)
        return out

    async def put_binary(self, path: str, data: bytes, *, message: str) -> str:
        return await self.put(path, data, message=message, content_type="application/octet-stream")

    async def get_binary(self, path: str) -> bytes | None:
        found = await self.get(path)
        return found.content if found is not None else None
