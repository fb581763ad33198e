# src/arch_bulletin/uploads/asset_store.py

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from enum import StrEnum

from ..core.errors import ConflictError, NotFoundError, ValidationError
from ..posts.post_models import FileRef, Principal, post_number, utc_iso, utc_now
from ..storage.document_repository import DocumentRepository
from ..storage.store_models import EntryKind, audit_message

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "uploads"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class UploadKind(StrEnum):
    ATTACHMENTS = "attachments"
    PROOF = "proof"

    @classmethod
    def parse(cls, raw: str) -> UploadKind:
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValidationError('Invalid upload type. Must be "attachments" or "proof".') from None


def sanitize_filename(filename: str) -> str:
    name = _UNSAFE_CHARS.sub("_", (filename or "").strip())
    if not name.strip("."):
        raise ValidationError("A file name is required.")
    return name


def _check_post_id(post_id: str) -> str:
    if post_number(post_id) is None:
        raise ValidationError(f"Invalid post id: {post_id!r}")
    return post_id


def _check_name(name: str) -> str:
    if not name or name in (".", "..") or _UNSAFE_CHARS.search(name):
        raise ValidationError(f"Invalid file name: {name!r}")
    return name


def asset_path(kind: UploadKind | str, post_id: str, name: str) -> str:
    return f"{UPLOADS_PREFIX}/{UploadKind.parse(kind).value}/{_check_post_id(post_id)}/{_check_name(name)}"


class AssetStore:
    """
    Write-once binaries under uploads/{attachments|proof}/{postId}/{millis}-{name}.

    Two uploads of the same name in the same millisecond do not overwrite each other:
    the create-only write fails and the next millisecond is tried.
    """

    def __init__(
        self,
        docs: DocumentRepository,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        collision_attempts: int = 5,
    ) -> None:
        self.docs = docs
        self.max_bytes = int(max_bytes)
        self.collision_attempts = max(1, int(collision_attempts))

    async def upload(
        self,
        kind: UploadKind | str,
        post_id: str,
        filename: str,
        data: bytes,
        actor: Principal,
        *,
        now: datetime | None = None,
    ) -> FileRef:
        upload_kind = UploadKind.parse(kind)
        _check_post_id(post_id)
        safe = sanitize_filename(filename)
        if not data:
            raise ValidationError("File is empty.")
        if len(data) > self.max_bytes:
            raise ValidationError(
                f"File size exceeds {self.max_bytes // (1024 * 1024)}MB limit.",
                detail=f"{len(data)} bytes",
            )

        when = now or utc_now()
        singular = "attachment" if upload_kind == UploadKind.ATTACHMENTS else "proof"
        for attempt in range(self.collision_attempts):
            stamp = when + timedelta(milliseconds=attempt)
            name = f"{int(stamp.timestamp() * 1000)}-{safe}"
            path = asset_path(upload_kind, post_id, name)
            try:
                await self.docs.put_binary(
                    path,
                    data,
                    message=audit_message(
                        "upload", singular, f"{safe} for post {post_id}", actor.username
                    ),
                )
            except ConflictError:
                logger.debug("Upload path %s taken, trying the next millisecond", path)
                continue

            logger.info("Uploaded %s (%d bytes) by %s", path, len(data), actor.username)
            return FileRef(
                filename=safe,
                path=path,
                size=len(data),
                uploaded_by=actor.username,
                uploaded_at=utc_iso(stamp),
            )

        raise ConflictError(detail=f"no free upload slot for {safe} on {post_id}")

    async def download(self, kind: UploadKind | str, post_id: str, name: str) -> bytes:
        path = asset_path(kind, post_id, name)
        data = await self.docs.get_binary(path)
        if data is None:
            raise NotFoundError("File not found.", detail=path)
        return data

    async def list(self, kind: UploadKind | str, post_id: str) -> list[str]:
        prefix = f"{UPLOADS_PREFIX}/{UploadKind.parse(kind).value}/{_check_post_id(post_id)}"
        entries = await self.docs.list(prefix)
        return [e.name for e in entries if e.kind == EntryKind.FILE]

    async def delete(self, kind: UploadKind | str, post_id: str, name: str, actor: Principal) -> None:
        path = asset_path(kind, post_id, name)
        stored = await self.docs.get_raw(path)
        if stored is None:
            raise NotFoundError("File not found.", detail=path)
        await self.docs.delete(
            path,
            stored.version_token,
            message=audit_message("delete", "upload", f"{name} for post {post_id}", actor.username),
        )
        logger.info("Deleted %s by %s", path, actor.username)
