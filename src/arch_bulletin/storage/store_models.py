# src/arch_bulletin/storage/store_models.py

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class EntryKind(StrEnum):
    FILE = "file"
    DIR = "dir"


class CasSupport(StrEnum):
    """
    How a backend honours version tokens on put/delete.

    - native:   the backend itself refuses a write whose token is stale
    - emulated: the adapter reads, compares and then writes (a race window remains,
                last write wins inside it)
    - rejected: conditional writes are refused with UnsupportedOperationError
    """

    NATIVE = "native"
    EMULATED = "emulated"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class StoreCapabilities:
    cas: CasSupport
    description: str = ""

    @property
    def strict(self) -> bool:
        return self.cas == CasSupport.NATIVE


@dataclass(frozen=True, slots=True)
class StoreEntry:
    name: str
    path: str
    kind: EntryKind


@dataclass(frozen=True, slots=True)
class StoredContent:
    content: bytes
    version_token: str


@dataclass(frozen=True, slots=True)
class Found:
    """A decoded document together with the token of the bytes it was decoded from."""

    document: Any
    version_token: str


def git_blob_sha(content: bytes) -> str:
    """SHA-1 of a git blob object; the token the commit-versioned backend reports."""
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


def content_sha256(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def normalize_path(path: str) -> str:
    p = (path or "").strip().strip("/")
    if not p:
        raise ValueError("path is required")
    parts = p.split("/")
    if any(part in ("", ".", "..") for part in parts):
        raise ValueError(f"invalid storage path: {path!r}")
    return p


def require_message(message: str) -> str:
    msg = (message or "").strip()
    if not msg:
        raise ValueError("an audit message is required for every write")
    return msg


def audit_message(verb: str, resource: str, resource_id: str | None, actor: str) -> str:
    """Build "<Verb> <resource> <id> by <actor>" used as the backend commit message."""
    subject = f"{resource} {resource_id}" if resource_id else resource
    return f"{verb.strip().capitalize()} {subject} by {actor}"
