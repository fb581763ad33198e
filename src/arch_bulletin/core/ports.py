# src/arch_bulletin/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage backends and notification sinks swappable and makes testing easier.
"""

from collections.abc import Awaitable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..notifications.notifier import Notification
    from ..storage.store_models import StoreCapabilities, StoredContent, StoreEntry


class DocumentStore(Protocol):
    """
    Uniform path-addressed store with optimistic concurrency.

    Contract:
    - get() returns None when the path does not exist
    - put() without a version token means "create" and fails with ConflictError if the path exists
    - put()/delete() with a stale token fail with ConflictError, never overwrite
    - list() returns [] for a missing prefix
    - every mutating call carries a human-readable audit message
    """

    @property
    def capabilities(self) -> StoreCapabilities: ...

    def get(self, path: str) -> Awaitable[StoredContent | None]: ...

    def put(
            self,
            path: str,
            content: bytes,
            *,
            message: str,
            version_token: str | None = None,
    ) -> Awaitable[str]: ...

    def delete(self, path: str, version_token: str, *, message: str) -> Awaitable[None]: ...

    def list(self, prefix: str) -> Awaitable[list[StoreEntry]]: ...

    def put_binary(self, path: str, data: bytes, *, message: str) -> Awaitable[str]: ...

    def get_binary(self, path: str) -> Awaitable[bytes | None]: ...

    def aclose(self) -> Awaitable[None]: ...


class Notifier(Protocol):
    """Admin-notification sink (submission, escalation, closure, new post)."""

    def notify(self, notification: Notification) -> Awaitable[None]: ...
