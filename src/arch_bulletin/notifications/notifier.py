# src/arch_bulletin/notifications/notifier.py

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..core.errors import BulletinError, NotFoundError
from ..core.ports import Notifier
from ..posts.post_models import Post, utc_iso, utc_now
from ..storage.document_repository import DocumentRepository
from ..storage.store_models import audit_message

logger = logging.getLogger(__name__)

NOTIFICATIONS_PATH = "notifications/admin-notifications.json"


class NotificationType(StrEnum):
    WORK_SUBMITTED = "work_submitted"
    NEW_POST = "new_post"
    ESCALATION = "escalation"
    CLOSURE = "closure"


@dataclass(slots=True)
class Notification:
    type: NotificationType
    message: str
    created_by: str
    related_post_id: str | None = None
    created_at: str = field(default_factory=lambda: utc_iso(utc_now()))
    id: str = ""
    is_read: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            millis = int(datetime.fromisoformat(self.created_at.replace("Z", "+00:00")).timestamp() * 1000)
            self.id = f"notif-{millis}-{uuid.uuid4().hex[:6]}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "message": self.message,
            "relatedPostId": self.related_post_id,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "isRead": self.is_read,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Notification:
        return cls(
            id=str(d.get("id") or ""),
            type=NotificationType(str(d.get("type") or NotificationType.NEW_POST)),
            message=str(d.get("message") or ""),
            related_post_id=d.get("relatedPostId"),
            created_by=str(d.get("createdBy") or ""),
            created_at=str(d.get("createdAt") or utc_iso(utc_now())),
            is_read=bool(d.get("isRead", False)),
        )


# ---- message builders ----


def new_post_notification(post: Post, actor: str) -> Notification:
    return Notification(
        type=NotificationType.NEW_POST,
        message=f'New post created by architect {actor}: "{post.title}"',
        related_post_id=post.id,
        created_by=actor,
    )


def submission_notification(post: Post, actor: str) -> Notification:
    return Notification(
        type=NotificationType.WORK_SUBMITTED,
        message=f'Work submitted for review by {actor} on "{post.title}"',
        related_post_id=post.id,
        created_by=actor,
    )


def escalation_notification(post: Post, actor: str) -> Notification:
    return Notification(
        type=NotificationType.ESCALATION,
        message=f'Post "{post.title}" escalated by {actor}',
        related_post_id=post.id,
        created_by=actor,
    )


def closure_notification(post: Post, actor: str) -> Notification:
    return Notification(
        type=NotificationType.CLOSURE,
        message=f'Post "{post.title}" closed by {actor}',
        related_post_id=post.id,
        created_by=actor,
    )


# ---- sinks ----


class LoggingNotifier:
    """Writes notifications to the application log only."""

    async def notify(self, notification: Notification) -> None:
        logger.info(
            "Notification %s [%s] post=%s: %s",
            notification.id,
            notification.type.value,
            notification.related_post_id,
            notification.message,
        )


class DocumentNotifier:
    """
    Appends notifications to notifications/admin-notifications.json.

    Appending is an idempotent merge, so a concurrent writer only costs a re-read.
    """

    def __init__(self, docs: DocumentRepository) -> None:
        self.docs = docs

    @staticmethod
    def _empty() -> dict[str, Any]:
        return {"notifications": [], "lastUpdated": None}

    async def notify(self, notification: Notification) -> None:
        item = notification.to_dict()

        def _append(doc: dict[str, Any]) -> dict[str, Any]:
            items = [n for n in doc.get("notifications") or [] if isinstance(n, dict)]
            if any(n.get("id") == item["id"] for n in items):
                return doc
            items.append(item)
            doc["notifications"] = items
            doc["lastUpdated"] = notification.created_at
            return doc

        await self.docs.mutate(
            NOTIFICATIONS_PATH,
            _append,
            message=audit_message("add", "notification", notification.id, notification.created_by),
            idempotent=True,
            default=self._empty,
        )
        logger.debug("Stored notification %s", notification.id)

    async def list_notifications(self, *, unread_only: bool = False) -> list[Notification]:
        found = await self.docs.read(NOTIFICATIONS_PATH)
        if found is None:
            return []
        out = []
        for raw in found.document.get("notifications") or []:
            if not isinstance(raw, dict):
                continue
            try:
                n = Notification.from_dict(raw)
            except ValueError:
                logger.warning("Skipping malformed notification %r", raw.get("id"))
                continue
            if unread_only and n.is_read:
                continue
            out.append(n)
        return out

    async def mark_read(self, notification_id: str, actor: str) -> None:
        def _mark(doc: dict[str, Any]) -> dict[str, Any]:
            items = doc.get("notifications") or []
            if not any(isinstance(n, dict) and n.get("id") == notification_id for n in items):
                raise NotFoundError(f"Notification {notification_id} not found.", detail=notification_id)
            for n in items:
                if isinstance(n, dict) and n.get("id") == notification_id:
                    n["isRead"] = True
            doc["lastUpdated"] = utc_iso(utc_now())
            return doc

        await self.docs.mutate(
            NOTIFICATIONS_PATH,
            _mark,
            message=audit_message("mark read", "notification", notification_id, actor),
            idempotent=True,
        )


async def notify_safely(notifier: Notifier | None, notification: Notification) -> None:
    """Deliver a notification; a failure is logged and never reaches the caller."""
    if notifier is None:
        return
    try:
        await notifier.notify(notification)
    except BulletinError:
        logger.exception("Failed to deliver notification %s", notification.id)
