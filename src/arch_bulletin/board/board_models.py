# src/arch_bulletin/board/board_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..posts.post_models import PostStatus

CONFIG_PREFIX = "config"
ARCHITECTS_PATH = f"{CONFIG_PREFIX}/architects.json"
STATUSES_PATH = f"{CONFIG_PREFIX}/statuses.json"
USERS_PATH = f"{CONFIG_PREFIX}/users.json"
SETTINGS_PATH = f"{CONFIG_PREFIX}/settings.json"

# Fields never handed out from users.json.
_USER_PUBLIC_FIELDS = ("username", "role", "fullName", "email")


class ArchitectStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(slots=True)
class Architect:
    id: str
    username: str
    display_name: str
    added_at: str
    added_by: str
    email: str | None = None
    specialization: str | None = None
    status: ArchitectStatus = ArchitectStatus.ACTIVE
    deactivated_at: str | None = None
    deactivated_by: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ArchitectStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "displayName": self.display_name,
            "email": self.email,
            "specialization": self.specialization,
            "status": self.status.value,
            "addedAt": self.added_at,
            "addedBy": self.added_by,
            "deactivatedAt": self.deactivated_at,
            "deactivatedBy": self.deactivated_by,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Architect:
        # Older documents carry the login as githubUsername.
        username = str(d.get("username") or d.get("githubUsername") or "")
        raw_status = str(d.get("status") or ArchitectStatus.ACTIVE.value).lower()
        try:
            status = ArchitectStatus(raw_status)
        except ValueError:
            status = ArchitectStatus.ACTIVE
        return cls(
            id=str(d.get("id") or ""),
            username=username,
            display_name=str(d.get("displayName") or d.get("name") or username),
            email=d.get("email"),
            specialization=d.get("specialization"),
            status=status,
            added_at=str(d.get("addedAt") or ""),
            added_by=str(d.get("addedBy") or ""),
            deactivated_at=d.get("deactivatedAt"),
            deactivated_by=d.get("deactivatedBy"),
        )


@dataclass(frozen=True, slots=True)
class StatusDef:
    id: str
    label: str
    color: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "label": self.label, "color": self.color}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> StatusDef:
        return cls(id=str(d.get("id") or ""), label=str(d.get("label") or ""), color=str(d.get("color") or "gray"))


DEFAULT_STATUSES: tuple[StatusDef, ...] = (
    StatusDef(PostStatus.NEW.value, "New", "blue"),
    StatusDef(PostStatus.ASSIGNED.value, "Assigned", "purple"),
    StatusDef(PostStatus.SUBMITTED.value, "Submitted for Review", "yellow"),
    StatusDef(PostStatus.PENDING.value, "Pending", "orange"),
    StatusDef(PostStatus.ESCALATE.value, "Escalated", "red"),
    StatusDef(PostStatus.CLOSED.value, "Closed", "gray"),
)


@dataclass(slots=True)
class BoardSettings:
    max_active_tasks: int = 50
    banner_message: str = ""
    show_banner: bool = True
    admin_users: list[str] = field(default_factory=list)
    features: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskLimit": {
                "maxActiveTasks": self.max_active_tasks,
                "bannerMessage": self.banner_message,
                "showBanner": self.show_banner,
            },
            "adminUsers": list(self.admin_users),
            "features": dict(self.features),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any], *, default_max: int = 50) -> BoardSettings:
        limit = d.get("taskLimit") or {}
        try:
            max_active = int(limit.get("maxActiveTasks", default_max))
        except (TypeError, ValueError):
            max_active = default_max
        return cls(
            max_active_tasks=max_active if max_active > 0 else default_max,
            banner_message=str(limit.get("bannerMessage") or ""),
            show_banner=bool(limit.get("showBanner", True)),
            admin_users=[str(u) for u in d.get("adminUsers") or []],
            features=dict(d.get("features") or {}),
        )


def sanitize_user(raw: dict[str, Any]) -> dict[str, Any]:
    """Read model of a users.json entry without credential fields."""
    return {k: raw.get(k) for k in _USER_PUBLIC_FIELDS if k in raw}
