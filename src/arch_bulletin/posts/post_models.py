# src/arch_bulletin/posts/post_models.py

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ..core.errors import CorruptDataError

POST_ID_RE = re.compile(r"^post-(\d+)$")
POSTS_PREFIX = "posts"


class PostStatus(StrEnum):
    """
    Post lifecycle status, stored by its board status id.

    Notes:
    - "pending" is set by an admin after reviewing a submission; the architect may resubmit
    - "escalate" is reachable from every state, including closed (the only way to reopen)
    """

    NEW = "status-new"
    ASSIGNED = "status-assigned"
    SUBMITTED = "status-submitted"
    PENDING = "status-pending"
    ESCALATE = "status-escalate"
    CLOSED = "status-closed"

    @property
    def short(self) -> str:
        return self.value.removeprefix("status-")

    @classmethod
    def parse(cls, raw: str | None) -> PostStatus:
        """Accept both the stored id ("status-new") and the short name ("new")."""
        if not raw:
            return cls.NEW
        s = str(raw).strip().lower()
        if not s.startswith("status-"):
            s = f"status-{s}"
        return cls(s)


class Role(StrEnum):
    ADMIN = "admin"
    ARCHITECT = "architect"
    UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True, slots=True)
class Principal:
    """An already-authenticated caller."""

    username: str
    role: str = Role.ARCHITECT


def is_privileged(actor: Principal, privileged_roles: tuple[str, ...] | list[str] = ("admin",)) -> bool:
    return str(actor.role).lower() in {r.lower() for r in privileged_roles}


def utc_iso(now: datetime) -> str:
    """ISO-8601 UTC with milliseconds and a Z suffix (what the stored documents use)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_post_id(number: int) -> str:
    return f"post-{number:04d}"


def post_number(post_id: str) -> int | None:
    m = POST_ID_RE.match(post_id or "")
    return int(m.group(1)) if m else None


def validate_post_id(post_id: str) -> str:
    if post_number(post_id) is None:
        raise ValueError(f"invalid post id: {post_id!r}")
    return post_id


def post_path(post_id: str) -> str:
    return f"{POSTS_PREFIX}/{validate_post_id(post_id)}.json"


def _str_or_none(v: Any) -> str | None:
    return None if v is None else str(v)


def _str_list(v: Any) -> list[str]:
    if not isinstance(v, list):
        return []
    return [str(x) for x in v if x is not None]


@dataclass(slots=True)
class FileRef:
    """Descriptor of an uploaded binary (attachment or proof file)."""

    filename: str
    path: str
    size: int = 0
    uploaded_by: str | None = None
    uploaded_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "path": self.path,
            "size": self.size,
            "uploadedBy": self.uploaded_by,
            "uploadedAt": self.uploaded_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FileRef:
        return cls(
            filename=str(d.get("filename") or d.get("name") or ""),
            path=str(d.get("path") or ""),
            size=int(d.get("size") or 0),
            uploaded_by=_str_or_none(d.get("uploadedBy")),
            uploaded_at=_str_or_none(d.get("uploadedAt")),
        )


@dataclass(slots=True)
class ProofBatch:
    uploaded_at: str
    uploaded_by: str
    files: list[FileRef] = field(default_factory=list)
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "uploadedAt": self.uploaded_at,
            "uploadedBy": self.uploaded_by,
            "files": [f.to_dict() for f in self.files],
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ProofBatch:
        return cls(
            uploaded_at=str(d.get("uploadedAt") or ""),
            uploaded_by=str(d.get("uploadedBy") or ""),
            files=[FileRef.from_dict(f) for f in d.get("files") or [] if isinstance(f, dict)],
            notes=str(d.get("notes") or ""),
        )


@dataclass(slots=True)
class Comment:
    author: str
    message: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {"author": self.author, "message": self.message, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Comment:
        return cls(
            author=str(d.get("author") or ""),
            message=str(d.get("message") or ""),
            timestamp=str(d.get("timestamp") or ""),
        )


_KNOWN_KEYS = frozenset(
    {
        "id",
        "title",
        "description",
        "concernedParties",
        "status",
        "assignedArchitects",
        "adminAssigned",
        "attachments",
        "proofOfWork",
        "conversations",
        "isArchived",
        "createdAt",
        "createdBy",
        "updatedAt",
        "updatedBy",
        "submittedAt",
        "submittedBy",
        "closedAt",
        "closedBy",
        "approvedBy",
        "escalatedAt",
        "escalatedBy",
        "archivedAt",
        "archivedBy",
    }
)


@dataclass(slots=True)
class Post:
    id: str
    title: str
    description: str
    created_at: str
    created_by: str
    updated_at: str
    updated_by: str

    status: PostStatus = PostStatus.NEW
    concerned_parties: list[str] = field(default_factory=list)
    assigned_architects: list[str] = field(default_factory=list)
    admin_assigned: bool = False
    attachments: list[FileRef] = field(default_factory=list)
    proof_of_work: list[ProofBatch] = field(default_factory=list)
    conversations: list[Comment] = field(default_factory=list)
    is_archived: bool = False

    submitted_at: str | None = None
    submitted_by: str | None = None
    closed_at: str | None = None
    closed_by: str | None = None
    approved_by: str | None = None
    escalated_at: str | None = None
    escalated_by: str | None = None
    archived_at: str | None = None
    archived_by: str | None = None

    # Keys written by other clients; carried through unchanged.
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return not self.is_archived

    @property
    def number(self) -> int:
        return post_number(self.id) or 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        out.update(
            {
                "id": self.id,
                "title": self.title,
                "description": self.description,
                "concernedParties": list(self.concerned_parties),
                "status": self.status.value,
                "assignedArchitects": list(self.assigned_architects),
                "adminAssigned": self.admin_assigned,
                "attachments": [a.to_dict() for a in self.attachments],
                "proofOfWork": [p.to_dict() for p in self.proof_of_work],
                "conversations": [c.to_dict() for c in self.conversations],
                "isArchived": self.is_archived,
                "createdAt": self.created_at,
                "createdBy": self.created_by,
                "updatedAt": self.updated_at,
                "updatedBy": self.updated_by,
                "submittedAt": self.submitted_at,
                "submittedBy": self.submitted_by,
                "closedAt": self.closed_at,
                "closedBy": self.closed_by,
                "approvedBy": self.approved_by,
                "escalatedAt": self.escalated_at,
                "escalatedBy": self.escalated_by,
                "archivedAt": self.archived_at,
                "archivedBy": self.archived_by,
            }
        )
        return out

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Post:
        post_id = d.get("id")
        if not isinstance(post_id, str) or post_number(post_id) is None:
            raise CorruptDataError(detail=f"post document without a valid id: {post_id!r}")
        try:
            status = PostStatus.parse(d.get("status"))
        except ValueError as e:
            raise CorruptDataError(detail=f"{post_id}: unknown status {d.get('status')!r}") from e

        created_at = str(d.get("createdAt") or "")
        created_by = str(d.get("createdBy") or "")
        return cls(
            id=post_id,
            title=str(d.get("title") or ""),
            description=str(d.get("description") or ""),
            concerned_parties=_str_list(d.get("concernedParties")),
            status=status,
            assigned_architects=list(dict.fromkeys(_str_list(d.get("assignedArchitects")))),
            admin_assigned=bool(d.get("adminAssigned", False)),
            attachments=[FileRef.from_dict(a) for a in d.get("attachments") or [] if isinstance(a, dict)],
            proof_of_work=[ProofBatch.from_dict(p) for p in d.get("proofOfWork") or [] if isinstance(p, dict)],
            conversations=[Comment.from_dict(c) for c in d.get("conversations") or [] if isinstance(c, dict)],
            is_archived=bool(d.get("isArchived", False)),
            created_at=created_at,
            created_by=created_by,
            updated_at=str(d.get("updatedAt") or created_at),
            updated_by=str(d.get("updatedBy") or created_by),
            submitted_at=_str_or_none(d.get("submittedAt")),
            submitted_by=_str_or_none(d.get("submittedBy")),
            closed_at=_str_or_none(d.get("closedAt")),
            closed_by=_str_or_none(d.get("closedBy")),
            approved_by=_str_or_none(d.get("approvedBy")),
            escalated_at=_str_or_none(d.get("escalatedAt")),
            escalated_by=_str_or_none(d.get("escalatedBy")),
            archived_at=_str_or_none(d.get("archivedAt")),
            archived_by=_str_or_none(d.get("archivedBy")),
            extra={k: v for k, v in d.items() if k not in _KNOWN_KEYS},
        )
