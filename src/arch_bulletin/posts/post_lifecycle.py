# src/arch_bulletin/posts/post_lifecycle.py

from __future__ import annotations

"""
Post lifecycle engine.

Pure functions: (post, action, actor, now) -> new Post. Nothing here reads or writes
storage, and the input Post is never mutated. A rule violation raises a DomainError
subclass before the caller gets anywhere near a write.

    new -> assigned -> submitted -> pending -> closed
      \\________\\___________\\__________\\_______\\--> escalate

Archiving is orthogonal to status and leaves status and the update stamp alone.
"""

import copy
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from ..core.errors import (
    AlreadyAssignedError,
    CapacityExceededError,
    ForbiddenError,
    InvalidTransitionError,
    NotAssignedError,
    ValidationError,
)
from .post_models import (
    Comment,
    FileRef,
    Post,
    PostStatus,
    Principal,
    ProofBatch,
    is_privileged,
    utc_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

TITLE_MAX = 200
DESCRIPTION_MAX = 5000
COMMENT_MAX = 2000
DEFAULT_MAX_ACTIVE_POSTS = 50


# ---- actions ----


@dataclass(frozen=True, slots=True)
class Assign:
    architect: str


@dataclass(frozen=True, slots=True)
class Unassign:
    architect: str


@dataclass(frozen=True, slots=True)
class Submit:
    pass


@dataclass(frozen=True, slots=True)
class Close:
    pass


@dataclass(frozen=True, slots=True)
class Escalate:
    pass


@dataclass(frozen=True, slots=True)
class ChangeStatus:
    target: PostStatus | str


@dataclass(frozen=True, slots=True)
class Archive:
    pass


@dataclass(frozen=True, slots=True)
class Restore:
    pass


@dataclass(frozen=True, slots=True)
class AddProof:
    files: tuple[FileRef, ...] = ()
    notes: str = ""


@dataclass(frozen=True, slots=True)
class AddComment:
    message: str


@dataclass(frozen=True, slots=True)
class AddAttachments:
    files: tuple[FileRef, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Edit:
    title: str | None = None
    description: str | None = None
    concerned_parties: tuple[str, ...] | None = None


Action = (
    Assign
    | Unassign
    | Submit
    | Close
    | Escalate
    | ChangeStatus
    | Archive
    | Restore
    | AddProof
    | AddComment
    | AddAttachments
    | Edit
)


# ---- validation helpers ----


def validate_title(title: str) -> str:
    t = (title or "").strip()
    if not t:
        raise ValidationError("Title is required.")
    if len(t) > TITLE_MAX:
        raise ValidationError(f"Title must be {TITLE_MAX} characters or less.")
    return t


def validate_description(description: str) -> str:
    d = (description or "").strip()
    if len(d) > DESCRIPTION_MAX:
        raise ValidationError(f"Description must be {DESCRIPTION_MAX} characters or less.")
    return d


def validate_comment(message: str) -> str:
    m = (message or "").strip()
    if not m:
        raise ValidationError("Comment cannot be empty.")
    if len(m) > COMMENT_MAX:
        raise ValidationError(f"Comment must be {COMMENT_MAX} characters or less.")
    return m


def _clean_parties(parties: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(p.strip() for p in parties if p and p.strip()))


def ensure_capacity(active_count: int, ceiling: int) -> None:
    """Raise when one more active Post would exceed the board ceiling."""
    if active_count >= ceiling:
        raise CapacityExceededError(
            f"Maximum number of active tasks ({ceiling}) reached. Archive completed tasks to free up space.",
            detail=f"active={active_count} ceiling={ceiling}",
        )


def _require_open(post: Post, what: str) -> None:
    if post.status == PostStatus.CLOSED:
        raise InvalidTransitionError(f"Cannot {what} a closed post.", detail=post.id)


def _require_creator_or_privileged(post: Post, actor: Principal, privileged: bool, what: str) -> None:
    if not privileged and actor.username != post.created_by:
        raise ForbiddenError(f"Only the creator or an admin can {what} this post.", detail=post.id)


def _stamp(post: Post, actor: Principal, ts: str) -> None:
    post.updated_at = ts
    post.updated_by = actor.username


# ---- creation ----


def new_post(
    *,
    post_id: str,
    title: str,
    description: str,
    actor: Principal,
    concerned_parties: Sequence[str] = (),
    assigned_architects: Sequence[str] = (),
    now: datetime | None = None,
    privileged_roles: Sequence[str] = ("admin",),
) -> Post:
    ts = utc_iso(now or utc_now())
    assignees = list(dict.fromkeys(a.strip() for a in assigned_architects if a and a.strip()))
    if assignees and not is_privileged(actor, tuple(privileged_roles)):
        raise ForbiddenError("Only admins can assign architects when creating a post.")

    return Post(
        id=post_id,
        title=validate_title(title),
        description=validate_description(description),
        concerned_parties=_clean_parties(concerned_parties),
        status=PostStatus.ASSIGNED if assignees else PostStatus.NEW,
        assigned_architects=assignees,
        admin_assigned=bool(assignees),
        created_at=ts,
        created_by=actor.username,
        updated_at=ts,
        updated_by=actor.username,
    )


# ---- transitions ----


def _assign(post: Post, a: Assign, actor: Principal, privileged: bool, ts: str) -> Post:
    _require_open(post, "assign architects to")
    architect = (a.architect or "").strip()
    if not architect:
        raise ValidationError("Architect is required.")

    if not privileged:
        if architect != actor.username:
            raise ForbiddenError("Architects can only assign themselves.", detail=post.id)
        if post.admin_assigned:
            raise ForbiddenError("This post was assigned by an admin.", detail=post.id)

    if architect in post.assigned_architects:
        raise AlreadyAssignedError(detail=f"{architect} on {post.id}")

    post.assigned_architects.append(architect)
    if privileged:
        post.admin_assigned = True
    if post.status == PostStatus.NEW:
        post.status = PostStatus.ASSIGNED
    _stamp(post, actor, ts)
    return post


def _unassign(post: Post, a: Unassign, actor: Principal, privileged: bool, ts: str) -> Post:
    architect = (a.architect or "").strip()
    if architect not in post.assigned_architects:
        raise NotAssignedError(detail=f"{architect} on {post.id}")

    if not privileged:
        if architect != actor.username:
            raise ForbiddenError("Architects can only unassign themselves.", detail=post.id)
        if post.admin_assigned:
            raise ForbiddenError("This post was assigned by an admin.", detail=post.id)

    post.assigned_architects.remove(architect)
    if not post.assigned_architects:
        post.admin_assigned = False
        if post.status == PostStatus.ASSIGNED:
            post.status = PostStatus.NEW
    _stamp(post, actor, ts)
    return post


def _submit(post: Post, actor: Principal, privileged: bool, ts: str) -> Post:
    if privileged:
        raise ForbiddenError("Admins review submissions; they do not submit work.", detail=post.id)
    if actor.username not in post.assigned_architects:
        raise NotAssignedError("Only an assigned architect can submit work.", detail=post.id)
    if post.status not in (PostStatus.ASSIGNED, PostStatus.PENDING):
        raise InvalidTransitionError(
            f"Cannot submit a post in status {post.status.short}.", detail=post.id
        )
    if not post.proof_of_work:
        raise InvalidTransitionError("Upload proof of work before submitting.", detail=post.id)

    post.status = PostStatus.SUBMITTED
    post.submitted_at = ts
    post.submitted_by = actor.username
    _stamp(post, actor, ts)
    return post


def _close(post: Post, actor: Principal, privileged: bool, ts: str) -> Post:
    if not privileged:
        raise ForbiddenError("Only admins can close posts.", detail=post.id)
    if post.status == PostStatus.CLOSED:
        raise InvalidTransitionError("Post is already closed.", detail=post.id)

    post.status = PostStatus.CLOSED
    post.closed_at = ts
    post.closed_by = actor.username
    post.approved_by = actor.username
    _stamp(post, actor, ts)
    return post


def _escalate(post: Post, actor: Principal, ts: str) -> Post:
    post.status = PostStatus.ESCALATE
    post.escalated_at = ts
    post.escalated_by = actor.username
    _stamp(post, actor, ts)
    return post


def _change_status(post: Post, a: ChangeStatus, actor: Principal, privileged: bool, ts: str) -> Post:
    if not privileged:
        raise ForbiddenError("Only admins can change the status directly.", detail=post.id)
    if not str(a.target or "").strip():
        raise ValidationError("A target status is required.", detail=post.id)
    try:
        target = PostStatus.parse(str(a.target))
    except ValueError as e:
        raise ValidationError(f"Unknown status: {a.target}") from e

    if target == PostStatus.CLOSED:
        return _close(post, actor, privileged, ts)
    if target == PostStatus.ESCALATE:
        return _escalate(post, actor, ts)
    if target == PostStatus.SUBMITTED:
        raise InvalidTransitionError("Work is submitted by the assigned architect.", detail=post.id)
    if post.status == PostStatus.CLOSED:
        raise InvalidTransitionError("A closed post can only be reopened by escalation.", detail=post.id)

    if target == PostStatus.PENDING:
        if post.status not in (PostStatus.SUBMITTED, PostStatus.ESCALATE):
            raise InvalidTransitionError(
                f"Cannot move a post from {post.status.short} to pending.", detail=post.id
            )
    elif target == PostStatus.ASSIGNED:
        if not post.assigned_architects:
            raise InvalidTransitionError("Assign an architect first.", detail=post.id)
    elif target == PostStatus.NEW:
        if post.assigned_architects:
            raise InvalidTransitionError("Unassign all architects first.", detail=post.id)

    post.status = target
    _stamp(post, actor, ts)
    return post


def _archive(post: Post, actor: Principal, privileged: bool, ts: str) -> Post:
    _require_creator_or_privileged(post, actor, privileged, "archive")
    if post.is_archived:
        raise InvalidTransitionError("Post is already archived.", detail=post.id)
    post.is_archived = True
    post.archived_at = ts
    post.archived_by = actor.username
    return post


def _restore(post: Post, actor: Principal, privileged: bool) -> Post:
    _require_creator_or_privileged(post, actor, privileged, "restore")
    if not post.is_archived:
        raise InvalidTransitionError("Post is not archived.", detail=post.id)
    post.is_archived = False
    post.archived_at = None
    post.archived_by = None
    return post


def _add_proof(post: Post, a: AddProof, actor: Principal, privileged: bool, ts: str) -> Post:
    _require_open(post, "add proof of work to")
    if not privileged and actor.username not in post.assigned_architects:
        raise NotAssignedError("Only assigned architects can upload proof of work.", detail=post.id)
    if not a.files:
        raise ValidationError("Proof of work needs at least one file.")

    post.proof_of_work.append(
        ProofBatch(
            uploaded_at=ts,
            uploaded_by=actor.username,
            files=[copy.copy(f) for f in a.files],
            notes=(a.notes or "").strip(),
        )
    )
    _stamp(post, actor, ts)
    return post


def _add_comment(post: Post, a: AddComment, actor: Principal, ts: str) -> Post:
    post.conversations.append(Comment(author=actor.username, message=validate_comment(a.message), timestamp=ts))
    _stamp(post, actor, ts)
    return post


def _add_attachments(post: Post, a: AddAttachments, actor: Principal, ts: str) -> Post:
    _require_open(post, "attach files to")
    if not a.files:
        raise ValidationError("No files to attach.")
    post.attachments.extend(copy.copy(f) for f in a.files)
    _stamp(post, actor, ts)
    return post


def _edit(post: Post, a: Edit, actor: Principal, privileged: bool, ts: str) -> Post:
    _require_creator_or_privileged(post, actor, privileged, "edit")
    if a.title is not None:
        post.title = validate_title(a.title)
    if a.description is not None:
        post.description = validate_description(a.description)
    if a.concerned_parties is not None:
        post.concerned_parties = _clean_parties(a.concerned_parties)
    _stamp(post, actor, ts)
    return post


def apply_action(
    post: Post,
    action: Action,
    actor: Principal,
    *,
    now: datetime | None = None,
    privileged_roles: Sequence[str] = ("admin",),
) -> Post:
    """Return a new Post with `action` applied by `actor`, or raise a DomainError."""
    out = copy.deepcopy(post)
    ts = utc_iso(now or utc_now())
    privileged = is_privileged(actor, tuple(privileged_roles))

    match action:
        case Assign():
            result = _assign(out, action, actor, privileged, ts)
        case Unassign():
            result = _unassign(out, action, actor, privileged, ts)
        case Submit():
            result = _submit(out, actor, privileged, ts)
        case Close():
            result = _close(out, actor, privileged, ts)
        case Escalate():
            result = _escalate(out, actor, ts)
        case ChangeStatus():
            result = _change_status(out, action, actor, privileged, ts)
        case Archive():
            result = _archive(out, actor, privileged, ts)
        case Restore():
            result = _restore(out, actor, privileged)
        case AddProof():
            result = _add_proof(out, action, actor, privileged, ts)
        case AddComment():
            result = _add_comment(out, action, actor, ts)
        case AddAttachments():
            result = _add_attachments(out, action, actor, ts)
        case Edit():
            result = _edit(out, action, actor, privileged, ts)
        case _:
            raise TypeError(f"unknown post action: {action!r}")

    if result.status != post.status:
        logger.debug("%s: %s -> %s by %s", post.id, post.status.short, result.status.short, actor.username)
    return result


def action_applier(
    action: Action,
    actor: Principal,
    *,
    now: datetime | None = None,
    privileged_roles: Sequence[str] = ("admin",),
) -> Callable[[Post], Post]:
    """Bind an action so it can be re-applied to a freshly read Post on retry."""

    def _apply(post: Post) -> Post:
        return apply_action(post, action, actor, now=now, privileged_roles=privileged_roles)

    return _apply
