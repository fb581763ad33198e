# src/arch_bulletin/posts/post_api.py

from __future__ import annotations

"""
Request-level post operations.

Each function is one use case: read the Post and its token, let the lifecycle engine
compute the new state, write it back with the token read, then fire notifications.
Notifications go out only after the write succeeded, so a retried or rejected
operation never notifies twice.
"""

import logging
from collections.abc import Sequence
from datetime import datetime

from ..core.errors import ValidationError
from ..core.state import AppState
from ..notifications.notifier import (
    closure_notification,
    escalation_notification,
    new_post_notification,
    notify_safely,
    submission_notification,
)
from ..storage.store_models import Found
from ..uploads.asset_store import UploadKind
from .post_lifecycle import (
    Action,
    AddAttachments,
    AddComment,
    AddProof,
    Archive,
    Assign,
    ChangeStatus,
    Close,
    Edit,
    Escalate,
    Restore,
    Submit,
    Unassign,
    apply_action,
)
from .post_models import FileRef, Post, PostStatus, Principal, is_privileged

logger = logging.getLogger(__name__)

UploadFile = tuple[str, bytes]


async def list_posts(state: AppState, *, archived: bool | None = False) -> list[Post]:
    return await state.posts.list_posts(archived=archived)


async def get_post(state: AppState, post_id: str) -> Found:
    return await state.posts.require(post_id)


async def _apply(
    state: AppState,
    post_id: str,
    action: Action,
    actor: Principal,
    *,
    expected_token: str | None = None,
    now: datetime | None = None,
) -> Found:
    return await state.posts.mutate(post_id, action, actor, expected_token=expected_token, now=now)


async def _require_active_architect(state: AppState, username: str) -> None:
    architect = await state.board.get_architect(username)
    if architect is None or not architect.is_active:
        raise ValidationError(f"{username} is not an active architect.")


async def create_post(
    state: AppState,
    actor: Principal,
    *,
    title: str,
    description: str,
    concerned_parties: Sequence[str] = (),
    assigned_architects: Sequence[str] = (),
    now: datetime | None = None,
) -> Found:
    for username in assigned_architects:
        await _require_active_architect(state, username)

    found = await state.posts.create(
        title=title,
        description=description,
        actor=actor,
        concerned_parties=concerned_parties,
        assigned_architects=assigned_architects,
        now=now,
    )
    if not is_privileged(actor, state.privileged_roles):
        await notify_safely(state.notifier, new_post_notification(found.document, actor.username))
    return found


async def edit_post(
    state: AppState,
    post_id: str,
    actor: Principal,
    *,
    title: str | None = None,
    description: str | None = None,
    concerned_parties: Sequence[str] | None = None,
    expected_token: str | None = None,
) -> Found:
    action = Edit(
        title=title,
        description=description,
        concerned_parties=tuple(concerned_parties) if concerned_parties is not None else None,
    )
    return await _apply(state, post_id, action, actor, expected_token=expected_token)


async def assign_architect(
    state: AppState,
    post_id: str,
    architect: str,
    actor: Principal,
    *,
    expected_token: str | None = None,
) -> Found:
    await _require_active_architect(state, architect)
    return await _apply(state, post_id, Assign(architect), actor, expected_token=expected_token)


async def unassign_architect(
    state: AppState,
    post_id: str,
    architect: str,
    actor: Principal,
    *,
    expected_token: str | None = None,
) -> Found:
    return await _apply(state, post_id, Unassign(architect), actor, expected_token=expected_token)


async def submit_work(
    state: AppState, post_id: str, actor: Principal, *, expected_token: str | None = None
) -> Found:
    found = await _apply(state, post_id, Submit(), actor, expected_token=expected_token)
    await notify_safely(state.notifier, submission_notification(found.document, actor.username))
    return found


async def close_post(
    state: AppState, post_id: str, actor: Principal, *, expected_token: str | None = None
) -> Found:
    found = await _apply(state, post_id, Close(), actor, expected_token=expected_token)
    await notify_safely(state.notifier, closure_notification(found.document, actor.username))
    return found


async def escalate_post(
    state: AppState, post_id: str, actor: Principal, *, expected_token: str | None = None
) -> Found:
    found = await _apply(state, post_id, Escalate(), actor, expected_token=expected_token)
    await notify_safely(state.notifier, escalation_notification(found.document, actor.username))
    return found


async def change_status(
    state: AppState,
    post_id: str,
    target: PostStatus | str,
    actor: Principal,
    *,
    expected_token: str | None = None,
) -> Found:
    before = await state.posts.require(post_id)
    if expected_token is None:
        expected_token = before.version_token
    found = await _apply(state, post_id, ChangeStatus(target), actor, expected_token=expected_token)

    status = found.document.status
    if status != before.document.status:
        if status == PostStatus.CLOSED:
            await notify_safely(state.notifier, closure_notification(found.document, actor.username))
        elif status == PostStatus.ESCALATE:
            await notify_safely(state.notifier, escalation_notification(found.document, actor.username))
    return found


async def archive_post(
    state: AppState, post_id: str, actor: Principal, *, expected_token: str | None = None
) -> Found:
    return await _apply(state, post_id, Archive(), actor, expected_token=expected_token)


async def restore_post(
    state: AppState, post_id: str, actor: Principal, *, expected_token: str | None = None
) -> Found:
    return await _apply(state, post_id, Restore(), actor, expected_token=expected_token)


async def add_comment(state: AppState, post_id: str, message: str, actor: Principal) -> Found:
    return await _apply(state, post_id, AddComment(message), actor)


async def _upload_all(
    state: AppState, kind: UploadKind, post_id: str, files: Sequence[UploadFile], actor: Principal
) -> tuple[FileRef, ...]:
    if not files:
        raise ValidationError("No files to upload.")
    refs = []
    for filename, data in files:
        refs.append(await state.assets.upload(kind, post_id, filename, data, actor))
    return tuple(refs)


async def add_proof(
    state: AppState,
    post_id: str,
    files: Sequence[UploadFile],
    actor: Principal,
    *,
    notes: str = "",
) -> Found:
    """Upload proof files and record them as one proof-of-work batch."""
    current = await state.posts.require(post_id)
    # Reject before uploading anything the batch could not be attached to.
    placeholder = FileRef(filename="placeholder", path="placeholder")
    apply_action(
        current.document, AddProof(files=(placeholder,), notes=notes), actor, privileged_roles=state.privileged_roles
    )

    refs = await _upload_all(state, UploadKind.PROOF, post_id, files, actor)
    return await _apply(state, post_id, AddProof(files=refs, notes=notes), actor)


async def add_attachments(
    state: AppState, post_id: str, files: Sequence[UploadFile], actor: Principal
) -> Found:
    current = await state.posts.require(post_id)
    placeholder = FileRef(filename="placeholder", path="placeholder")
    apply_action(current.document, AddAttachments(files=(placeholder,)), actor, privileged_roles=state.privileged_roles)

    refs = await _upload_all(state, UploadKind.ATTACHMENTS, post_id, files, actor)
    return await _apply(state, post_id, AddAttachments(files=refs), actor)


async def delete_post(state: AppState, post_id: str, actor: Principal, *, expected_token: str) -> None:
    """Hard delete; the caller must present the token of the version it saw."""
    await state.posts.delete(post_id, actor, expected_token=expected_token)
