# src/arch_bulletin/posts/post_repository.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime

from ..core.errors import ConflictError, CorruptDataError, ForbiddenError, NotFoundError
from ..storage.document_repository import DocumentRepository
from ..storage.store_models import Found, audit_message
from .post_lifecycle import (
    DEFAULT_MAX_ACTIVE_POSTS,
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
    action_applier,
    ensure_capacity,
    new_post,
)
from .post_models import (
    POSTS_PREFIX,
    Post,
    Principal,
    format_post_id,
    is_privileged,
    post_number,
    post_path,
)

logger = logging.getLogger(__name__)

CeilingProvider = Callable[[], Awaitable[int]]

# Appends that are safe to re-apply on a freshly read document.
IDEMPOTENT_ACTIONS = (AddComment, AddProof, AddAttachments)

_VERBS: dict[type, str] = {
    Assign: "Assign architect on",
    Unassign: "Unassign architect from",
    Submit: "Submit",
    Close: "Close",
    Escalate: "Escalate",
    ChangeStatus: "Change status of",
    Archive: "Archive",
    Restore: "Restore",
    AddProof: "Add proof of work to",
    AddComment: "Comment on",
    AddAttachments: "Attach files to",
    Edit: "Update",
}


class PostRepository:
    """
    Posts as documents under posts/{id}.json.

    Notes:
    - ids are max(existing)+1; two creators can race for the same id, the create-only
      write turns that into a ConflictError and create() moves on to the next id
    - the active-post ceiling is checked before any write, on create and on restore
    """

    def __init__(
        self,
        docs: DocumentRepository,
        *,
        max_active_posts: int = DEFAULT_MAX_ACTIVE_POSTS,
        ceiling_provider: CeilingProvider | None = None,
        privileged_roles: Sequence[str] = ("admin",),
        create_attempts: int = 3,
    ) -> None:
        self.docs = docs
        self.max_active_posts = int(max_active_posts)
        self._ceiling_provider = ceiling_provider
        self.privileged_roles = tuple(privileged_roles)
        self.create_attempts = max(1, int(create_attempts))

    async def ceiling(self) -> int:
        if self._ceiling_provider is None:
            return self.max_active_posts
        return await self._ceiling_provider()

    # ---- reads ----

    async def _post_files(self) -> list[str]:
        entries = await self.docs.list(POSTS_PREFIX)
        out: list[str] = []
        for e in entries:
            if e.kind == "file" and e.name.endswith(".json") and post_number(e.name[:-5]) is not None:
                out.append(e.name[:-5])
        return out

    async def get(self, post_id: str) -> Found | None:
        found = await self.docs.read(post_path(post_id))
        if found is None:
            return None
        return Found(document=Post.from_dict(found.document), version_token=found.version_token)

    async def require(self, post_id: str) -> Found:
        found = await self.get(post_id)
        if found is None:
            raise NotFoundError(f"Post {post_id} not found.", detail=post_id)
        return found

    async def _get_or_skip(self, post_id: str) -> Found | None:
        try:
            return await self.get(post_id)
        except CorruptDataError:
            logger.exception("Skipping unreadable post %s", post_id)
            return None

    async def list_found(self) -> list[Found]:
        ids = await self._post_files()
        results = await asyncio.gather(*(self._get_or_skip(pid) for pid in ids))
        found = [r for r in results if r is not None]
        found.sort(key=lambda f: (f.document.created_at, f.document.number), reverse=True)
        return found

    async def list_posts(self, *, archived: bool | None = None) -> list[Post]:
        """All posts, newest first. archived=None returns both active and archived."""
        posts = [f.document for f in await self.list_found()]
        if archived is None:
            return posts
        return [p for p in posts if p.is_archived == archived]

    async def count_active(self) -> int:
        return sum(1 for p in await self.list_posts() if p.is_active)

    async def next_post_id(self) -> str:
        numbers = [post_number(pid) or 0 for pid in await self._post_files()]
        return format_post_id(max(numbers, default=0) + 1)

    # ---- writes ----

    async def create(
        self,
        *,
        title: str,
        description: str,
        actor: Principal,
        concerned_parties: Sequence[str] = (),
        assigned_architects: Sequence[str] = (),
        now: datetime | None = None,
    ) -> Found:
        ensure_capacity(await self.count_active(), await self.ceiling())

        for attempt in range(1, self.create_attempts + 1):
            post_id = await self.next_post_id()
            post = new_post(
                post_id=post_id,
                title=title,
                description=description,
                actor=actor,
                concerned_parties=concerned_parties,
                assigned_architects=assigned_architects,
                now=now,
                privileged_roles=self.privileged_roles,
            )
            try:
                found = await self.docs.create(
                    post_path(post_id),
                    post.to_dict(),
                    message=audit_message("create", "post", post_id, actor.username),
                )
            except ConflictError:
                if attempt >= self.create_attempts:
                    raise
                logger.warning("Post id %s taken concurrently, rescanning (attempt %d)", post_id, attempt)
                continue
            logger.info("Created post %s by %s", post_id, actor.username)
            return Found(document=post, version_token=found.version_token)

        raise AssertionError("unreachable")

    async def mutate(
        self,
        post_id: str,
        action: Action,
        actor: Principal,
        *,
        expected_token: str | None = None,
        now: datetime | None = None,
    ) -> Found:
        """
        Apply a lifecycle action to the stored Post and write it back with the token read.

        Appends (comments, proof, attachments) are re-applied on a concurrent change;
        every other action surfaces the ConflictError.
        """
        if isinstance(action, Restore):
            # an active post fails the transition itself, not the ceiling
            current = await self.require(post_id)
            if current.document.is_archived:
                ensure_capacity(await self.count_active(), await self.ceiling())

        apply = action_applier(action, actor, now=now, privileged_roles=self.privileged_roles)

        def _merge(doc: dict) -> dict:
            return apply(Post.from_dict(doc)).to_dict()

        verb = _VERBS.get(type(action), "Update")
        found = await self.docs.mutate(
            post_path(post_id),
            _merge,
            message=audit_message(verb, "post", post_id, actor.username),
            idempotent=isinstance(action, IDEMPOTENT_ACTIONS),
            expected_token=expected_token,
        )
        return Found(document=Post.from_dict(found.document), version_token=found.version_token)

    async def delete(self, post_id: str, actor: Principal, *, expected_token: str) -> None:
        found = await self.require(post_id)
        post: Post = found.document
        if not is_privileged(actor, self.privileged_roles) and actor.username != post.created_by:
            raise ForbiddenError("Only the creator or an admin can delete this post.", detail=post_id)
        if expected_token != found.version_token:
            raise ConflictError(detail=f"{post_id} changed since it was read")

        await self.docs.delete(
            post_path(post_id),
            found.version_token,
            message=audit_message("delete", "post", post_id, actor.username),
        )
        logger.info("Deleted post %s by %s", post_id, actor.username)
