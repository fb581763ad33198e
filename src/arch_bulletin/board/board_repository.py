# src/arch_bulletin/board/board_repository.py

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..core.errors import ForbiddenError, InvariantViolation, NotFoundError, ValidationError
from ..posts.post_models import Principal, Role, is_privileged, utc_iso, utc_now
from ..storage.document_repository import DocumentRepository
from ..storage.store_models import audit_message
from .board_models import (
    ARCHITECTS_PATH,
    DEFAULT_STATUSES,
    SETTINGS_PATH,
    STATUSES_PATH,
    USERS_PATH,
    Architect,
    ArchitectStatus,
    BoardSettings,
    StatusDef,
    sanitize_user,
)

if TYPE_CHECKING:
    from ..posts.post_repository import PostRepository

logger = logging.getLogger(__name__)

Doc = dict[str, Any]


def _envelope(doc: Doc, actor: str, ts: str) -> Doc:
    try:
        version = int(doc.get("version") or 0)
    except (TypeError, ValueError):
        version = 0
    doc["version"] = version + 1
    doc["lastUpdated"] = ts
    doc["updatedBy"] = actor
    return doc


class BoardRepository:
    """
    Board configuration documents under config/.

    Every write is admin-only and goes through an idempotent merge: on a concurrent
    change the document is re-read and the same edit is applied again.
    """

    def __init__(
        self,
        docs: DocumentRepository,
        *,
        posts: PostRepository | None = None,
        default_max_active: int = 50,
        privileged_roles: Sequence[str] = ("admin",),
    ) -> None:
        self.docs = docs
        self.posts = posts
        self.default_max_active = int(default_max_active)
        self.privileged_roles = tuple(privileged_roles)

    def _require_privileged(self, actor: Principal) -> None:
        if not is_privileged(actor, self.privileged_roles):
            raise ForbiddenError("Admin access required.")

    async def _mutate(
        self,
        path: str,
        fn: Callable[[Doc], Doc],
        *,
        actor: Principal,
        verb: str,
        resource: str,
        resource_id: str | None,
        now: datetime | None,
        default: Callable[[], Doc],
    ) -> Doc:
        ts = utc_iso(now or utc_now())

        def _apply(doc: Doc) -> Doc:
            return _envelope(fn(doc), actor.username, ts)

        found = await self.docs.mutate(
            path,
            _apply,
            message=audit_message(verb, resource, resource_id, actor.username),
            idempotent=True,
            default=default,
        )
        return found.document

    # ---- architects ----

    async def get_architects(self, *, include_inactive: bool = True) -> list[Architect]:
        found = await self.docs.read(ARCHITECTS_PATH)
        if found is None:
            return []
        out = [Architect.from_dict(a) for a in found.document.get("architects") or [] if isinstance(a, dict)]
        if include_inactive:
            return out
        return [a for a in out if a.is_active]

    async def get_architect(self, username: str) -> Architect | None:
        for a in await self.get_architects():
            if a.username == username:
                return a
        return None

    async def add_architect(
        self,
        actor: Principal,
        *,
        username: str,
        display_name: str = "",
        email: str | None = None,
        specialization: str | None = None,
        now: datetime | None = None,
    ) -> Architect:
        self._require_privileged(actor)
        username = (username or "").strip()
        if not username:
            raise ValidationError("Architect username is required.")

        when = now or utc_now()
        architect = Architect(
            id=f"arch-{int(when.timestamp() * 1000)}",
            username=username,
            display_name=(display_name or "").strip() or username,
            email=email,
            specialization=specialization,
            added_at=utc_iso(when),
            added_by=actor.username,
        )

        def _add(doc: Doc) -> Doc:
            items = [a for a in doc.get("architects") or [] if isinstance(a, dict)]
            if any(Architect.from_dict(a).username == username for a in items):
                raise ValidationError(f"Architect {username} already exists.")
            items.append(architect.to_dict())
            doc["architects"] = items
            return doc

        await self._mutate(
            ARCHITECTS_PATH,
            _add,
            actor=actor,
            verb="add",
            resource="architect",
            resource_id=username,
            now=when,
            default=lambda: {"architects": []},
        )
        logger.info("Architect %s added by %s", username, actor.username)
        return architect

    async def _set_architect_status(
        self, actor: Principal, username: str, status: ArchitectStatus, now: datetime | None
    ) -> Architect:
        self._require_privileged(actor)
        ts = utc_iso(now or utc_now())
        result: list[Architect] = []

        def _set(doc: Doc) -> Doc:
            result.clear()
            items = [a for a in doc.get("architects") or [] if isinstance(a, dict)]
            for i, raw in enumerate(items):
                arch = Architect.from_dict(raw)
                if arch.username != username:
                    continue
                arch.status = status
                if status == ArchitectStatus.INACTIVE:
                    arch.deactivated_at = ts
                    arch.deactivated_by = actor.username
                else:
                    arch.deactivated_at = None
                    arch.deactivated_by = None
                items[i] = {**raw, **arch.to_dict()}
                items[i].pop("githubUsername", None)
                result.append(arch)
                doc["architects"] = items
                return doc
            raise NotFoundError(f"Architect {username} not found.", detail=username)

        verb = "deactivate" if status == ArchitectStatus.INACTIVE else "reactivate"
        await self._mutate(
            ARCHITECTS_PATH,
            _set,
            actor=actor,
            verb=verb,
            resource="architect",
            resource_id=username,
            now=now,
            default=lambda: {"architects": []},
        )
        return result[0]

    async def deactivate_architect(self, actor: Principal, username: str, *, now: datetime | None = None) -> Architect:
        return await self._set_architect_status(actor, username, ArchitectStatus.INACTIVE, now)

    async def reactivate_architect(self, actor: Principal, username: str, *, now: datetime | None = None) -> Architect:
        return await self._set_architect_status(actor, username, ArchitectStatus.ACTIVE, now)

    async def remove_architect(self, actor: Principal, username: str, *, now: datetime | None = None) -> None:
        """Physically remove an architect; refused while any Post still references them."""
        self._require_privileged(actor)
        if self.posts is not None:
            referenced = [p.id for p in await self.posts.list_posts() if username in p.assigned_architects]
            if referenced:
                raise InvariantViolation(
                    f"Architect {username} is assigned to {len(referenced)} post(s). Deactivate instead.",
                    detail=", ".join(referenced),
                )

        def _remove(doc: Doc) -> Doc:
            items = [a for a in doc.get("architects") or [] if isinstance(a, dict)]
            kept = [a for a in items if Architect.from_dict(a).username != username]
            if len(kept) == len(items):
                raise NotFoundError(f"Architect {username} not found.", detail=username)
            doc["architects"] = kept
            return doc

        await self._mutate(
            ARCHITECTS_PATH,
            _remove,
            actor=actor,
            verb="remove",
            resource="architect",
            resource_id=username,
            now=now,
            default=lambda: {"architects": []},
        )
        logger.info("Architect %s removed by %s", username, actor.username)

    # ---- statuses ----

    async def get_statuses(self) -> list[StatusDef]:
        found = await self.docs.read(STATUSES_PATH)
        if found is None:
            return list(DEFAULT_STATUSES)
        items = [StatusDef.from_dict(s) for s in found.document.get("statuses") or [] if isinstance(s, dict)]
        return items or list(DEFAULT_STATUSES)

    async def update_statuses(
        self, actor: Principal, statuses: Sequence[StatusDef], *, now: datetime | None = None
    ) -> list[StatusDef]:
        self._require_privileged(actor)
        ids = [s.id for s in statuses]
        if not ids or any(not i for i in ids) or len(set(ids)) != len(ids):
            raise ValidationError("Statuses need unique, non-empty ids.")

        def _replace(doc: Doc) -> Doc:
            doc["statuses"] = [s.to_dict() for s in statuses]
            return doc

        await self._mutate(
            STATUSES_PATH,
            _replace,
            actor=actor,
            verb="update",
            resource="statuses",
            resource_id=None,
            now=now,
            default=lambda: {"statuses": []},
        )
        return list(statuses)

    # ---- users ----

    async def get_users(self) -> list[dict[str, Any]]:
        found = await self.docs.read(USERS_PATH)
        if found is None:
            return [{"username": "admin", "role": Role.ADMIN.value, "fullName": "Administrator"}]
        return [sanitize_user(u) for u in found.document.get("users") or [] if isinstance(u, dict)]

    # ---- settings ----

    async def get_settings(self) -> BoardSettings:
        found = await self.docs.read(SETTINGS_PATH)
        if found is None:
            return BoardSettings(max_active_tasks=self.default_max_active)
        return BoardSettings.from_dict(found.document, default_max=self.default_max_active)

    async def update_settings(
        self,
        actor: Principal,
        *,
        max_active_tasks: int | None = None,
        banner_message: str | None = None,
        show_banner: bool | None = None,
        admin_users: Sequence[str] | None = None,
        features: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> BoardSettings:
        self._require_privileged(actor)
        if max_active_tasks is not None and max_active_tasks < 1:
            raise ValidationError("The active task limit must be at least 1.")

        def _update(doc: Doc) -> Doc:
            current = BoardSettings.from_dict(doc, default_max=self.default_max_active)
            if max_active_tasks is not None:
                current.max_active_tasks = int(max_active_tasks)
            if banner_message is not None:
                current.banner_message = banner_message
            if show_banner is not None:
                current.show_banner = show_banner
            if admin_users is not None:
                current.admin_users = list(dict.fromkeys(admin_users))
            if features is not None:
                current.features.update(features)
            doc.update(current.to_dict())
            return doc

        doc = await self._mutate(
            SETTINGS_PATH,
            _update,
            actor=actor,
            verb="update",
            resource="settings",
            resource_id=None,
            now=now,
            default=lambda: BoardSettings(max_active_tasks=self.default_max_active).to_dict(),
        )
        return BoardSettings.from_dict(doc, default_max=self.default_max_active)

    async def max_active_posts(self) -> int:
        return (await self.get_settings()).max_active_tasks

    async def resolve_role(self, username: str) -> Role:
        settings = await self.get_settings()
        if username in settings.admin_users:
            return Role.ADMIN
        architect = await self.get_architect(username)
        if architect is not None and architect.is_active:
            return Role.ARCHITECT
        return Role.UNAUTHORIZED
