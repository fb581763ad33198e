# src/arch_bulletin/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..board.board_repository import BoardRepository
    from ..posts.post_models import Principal
    from ..posts.post_repository import PostRepository
    from ..storage.document_repository import DocumentRepository
    from ..uploads.asset_store import AssetStore
    from .ports import DocumentStore, Notifier


@dataclass
class AppState:
    # Settings object (real Settings or a test double with the same attributes).
    settings: Any

    store: DocumentStore
    docs: DocumentRepository
    posts: PostRepository
    board: BoardRepository
    assets: AssetStore
    notifier: Notifier

    # Acting principal for the operator console.
    actor: Principal

    @property
    def privileged_roles(self) -> tuple[str, ...]:
        return tuple(getattr(self.settings, "privileged_roles", None) or ("admin",))
