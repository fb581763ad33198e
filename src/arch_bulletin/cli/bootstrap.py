# src/arch_bulletin/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- resolves the document store and wires repositories, uploads and notifications into AppState.
"""

from __future__ import annotations

import logging

from ..board.board_repository import BoardRepository
from ..config import get_settings
from ..core.ports import DocumentStore, Notifier
from ..core.state import AppState
from ..notifications.notifier import DocumentNotifier, LoggingNotifier
from ..posts.post_models import Principal
from ..posts.post_repository import PostRepository
from ..storage.document_repository import DocumentRepository
from ..storage.selector import get_document_store
from ..uploads.asset_store import AssetStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    if getattr(settings, "storage_provider", "local") == "local":
        settings.local_data_dir.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, store: DocumentStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the store) injectable makes the app easy to test and avoids
    hidden global config reads. If settings is None, falls back to get_settings(); if
    store is None, the process-wide store for settings.storage_provider is used.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if store is None:
        store = get_document_store(settings)

    docs = DocumentRepository.from_settings(store, settings)
    privileged = tuple(settings.privileged_roles)

    # the board owns the active-post ceiling; posts read it back on every create/restore
    board = BoardRepository(
        docs,
        default_max_active=settings.max_active_posts,
        privileged_roles=privileged,
    )
    posts = PostRepository(
        docs,
        max_active_posts=settings.max_active_posts,
        ceiling_provider=board.max_active_posts,
        privileged_roles=privileged,
    )
    board.posts = posts

    notifier: Notifier
    if settings.notification_sink == "document":
        notifier = DocumentNotifier(docs)
    else:
        notifier = LoggingNotifier()

    state = AppState(
        settings=settings,
        store=store,
        docs=docs,
        posts=posts,
        board=board,
        assets=AssetStore(docs, max_bytes=settings.max_upload_bytes),
        notifier=notifier,
        actor=Principal(username=settings.console_user, role=settings.console_role),
    )
    logger.info(
        "State ready: provider=%s cas=%s actor=%s",
        settings.storage_provider,
        store.capabilities.cas.value,
        state.actor.username,
    )
    return state
