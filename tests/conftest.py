# tests/conftest.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from arch_bulletin.cli.bootstrap import create_initial_state
from arch_bulletin.core.state import AppState
from arch_bulletin.posts.post_models import Principal, Role
from arch_bulletin.posts.post_repository import PostRepository
from arch_bulletin.storage.document_repository import DocumentRepository
from arch_bulletin.storage.local_store import LocalFileStore

from .fakes import FakeNotifier

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the developer's environment and .env.
    """
    return SimpleNamespace(
        app_name="arch-bulletin-test",
        log_level="DEBUG",
        data_dir=tmp_path / "bulletin",
        local_data_dir=tmp_path / "bulletin" / "data",
        storage_provider="local",
        # Retries: no sleeping in tests
        retry_attempts=3,
        retry_backoff_seconds=0.0,
        retry_backoff_max_seconds=0.0,
        conflict_attempts=3,
        operation_timeout_seconds=5.0,
        # Board rules
        max_active_posts=50,
        max_upload_bytes=1024,
        privileged_roles=["admin"],
        notification_sink="document",
        console_user="admin",
        console_role="admin",
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> LocalFileStore:
    return LocalFileStore(settings.local_data_dir)


@pytest.fixture()
def docs(store: LocalFileStore, settings: SimpleNamespace) -> DocumentRepository:
    return DocumentRepository.from_settings(store, settings)


@pytest.fixture()
def posts(docs: DocumentRepository) -> PostRepository:
    return PostRepository(docs, max_active_posts=3)


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def state(settings: SimpleNamespace, store: LocalFileStore, notifier: FakeNotifier) -> AppState:
    """
    AppState wired by the real composition root on a temporary local store.

    NOTE: the notifier is swapped for a recording fake so tests can count notifications.
    """
    st = create_initial_state(settings=settings, store=store)
    st.notifier = notifier
    return st


@pytest.fixture()
def admin() -> Principal:
    return Principal(username="admin", role=Role.ADMIN)


@pytest.fixture()
def alice() -> Principal:
    return Principal(username="alice", role=Role.ARCHITECT)


@pytest.fixture()
def bob() -> Principal:
    return Principal(username="bob", role=Role.ARCHITECT)
