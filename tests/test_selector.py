# tests/test_selector.py

from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from arch_bulletin.storage import selector
from arch_bulletin.storage.blob_store import BlobDocumentStore
from arch_bulletin.storage.github_store import GitHubDocumentStore
from arch_bulletin.storage.local_store import LocalFileStore


@pytest.fixture(autouse=True)
def _fresh_singleton():
    selector.reset_document_store()
    yield
    selector.reset_document_store()


def test_local_provider(settings: SimpleNamespace, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="arch_bulletin.storage.selector"):
        store = selector.create_document_store(settings)
    assert isinstance(store, LocalFileStore)
    assert "emulated CAS" in caplog.text


def test_unknown_provider(settings: SimpleNamespace) -> None:
    settings.storage_provider = "ftp"
    with pytest.raises(ValueError, match="Unknown storage provider"):
        selector.create_document_store(settings)


def test_remote_providers_validate_credentials_without_network() -> None:
    common = dict(connect_timeout_seconds=1.0, request_timeout_seconds=1.0)
    gh = SimpleNamespace(
        storage_provider="github",
        github_token=None,
        github_owner="acme",
        github_repo="board-data",
        github_branch="main",
        github_api_url="https://api.github.test",
        **common,
    )
    with pytest.raises(ValueError, match="token"):
        selector.create_document_store(gh)

    gh.github_token = "t"
    assert isinstance(selector.create_document_store(gh), GitHubDocumentStore)

    blob = SimpleNamespace(
        storage_provider="blob",
        blob_token="t",
        blob_public_url="https://store.public.blob.test",
        blob_api_url="https://blob.test",
        blob_cas_mode="rejected",
        **common,
    )
    store = selector.create_document_store(blob)
    assert isinstance(store, BlobDocumentStore)
    assert store.capabilities.cas.value == "rejected"


def test_singleton_and_reset(settings: SimpleNamespace) -> None:
    first = selector.get_document_store(settings)
    assert selector.get_document_store(settings) is first
    assert selector.reset_document_store() is first
    assert selector.get_document_store(settings) is not first
