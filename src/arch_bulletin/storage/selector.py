# src/arch_bulletin/storage/selector.py

"""
Store selector.

Picks the document-store backend named by settings.storage_provider and keeps one
instance per process. The composition root resolves it once and injects it; the
module-level accessor exists for code paths that have no AppState at hand.
"""

from __future__ import annotations

import logging
import threading

from ..config import STORAGE_PROVIDERS, get_settings
from ..core.ports import DocumentStore
from .store_models import CasSupport

logger = logging.getLogger(__name__)

_store: DocumentStore | None = None
_store_lock = threading.Lock()


def create_document_store(settings) -> DocumentStore:
    """Build a fresh adapter for the configured provider (no network calls)."""
    provider = str(getattr(settings, "storage_provider", "local") or "local").strip().lower()
    if provider not in STORAGE_PROVIDERS:
        raise ValueError(
            f"Unknown storage provider {provider!r}. Expected one of: {', '.join(STORAGE_PROVIDERS)}."
        )

    if provider == "github":
        from .github_store import GitHubDocumentStore

        store: DocumentStore = GitHubDocumentStore(
            token=settings.github_token or "",
            owner=settings.github_owner,
            repo=settings.github_repo,
            branch=settings.github_branch,
            api_url=settings.github_api_url,
            connect_timeout=settings.connect_timeout_seconds,
            request_timeout=settings.request_timeout_seconds,
        )
    elif provider == "s3":
        from .s3_store import S3DocumentStore

        store = S3DocumentStore(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            prefix=settings.s3_prefix,
            endpoint_url=settings.s3_endpoint_url,
            conditional_writes=settings.s3_conditional_writes,
            connect_timeout=settings.connect_timeout_seconds,
            request_timeout=settings.request_timeout_seconds,
        )
    elif provider == "blob":
        from .blob_store import BlobDocumentStore

        store = BlobDocumentStore(
            token=settings.blob_token or "",
            public_url=settings.blob_public_url,
            api_url=settings.blob_api_url,
            cas_mode=CasSupport(settings.blob_cas_mode),
            connect_timeout=settings.connect_timeout_seconds,
            request_timeout=settings.request_timeout_seconds,
        )
    else:
        from .local_store import LocalFileStore

        store = LocalFileStore(settings.local_data_dir)

    caps = store.capabilities
    if caps.cas != CasSupport.NATIVE:
        logger.warning(
            "Storage provider %s has %s CAS: %s", provider, caps.cas.value, caps.description
        )
    else:
        logger.info("Storage provider %s ready: %s", provider, caps.description)
    return store


def get_document_store(settings=None) -> DocumentStore:
    """Return the process-wide store, creating it on first use."""
    global _store
    with _store_lock:
        if _store is None:
            _store = create_document_store(settings if settings is not None else get_settings())
        return _store


def reset_document_store() -> DocumentStore | None:
    """
    Forget the cached store and return it so the caller can aclose() it.

    Used by tests and by the console shutdown path.
    """
    global _store
    with _store_lock:
        old, _store = _store, None
    return old
