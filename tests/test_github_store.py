# tests/test_github_store.py

from __future__ import annotations

import base64

import httpx
import pytest

from arch_bulletin.core.errors import ConflictError, NotFoundError, UnavailableError
from arch_bulletin.storage.document_repository import DocumentRepository
from arch_bulletin.storage.github_store import GitHubDocumentStore
from arch_bulletin.storage.store_models import CasSupport, EntryKind, git_blob_sha

from .fakes import FakeGitHubContents


@pytest.fixture()
def fake() -> FakeGitHubContents:
    return FakeGitHubContents()


@pytest.fixture()
def gh(fake: FakeGitHubContents) -> GitHubDocumentStore:
    return GitHubDocumentStore(token="t", owner="acme", repo="board-data", client=fake.client())


def test_credentials_are_required() -> None:
    with pytest.raises(ValueError):
        GitHubDocumentStore(token="", owner="acme", repo="board-data")
    with pytest.raises(ValueError):
        GitHubDocumentStore(token="t", owner="", repo="board-data")


@pytest.mark.asyncio
async def test_put_commits_and_get_returns_blob_sha(gh: GitHubDocumentStore, fake: FakeGitHubContents) -> None:
    token = await gh.put("posts/post-0001.json", b'{"id": "post-0001"}', message="Create post post-0001 by admin")
    assert token == git_blob_sha(b'{"id": "post-0001"}')
    assert fake.commits == ["Create post post-0001 by admin"]

    found = await gh.get("posts/post-0001.json")
    assert found is not None
    assert found.content == b'{"id": "post-0001"}'
    assert found.version_token == token
    assert gh.capabilities.cas == CasSupport.NATIVE


@pytest.mark.asyncio
async def test_missing_file_reads_as_none(gh: GitHubDocumentStore) -> None:
    assert await gh.get("config/settings.json") is None
    assert await gh.list("posts") == []


@pytest.mark.asyncio
async def test_create_over_existing_conflicts(gh: GitHubDocumentStore, fake: FakeGitHubContents) -> None:
    await gh.put("config/a.json", b"1", message="Create a by admin")
    with pytest.raises(ConflictError):
        await gh.put("config/a.json", b"2", message="Create a by bob")
    assert fake.files["config/a.json"] == b"1"


@pytest.mark.asyncio
async def test_stale_sha_conflicts(gh: GitHubDocumentStore, fake: FakeGitHubContents) -> None:
    t1 = await gh.put("config/a.json", b"1", message="Create a by admin")
    await gh.put("config/a.json", b"2", message="Update a by alice", version_token=t1)
    with pytest.raises(ConflictError):
        await gh.put("config/a.json", b"3", message="Update a by bob", version_token=t1)
    assert fake.files["config/a.json"] == b"2"


@pytest.mark.asyncio
async def test_update_of_deleted_file_conflicts(gh: GitHubDocumentStore) -> None:
    with pytest.raises(ConflictError):
        await gh.put("config/a.json", b"1", message="Update a by admin", version_token="deadbeef")


@pytest.mark.asyncio
async def test_delete(gh: GitHubDocumentStore, fake: FakeGitHubContents) -> None:
    t1 = await gh.put("uploads/proof/post-0001/1-a.txt", b"a", message="Upload proof by admin")
    with pytest.raises(ConflictError):
        await gh.delete("uploads/proof/post-0001/1-a.txt", "0" * 40, message="Delete upload by admin")
    await gh.delete("uploads/proof/post-0001/1-a.txt", t1, message="Delete upload by admin")
    assert fake.files == {}
    with pytest.raises(NotFoundError):
        await gh.delete("uploads/proof/post-0001/1-a.txt", t1, message="Delete upload by admin")


@pytest.mark.asyncio
async def test_list_directory(gh: GitHubDocumentStore, fake: FakeGitHubContents) -> None:
    fake.files["posts/post-0001.json"] = b"{}"
    fake.files["posts/post-0002.json"] = b"{}"
    fake.files["posts/archive/old.json"] = b"{}"
    entries = await gh.list("posts")
    assert [(e.name, e.kind) for e in entries] == [
        ("archive", EntryKind.DIR),
        ("post-0001.json", EntryKind.FILE),
        ("post-0002.json", EntryKind.FILE),
    ]


@pytest.mark.asyncio
async def test_server_errors_and_rate_limits_are_unavailable(
    gh: GitHubDocumentStore, fake: FakeGitHubContents
) -> None:
    fake.fail_next = [502]
    with pytest.raises(UnavailableError):
        await gh.get("config/a.json")
    fake.fail_next = [429]
    with pytest.raises(UnavailableError):
        await gh.put("config/a.json", b"1", message="Create a by admin")
    assert fake.files == {}


@pytest.mark.asyncio
async def test_transport_errors_are_unavailable() -> None:
    def _down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(base_url="https://api.github.test", transport=httpx.MockTransport(_down))
    gh = GitHubDocumentStore(token="t", owner="acme", repo="board-data", client=client)
    with pytest.raises(UnavailableError):
        await gh.get("config/a.json")


@pytest.mark.asyncio
async def test_large_files_are_fetched_as_blobs() -> None:
    data = b"x" * 2048
    sha = git_blob_sha(data)

    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(f"/git/blobs/{sha}"):
            body = {"sha": sha, "encoding": "base64", "content": base64.b64encode(data).decode()}
            return httpx.Response(200, json=body)
        # above the inline limit the contents API omits the bytes
        return httpx.Response(200, json={"type": "file", "sha": sha, "size": len(data), "encoding": "none"})

    client = httpx.AsyncClient(base_url="https://api.github.test", transport=httpx.MockTransport(_handler))
    gh = GitHubDocumentStore(token="t", owner="acme", repo="board-data", client=client)
    found = await gh.get("uploads/proof/post-0001/1-big.bin")
    assert found.content == data and found.version_token == sha


@pytest.mark.asyncio
async def test_transient_failure_is_retried_by_the_repository(
    gh: GitHubDocumentStore, fake: FakeGitHubContents
) -> None:
    docs = DocumentRepository(gh, retry_attempts=3, backoff_seconds=0.0, backoff_max_seconds=0.0)
    fake.fail_next = [503, 503]
    created = await docs.create("config/settings.json", {"adminUsers": ["admin"]}, message="Create settings by admin")
    assert (await docs.read("config/settings.json")).version_token == created.version_token
    assert fake.commits == ["Create settings by admin"]
