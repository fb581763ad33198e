# tests/test_post_repository.py

from __future__ import annotations

import pytest

from arch_bulletin.core.errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
)
from arch_bulletin.posts.post_lifecycle import AddComment, Archive, Assign, Restore
from arch_bulletin.posts.post_models import PostStatus, Principal
from arch_bulletin.posts.post_repository import PostRepository
from arch_bulletin.storage.document_repository import DocumentRepository
from arch_bulletin.storage.local_store import LocalFileStore

from .fakes import InterferingStore, LostAckStore


@pytest.mark.asyncio
async def test_ids_are_increasing_and_zero_padded(posts: PostRepository, admin: Principal) -> None:
    ids = []
    for i in range(3):
        found = await posts.create(title=f"Post {i}", description="", actor=admin)
        ids.append(found.document.id)
    assert ids == ["post-0001", "post-0002", "post-0003"]


@pytest.mark.asyncio
async def test_next_id_follows_the_highest_existing(store: LocalFileStore, docs: DocumentRepository) -> None:
    await store.put("posts/post-0007.json", b'{"id": "post-0007", "title": "x"}', message="seed")
    await store.put("posts/notes.txt", b"ignore me", message="seed")
    repo = PostRepository(docs)
    assert await repo.next_post_id() == "post-0008"


@pytest.mark.asyncio
async def test_ceiling_rejects_create_without_writing(posts: PostRepository, admin: Principal, store) -> None:
    for i in range(3):
        await posts.create(title=f"Post {i}", description="", actor=admin)
    with pytest.raises(CapacityExceededError):
        await posts.create(title="one too many", description="", actor=admin)
    assert len(await store.list("posts")) == 3


@pytest.mark.asyncio
async def test_archived_posts_free_capacity_and_restore_rechecks(posts: PostRepository, admin: Principal) -> None:
    for i in range(3):
        await posts.create(title=f"Post {i}", description="", actor=admin)
    await posts.mutate("post-0001", Archive(), admin)
    assert await posts.count_active() == 2

    await posts.create(title="fits again", description="", actor=admin)
    with pytest.raises(CapacityExceededError):
        await posts.mutate("post-0001", Restore(), admin)


@pytest.mark.asyncio
async def test_list_skips_corrupt_documents(posts: PostRepository, admin: Principal, store) -> None:
    await posts.create(title="good", description="", actor=admin)
    await store.put("posts/post-0002.json", b"{broken", message="seed")
    listed = await posts.list_posts()
    assert [p.id for p in listed] == ["post-0001"]


@pytest.mark.asyncio
async def test_list_is_newest_first(posts: PostRepository, admin: Principal) -> None:
    for i in range(3):
        await posts.create(title=f"Post {i}", description="", actor=admin)
    assert [p.id for p in await posts.list_posts()] == ["post-0003", "post-0002", "post-0001"]


@pytest.mark.asyncio
async def test_create_collision_moves_to_next_id(store: LocalFileStore, docs, admin: Principal) -> None:
    class RacingCreator:
        """Another writer grabs post-0001 right after our scan."""

        def __init__(self, inner) -> None:
            self.inner = inner
            self.done = False

        @property
        def capabilities(self):
            return self.inner.capabilities

        def __getattr__(self, name):
            return getattr(self.inner, name)

        async def put(self, path, content, *, message, version_token=None):
            if not self.done and path == "posts/post-0001.json":
                self.done = True
                await self.inner.put(path, b'{"id": "post-0001", "title": "theirs"}', message="Create post post-0001 by other")
            return await self.inner.put(path, content, message=message, version_token=version_token)

    repo = PostRepository(DocumentRepository(RacingCreator(store), backoff_seconds=0.0))
    found = await repo.create(title="mine", description="", actor=admin)
    assert found.document.id == "post-0002"
    assert (await repo.get("post-0001")).document.title == "theirs"


@pytest.mark.asyncio
async def test_mutate_with_stale_token_conflicts(posts: PostRepository, admin: Principal, alice: Principal) -> None:
    t1 = (await posts.create(title="t", description="", actor=admin)).version_token
    await posts.mutate("post-0001", AddComment("first"), admin)
    with pytest.raises(ConflictError):
        await posts.mutate("post-0001", Assign("alice"), alice, expected_token=t1)
    assert (await posts.get("post-0001")).document.status == PostStatus.NEW


@pytest.mark.asyncio
async def test_comments_survive_concurrent_writers(store: LocalFileStore, admin: Principal, alice: Principal) -> None:
    base = PostRepository(DocumentRepository(store, backoff_seconds=0.0))
    await base.create(title="t", description="", actor=admin)

    async def _other_comment(inner, path) -> None:
        other = PostRepository(DocumentRepository(inner, backoff_seconds=0.0))
        await other.mutate("post-0001", AddComment("from bob"), Principal("bob", "architect"))

    racing = PostRepository(DocumentRepository(InterferingStore(store, _other_comment), backoff_seconds=0.0))
    found = await racing.mutate("post-0001", AddComment("from alice"), alice)
    assert [c.message for c in found.document.conversations] == ["from bob", "from alice"]


@pytest.mark.asyncio
async def test_assignment_race_is_not_retried(store: LocalFileStore, admin: Principal, alice: Principal) -> None:
    base = PostRepository(DocumentRepository(store, backoff_seconds=0.0))
    await base.create(title="t", description="", actor=admin)

    async def _bob_assigns(inner, path) -> None:
        other = PostRepository(DocumentRepository(inner, backoff_seconds=0.0))
        await other.mutate("post-0001", Assign("bob"), Principal("bob", "architect"))

    racing = PostRepository(DocumentRepository(InterferingStore(store, _bob_assigns), backoff_seconds=0.0))
    with pytest.raises(ConflictError):
        await racing.mutate("post-0001", Assign("alice"), alice)
    assert (await base.get("post-0001")).document.assigned_architects == ["bob"]


@pytest.mark.asyncio
async def test_delete_allowed_for_creator_or_admin(posts: PostRepository, admin, alice, bob) -> None:
    token = (await posts.create(title="t", description="", actor=alice)).version_token
    with pytest.raises(ForbiddenError):
        await posts.delete("post-0001", bob, expected_token=token)
    await posts.mutate("post-0001", AddComment("last words"), alice)
    with pytest.raises(ConflictError):
        await posts.delete("post-0001", admin, expected_token=token)

    current = (await posts.get("post-0001")).version_token
    await posts.delete("post-0001", alice, expected_token=current)
    assert await posts.get("post-0001") is None


@pytest.mark.asyncio
async def test_lost_answer_on_create_does_not_duplicate_the_post(store: LocalFileStore, admin: Principal) -> None:
    repo = PostRepository(DocumentRepository(LostAckStore(store, failures=1), backoff_seconds=0.0))
    found = await repo.create(title="only once", description="", actor=admin)

    assert found.document.id == "post-0001"
    assert [e.name for e in await store.list("posts")] == ["post-0001.json"]
    assert found.version_token == (await store.get("posts/post-0001.json")).version_token


@pytest.mark.asyncio
async def test_lost_answer_on_comment_does_not_duplicate_it(store: LocalFileStore, admin: Principal) -> None:
    base = PostRepository(DocumentRepository(store, backoff_seconds=0.0))
    await base.create(title="t", description="", actor=admin)

    lossy = PostRepository(DocumentRepository(LostAckStore(store, failures=1), backoff_seconds=0.0))
    found = await lossy.mutate("post-0001", AddComment("hello"), admin)

    assert [c.message for c in found.document.conversations] == ["hello"]
    stored = (await base.get("post-0001")).document
    assert [c.message for c in stored.conversations] == ["hello"]


@pytest.mark.asyncio
async def test_restore_of_active_post_is_invalid_even_when_full(posts: PostRepository, admin: Principal) -> None:
    for i in range(3):
        await posts.create(title=f"Post {i}", description="", actor=admin)
    with pytest.raises(InvalidTransitionError):
        await posts.mutate("post-0002", Restore(), admin)
