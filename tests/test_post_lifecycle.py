# tests/test_post_lifecycle.py

from __future__ import annotations

import pytest

from arch_bulletin.core.errors import (
    AlreadyAssignedError,
    CapacityExceededError,
    ForbiddenError,
    InvalidTransitionError,
    NotAssignedError,
    ValidationError,
)
from arch_bulletin.posts.post_lifecycle import (
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
    ensure_capacity,
    new_post,
)
from arch_bulletin.posts.post_models import FileRef, Post, PostStatus, Principal

from .conftest import NOW

ADMIN = Principal("admin", "admin")
ALICE = Principal("alice", "architect")
BOB = Principal("bob", "architect")


def _post(**overrides) -> Post:
    post = new_post(post_id="post-0001", title="Review API gateway", description="", actor=BOB, now=NOW)
    for k, v in overrides.items():
        setattr(post, k, v)
    return post


def _proof() -> AddProof:
    return AddProof(files=(FileRef(filename="design.pdf", path="uploads/proof/post-0001/1-design.pdf", size=3),))


def test_new_post_defaults() -> None:
    post = _post()
    assert post.status == PostStatus.NEW
    assert post.assigned_architects == []
    assert post.is_archived is False
    assert post.created_by == "bob"
    assert post.created_at == post.updated_at == "2025-03-01T12:00:00.000Z"


def test_new_post_validates_title_length() -> None:
    with pytest.raises(ValidationError):
        new_post(post_id="post-0001", title="x" * 201, description="", actor=BOB)
    with pytest.raises(ValidationError):
        new_post(post_id="post-0001", title="   ", description="", actor=BOB)


def test_admin_can_preassign_on_create_but_architect_cannot() -> None:
    post = new_post(post_id="post-0002", title="t", description="", actor=ADMIN, assigned_architects=["alice"])
    assert post.status == PostStatus.ASSIGNED
    assert post.admin_assigned is True
    with pytest.raises(ForbiddenError):
        new_post(post_id="post-0003", title="t", description="", actor=ALICE, assigned_architects=["bob"])


def test_self_assign_moves_new_to_assigned_and_does_not_mutate_input() -> None:
    post = _post()
    out = apply_action(post, Assign("alice"), ALICE, now=NOW)
    assert out.status == PostStatus.ASSIGNED
    assert out.assigned_architects == ["alice"]
    assert out.admin_assigned is False
    assert post.status == PostStatus.NEW
    assert post.assigned_architects == []


def test_second_self_assign_is_rejected() -> None:
    post = apply_action(_post(), Assign("alice"), ALICE)
    with pytest.raises(AlreadyAssignedError):
        apply_action(post, Assign("alice"), ALICE)


def test_architect_cannot_assign_someone_else() -> None:
    with pytest.raises(ForbiddenError):
        apply_action(_post(), Assign("bob"), ALICE)


def test_admin_assignment_locks_out_self_service() -> None:
    post = apply_action(_post(), Assign("alice"), ADMIN)
    assert post.admin_assigned is True
    with pytest.raises(ForbiddenError):
        apply_action(post, Assign("bob"), BOB)
    with pytest.raises(ForbiddenError):
        apply_action(post, Unassign("alice"), ALICE)
    # the admin can still change it
    post = apply_action(post, Assign("bob"), ADMIN)
    assert post.assigned_architects == ["alice", "bob"]


def test_assign_onto_closed_post_is_rejected() -> None:
    with pytest.raises(InvalidTransitionError):
        apply_action(_post(status=PostStatus.CLOSED), Assign("alice"), ADMIN)


def test_unassigning_sole_assignee_reverts_to_new_and_reassign_refires() -> None:
    post = apply_action(_post(), Assign("alice"), ALICE)
    post = apply_action(post, Unassign("alice"), ALICE)
    assert post.status == PostStatus.NEW
    assert post.assigned_architects == []

    post = apply_action(post, Assign("alice"), ALICE)
    assert post.status == PostStatus.ASSIGNED


def test_unassign_keeps_status_when_others_remain() -> None:
    post = apply_action(_post(), Assign("alice"), ALICE)
    post = apply_action(post, Assign("bob"), BOB)
    post = apply_action(post, Unassign("alice"), ALICE)
    assert post.status == PostStatus.ASSIGNED
    assert post.assigned_architects == ["bob"]


def test_unassign_unknown_architect() -> None:
    with pytest.raises(NotAssignedError):
        apply_action(_post(), Unassign("alice"), ADMIN)


def test_submit_requires_assignment_and_proof() -> None:
    post = apply_action(_post(), Assign("alice"), ALICE)
    with pytest.raises(InvalidTransitionError):
        apply_action(post, Submit(), ALICE)
    with pytest.raises(NotAssignedError):
        apply_action(post, Submit(), BOB)

    post = apply_action(post, _proof(), ALICE, now=NOW)
    out = apply_action(post, Submit(), ALICE, now=NOW)
    assert out.status == PostStatus.SUBMITTED
    assert out.submitted_by == "alice"
    assert out.submitted_at == "2025-03-01T12:00:00.000Z"


def test_admin_cannot_submit() -> None:
    post = apply_action(_post(), Assign("admin"), ADMIN)
    post = apply_action(post, _proof(), ADMIN)
    with pytest.raises(ForbiddenError):
        apply_action(post, Submit(), ADMIN)


def test_pending_can_be_resubmitted() -> None:
    post = apply_action(_post(), Assign("alice"), ALICE)
    post = apply_action(post, _proof(), ALICE)
    post = apply_action(post, Submit(), ALICE)
    post = apply_action(post, ChangeStatus("pending"), ADMIN)
    assert post.status == PostStatus.PENDING
    post = apply_action(post, Submit(), ALICE)
    assert post.status == PostStatus.SUBMITTED


def test_close_is_privileged_and_stamps_approval() -> None:
    post = _post()
    with pytest.raises(ForbiddenError):
        apply_action(post, Close(), ALICE)
    out = apply_action(post, Close(), ADMIN, now=NOW)
    assert out.status == PostStatus.CLOSED
    assert out.closed_by == out.approved_by == "admin"
    with pytest.raises(InvalidTransitionError):
        apply_action(out, Close(), ADMIN)


def test_escalate_reopens_closed_post() -> None:
    closed = apply_action(_post(), Close(), ADMIN)
    out = apply_action(closed, Escalate(), ALICE, now=NOW)
    assert out.status == PostStatus.ESCALATE
    assert out.escalated_by == "alice"


def test_change_status_rules() -> None:
    post = _post()
    with pytest.raises(ForbiddenError):
        apply_action(post, ChangeStatus("pending"), ALICE)
    with pytest.raises(InvalidTransitionError):
        apply_action(post, ChangeStatus("pending"), ADMIN)
    with pytest.raises(InvalidTransitionError):
        apply_action(post, ChangeStatus("assigned"), ADMIN)
    with pytest.raises(InvalidTransitionError):
        apply_action(post, ChangeStatus("submitted"), ADMIN)
    with pytest.raises(ValidationError):
        apply_action(post, ChangeStatus("bogus"), ADMIN)
    assert apply_action(post, ChangeStatus("status-closed"), ADMIN).status == PostStatus.CLOSED


@pytest.mark.parametrize("target", ["", "   "])
def test_change_status_requires_a_target(target: str) -> None:
    post = _post(status=PostStatus.ESCALATE, assigned_architects=[])
    with pytest.raises(ValidationError):
        apply_action(post, ChangeStatus(target), ADMIN)
    assert post.status == PostStatus.ESCALATE


def test_archive_restore_round_trip_leaves_status_and_update_stamp() -> None:
    post = apply_action(_post(), Assign("alice"), ALICE, now=NOW)
    archived = apply_action(post, Archive(), BOB)
    assert archived.is_archived is True
    assert archived.status == post.status
    assert archived.updated_at == post.updated_at
    assert archived.archived_by == "bob"

    restored = apply_action(archived, Restore(), ADMIN)
    assert restored.to_dict() == post.to_dict()


def test_archive_rules() -> None:
    post = _post()
    with pytest.raises(ForbiddenError):
        apply_action(post, Archive(), ALICE)
    archived = apply_action(post, Archive(), ADMIN)
    with pytest.raises(InvalidTransitionError):
        apply_action(archived, Archive(), ADMIN)
    with pytest.raises(InvalidTransitionError):
        apply_action(post, Restore(), ADMIN)


def test_comment_validation_and_stamp() -> None:
    with pytest.raises(ValidationError):
        apply_action(_post(), AddComment("   "), ALICE)
    with pytest.raises(ValidationError):
        apply_action(_post(), AddComment("x" * 2001), ALICE)
    out = apply_action(_post(), AddComment(" looks good "), ALICE, now=NOW)
    assert out.conversations[-1].message == "looks good"
    assert out.updated_by == "alice"


def test_edit_by_creator_only() -> None:
    with pytest.raises(ForbiddenError):
        apply_action(_post(), Edit(title="new"), ALICE)
    out = apply_action(_post(), Edit(title="Renamed", concerned_parties=("ops", "ops", "sec")), BOB)
    assert out.title == "Renamed"
    assert out.concerned_parties == ["ops", "sec"]
    assert out.id == "post-0001"


def test_proof_requires_assignment_unless_privileged() -> None:
    with pytest.raises(NotAssignedError):
        apply_action(_post(), _proof(), ALICE)
    out = apply_action(_post(), _proof(), ADMIN)
    assert len(out.proof_of_work) == 1


def test_ensure_capacity() -> None:
    ensure_capacity(49, 50)
    with pytest.raises(CapacityExceededError) as exc:
        ensure_capacity(50, 50)
    assert exc.value.code == "TASK_LIMIT_REACHED"


def test_unknown_keys_survive_round_trip() -> None:
    raw = _post().to_dict()
    raw["priority"] = "high"
    post = Post.from_dict(raw)
    out = apply_action(post, AddComment("hi"), ALICE)
    assert out.to_dict()["priority"] == "high"
