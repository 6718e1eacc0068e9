"""
Unit tests for batch lifecycle operations
"""
import pytest
from sqlalchemy import select

from keytao.core.dependencies import AuthContext
from keytao.core.exceptions import (
    BatchApplyError,
    InvalidCodeError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    UnresolvedConflictError,
    ValidationError,
)
from keytao.models.batch import BatchStatus, PullRequestAction, PullRequestStatus
from keytao.models.phrase import Phrase, PhraseType
from keytao.schemas.batch import BatchCreate, BulkEditRequest, EditCreate, EditUpdate
from keytao.services.batch_service import BatchService


def new_batch(service, auth, *edits):
    batch = service.create_batch(auth, BatchCreate(description="新增词条"))
    for edit in edits:
        service.add_edit(batch.id, auth, edit)
    return batch


def create_edit(word, code, **kwargs):
    return EditCreate(action=PullRequestAction.CREATE, word=word, code=code, **kwargs)


def phrases_at(db, code):
    stmt = select(Phrase).where(Phrase.code == code).order_by(Phrase.weight)
    return list(db.execute(stmt).scalars().all())


def test_create_batch_starts_as_draft(db_session, user_auth):
    service = BatchService(db_session)

    batch = service.create_batch(user_auth, BatchCreate(description="补充常用词"))

    assert batch.id is not None
    assert batch.status == BatchStatus.DRAFT
    assert batch.creator_id == user_auth.user_id


def test_add_edit_validates_code(db_session, user_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth)

    with pytest.raises(InvalidCodeError):
        service.add_edit(batch.id, user_auth, create_edit("新词", "abc123"))


def test_add_change_edit_requires_old_word(db_session, user_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth)

    with pytest.raises(ValidationError):
        service.add_edit(batch.id, user_auth, EditCreate(action=PullRequestAction.CHANGE, word="新", code="xnxn"))


def test_add_delete_edit_by_phrase_id_fills_fields(db_session, user_auth, add_phrase):
    phrase = add_phrase("如果", "rjgl", phrase_type=PhraseType.SUPPLEMENT)
    service = BatchService(db_session)
    batch = new_batch(service, user_auth)

    edit = service.add_edit(batch.id, user_auth, EditCreate(action=PullRequestAction.DELETE, phrase_id=phrase.id))

    assert edit.word == "如果"
    assert edit.code == "rjgl"
    assert edit.type == PhraseType.SUPPLEMENT


def test_only_creator_can_edit(db_session, user_auth, other_user):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth)

    with pytest.raises(PermissionDeniedError):
        service.add_edit(batch.id, AuthContext(user_id=other_user.id), create_edit("新词", "xnci"))


def test_update_edit_in_draft(db_session, user_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "xnci"))
    edit = batch.pull_requests[0]

    updated = service.update_edit(batch.id, edit.id, user_auth, EditUpdate(code="xncv"))

    assert updated.code == "xncv"
    assert updated.word == "新词"


def test_submit_empty_batch_fails(db_session, user_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth)

    with pytest.raises(ValidationError):
        service.submit(batch.id, user_auth)


def test_submit_with_unresolved_conflict_fails(db_session, user_auth, add_phrase):
    add_phrase("如果", "rjgl")
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "rjgl"))

    with pytest.raises(UnresolvedConflictError) as exc_info:
        service.submit(batch.id, user_auth)

    assert len(exc_info.value.conflicts) == 1
    assert batch.status == BatchStatus.DRAFT


def test_submit_resolved_batch(db_session, user_auth, add_phrase):
    add_phrase("如果", "rjgl")
    service = BatchService(db_session)
    batch = new_batch(
        service, user_auth,
        create_edit("新词", "rjgl"),
        EditCreate(action=PullRequestAction.DELETE, word="如果", code="rjgl"),
    )

    submitted = service.submit(batch.id, user_auth)

    assert submitted.status == BatchStatus.SUBMITTED
    assert submitted.review_note is None
    assert all(pr.has_conflict is False for pr in submitted.pull_requests)
    assert "resolved" in submitted.pull_requests[0].conflict_reason


def test_withdraw_returns_to_draft(db_session, user_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "xnci"))
    service.submit(batch.id, user_auth)

    withdrawn = service.withdraw(batch.id, user_auth)

    assert withdrawn.status == BatchStatus.DRAFT
    with pytest.raises(InvalidStateError):
        service.withdraw(batch.id, user_auth)


def test_approve_applies_edits_in_order(db_session, user_auth, admin_auth, add_phrase):
    add_phrase("旧词", "jxci", weight=120)
    add_phrase("删掉", "scdl")
    service = BatchService(db_session)
    batch = new_batch(
        service, user_auth,
        create_edit("a", "xy"),
        create_edit("b", "xy"),
        EditCreate(action=PullRequestAction.CHANGE, old_word="旧词", word="新词", code="jxci"),
        EditCreate(action=PullRequestAction.DELETE, word="删掉", code="scdl"),
    )
    # Collision between a and b is expected; move b to another code first
    service.update_edit(batch.id, batch.pull_requests[1].id, user_auth, EditUpdate(code="xya"))
    service.submit(batch.id, user_auth)

    approved = service.approve(batch.id, admin_auth, note="看过了")

    assert approved.status == BatchStatus.APPROVED
    assert approved.reviewer_id == admin_auth.user_id
    assert approved.review_note == "看过了"
    assert all(pr.status == PullRequestStatus.APPROVED for pr in approved.pull_requests)
    assert [p.word for p in phrases_at(db_session, "xy")] == ["a"]
    assert phrases_at(db_session, "xy")[0].weight == 100
    changed = phrases_at(db_session, "jxci")
    assert [(p.word, p.weight) for p in changed] == [("新词", 120)]
    assert phrases_at(db_session, "scdl") == []
    assert approved.pull_requests[2].weight == 120


def test_approve_rechecks_conflicts_against_current_store(db_session, user_auth, admin_auth, add_phrase):
    """Conflicts and weights are computed when approving, not when submitting"""
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "wdwd"))
    service.submit(batch.id, user_auth)
    add_phrase("抢先", "wdwd")

    with pytest.raises(UnresolvedConflictError):
        service.approve(batch.id, admin_auth)

    assert service.get_batch(batch.id).status == BatchStatus.SUBMITTED
    assert [p.word for p in phrases_at(db_session, "wdwd")] == ["抢先"]


def test_approve_weight_follows_approval_time_store(db_session, user_auth, admin_auth, add_phrase):
    add_phrase("旧", "wdwd")
    service = BatchService(db_session)
    batch = new_batch(
        service, user_auth,
        EditCreate(action=PullRequestAction.DELETE, word="旧", code="wdwd"),
        create_edit("新词", "wdwd"),
    )
    service.submit(batch.id, user_auth)

    service.approve(batch.id, admin_auth)

    [phrase] = phrases_at(db_session, "wdwd")
    assert phrase.word == "新词"
    assert phrase.weight == 101
    assert batch.pull_requests[1].weight == 101


def test_approve_is_atomic(db_session, user_auth, admin_auth, monkeypatch):
    service = BatchService(db_session)
    batch = new_batch(
        service, user_auth,
        create_edit("一", "yiyi"),
        create_edit("二", "erer"),
        create_edit("三", "sfsf"),
    )
    service.submit(batch.id, user_auth)
    batch_id = batch.id

    original = BatchService._apply_edit

    def failing_apply(self, pr, weight):
        if pr.word == "三":
            raise RuntimeError("store unavailable")
        return original(self, pr, weight)

    monkeypatch.setattr(BatchService, "_apply_edit", failing_apply)

    with pytest.raises(BatchApplyError):
        service.approve(batch_id, admin_auth)

    db_session.expire_all()
    batch = service.get_batch(batch_id)
    assert batch.status == BatchStatus.SUBMITTED
    assert all(pr.status == PullRequestStatus.PENDING for pr in batch.pull_requests)
    assert db_session.execute(select(Phrase)).scalars().all() == []


def test_approve_requires_admin(db_session, user_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "xnci"))
    service.submit(batch.id, user_auth)

    with pytest.raises(PermissionDeniedError):
        service.approve(batch.id, user_auth)


def test_approve_requires_submitted(db_session, user_auth, admin_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "xnci"))

    with pytest.raises(InvalidStateError):
        service.approve(batch.id, admin_auth)


def test_reject_requires_note_and_leaves_store(db_session, user_auth, admin_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "xnci"))
    service.submit(batch.id, user_auth)

    with pytest.raises(ValidationError):
        service.reject(batch.id, admin_auth, "  ")

    rejected = service.reject(batch.id, admin_auth, "编码不对")

    assert rejected.status == BatchStatus.REJECTED
    assert rejected.review_note == "编码不对"
    assert all(pr.status == PullRequestStatus.REJECTED for pr in rejected.pull_requests)
    assert phrases_at(db_session, "xnci") == []


def test_rejected_batch_can_be_resubmitted_or_reopened(db_session, user_auth, admin_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "xnci"))
    service.submit(batch.id, user_auth)
    service.reject(batch.id, admin_auth, "再看看")

    reopened = service.reopen(batch.id, user_auth)
    assert reopened.status == BatchStatus.DRAFT
    assert all(pr.status == PullRequestStatus.PENDING for pr in reopened.pull_requests)

    service.submit(batch.id, user_auth)
    service.reject(batch.id, admin_auth, "还是不行")
    resubmitted = service.submit(batch.id, user_auth)
    assert resubmitted.status == BatchStatus.SUBMITTED
    assert resubmitted.review_note is None


@pytest.mark.parametrize("status", [BatchStatus.SUBMITTED, BatchStatus.APPROVED])
def test_delete_disallowed_once_under_review(db_session, user_auth, status):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "xnci"))
    batch.status = status
    db_session.commit()

    with pytest.raises(InvalidStateError):
        service.delete_batch(batch.id, user_auth)


def test_delete_draft_batch(db_session, user_auth):
    service = BatchService(db_session)
    batch = new_batch(service, user_auth, create_edit("新词", "xnci"))
    batch_id = batch.id

    service.delete_batch(batch_id, user_auth)

    assert service.list_batches(user_auth) == []


def test_list_all_batches_requires_admin(db_session, user_auth, admin_auth):
    service = BatchService(db_session)
    new_batch(service, user_auth)

    with pytest.raises(PermissionDeniedError):
        service.list_batches(user_auth, all_users=True)
    assert len(service.list_batches(admin_auth, all_users=True)) == 1


def test_bulk_create_counts_resolved_conflicts(db_session, user_auth, add_phrase):
    add_phrase("如果", "rjgl")
    service = BatchService(db_session)

    batch, resolved = service.create_batch_with_edits(user_auth, BulkEditRequest(
        description="替换如果",
        changes=[
            create_edit("新词", "rjgl"),
            EditCreate(action=PullRequestAction.DELETE, word="如果", code="rjgl"),
        ],
    ))

    assert batch.status == BatchStatus.DRAFT
    assert batch.description == "替换如果"
    assert [pr.action for pr in batch.pull_requests] == [PullRequestAction.CREATE, PullRequestAction.DELETE]
    assert all(pr.status == PullRequestStatus.PENDING for pr in batch.pull_requests)
    assert resolved == 1


def test_bulk_create_with_open_conflict_writes_nothing(db_session, user_auth, add_phrase):
    add_phrase("如果", "rjgl")
    service = BatchService(db_session)

    with pytest.raises(UnresolvedConflictError) as exc_info:
        service.create_batch_with_edits(user_auth, BulkEditRequest(changes=[create_edit("新词", "rjgl")]))

    assert len(exc_info.value.conflicts) == 1
    assert service.list_batches(user_auth) == []


def test_bulk_create_rejects_unknown_issue(db_session, user_auth):
    service = BatchService(db_session)

    with pytest.raises(NotFoundError):
        service.create_batch_with_edits(
            user_auth, BulkEditRequest(changes=[create_edit("新词", "xnci")], issue_id=999)
        )


def test_list_edits_filters_and_pages(db_session, user_auth):
    service = BatchService(db_session)
    first = new_batch(service, user_auth, create_edit("甲词", "jcci"), create_edit("乙词", "yici"))
    new_batch(service, user_auth, create_edit("丙词", "bbci"))

    items, total = service.list_edits(batch_id=first.id)
    assert total == 2
    assert [pr.word for pr in items] == ["乙词", "甲词"]

    page, total = service.list_edits(page=2, page_size=2)
    assert total == 3
    assert [pr.word for pr in page] == ["甲词"]

    approved, total = service.list_edits(status=PullRequestStatus.APPROVED)
    assert approved == [] and total == 0


def test_get_edit_missing(db_session):
    with pytest.raises(NotFoundError):
        BatchService(db_session).get_edit(12345)
