"""
Batch Service - lifecycle of batches of dictionary edits

Draft -> Submitted -> Approved | Rejected, Rejected -> Submitted | Draft,
Submitted -> Draft (withdraw), Approved -> Published (after sync).
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from keytao.core.dependencies import AuthContext
from keytao.core.exceptions import (
    BatchApplyError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    UnresolvedConflictError,
    ValidationError,
)
from keytao.core.validation import validate_code, validate_word
from keytao.models.batch import (
    Batch,
    BatchStatus,
    PullRequest,
    PullRequestAction,
    PullRequestStatus,
)
from keytao.models.issue import Issue
from keytao.models.phrase import Phrase, PhraseStatus, PhraseType
from keytao.schemas.batch import BatchCreate, BatchUpdate, BulkEditRequest, EditCreate, EditUpdate
from keytao.schemas.conflict import BatchConflictResult, EditItem, SuggestionAction
from keytao.services.batch_conflict_service import BatchConflictService, unresolved

logger = logging.getLogger(__name__)

# Batches that are under review or already applied keep their history
UNDELETABLE_STATUSES = (BatchStatus.SUBMITTED, BatchStatus.APPROVED, BatchStatus.PUBLISHED)


def to_edit_item(pr: PullRequest) -> EditItem:
    return EditItem(
        id=pr.id,
        action=pr.action,
        word=pr.word,
        old_word=pr.old_word,
        code=pr.code,
        weight=pr.weight,
        type=pr.type,
        phrase_id=pr.phrase_id,
    )


def conflict_details(results: Sequence[BatchConflictResult]) -> List[dict]:
    return [result.model_dump(mode="json") for result in unresolved(results)]


class BatchService:
    """Manages batches, their edits, and review transitions"""

    def __init__(self, db: Session, conflict_service: Optional[BatchConflictService] = None):
        self.db = db
        self.conflicts = conflict_service or BatchConflictService(db)

    # Queries

    def get_batch(self, batch_id: int) -> Batch:
        """
        Get a batch with its edits

        Raises:
            NotFoundError: If the batch does not exist
        """
        batch = self.db.get(Batch, batch_id)
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        return batch

    def list_batches(
        self,
        auth: AuthContext,
        status: Optional[BatchStatus] = None,
        all_users: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Batch]:
        """
        List batches, newest first

        Args:
            auth: Caller identity
            status: Optional status filter
            all_users: Admin view over every creator
            limit: Max results
            offset: Results to skip
        """
        if all_users and not auth.is_admin:
            raise PermissionDeniedError("Only administrators can list all batches")
        stmt = select(Batch)
        if not all_users:
            stmt = stmt.where(Batch.creator_id == auth.user_id)
        if status:
            stmt = stmt.where(Batch.status == status)
        stmt = stmt.order_by(Batch.created_at.desc(), Batch.id.desc()).offset(offset).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    # Creator operations

    def create_batch(self, auth: AuthContext, data: BatchCreate) -> Batch:
        if data.issue_id is not None and self.db.get(Issue, data.issue_id) is None:
            raise NotFoundError("Issue", data.issue_id)
        batch = Batch(
            description=data.description,
            issue_id=data.issue_id,
            creator_id=auth.user_id,
            status=BatchStatus.DRAFT,
        )
        self.db.add(batch)
        self.db.commit()
        self.db.refresh(batch)
        logger.info(f"Batch {batch.id} created by user {auth.user_id}")
        return batch

    def update_batch(self, batch_id: int, auth: AuthContext, data: BatchUpdate) -> Batch:
        batch = self._get_editable_batch(batch_id, auth)
        if data.description is not None:
            batch.description = data.description
        if data.issue_id is not None:
            if self.db.get(Issue, data.issue_id) is None:
                raise NotFoundError("Issue", data.issue_id)
            batch.issue_id = data.issue_id
        self.db.commit()
        return batch

    def add_edit(self, batch_id: int, auth: AuthContext, data: EditCreate) -> PullRequest:
        """
        Append an edit to a draft batch

        Raises:
            ValidationError: If a field required by the action is missing
            InvalidCodeError: If the code is malformed
        """
        batch = self._get_editable_batch(batch_id, auth)
        fields = self._normalize_edit(data.action, data.model_dump())
        pr = PullRequest(
            batch_id=batch.id,
            user_id=auth.user_id,
            action=data.action,
            status=PullRequestStatus.PENDING,
            **fields,
        )
        self.db.add(pr)
        self.db.commit()
        self.db.refresh(pr)
        return pr

    def update_edit(self, batch_id: int, edit_id: int, auth: AuthContext, data: EditUpdate) -> PullRequest:
        self._get_editable_batch(batch_id, auth)
        pr = self._get_edit(batch_id, edit_id)
        current = {
            "word": pr.word,
            "old_word": pr.old_word,
            "code": pr.code,
            "type": pr.type,
            "weight": pr.weight,
            "remark": pr.remark,
            "phrase_id": pr.phrase_id,
        }
        current.update(data.model_dump(exclude_unset=True))
        for key, value in self._normalize_edit(pr.action, current).items():
            setattr(pr, key, value)
        pr.has_conflict = False
        pr.conflict_reason = None
        self.db.commit()
        return pr

    def remove_edit(self, batch_id: int, edit_id: int, auth: AuthContext) -> None:
        self._get_editable_batch(batch_id, auth)
        pr = self._get_edit(batch_id, edit_id)
        self.db.delete(pr)
        self.db.commit()

    def list_edits(
        self,
        status: Optional[PullRequestStatus] = None,
        batch_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[PullRequest], int]:
        """
        Page through edits across batches, newest first

        Returns:
            (edits on the page, total matching edits)
        """
        stmt = select(PullRequest)
        if status:
            stmt = stmt.where(PullRequest.status == status)
        if batch_id is not None:
            stmt = stmt.where(PullRequest.batch_id == batch_id)
        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        stmt = stmt.order_by(PullRequest.id.desc()).offset((page - 1) * page_size).limit(page_size)
        return list(self.db.execute(stmt).scalars().all()), total

    def get_edit(self, edit_id: int) -> PullRequest:
        pr = self.db.get(PullRequest, edit_id)
        if pr is None:
            raise NotFoundError("PullRequest", edit_id)
        return pr

    def create_batch_with_edits(self, auth: AuthContext, data: BulkEditRequest) -> Tuple[Batch, int]:
        """
        Create a draft batch holding all the given edits at once

        The edits are checked together first; nothing is written when any
        of them keeps an unresolved conflict.

        Returns:
            (batch, number of edits whose conflict another edit resolves)

        Raises:
            ValidationError: If an edit misses a field its action needs
            UnresolvedConflictError: If the edits leave a conflict open
        """
        if data.issue_id is not None and self.db.get(Issue, data.issue_id) is None:
            raise NotFoundError("Issue", data.issue_id)

        normalized = [
            (change.action, self._normalize_edit(change.action, change.model_dump()))
            for change in data.changes
        ]
        results = self.conflicts.check_batch_conflicts_with_weight([
            EditItem(id=index, action=action, **{k: v for k, v in fields.items() if k != "remark"})
            for index, (action, fields) in enumerate(normalized)
        ])
        if unresolved(results):
            raise UnresolvedConflictError(conflict_details(results))

        try:
            batch = Batch(
                description=data.description,
                issue_id=data.issue_id,
                creator_id=auth.user_id,
                status=BatchStatus.DRAFT,
            )
            self.db.add(batch)
            self.db.flush()
            for action, fields in normalized:
                self.db.add(PullRequest(
                    batch_id=batch.id,
                    user_id=auth.user_id,
                    action=action,
                    status=PullRequestStatus.PENDING,
                    **fields,
                ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(batch)

        resolved = sum(
            1 for result in results
            if any(s.action == SuggestionAction.RESOLVED for s in result.conflict.suggestions)
        )
        logger.info(
            f"Batch {batch.id} created with {len(normalized)} edits by user {auth.user_id}",
            extra={"batch_id": batch.id, "conflicts_resolved": resolved},
        )
        return batch, resolved

    def preview(self, batch_id: int) -> List[BatchConflictResult]:
        """Conflict verdicts and weights for the batch as it stands"""
        batch = self.get_batch(batch_id)
        if not batch.pull_requests:
            return []
        return self.conflicts.check_batch_conflicts_with_weight(
            [to_edit_item(pr) for pr in batch.pull_requests]
        )

    def submit(self, batch_id: int, auth: AuthContext) -> Batch:
        """
        Submit a draft (or resubmit a rejected) batch for review

        Raises:
            InvalidStateError: If the batch is not Draft or Rejected
            ValidationError: If the batch has no edits
            UnresolvedConflictError: If any edit still conflicts
        """
        batch = self._get_owned_batch(batch_id, auth)
        if batch.status not in (BatchStatus.DRAFT, BatchStatus.REJECTED):
            raise InvalidStateError("Only draft or rejected batches can be submitted", batch.status.value)
        if not batch.pull_requests:
            raise ValidationError("Batch has no edits", details={"batch_id": batch.id})

        results = self.conflicts.check_batch_conflicts_with_weight(
            [to_edit_item(pr) for pr in batch.pull_requests]
        )
        if unresolved(results):
            raise UnresolvedConflictError(conflict_details(results))

        for pr, result in zip(batch.pull_requests, results):
            pr.has_conflict = result.conflict.has_conflict
            pr.conflict_reason = result.conflict.impact
            pr.status = PullRequestStatus.PENDING
        batch.status = BatchStatus.SUBMITTED
        batch.review_note = None
        self.db.commit()
        logger.info(f"Batch {batch.id} submitted with {len(results)} edits")
        return batch

    def withdraw(self, batch_id: int, auth: AuthContext) -> Batch:
        batch = self._get_owned_batch(batch_id, auth)
        if batch.status != BatchStatus.SUBMITTED:
            raise InvalidStateError("Only submitted batches can be withdrawn", batch.status.value)
        batch.status = BatchStatus.DRAFT
        self.db.commit()
        return batch

    def reopen(self, batch_id: int, auth: AuthContext) -> Batch:
        """Move a rejected batch back to Draft so its edits can be revised"""
        batch = self._get_owned_batch(batch_id, auth)
        if batch.status != BatchStatus.REJECTED:
            raise InvalidStateError("Only rejected batches can be reopened", batch.status.value)
        batch.status = BatchStatus.DRAFT
        for pr in batch.pull_requests:
            pr.status = PullRequestStatus.PENDING
        self.db.commit()
        return batch

    def delete_batch(self, batch_id: int, auth: AuthContext) -> None:
        batch = self._get_owned_batch(batch_id, auth)
        if batch.status in UNDELETABLE_STATUSES:
            raise InvalidStateError(f"{batch.status.value} batches cannot be deleted", batch.status.value)
        self.db.delete(batch)
        self.db.commit()
        logger.info(f"Batch {batch_id} deleted by user {auth.user_id}")

    # Admin review

    def approve(self, batch_id: int, auth: AuthContext, note: Optional[str] = None) -> Batch:
        """
        Approve a submitted batch and apply its edits to the phrase store

        Conflicts and weights are recomputed against the store as it is now.
        Edits are applied in order in one transaction; any failure rolls the
        whole batch back and leaves it Submitted.

        Raises:
            PermissionDeniedError: If the caller is not an administrator
            InvalidStateError: If the batch is not Submitted
            UnresolvedConflictError: If the store changed and an edit now conflicts
            BatchApplyError: If applying an edit fails
        """
        self._require_admin(auth)
        batch = self.get_batch(batch_id)
        if batch.status != BatchStatus.SUBMITTED:
            raise InvalidStateError("Only submitted batches can be approved", batch.status.value)

        edits = list(batch.pull_requests)
        results = self.conflicts.check_batch_conflicts_with_weight([to_edit_item(pr) for pr in edits])
        if unresolved(results):
            raise UnresolvedConflictError(conflict_details(results), message="Batch conflicts changed since submission")
        weights: Dict[int, int] = {
            pr.id: result.calculated_weight
            for pr, result in zip(edits, results)
            if result.calculated_weight is not None
        }

        current_edit: Optional[PullRequest] = None
        try:
            for pr in edits:
                current_edit = pr
                self._apply_edit(pr, weights.get(pr.id))
                pr.status = PullRequestStatus.APPROVED
                self.db.flush()
            batch.status = BatchStatus.APPROVED
            batch.review_note = note or None
            batch.reviewer_id = auth.user_id
            batch.reviewed_at = datetime.utcnow()
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            edit_id = current_edit.id if current_edit is not None else None
            logger.error(
                f"Approving batch {batch_id} failed at edit {edit_id}: {e}",
                exc_info=True,
                extra={"batch_id": batch_id, "edit_id": edit_id},
            )
            raise BatchApplyError(batch_id, str(e), edit_id=edit_id) from e

        logger.info(
            f"Batch {batch.id} approved by admin {auth.user_id}",
            extra={"batch_id": batch.id, "edits": len(edits)},
        )
        return batch

    def reject(self, batch_id: int, auth: AuthContext, note: str) -> Batch:
        self._require_admin(auth)
        if not note or not note.strip():
            raise ValidationError("A review note is required to reject a batch")
        batch = self.get_batch(batch_id)
        if batch.status != BatchStatus.SUBMITTED:
            raise InvalidStateError("Only submitted batches can be rejected", batch.status.value)
        batch.status = BatchStatus.REJECTED
        batch.review_note = note.strip()
        batch.reviewer_id = auth.user_id
        batch.reviewed_at = datetime.utcnow()
        for pr in batch.pull_requests:
            pr.status = PullRequestStatus.REJECTED
        self.db.commit()
        logger.info(f"Batch {batch.id} rejected by admin {auth.user_id}")
        return batch

    def publish(self, batches: Sequence[Batch]) -> None:
        """Mark synced batches Published; the caller owns the transaction."""
        for batch in batches:
            if batch.status == BatchStatus.APPROVED:
                batch.status = BatchStatus.PUBLISHED

    # Internals

    def _apply_edit(self, pr: PullRequest, calculated_weight: Optional[int]) -> None:
        if pr.action == PullRequestAction.CREATE:
            weight = calculated_weight if calculated_weight is not None else (pr.weight or 0)
            pr.weight = weight
            self.db.add(Phrase(
                word=pr.word,
                code=pr.code,
                type=pr.type or PhraseType.PHRASE,
                weight=weight,
                remark=pr.remark,
                user_id=pr.user_id,
                status=PhraseStatus.FINISH,
            ))
        elif pr.action == PullRequestAction.CHANGE:
            phrase = self._find_phrase(pr.old_word, pr.code) or (
                self.db.get(Phrase, pr.phrase_id) if pr.phrase_id else None
            )
            if phrase is None:
                raise LookupError(f'No phrase "{pr.old_word}" at code "{pr.code}" to change')
            # Synced rows keep the weight the store ends up with
            if pr.weight is None:
                pr.weight = phrase.weight
            phrase.word = pr.word
            if pr.type:
                phrase.type = pr.type
            phrase.weight = pr.weight
            if pr.remark:
                phrase.remark = pr.remark
            pr.phrase_id = phrase.id
        elif pr.action == PullRequestAction.DELETE:
            phrase = self.db.get(Phrase, pr.phrase_id) if pr.phrase_id else None
            if phrase is None:
                phrase = self._find_phrase(pr.word, pr.code)
            if phrase is None:
                raise LookupError(f'No phrase "{pr.word}" at code "{pr.code}" to delete')
            self.db.delete(phrase)

    def _find_phrase(self, word: Optional[str], code: Optional[str]) -> Optional[Phrase]:
        if not word or not code:
            return None
        stmt = select(Phrase).where(Phrase.word == word, Phrase.code == code)
        return self.db.execute(stmt).scalar_one_or_none()

    def _normalize_edit(self, action: PullRequestAction, fields: dict) -> dict:
        """Validate fields required by the action and fill them from the addressed phrase."""
        word = fields.get("word")
        old_word = fields.get("old_word")
        code = fields.get("code")
        phrase_type = fields.get("type")
        phrase_id = fields.get("phrase_id")

        phrase = None
        if phrase_id is not None:
            phrase = self.db.get(Phrase, phrase_id)
            if phrase is None:
                raise NotFoundError("Phrase", phrase_id)

        if action == PullRequestAction.CREATE:
            word = validate_word(word)
            code = validate_code(code)
            phrase_id = None
            phrase = None
        elif action == PullRequestAction.CHANGE:
            word = validate_word(word)
            if not old_word and phrase is None:
                raise ValidationError("A change needs old_word or phrase_id", details={"field": "old_word"})
            old_word = validate_word(old_word, "old_word") if old_word else phrase.word
            code = validate_code(code or (phrase.code if phrase else None))
            phrase = phrase or self._find_phrase(old_word, code)
        else:
            if phrase is not None:
                word = word or phrase.word
                code = code or phrase.code
            if not word or not code:
                raise ValidationError("A delete needs word and code, or phrase_id", details={"field": "phrase_id"})
            word = validate_word(word)
            code = validate_code(code)
            phrase = phrase or self._find_phrase(word, code)
            old_word = None

        if phrase_type is None:
            phrase_type = phrase.type if phrase is not None else PhraseType.PHRASE

        return {
            "word": word,
            "old_word": old_word,
            "code": code,
            "type": phrase_type,
            "weight": fields.get("weight"),
            "remark": fields.get("remark"),
            "phrase_id": phrase_id,
        }

    def _get_owned_batch(self, batch_id: int, auth: AuthContext) -> Batch:
        batch = self.get_batch(batch_id)
        if batch.creator_id != auth.user_id:
            raise PermissionDeniedError("Only the batch creator can do this", details={"batch_id": batch_id})
        return batch

    def _get_editable_batch(self, batch_id: int, auth: AuthContext) -> Batch:
        batch = self._get_owned_batch(batch_id, auth)
        if batch.status != BatchStatus.DRAFT:
            raise InvalidStateError("Edits can only change while the batch is a draft", batch.status.value)
        return batch

    def _get_edit(self, batch_id: int, edit_id: int) -> PullRequest:
        pr = self.db.get(PullRequest, edit_id)
        if pr is None or pr.batch_id != batch_id:
            raise NotFoundError("PullRequest", edit_id)
        return pr

    @staticmethod
    def _require_admin(auth: AuthContext) -> None:
        if not auth.is_admin:
            raise PermissionDeniedError("Administrator role required")
