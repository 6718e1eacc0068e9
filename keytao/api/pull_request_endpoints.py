"""
Pull request (edit) endpoints

Conflict checks for proposed edits, a cross-batch view of edits, and
creating a draft batch from several edits in one call. Updates and deletes
go through the edit's batch and follow its draft-only rules.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from keytao.core.db import get_db
from keytao.core.dependencies import AuthContext, get_auth_context
from keytao.core.validation import validate_code
from keytao.models.batch import PullRequestStatus
from keytao.schemas.base import Envelope, Message, Page
from keytao.schemas.batch import BatchRead, BulkEditRequest, BulkEditResult, EditUpdate, PullRequestRead
from keytao.schemas.conflict import (
    BatchConflictRequest,
    BatchConflictResponse,
    ConflictVerdict,
    EditItem,
)
from keytao.services.batch_conflict_service import BatchConflictService, has_unresolved_conflicts
from keytao.services.batch_service import BatchService
from keytao.services.conflict_detector import ConflictDetector

router = APIRouter(prefix="/pull-requests", tags=["pull-requests"])


@router.post("/check-conflicts", response_model=Envelope[ConflictVerdict])
async def check_conflict(
    item: EditItem,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(get_auth_context),
):
    """Check one edit against the current dictionary"""
    validate_code(item.code)
    verdict = ConflictDetector(db).check_conflict(item)
    return Envelope(status="ok", data=verdict)


@router.post("/check-conflicts-batch", response_model=Envelope[BatchConflictResponse])
async def check_batch_conflicts(
    payload: BatchConflictRequest,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(get_auth_context),
):
    """
    Check an ordered list of edits, including their effect on each other

    Create items also receive the weight they would be inserted with.
    """
    for item in payload.items:
        validate_code(item.code)
    results = BatchConflictService(db).check_batch_conflicts_with_weight(payload.items)
    return Envelope(status="ok", data=BatchConflictResponse(
        results=results,
        has_unresolved_conflicts=has_unresolved_conflicts(results),
    ))


@router.post("/batch", response_model=Envelope[BulkEditResult], status_code=status.HTTP_201_CREATED)
async def create_edits_in_batch(
    payload: BulkEditRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    """
    Create a draft batch from several edits at once

    Rejected with the conflict details when any edit keeps an unresolved
    conflict; nothing is stored in that case.
    """
    batch, resolved = BatchService(db).create_batch_with_edits(auth, payload)
    return Envelope(status="ok", data=BulkEditResult(
        batch=BatchRead.model_validate(batch),
        conflicts_resolved=resolved,
    ))


@router.get("", response_model=Envelope[Page[PullRequestRead]])
async def list_edits(
    status_filter: Optional[PullRequestStatus] = Query(None, alias="status"),
    batch_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(get_auth_context),
):
    edits, total = BatchService(db).list_edits(status_filter, batch_id, page, page_size)
    return Envelope(status="ok", data=Page(
        items=[PullRequestRead.model_validate(e) for e in edits],
        total=total,
        page=page,
        page_size=page_size,
    ))


@router.get("/{edit_id}", response_model=Envelope[PullRequestRead])
async def get_edit(
    edit_id: int,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(get_auth_context),
):
    return Envelope(status="ok", data=PullRequestRead.model_validate(BatchService(db).get_edit(edit_id)))


@router.patch("/{edit_id}", response_model=Envelope[PullRequestRead])
async def update_edit(
    edit_id: int,
    payload: EditUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    service = BatchService(db)
    edit = service.get_edit(edit_id)
    edit = service.update_edit(edit.batch_id, edit_id, auth, payload)
    return Envelope(status="ok", data=PullRequestRead.model_validate(edit))


@router.delete("/{edit_id}", response_model=Envelope[Message])
async def delete_edit(
    edit_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    service = BatchService(db)
    edit = service.get_edit(edit_id)
    service.remove_edit(edit.batch_id, edit_id, auth)
    return Envelope(status="ok", data=Message(message=f"Edit {edit_id} removed"))
