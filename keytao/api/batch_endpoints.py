"""
Batch API endpoints

Contributors group proposed edits into a batch, preview it against the
dictionary, and submit it for review. Administrators approve or reject
submitted batches under /admin/batches.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from keytao.core.db import get_db
from keytao.core.dependencies import AuthContext, get_auth_context, require_admin
from keytao.models.batch import BatchStatus
from keytao.schemas.base import Envelope, Message
from keytao.schemas.batch import (
    BatchCreate,
    BatchRead,
    BatchUpdate,
    EditCreate,
    EditUpdate,
    PullRequestRead,
    RejectRequest,
    ReviewRequest,
)
from keytao.schemas.conflict import BatchConflictResponse
from keytao.services.batch_conflict_service import has_unresolved_conflicts
from keytao.services.batch_service import BatchService

router = APIRouter(prefix="/batches", tags=["batches"])
admin_router = APIRouter(prefix="/admin/batches", tags=["admin"])


def _read(batch) -> BatchRead:
    return BatchRead.model_validate(batch)


@router.get("", response_model=Envelope[list[BatchRead]])
async def list_my_batches(
    status_filter: Optional[BatchStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    batches = BatchService(db).list_batches(auth, status_filter, False, limit, offset)
    return Envelope(status="ok", data=[_read(b) for b in batches])


@router.post("", response_model=Envelope[BatchRead], status_code=status.HTTP_201_CREATED)
async def create_batch(
    payload: BatchCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    batch = BatchService(db).create_batch(auth, payload)
    return Envelope(status="ok", data=_read(batch))


@router.get("/{batch_id}", response_model=Envelope[BatchRead])
async def get_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(get_auth_context),
):
    return Envelope(status="ok", data=_read(BatchService(db).get_batch(batch_id)))


@router.patch("/{batch_id}", response_model=Envelope[BatchRead])
async def update_batch(
    batch_id: int,
    payload: BatchUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    batch = BatchService(db).update_batch(batch_id, auth, payload)
    return Envelope(status="ok", data=_read(batch))


@router.delete("/{batch_id}", response_model=Envelope[Message])
async def delete_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    BatchService(db).delete_batch(batch_id, auth)
    return Envelope(status="ok", data=Message(message=f"Batch {batch_id} deleted"))


@router.post("/{batch_id}/edits", response_model=Envelope[PullRequestRead], status_code=status.HTTP_201_CREATED)
async def add_edit(
    batch_id: int,
    payload: EditCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    """
    Add an edit to a draft batch

    - **Create**: word and code
    - **Change**: old_word, new word and code
    - **Delete**: word and code of an existing entry
    """
    edit = BatchService(db).add_edit(batch_id, auth, payload)
    return Envelope(status="ok", data=PullRequestRead.model_validate(edit))


@router.patch("/{batch_id}/edits/{edit_id}", response_model=Envelope[PullRequestRead])
async def update_edit(
    batch_id: int,
    edit_id: int,
    payload: EditUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    edit = BatchService(db).update_edit(batch_id, edit_id, auth, payload)
    return Envelope(status="ok", data=PullRequestRead.model_validate(edit))


@router.delete("/{batch_id}/edits/{edit_id}", response_model=Envelope[Message])
async def remove_edit(
    batch_id: int,
    edit_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    BatchService(db).remove_edit(batch_id, edit_id, auth)
    return Envelope(status="ok", data=Message(message=f"Edit {edit_id} removed"))


@router.get("/{batch_id}/preview", response_model=Envelope[BatchConflictResponse])
async def preview_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(get_auth_context),
):
    """Run the batch conflict check over the batch's current edits"""
    results = BatchService(db).preview(batch_id)
    return Envelope(status="ok", data=BatchConflictResponse(
        results=results,
        has_unresolved_conflicts=has_unresolved_conflicts(results),
    ))


@router.post("/{batch_id}/submit", response_model=Envelope[BatchRead])
async def submit_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    batch = BatchService(db).submit(batch_id, auth)
    return Envelope(status="ok", data=_read(batch))


@router.post("/{batch_id}/withdraw", response_model=Envelope[BatchRead])
async def withdraw_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    batch = BatchService(db).withdraw(batch_id, auth)
    return Envelope(status="ok", data=_read(batch))


@router.post("/{batch_id}/reopen", response_model=Envelope[BatchRead])
async def reopen_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    batch = BatchService(db).reopen(batch_id, auth)
    return Envelope(status="ok", data=_read(batch))


# Review

@admin_router.get("", response_model=Envelope[list[BatchRead]])
async def list_all_batches(
    status_filter: Optional[BatchStatus] = Query(BatchStatus.SUBMITTED, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
):
    batches = BatchService(db).list_batches(auth, status_filter, True, limit, offset)
    return Envelope(status="ok", data=[_read(b) for b in batches])


@admin_router.post("/{batch_id}/approve", response_model=Envelope[BatchRead])
async def approve_batch(
    batch_id: int,
    payload: Optional[ReviewRequest] = None,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
):
    """
    Approve a submitted batch and apply its edits to the dictionary

    Either every edit is applied or none is.
    """
    note = payload.note if payload else None
    batch = BatchService(db).approve(batch_id, auth, note)
    return Envelope(status="ok", data=_read(batch))


@admin_router.post("/{batch_id}/reject", response_model=Envelope[BatchRead])
async def reject_batch(
    batch_id: int,
    payload: RejectRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
):
    batch = BatchService(db).reject(batch_id, auth, payload.note)
    return Envelope(status="ok", data=_read(batch))
