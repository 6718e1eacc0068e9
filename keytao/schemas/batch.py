"""
Batch and pull request schemas
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from keytao.models.batch import BatchStatus, PullRequestAction, PullRequestStatus
from keytao.models.phrase import PhraseType


class BatchCreate(BaseModel):
    description: str = Field("", max_length=2000)
    issue_id: Optional[int] = None


class BatchUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=2000)
    issue_id: Optional[int] = None


class EditCreate(BaseModel):
    """Schema for adding an edit to a draft batch"""
    action: PullRequestAction
    word: Optional[str] = Field(None, max_length=255)
    old_word: Optional[str] = Field(None, max_length=255)
    code: Optional[str] = Field(None, max_length=16)
    type: Optional[PhraseType] = None
    weight: Optional[int] = None
    remark: Optional[str] = None
    phrase_id: Optional[int] = None


class EditUpdate(BaseModel):
    word: Optional[str] = Field(None, max_length=255)
    old_word: Optional[str] = Field(None, max_length=255)
    code: Optional[str] = Field(None, max_length=16)
    type: Optional[PhraseType] = None
    weight: Optional[int] = None
    remark: Optional[str] = None
    phrase_id: Optional[int] = None


class PullRequestRead(BaseModel):
    id: int
    batch_id: int
    user_id: int
    action: PullRequestAction
    status: PullRequestStatus
    word: Optional[str] = None
    old_word: Optional[str] = None
    code: str
    type: PhraseType
    weight: Optional[int] = None
    remark: Optional[str] = None
    phrase_id: Optional[int] = None
    has_conflict: bool
    conflict_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class BatchRead(BaseModel):
    id: int
    description: str
    status: BatchStatus
    creator_id: int
    issue_id: Optional[int] = None
    review_note: Optional[str] = None
    reviewer_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    sync_task_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    pull_requests: List[PullRequestRead] = []

    model_config = {"from_attributes": True}


class ReviewRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=2000)


class RejectRequest(BaseModel):
    note: str = Field(..., max_length=2000)


class BulkEditRequest(BaseModel):
    """Edits that go into a new draft batch together"""
    changes: List[EditCreate] = Field(..., min_length=1)
    description: str = Field("", max_length=2000)
    issue_id: Optional[int] = None


class BulkEditResult(BaseModel):
    batch: BatchRead
    conflicts_resolved: int = 0
