"""
Sync task schemas
"""
from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List

from keytao.models.sync_task import SyncTaskStatus


class SyncTaskRead(BaseModel):
    id: int
    status: SyncTaskStatus
    progress: int
    message: Optional[str] = None
    error: Optional[str] = None
    github_branch: Optional[str] = None
    github_pr_url: Optional[str] = None
    github_pr_number: Optional[int] = None
    total_items: int
    processed_items: int
    pending_files: Optional[List[str]] = None
    processed_files: Optional[List[str]] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SyncTaskStatusView(BaseModel):
    task: SyncTaskRead
    batch_ids: List[int] = []


class CancelResult(BaseModel):
    task: SyncTaskRead
    needs_cleanup: bool = False
    warning: Optional[str] = None


class SyncRunReport(BaseModel):
    """Outcome of one bounded invocation of the sync job"""
    task_id: Optional[int] = None
    steps: int = 0
    has_more: bool = False
    status: Optional[SyncTaskStatus] = None
    error: Optional[str] = None
