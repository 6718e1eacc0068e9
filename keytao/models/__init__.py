"""
ORM models for the dictionary platform.

Importing this package registers every mapper on ``Base.metadata``.
"""

from .user import User, UserRole, UserStatus
from .phrase import (
    Phrase,
    PhraseType,
    PhraseStatus,
    PhraseTypeConfig,
    PHRASE_TYPE_CONFIGS,
    default_weight,
    rime_file_name,
)
from .issue import Comment, Issue, IssueStatus
from .batch import Batch, BatchStatus, PullRequest, PullRequestAction, PullRequestStatus
from .sync_task import SyncTask, SyncTaskStatus, ACTIVE_SYNC_STATUSES

__all__ = [
    "User",
    "UserRole",
    "UserStatus",
    "Phrase",
    "PhraseType",
    "PhraseStatus",
    "PhraseTypeConfig",
    "PHRASE_TYPE_CONFIGS",
    "default_weight",
    "rime_file_name",
    "Comment",
    "Issue",
    "IssueStatus",
    "Batch",
    "BatchStatus",
    "PullRequest",
    "PullRequestAction",
    "PullRequestStatus",
    "SyncTask",
    "SyncTaskStatus",
    "ACTIVE_SYNC_STATUSES",
]
