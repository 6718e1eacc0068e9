"""
Batch and PullRequest models: a reviewable unit of ordered dictionary edits
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from keytao.core.db import Base
from keytao.models.phrase import PhraseType


class BatchStatus(str, enum.Enum):
    """Batch review lifecycle"""
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PUBLISHED = "Published"


class PullRequestAction(str, enum.Enum):
    CREATE = "Create"
    CHANGE = "Change"
    DELETE = "Delete"


class PullRequestStatus(str, enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class Batch(Base):
    __tablename__ = "batches"

    id = Column(Integer, primary_key=True, index=True)
    description = Column(Text, nullable=False, default="")
    status = Column(SQLEnum(BatchStatus), default=BatchStatus.DRAFT, nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    issue_id = Column(Integer, ForeignKey("issues.id", ondelete="SET NULL"), nullable=True)
    review_note = Column(Text, nullable=True)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    sync_task_id = Column(Integer, ForeignKey("sync_tasks.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    creator = relationship("User", back_populates="batches", foreign_keys=[creator_id])
    reviewer = relationship("User", foreign_keys=[reviewer_id])
    issue = relationship("Issue", back_populates="batches")
    sync_task = relationship("SyncTask", back_populates="batches")
    pull_requests = relationship(
        "PullRequest",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="PullRequest.id",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Batch id={self.id} status={self.status}>"


class PullRequest(Base):
    """
    One proposed edit inside a batch. ``has_conflict``/``conflict_reason``
    record the outcome of the last conflict check run at submission.
    """
    __tablename__ = "pull_requests"

    id = Column(Integer, primary_key=True, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(SQLEnum(PullRequestAction), nullable=False)
    status = Column(SQLEnum(PullRequestStatus), default=PullRequestStatus.PENDING, nullable=False)
    word = Column(String(255), nullable=True)
    old_word = Column(String(255), nullable=True)
    code = Column(String(16), nullable=False)
    type = Column(SQLEnum(PhraseType), default=PhraseType.PHRASE, nullable=False)
    weight = Column(Integer, nullable=True)
    remark = Column(Text, nullable=True)
    phrase_id = Column(Integer, ForeignKey("phrases.id", ondelete="SET NULL"), nullable=True)
    has_conflict = Column(Boolean, default=False, nullable=False)
    conflict_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    batch = relationship("Batch", back_populates="pull_requests")
    phrase = relationship("Phrase")
