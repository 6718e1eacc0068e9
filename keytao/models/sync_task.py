"""
SyncTask model: a resumable job publishing approved batches to GitHub
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from keytao.core.db import Base

# JSONB on postgres, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class SyncTaskStatus(str, enum.Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


ACTIVE_SYNC_STATUSES = (SyncTaskStatus.PENDING, SyncTaskStatus.RUNNING)


class SyncTask(Base):
    __tablename__ = "sync_tasks"

    id = Column(Integer, primary_key=True, index=True)
    status = Column(SQLEnum(SyncTaskStatus), default=SyncTaskStatus.PENDING, nullable=False, index=True)
    progress = Column(Integer, default=0, nullable=False)
    message = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    github_branch = Column(String(255), nullable=True)
    github_pr_url = Column(String(512), nullable=True)
    github_pr_number = Column(Integer, nullable=True)
    total_items = Column(Integer, default=0, nullable=False)
    processed_items = Column(Integer, default=0, nullable=False)

    # Checkpoint state
    pending_files = Column(JSONType, nullable=True)
    processed_files = Column(JSONType, nullable=True)
    file_contents = Column(JSONType, nullable=True)
    file_item_counts = Column(JSONType, nullable=True)
    summary = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    batches = relationship("Batch", back_populates="sync_task", order_by="Batch.id")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_SYNC_STATUSES

    def __repr__(self) -> str:  # pragma: no cover
        return f"<SyncTask id={self.id} status={self.status}>"
