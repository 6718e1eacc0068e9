from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from keytao.models.issue import IssueStatus


class IssueCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)


class IssueRead(BaseModel):
    id: int
    title: str
    content: str
    status: IssueStatus
    author_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class CommentRead(BaseModel):
    id: int
    issue_id: int
    author_id: int
    content: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
