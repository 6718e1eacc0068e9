"""Issue endpoints"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from keytao.core.db import get_db
from keytao.core.dependencies import AuthContext, get_auth_context
from keytao.models.issue import IssueStatus
from keytao.schemas.base import Envelope
from keytao.schemas.issue import CommentCreate, CommentRead, IssueCreate, IssueRead
from keytao.services.issue_service import IssueService

router = APIRouter(prefix="/issues", tags=["issues"])


@router.post("", response_model=Envelope[IssueRead], status_code=status.HTTP_201_CREATED)
async def create_issue(
    payload: IssueCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    issue = IssueService(db).create_issue(auth.user_id, payload)
    return Envelope(status="ok", data=IssueRead.model_validate(issue))


@router.get("", response_model=Envelope[list[IssueRead]])
async def list_issues(
    status_filter: Optional[IssueStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    issues = IssueService(db).list_issues(status_filter, limit, offset)
    return Envelope(status="ok", data=[IssueRead.model_validate(i) for i in issues])


@router.get("/{issue_id}", response_model=Envelope[IssueRead])
async def get_issue(issue_id: int, db: Session = Depends(get_db)):
    issue = IssueService(db).get_issue(issue_id)
    return Envelope(status="ok", data=IssueRead.model_validate(issue))


@router.get("/{issue_id}/comments", response_model=Envelope[list[CommentRead]])
async def list_comments(issue_id: int, db: Session = Depends(get_db)):
    comments = IssueService(db).list_comments(issue_id)
    return Envelope(status="ok", data=[CommentRead.model_validate(c) for c in comments])


@router.post("/{issue_id}/comments", response_model=Envelope[CommentRead], status_code=status.HTTP_201_CREATED)
async def add_comment(
    issue_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    comment = IssueService(db).add_comment(issue_id, auth.user_id, payload)
    return Envelope(status="ok", data=CommentRead.model_validate(comment))
