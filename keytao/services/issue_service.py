"""
Issue Service - discussion threads batches can reference
"""
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from keytao.core.exceptions import NotFoundError, ValidationError
from keytao.models.issue import Comment, Issue, IssueStatus
from keytao.schemas.issue import CommentCreate, IssueCreate

logger = logging.getLogger(__name__)


class IssueService:
    def __init__(self, db: Session):
        self.db = db

    def create_issue(self, author_id: int, data: IssueCreate) -> Issue:
        issue = Issue(title=data.title, content=data.content, author_id=author_id, status=IssueStatus.OPEN)
        self.db.add(issue)
        self.db.commit()
        self.db.refresh(issue)
        return issue

    def get_issue(self, issue_id: int) -> Issue:
        issue = self.db.get(Issue, issue_id)
        if issue is None:
            raise NotFoundError("Issue", issue_id)
        return issue

    def list_issues(self, status: Optional[IssueStatus] = None, limit: int = 20, offset: int = 0) -> List[Issue]:
        stmt = select(Issue)
        if status:
            stmt = stmt.where(Issue.status == status)
        stmt = stmt.order_by(Issue.created_at.desc(), Issue.id.desc()).offset(offset).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def add_comment(self, issue_id: int, author_id: int, data: CommentCreate) -> Comment:
        """
        Reply to an issue

        Raises:
            NotFoundError: If the issue does not exist
            ValidationError: If the content is blank
        """
        issue = self.get_issue(issue_id)
        content = data.content.strip()
        if not content:
            raise ValidationError("Comment must not be empty", details={"field": "content"})
        comment = Comment(issue_id=issue.id, author_id=author_id, content=content)
        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)
        logger.info(f"Comment {comment.id} added to issue {issue_id} by user {author_id}")
        return comment

    def list_comments(self, issue_id: int) -> List[Comment]:
        self.get_issue(issue_id)
        stmt = select(Comment).where(Comment.issue_id == issue_id).order_by(Comment.id)
        return list(self.db.execute(stmt).scalars().all())
