"""
User Service - profile changes and contribution statistics
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from keytao.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from keytao.core.security import hash_password, verify_password
from keytao.models.batch import Batch, BatchStatus, PullRequest
from keytao.models.issue import Issue
from keytao.models.phrase import Phrase
from keytao.models.user import User
from keytao.schemas.user import BatchSummary, PasswordChange, ProfileUpdate, SiteStats, UserStats

logger = logging.getLogger(__name__)

RECENT_DAYS = 7
RECENT_BATCHES = 5

REVIEWED_STATUSES = (BatchStatus.SUBMITTED, BatchStatus.APPROVED, BatchStatus.REJECTED, BatchStatus.PUBLISHED)


class UserService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.clock = clock

    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def list_users(self, limit: int = 50, offset: int = 0) -> List[User]:
        stmt = select(User).order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def update_profile(self, user_id: int, data: ProfileUpdate) -> User:
        """
        Replace nickname and email; blank values clear them

        Raises:
            ValidationError: If the email belongs to another user
        """
        user = self.get_user(user_id)
        if data.email:
            taken = self.db.execute(
                select(User.id).where(User.email == data.email, User.id != user_id)
            ).scalar_one_or_none()
            if taken is not None:
                raise ValidationError("Email already registered", details={"field": "email"})
        user.nickname = data.nickname
        user.email = data.email
        self.db.commit()
        self.db.refresh(user)
        return user

    def change_password(self, user_id: int, data: PasswordChange) -> None:
        """
        Raises:
            AuthenticationError: If the current password does not match
        """
        user = self.get_user(user_id)
        if not verify_password(data.current_password, user.hashed_password):
            raise AuthenticationError("Current password is incorrect")
        user.hashed_password = hash_password(data.new_password)
        self.db.commit()
        logger.info(f"User {user_id} changed password")

    def user_stats(self, user_id: int) -> UserStats:
        batches_by_status = self._grouped(
            select(Batch.status, func.count(Batch.id)).where(Batch.creator_id == user_id).group_by(Batch.status)
        )
        edits_by_status = self._grouped(
            select(PullRequest.status, func.count(PullRequest.id))
            .where(PullRequest.user_id == user_id)
            .group_by(PullRequest.status)
        )

        edit_counts = (
            select(PullRequest.batch_id, func.count(PullRequest.id).label("edits"))
            .group_by(PullRequest.batch_id)
            .subquery()
        )
        recent = self.db.execute(
            select(Batch, func.coalesce(edit_counts.c.edits, 0))
            .outerjoin(edit_counts, edit_counts.c.batch_id == Batch.id)
            .where(Batch.creator_id == user_id)
            .order_by(Batch.created_at.desc(), Batch.id.desc())
            .limit(RECENT_BATCHES)
        ).all()

        return UserStats(
            batches_count=sum(batches_by_status.values()),
            pull_requests_count=sum(edits_by_status.values()),
            batches_by_status=batches_by_status,
            pull_requests_by_status=edits_by_status,
            recent_batches=[
                BatchSummary(
                    id=batch.id,
                    description=batch.description,
                    status=batch.status,
                    created_at=batch.created_at,
                    edit_count=edits,
                )
                for batch, edits in recent
            ],
        )

    def site_stats(self) -> SiteStats:
        """Dashboard counters for administrators"""
        since = self.clock() - timedelta(days=RECENT_DAYS)

        def count(stmt) -> int:
            return self.db.execute(stmt).scalar_one()

        return SiteStats(
            total_phrases=count(select(func.count(Phrase.id))),
            total_issues=count(select(func.count(Issue.id))),
            total_users=count(select(func.count(User.id))),
            total_pull_requests=count(select(func.count(PullRequest.id))),
            total_batches=count(select(func.count(Batch.id))),
            pending_sync_batches=count(
                select(func.count(Batch.id)).where(
                    Batch.status == BatchStatus.APPROVED, Batch.sync_task_id.is_(None)
                )
            ),
            synced_batches=count(select(func.count(Batch.id)).where(Batch.sync_task_id.is_not(None))),
            phrases_by_type=self._grouped(select(Phrase.type, func.count(Phrase.id)).group_by(Phrase.type)),
            batches_by_status=self._grouped(select(Batch.status, func.count(Batch.id)).group_by(Batch.status)),
            recent_submitted_batches=count(
                select(func.count(Batch.id)).where(
                    Batch.status.in_(REVIEWED_STATUSES), Batch.updated_at >= since
                )
            ),
            recent_approved_batches=count(
                select(func.count(Batch.id)).where(
                    Batch.status == BatchStatus.APPROVED, Batch.updated_at >= since
                )
            ),
        )

    def _grouped(self, stmt) -> Dict[str, int]:
        return {key.value: total for key, total in self.db.execute(stmt).all()}
