"""
Sync Task Manager - resumable publication of approved batches to GitHub

A task moves Pending -> Running -> Completed | Failed | Cancelled, and
Failed/Cancelled -> Pending through retry. Each ``process_step`` call does
one bounded unit of work and persists a checkpoint, so the job can resume
from any invocation after a restart.
"""
import logging
import math
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from keytao.config.settings import SyncSettings, get_settings
from keytao.core.exceptions import (
    InvalidStateError,
    NothingToSyncError,
    NotFoundError,
    SyncTaskActiveError,
)
from keytao.models.batch import Batch, BatchStatus, PullRequest, PullRequestStatus
from keytao.models.sync_task import ACTIVE_SYNC_STATUSES, SyncTask, SyncTaskStatus
from keytao.schemas.sync import SyncTaskRead, SyncTaskStatusView
from keytao.services.batch_service import BatchService
from keytao.services.github_client import FileCommit, GithubClient, generate_branch_name
from keytao.services.rime_converter import (
    apply_dictionary_change,
    build_dictionary_changes,
    dict_version,
    dictionary_path,
    generate_sync_summary,
)

logger = logging.getLogger(__name__)

# Share of progress reported while committing files; PR creation owns the rest
COMMIT_PROGRESS_SHARE = 90
CANCELLED_BY_ADMIN = "Cancelled by admin"


def commit_message(now: datetime) -> str:
    return f"Update dictionaries - {now.strftime('%Y-%m-%d')}"


def pull_request_title(now: datetime) -> str:
    return f"[自动同步] 词库更新 - {now.strftime('%Y年%m月%d日')}"


class SyncTaskManager:
    """Creates, advances, cancels and retries sync tasks"""

    def __init__(
        self,
        db: Session,
        github: Optional[GithubClient] = None,
        settings: Optional[SyncSettings] = None,
        dict_dir: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        github_factory: Callable[[], GithubClient] = GithubClient,
    ):
        self.db = db
        self.settings = settings or get_settings().sync
        self.dict_dir = dict_dir or get_settings().github.dict_dir
        self.clock = clock
        self._github = github
        self._github_factory = github_factory
        self._owns_github = False

    @property
    def github(self) -> GithubClient:
        # Created on first use; creating or cancelling a task needs no credentials
        if self._github is None:
            self._github = self._github_factory()
            self._owns_github = True
        return self._github

    async def aclose(self) -> None:
        if self._owns_github and self._github is not None:
            await self._github.aclose()
            self._github = None

    # Queries

    def get_task(self, task_id: int) -> SyncTask:
        task = self.db.get(SyncTask, task_id)
        if task is None:
            raise NotFoundError("SyncTask", task_id)
        return task

    def get_active_task(self) -> Optional[SyncTask]:
        """Oldest Pending or Running task"""
        stmt = (
            select(SyncTask)
            .where(SyncTask.status.in_(ACTIVE_SYNC_STATUSES))
            .order_by(SyncTask.created_at, SyncTask.id)
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_tasks(self, limit: int = 20) -> List[SyncTask]:
        stmt = select(SyncTask).order_by(SyncTask.created_at.desc(), SyncTask.id.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def status(self, task_id: int) -> SyncTaskStatusView:
        task = self.get_task(task_id)
        return SyncTaskStatusView(
            task=SyncTaskRead.model_validate(task),
            batch_ids=[batch.id for batch in task.batches],
        )

    # Lifecycle

    def create_task(self) -> SyncTask:
        """
        Create a Pending task over every approved batch not yet synced

        Raises:
            SyncTaskActiveError: If another task is Pending or Running
            NothingToSyncError: If there are no approved, unsynced batches
        """
        active = self.get_active_task()
        if active is not None:
            raise SyncTaskActiveError(active.id)

        stmt = (
            select(Batch)
            .where(Batch.status == BatchStatus.APPROVED, Batch.sync_task_id.is_(None))
            .order_by(Batch.id)
        )
        batches = list(self.db.execute(stmt).scalars().all())
        if not batches:
            raise NothingToSyncError()

        total_items = self.db.execute(
            select(func.count(PullRequest.id)).where(
                PullRequest.batch_id.in_([b.id for b in batches]),
                PullRequest.status == PullRequestStatus.APPROVED,
            )
        ).scalar_one()

        task = SyncTask(
            status=SyncTaskStatus.PENDING,
            progress=0,
            total_items=total_items,
            processed_items=0,
            message="Waiting to start",
        )
        self.db.add(task)
        self.db.flush()
        for batch in batches:
            batch.sync_task_id = task.id
        self.db.commit()
        self.db.refresh(task)

        logger.info(
            f"Sync task {task.id} created for {len(batches)} batches",
            extra={"task_id": task.id, "batches": len(batches), "total_items": total_items},
        )
        return task

    async def process_step(self, task_id: int) -> SyncTask:
        """
        Advance a task by one bounded unit of work

        The first step prepares the dictionary files, each following step
        commits one chunk of files, and the last step opens the pull
        request. Terminal and cancelled tasks are left untouched.

        Raises:
            Exception: Errors while preparing or committing propagate after
                the session is rolled back to the last checkpoint
        """
        task = self.get_task(task_id)
        # A cancel may have been committed by another session since the last step
        self.db.refresh(task)
        if task.status not in ACTIVE_SYNC_STATUSES:
            return task

        try:
            if task.status == SyncTaskStatus.PENDING:
                task.status = SyncTaskStatus.RUNNING
                task.started_at = self.clock()
                task.message = "Started"
                self.db.commit()
                logger.info(f"Sync task {task.id} running")

            if task.file_contents is None:
                await self._prepare_files(task, refs=[self.github.base_branch])
                self.db.commit()
                return task

            if task.pending_files:
                await self._commit_chunk(task)
                return task
        except Exception:
            self.db.rollback()
            raise

        await self._finalize(task)
        return task

    def cancel(self, task_id: int) -> Tuple[SyncTask, bool]:
        """
        Cancel a Pending or Running task

        A running task is only signalled; its commit loop stops at the next
        checkpoint. Files already pushed stay on the branch.

        Returns:
            (task, needs_cleanup) where needs_cleanup means the branch likely
            already holds committed files

        Raises:
            InvalidStateError: If the task is not Pending or Running
        """
        task = self.get_task(task_id)
        if task.status not in ACTIVE_SYNC_STATUSES:
            raise InvalidStateError("Only pending or running tasks can be cancelled", task.status.value)

        needs_cleanup = (
            task.status == SyncTaskStatus.RUNNING
            and task.progress >= self.settings.cleanup_warning_progress
        )
        task.status = SyncTaskStatus.CANCELLED
        task.error = CANCELLED_BY_ADMIN
        task.message = "Cancelled"
        task.completed_at = self.clock()
        self.db.commit()

        logger.info(
            f"Sync task {task.id} cancelled at {task.progress}%",
            extra={"task_id": task.id, "needs_cleanup": needs_cleanup},
        )
        return task, needs_cleanup

    async def retry(self, task_id: int) -> SyncTask:
        """
        Reset a Failed or Cancelled task to Pending with a fresh file set

        Upstream content is read from the previous attempt's branch when it
        has the file, otherwise from the base branch.

        Raises:
            InvalidStateError: If the task is not Failed or Cancelled
        """
        task = self.get_task(task_id)
        if task.status not in (SyncTaskStatus.FAILED, SyncTaskStatus.CANCELLED):
            raise InvalidStateError("Only failed or cancelled tasks can be retried", task.status.value)

        previous_branch = task.github_branch
        refs = [previous_branch, self.github.base_branch] if previous_branch else [self.github.base_branch]

        try:
            task.progress = 0
            task.processed_items = 0
            task.error = None
            task.started_at = None
            task.completed_at = None
            task.github_branch = None
            task.github_pr_url = None
            task.github_pr_number = None
            await self._prepare_files(task, refs=refs)
            task.status = SyncTaskStatus.PENDING
            task.message = "Waiting to start (retry)"
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Sync task {task.id} reset for retry",
            extra={"task_id": task.id, "previous_branch": previous_branch},
        )
        return task

    def mark_failed(self, task_id: int, message: str) -> Optional[SyncTask]:
        """Record a failure on a task that is still active"""
        self.db.rollback()
        task = self.db.get(SyncTask, task_id)
        if task is None or task.status not in ACTIVE_SYNC_STATUSES:
            return task
        task.status = SyncTaskStatus.FAILED
        task.error = message
        task.message = "Failed"
        task.completed_at = self.clock()
        self.db.commit()
        return task

    # Steps

    def _approved_edits(self, task: SyncTask) -> List[PullRequest]:
        batch_ids = [batch.id for batch in task.batches]
        if not batch_ids:
            return []
        stmt = (
            select(PullRequest)
            .where(PullRequest.batch_id.in_(batch_ids), PullRequest.status == PullRequestStatus.APPROVED)
            .order_by(PullRequest.batch_id, PullRequest.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    async def _prepare_files(self, task: SyncTask, refs: Sequence[str]) -> None:
        edits = self._approved_edits(task)
        if not edits:
            raise NothingToSyncError()

        now = self.clock()
        version = dict_version(now)
        contents: Dict[str, str] = {}
        counts: Dict[str, int] = {}
        for phrase_type, change in build_dictionary_changes(edits).items():
            path = dictionary_path(phrase_type, self.dict_dir)
            upstream = None
            for ref in refs:
                upstream = await self.github.get_file_content(ref, path)
                if upstream is not None:
                    break
            contents[path] = apply_dictionary_change(upstream, change, version)
            counts[path] = change.item_count

        task.file_contents = contents
        task.file_item_counts = counts
        task.pending_files = list(contents)
        task.processed_files = []
        task.summary = generate_sync_summary(edits, task.batches)
        task.message = f"Prepared {len(contents)} dictionary files"
        logger.info(
            f"Sync task {task.id} prepared {len(contents)} files",
            extra={"task_id": task.id, "files": list(contents), "refs": list(refs)},
        )

    def _is_cancelled(self, task_id: int) -> bool:
        status = self.db.execute(select(SyncTask.status).where(SyncTask.id == task_id)).scalar_one()
        return status == SyncTaskStatus.CANCELLED

    def _advance(self, task: SyncTask, done: List[str]) -> None:
        counts = task.file_item_counts or {}
        task.processed_files = list(task.processed_files or []) + done
        task.pending_files = [path for path in (task.pending_files or []) if path not in done]
        task.processed_items = (task.processed_items or 0) + sum(counts.get(path, 0) for path in done)
        if task.total_items:
            task.progress = math.floor(task.processed_items / task.total_items * COMMIT_PROGRESS_SHARE)
        else:
            task.progress = COMMIT_PROGRESS_SHARE

    async def _commit_chunk(self, task: SyncTask) -> None:
        now = self.clock()
        if not task.github_branch:
            branch = generate_branch_name(now)
            await self.github.get_or_create_branch(branch)
            task.github_branch = branch
            self.db.commit()

        chunk = list(task.pending_files[: self.settings.files_per_step])
        message = commit_message(now)
        done: List[str] = []
        for path in chunk:
            if self._is_cancelled(task.id):
                self._advance(task, done)
                self.db.commit()
                self.db.refresh(task)
                logger.info(
                    f"Sync task {task.id} observed cancellation after {len(done)} files",
                    extra={"task_id": task.id},
                )
                return
            await self.github.commit_file(task.github_branch, FileCommit(path, task.file_contents[path]), message)
            done.append(path)

        self._advance(task, done)
        task.message = f"Committed {len(task.processed_files)} of {len(task.processed_files) + len(task.pending_files)} files"
        self.db.commit()
        logger.info(
            f"Sync task {task.id} progress {task.progress}%",
            extra={"task_id": task.id, "progress": task.progress, "pending": len(task.pending_files)},
        )

    async def _finalize(self, task: SyncTask) -> None:
        if self._is_cancelled(task.id):
            self.db.refresh(task)
            logger.info(
                f"Sync task {task.id} cancelled before opening the pull request",
                extra={"task_id": task.id},
            )
            return
        now = self.clock()
        try:
            if not task.github_branch:
                branch = generate_branch_name(now)
                await self.github.get_or_create_branch(branch)
                task.github_branch = branch
            pr = await self.github.create_pull_request(
                task.github_branch,
                pull_request_title(now),
                task.summary or "",
            )
            task.status = SyncTaskStatus.COMPLETED
            task.progress = 100
            task.processed_items = task.total_items
            task.github_pr_url = pr["html_url"]
            task.github_pr_number = pr["number"]
            task.completed_at = now
            task.error = None
            task.message = "Completed"
            BatchService(self.db).publish(task.batches)
            self.db.commit()
            logger.info(
                f"Sync task {task.id} completed with pull request #{pr['number']}",
                extra={"task_id": task.id, "pr_url": pr["html_url"]},
            )
        except Exception as e:
            logger.error(f"Sync task {task.id} failed to finalize: {e}", exc_info=True)
            self.mark_failed(task.id, str(e))
            self.db.refresh(task)
