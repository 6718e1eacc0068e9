"""
Dictionary sync endpoints

Administrators start, inspect, cancel and retry sync tasks. The internal
endpoints drive the job: ``/internal/sync/continue`` is called by the job
itself when work remains and ``/internal/sync/cron`` by a scheduler. Both are
guarded by the shared secret header (see InternalSecretMiddleware).
"""
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from keytao.core.db import get_db
from keytao.core.dependencies import AuthContext, require_admin
from keytao.schemas.base import Envelope
from keytao.schemas.sync import CancelResult, SyncRunReport, SyncTaskRead, SyncTaskStatusView
from keytao.services.sync_job import SyncJobRunner, get_sync_runner
from keytao.services.sync_service import SyncTaskManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/sync", tags=["admin", "sync"])
internal_router = APIRouter(prefix="/internal/sync", tags=["internal"])

CLEANUP_WARNING = (
    "Files may already have been committed to the sync branch. "
    "Check the branch on GitHub and delete it if it is no longer needed."
)


async def get_sync_manager(db: Session = Depends(get_db)) -> AsyncGenerator[SyncTaskManager, None]:
    """FastAPI dependency for a sync task manager bound to the request session"""
    manager = SyncTaskManager(db)
    try:
        yield manager
    finally:
        await manager.aclose()


@router.post("", response_model=Envelope[SyncTaskRead], status_code=status.HTTP_202_ACCEPTED)
async def trigger_sync(
    background_tasks: BackgroundTasks,
    manager: SyncTaskManager = Depends(get_sync_manager),
    runner: SyncJobRunner = Depends(get_sync_runner),
    _auth: AuthContext = Depends(require_admin),
):
    """
    Create a sync task over all approved batches and start the job

    The response returns as soon as the task exists; progress is polled
    through the status endpoint.
    """
    task = manager.create_task()
    background_tasks.add_task(runner.run_and_continue)
    return Envelope(status="ok", data=SyncTaskRead.model_validate(task))


@router.get("/tasks", response_model=Envelope[list[SyncTaskRead]])
async def list_sync_tasks(
    limit: int = Query(20, ge=1, le=100),
    manager: SyncTaskManager = Depends(get_sync_manager),
    _auth: AuthContext = Depends(require_admin),
):
    tasks = manager.list_tasks(limit)
    return Envelope(status="ok", data=[SyncTaskRead.model_validate(t) for t in tasks])


@router.get("/tasks/{task_id}", response_model=Envelope[SyncTaskStatusView])
async def sync_task_status(
    task_id: int,
    manager: SyncTaskManager = Depends(get_sync_manager),
    _auth: AuthContext = Depends(require_admin),
):
    return Envelope(status="ok", data=manager.status(task_id))


@router.post("/tasks/{task_id}/cancel", response_model=Envelope[CancelResult])
async def cancel_sync_task(
    task_id: int,
    manager: SyncTaskManager = Depends(get_sync_manager),
    _auth: AuthContext = Depends(require_admin),
):
    """
    Cancel a pending or running task

    A running task stops at its next checkpoint. When it had already
    committed most of its files the response carries a cleanup warning.
    """
    task, needs_cleanup = manager.cancel(task_id)
    return Envelope(status="ok", data=CancelResult(
        task=SyncTaskRead.model_validate(task),
        needs_cleanup=needs_cleanup,
        warning=CLEANUP_WARNING if needs_cleanup else None,
    ))


@router.post("/tasks/{task_id}/retry", response_model=Envelope[SyncTaskRead], status_code=status.HTTP_202_ACCEPTED)
async def retry_sync_task(
    task_id: int,
    background_tasks: BackgroundTasks,
    manager: SyncTaskManager = Depends(get_sync_manager),
    runner: SyncJobRunner = Depends(get_sync_runner),
    _auth: AuthContext = Depends(require_admin),
):
    task = await manager.retry(task_id)
    background_tasks.add_task(runner.run_and_continue)
    return Envelope(status="ok", data=SyncTaskRead.model_validate(task))


@internal_router.post("/continue", response_model=Envelope[SyncRunReport])
async def continue_sync(runner: SyncJobRunner = Depends(get_sync_runner)):
    """Run one bounded slice and chain the next one if work remains"""
    report = await runner.run_and_continue()
    return Envelope(status="ok", data=report)


@internal_router.post("/cron", response_model=Envelope[SyncRunReport])
async def cron_sync(runner: SyncJobRunner = Depends(get_sync_runner)):
    """Scheduled tick; picks up tasks whose continuation was lost"""
    report = await runner.run_once()
    if report.task_id is not None:
        logger.info(
            f"Cron advanced sync task {report.task_id} by {report.steps} steps",
            extra={"task_id": report.task_id, "has_more": report.has_more},
        )
    return Envelope(status="ok", data=report)
