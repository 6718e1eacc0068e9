"""
Sync job runner - drives sync tasks in bounded invocations

Each invocation advances the oldest active task by a few steps within a time
budget. When work remains, a continuation is dispatched (an authenticated
POST to this service's own continue endpoint), or left for the cron endpoint.
"""
import logging
import time
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import Session

from keytao.config.settings import SyncSettings, get_settings
from keytao.core.db import SessionLocal
from keytao.schemas.sync import SyncRunReport
from keytao.services.github_client import GithubClient
from keytao.services.sync_service import SyncTaskManager

logger = logging.getLogger(__name__)


class ContinuationDispatcher:
    """
    Re-invokes the job through the continue endpoint.

    Without a configured URL nothing is dispatched and the cron endpoint
    picks the task up on its next tick.
    """

    def __init__(
        self,
        settings: Optional[SyncSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings().sync
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.settings.continuation_url)

    async def dispatch(self) -> bool:
        """
        Request another invocation

        Returns:
            True if the continue endpoint accepted the request
        """
        if not self.enabled:
            logger.debug("No continuation URL configured; leaving the task for cron")
            return False

        headers = {}
        if self.settings.continuation_secret:
            headers[self.settings.secret_header] = self.settings.continuation_secret
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                response = await client.post(self.settings.continuation_url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Sync continuation request failed: {e}")
            return False

        if response.status_code >= 400:
            logger.warning(f"Sync continuation rejected with {response.status_code}")
            return False
        return True


class SyncJobRunner:
    """
    Runs bounded slices of the active sync task.

    Only one slice runs per process at a time.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        github_factory: Callable[[], GithubClient] = GithubClient,
        settings: Optional[SyncSettings] = None,
        dispatcher: Optional[ContinuationDispatcher] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.github_factory = github_factory
        self.settings = settings or get_settings().sync
        self.dispatcher = dispatcher or ContinuationDispatcher(self.settings)
        self.monotonic = monotonic
        self.is_running = False

    async def run_once(self) -> SyncRunReport:
        """
        Advance the oldest active task

        Returns:
            Report of the steps taken and whether work remains
        """
        if self.is_running:
            logger.warning("Sync job already running, skipping")
            return SyncRunReport(error="already_running")

        self.is_running = True
        db = self.session_factory()
        manager = SyncTaskManager(db, settings=self.settings, github_factory=self.github_factory)
        try:
            task = manager.get_active_task()
            if task is None:
                logger.debug("No sync tasks to process")
                return SyncRunReport()

            task_id = task.id
            deadline = self.monotonic() + self.settings.time_budget_seconds
            steps = 0
            while steps < self.settings.steps_per_invocation and self.monotonic() < deadline:
                try:
                    task = await manager.process_step(task_id)
                except Exception as e:
                    logger.error(
                        f"Sync task {task_id} failed: {e}",
                        exc_info=True,
                        extra={"task_id": task_id},
                    )
                    task = manager.mark_failed(task_id, str(e))
                    return SyncRunReport(
                        task_id=task_id,
                        steps=steps + 1,
                        has_more=False,
                        status=task.status if task else None,
                        error=str(e),
                    )
                steps += 1
                if not task.is_active:
                    break

            return SyncRunReport(
                task_id=task_id,
                steps=steps,
                has_more=task.is_active,
                status=task.status,
            )
        finally:
            await manager.aclose()
            db.close()
            self.is_running = False

    async def run_and_continue(self) -> SyncRunReport:
        """Run one slice and dispatch a continuation if work remains"""
        report = await self.run_once()
        if report.has_more:
            await self.dispatcher.dispatch()
        return report


# Global runner instance
_sync_runner: Optional[SyncJobRunner] = None


def get_sync_runner() -> SyncJobRunner:
    """Get global sync job runner instance"""
    global _sync_runner
    if _sync_runner is None:
        _sync_runner = SyncJobRunner()
    return _sync_runner
