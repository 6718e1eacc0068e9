"""
Integration tests for the admin sync endpoints and the internal job endpoints
"""
import pytest
from httpx import AsyncClient

from keytao.config.settings import get_settings
from keytao.models.batch import Batch, BatchStatus, PullRequest, PullRequestAction, PullRequestStatus
from keytao.models.phrase import PhraseType
from keytao.models.sync_task import SyncTask, SyncTaskStatus


@pytest.fixture
def approved_batch(db_session, test_user):
    batch = Batch(description="待同步", creator_id=test_user.id, status=BatchStatus.APPROVED)
    db_session.add(batch)
    db_session.flush()
    db_session.add(PullRequest(
        batch_id=batch.id, user_id=test_user.id, action=PullRequestAction.CREATE,
        status=PullRequestStatus.APPROVED, word="新词", code="xnci", type=PhraseType.PHRASE, weight=100,
    ))
    db_session.commit()
    return batch


@pytest.mark.asyncio
async def test_trigger_sync_creates_task_and_starts_job(
    async_client: AsyncClient, admin_headers, approved_batch, fake_runner
):
    r = await async_client.post("/admin/sync", headers=admin_headers)

    assert r.status_code == 202, r.text
    task = r.json()["data"]
    assert task["status"] == "Pending"
    assert task["total_items"] == 1
    assert fake_runner.calls == ["run_and_continue"]

    r = await async_client.get(f"/admin/sync/tasks/{task['id']}", headers=admin_headers)
    assert r.json()["data"]["batch_ids"] == [approved_batch.id]

    r = await async_client.post("/admin/sync", headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["error_code"] == "SYNC_TASK_ACTIVE"


@pytest.mark.asyncio
async def test_trigger_without_batches(async_client: AsyncClient, admin_headers):
    r = await async_client.post("/admin/sync", headers=admin_headers)

    assert r.status_code == 400
    assert r.json()["error"] == "No batches to sync"


@pytest.mark.asyncio
async def test_sync_requires_admin(async_client: AsyncClient, authenticated_headers):
    r = await async_client.get("/admin/sync/tasks", headers=authenticated_headers)

    assert r.status_code == 403


@pytest.mark.asyncio
async def test_cancel_late_task_warns_about_cleanup(
    async_client: AsyncClient, admin_headers, approved_batch, db_session
):
    r = await async_client.post("/admin/sync", headers=admin_headers)
    task_id = r.json()["data"]["id"]
    task = db_session.get(SyncTask, task_id)
    task.status = SyncTaskStatus.RUNNING
    task.progress = 70
    db_session.commit()

    r = await async_client.post(f"/admin/sync/tasks/{task_id}/cancel", headers=admin_headers)

    assert r.status_code == 200
    data = r.json()["data"]
    assert data["task"]["status"] == "Cancelled"
    assert data["needs_cleanup"] is True
    assert data["warning"].startswith("Files may already have been committed")

    r = await async_client.post(f"/admin/sync/tasks/{task_id}/cancel", headers=admin_headers)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_retry_cancelled_task(async_client: AsyncClient, admin_headers, approved_batch, fake_runner):
    r = await async_client.post("/admin/sync", headers=admin_headers)
    task_id = r.json()["data"]["id"]
    await async_client.post(f"/admin/sync/tasks/{task_id}/cancel", headers=admin_headers)

    r = await async_client.post(f"/admin/sync/tasks/{task_id}/retry", headers=admin_headers)

    assert r.status_code == 202, r.text
    data = r.json()["data"]
    assert data["status"] == "Pending"
    assert data["pending_files"] == ["rime/phrase.dict.yaml"]
    assert fake_runner.calls == ["run_and_continue", "run_and_continue"]


@pytest.mark.asyncio
async def test_internal_endpoints_require_secret(async_client: AsyncClient, fake_runner, monkeypatch):
    monkeypatch.setattr(get_settings().sync, "continuation_secret", "s3cret")

    r = await async_client.post("/internal/sync/continue")
    assert r.status_code == 401

    r = await async_client.post("/internal/sync/cron", headers={"X-Sync-Secret": "wrong"})
    assert r.status_code == 403

    r = await async_client.post("/internal/sync/cron", headers={"X-Sync-Secret": "s3cret"})
    assert r.status_code == 200
    assert r.json()["data"]["steps"] == 0

    r = await async_client.post("/internal/sync/continue", headers={"X-Sync-Secret": "s3cret"})
    assert r.status_code == 200
    assert fake_runner.calls == ["run_once", "run_and_continue"]


@pytest.mark.asyncio
async def test_internal_endpoints_closed_without_secret(async_client: AsyncClient, monkeypatch):
    monkeypatch.setattr(get_settings().sync, "continuation_secret", None)

    r = await async_client.post("/internal/sync/cron", headers={"X-Sync-Secret": "anything"})

    assert r.status_code == 403


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    r = await async_client.get("/health")

    assert r.status_code == 200
    assert r.json()["details"]["database"]["status"] == "healthy"
