"""
Unit tests for the bounded sync job runner and its continuation
"""
import httpx
import pytest
from sqlalchemy.orm import sessionmaker

from keytao.config.settings import SyncSettings
from keytao.core.exceptions import GithubApiError
from keytao.models.batch import Batch, BatchStatus, PullRequest, PullRequestAction, PullRequestStatus
from keytao.models.phrase import PhraseType
from keytao.models.sync_task import SyncTask, SyncTaskStatus
from keytao.services.sync_job import ContinuationDispatcher, SyncJobRunner


class RecordingDispatcher:
    def __init__(self):
        self.calls = 0

    async def dispatch(self):
        self.calls += 1
        return True


def seed_task(db, user, files=3):
    types = [PhraseType.PHRASE, PhraseType.SINGLE, PhraseType.SYMBOL][:files]
    batch = Batch(description="同步", creator_id=user.id, status=BatchStatus.APPROVED)
    db.add(batch)
    db.flush()
    for i, phrase_type in enumerate(types):
        db.add(PullRequest(
            batch_id=batch.id, user_id=user.id, action=PullRequestAction.CREATE,
            status=PullRequestStatus.APPROVED, word=f"词{i}", code=f"ci{chr(97 + i)}",
            type=phrase_type, weight=100,
        ))
    task = SyncTask(status=SyncTaskStatus.PENDING, progress=0, total_items=len(types), processed_items=0)
    db.add(task)
    db.flush()
    batch.sync_task_id = task.id
    db.commit()
    return task.id


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def make_runner(session_factory, fake_github, dispatcher, **settings):
    return SyncJobRunner(
        session_factory=session_factory,
        github_factory=lambda: fake_github,
        settings=SyncSettings(**settings),
        dispatcher=dispatcher,
    )


@pytest.mark.asyncio
async def test_no_active_task(session_factory, fake_github):
    dispatcher = RecordingDispatcher()
    runner = make_runner(session_factory, fake_github, dispatcher)

    report = await runner.run_and_continue()

    assert report.task_id is None
    assert report.has_more is False
    assert dispatcher.calls == 0


@pytest.mark.asyncio
async def test_bounded_steps_then_continuation(session_factory, db_session, test_user, fake_github):
    task_id = seed_task(db_session, test_user)
    dispatcher = RecordingDispatcher()
    runner = make_runner(session_factory, fake_github, dispatcher, files_per_step=1, steps_per_invocation=2)

    report = await runner.run_and_continue()

    assert report.task_id == task_id
    assert report.steps == 2
    assert report.has_more is True
    assert report.status == SyncTaskStatus.RUNNING
    assert dispatcher.calls == 1
    assert len(fake_github.commits) == 1
    assert runner.is_running is False


@pytest.mark.asyncio
async def test_runs_to_completion_across_invocations(session_factory, db_session, test_user, fake_github):
    task_id = seed_task(db_session, test_user)
    dispatcher = RecordingDispatcher()
    runner = make_runner(session_factory, fake_github, dispatcher, files_per_step=2, steps_per_invocation=2)

    first = await runner.run_and_continue()
    second = await runner.run_and_continue()

    assert first.has_more is True
    assert second.has_more is False
    assert second.status == SyncTaskStatus.COMPLETED
    assert dispatcher.calls == 1
    db_session.expire_all()
    assert db_session.get(SyncTask, task_id).github_pr_number == 1


@pytest.mark.asyncio
async def test_time_budget_stops_early(session_factory, db_session, test_user, fake_github):
    seed_task(db_session, test_user)
    ticks = iter([0.0, 0.0, 100.0])
    runner = SyncJobRunner(
        session_factory=session_factory,
        github_factory=lambda: fake_github,
        settings=SyncSettings(steps_per_invocation=10, time_budget_seconds=5),
        dispatcher=RecordingDispatcher(),
        monotonic=lambda: next(ticks),
    )

    report = await runner.run_once()

    assert report.steps == 1
    assert report.has_more is True


@pytest.mark.asyncio
async def test_step_error_marks_task_failed(session_factory, db_session, test_user, fake_github):
    task_id = seed_task(db_session, test_user)
    fake_github.fail_commit = GithubApiError("commit file", 500, "Server Error")
    dispatcher = RecordingDispatcher()
    runner = make_runner(session_factory, fake_github, dispatcher, steps_per_invocation=3)

    report = await runner.run_and_continue()

    assert report.status == SyncTaskStatus.FAILED
    assert "Server Error" in report.error
    assert dispatcher.calls == 0
    db_session.expire_all()
    task = db_session.get(SyncTask, task_id)
    assert task.status == SyncTaskStatus.FAILED
    assert task.completed_at is not None


@pytest.mark.asyncio
async def test_dispatcher_posts_secret_header():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"status": "ok"})

    dispatcher = ContinuationDispatcher(
        SyncSettings(continuation_url="http://keytao.test/internal/sync/continue", continuation_secret="s3cret"),
        transport=httpx.MockTransport(handler),
    )

    assert await dispatcher.dispatch() is True
    assert seen[0].headers["X-Sync-Secret"] == "s3cret"
    assert seen[0].url.path == "/internal/sync/continue"


@pytest.mark.asyncio
async def test_dispatcher_disabled_without_url():
    dispatcher = ContinuationDispatcher(SyncSettings(continuation_url=None))

    assert dispatcher.enabled is False
    assert await dispatcher.dispatch() is False
