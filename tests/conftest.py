"""
Shared fixtures: an in-memory database per test, users, tokens, a fake
GitHub client and an HTTP client wired to the app.
"""
from typing import Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from keytao.core.db import Base, get_db
from keytao.core.dependencies import AuthContext
from keytao.core.jwt import create_access_token
from keytao.core.security import hash_password
from keytao.models.phrase import Phrase, PhraseStatus, PhraseType
from keytao.models.user import User, UserRole, UserStatus
from keytao.schemas.sync import SyncRunReport
from keytao.services.github_client import FileCommit


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import keytao.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    session = Session()
    yield session
    session.close()


def _make_user(db, name: str, role: UserRole = UserRole.USER) -> User:
    user = User(
        name=name,
        nickname=name,
        hashed_password=hash_password("Passw0rd!"),
        role=role,
        status=UserStatus.ENABLE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user(db_session):
    return _make_user(db_session, "contributor")


@pytest.fixture
def other_user(db_session):
    return _make_user(db_session, "someone_else")


@pytest.fixture
def admin_user(db_session):
    return _make_user(db_session, "reviewer", UserRole.ADMIN)


@pytest.fixture
def user_auth(test_user):
    return AuthContext(user_id=test_user.id)


@pytest.fixture
def admin_auth(admin_user):
    return AuthContext(user_id=admin_user.id, is_admin=True)


@pytest.fixture
def add_phrase(db_session, test_user):
    """Insert a published phrase directly into the store."""

    def _add(word: str, code: str, weight: int = 100, phrase_type: PhraseType = PhraseType.PHRASE) -> Phrase:
        phrase = Phrase(
            word=word,
            code=code,
            weight=weight,
            type=phrase_type,
            status=PhraseStatus.FINISH,
            user_id=test_user.id,
        )
        db_session.add(phrase)
        db_session.commit()
        db_session.refresh(phrase)
        return phrase

    return _add


class FakeGithub:
    """In-memory stand-in for GithubClient."""

    base_branch = "master"

    def __init__(self, files: Optional[Dict[Tuple[str, str], str]] = None):
        self.files: Dict[Tuple[str, str], str] = dict(files or {})
        self.branches = {self.base_branch}
        self.commits: List[Tuple[str, str, str]] = []
        self.pull_requests: List[Dict] = []
        self.reads: List[Tuple[str, str]] = []
        self.fail_pull_request: Optional[Exception] = None
        self.fail_commit: Optional[Exception] = None
        self.on_commit = None
        self.closed = False

    async def get_file_content(self, ref: str, path: str) -> Optional[str]:
        self.reads.append((ref, path))
        return self.files.get((ref, path))

    async def get_or_create_branch(self, branch: str) -> str:
        self.branches.add(branch)
        return branch

    async def commit_file(self, branch: str, file: FileCommit, message: str) -> None:
        if self.fail_commit is not None:
            raise self.fail_commit
        self.files[(branch, file.path)] = file.content
        self.commits.append((branch, file.path, message))
        if self.on_commit is not None:
            self.on_commit(file.path)

    async def commit_files(self, branch: str, files: List[FileCommit], message: str) -> None:
        for file in files:
            await self.commit_file(branch, file, message)

    async def create_pull_request(self, branch: str, title: str, body: str) -> Dict:
        if self.fail_pull_request is not None:
            raise self.fail_pull_request
        number = len(self.pull_requests) + 1
        pr = {
            "number": number,
            "html_url": f"https://github.com/xkinput/KeyTao/pull/{number}",
            "branch": branch,
            "title": title,
            "body": body,
        }
        self.pull_requests.append(pr)
        return pr

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_github():
    return FakeGithub()


class FakeSyncRunner:
    """Records background job invocations instead of running them."""

    def __init__(self):
        self.calls: List[str] = []

    async def run_once(self) -> SyncRunReport:
        self.calls.append("run_once")
        return SyncRunReport()

    async def run_and_continue(self) -> SyncRunReport:
        self.calls.append("run_and_continue")
        return SyncRunReport()


@pytest.fixture
def fake_runner():
    return FakeSyncRunner()


@pytest.fixture
def app(db_session, fake_github, fake_runner):
    from keytao.main import app
    from keytao.api.sync_endpoints import get_sync_manager
    from keytao.services.sync_job import get_sync_runner
    from keytao.services.sync_service import SyncTaskManager

    def override_get_db():
        yield db_session

    async def override_sync_manager():
        yield SyncTaskManager(db_session, github=fake_github)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_manager] = override_sync_manager
    app.dependency_overrides[get_sync_runner] = lambda: fake_runner
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def authenticated_headers(test_user):
    token = create_access_token(str(test_user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_headers(other_user):
    token = create_access_token(str(other_user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user):
    token = create_access_token(str(admin_user.id), scopes=["admin"])
    return {"Authorization": f"Bearer {token}"}
