# tests/conftest.py — Shared test fixtures
import os
from datetime import date

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"

from models import Base, User, Project, Task, utcnow
from auth import AuthService
from broadcaster import ConnectionManager, get_broadcaster
from database import get_db_session
from main import app

TEST_PASSWORD = "Password123!"


class RecordingBroadcaster(ConnectionManager):
    """Broadcaster double that records events instead of sending them"""

    def __init__(self):
        super().__init__()
        self.published = []
        self.direct = []

    async def publish(self, event, payload, topics=()):
        self.published.append({"type": event, "data": payload, "topics": list(topics)})
        return 0

    async def send_to_user(self, uid, event, payload):
        self.direct.append({"uid": uid, "type": event, "data": payload})
        return 0

    def events(self, event):
        return [e["data"] for e in self.published if e["type"] == event]


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest_asyncio.fixture(scope="function")
async def client(db_engine, broadcaster):
    """HTTP test client with overridden DB and broadcaster dependencies"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _create_user(db_session, name, email, role):
    now = utcnow()
    user = User(
        name=name,
        email=email,
        password_hash=AuthService.hash_password(TEST_PASSWORD),
        role=role,
        created_at=now,
        updated_at=now,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session):
    """Create a regular team member"""
    return await _create_user(db_session, "Test User", "testuser@example.com", "member")


@pytest_asyncio.fixture
async def other_user(db_session):
    return await _create_user(db_session, "Other User", "other@example.com", "member")


@pytest_asyncio.fixture
async def admin_user(db_session):
    return await _create_user(db_session, "Admin User", "admin@example.com", "admin")


@pytest_asyncio.fixture
async def manager_user(db_session):
    return await _create_user(db_session, "Manager User", "manager@example.com", "Manager")


@pytest_asyncio.fixture
async def test_project(db_session, test_user):
    now = utcnow()
    project = Project(
        title="Launch",
        description="Product launch",
        due_date=date(2025, 1, 1),
        priority="High",
        status="active",
        created_by=test_user.uid,
        created_at=now,
        updated_at=now,
    )
    db_session.add(project)
    await db_session.commit()
    await db_session.refresh(project)
    return project


@pytest_asyncio.fixture
async def test_task(db_session, test_project, test_user):
    now = utcnow()
    task = Task(
        project_uid=test_project.uid,
        title="Write press release",
        status="to_do",
        created_by=test_user.uid,
        created_at=now,
        updated_at=now,
    )
    db_session.add(task)
    await db_session.commit()
    await db_session.refresh(task)
    return task


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.issue_token(user.uid, user.role)
    return {"Authorization": f"Bearer {token}"}
