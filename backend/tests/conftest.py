# tests/conftest.py

from datetime import datetime, timezone
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import taskhub.models  # noqa: F401
from taskhub.api.v1.deps import get_event_publisher
from taskhub.db.base import Base
from taskhub.db.session import build_session_factory, get_db_session
from taskhub.models.user import User
from taskhub.services.events import build_event_publisher
from taskhub.services.task_lifecycle import TaskLifecycleService
from taskhub.utils import clock

from .fakes import FakeClock, RecordingPublisher

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
async def engine(tmp_path: Path):
    """Fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskhub.sqlite3'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock(START)
    monkeypatch.setattr(clock, "utcnow", fake)
    return fake


async def _user(db: AsyncSession, name: str, email: str, role: str = "member") -> User:
    user = User(name=name, email=email, role=role)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture()
async def admin(db) -> User:
    return await _user(db, "Ada Admin", "ada@example.com", role="admin")


@pytest.fixture()
async def alice(db) -> User:
    return await _user(db, "Alice Member", "alice@example.com")


@pytest.fixture()
async def bob(db) -> User:
    return await _user(db, "Bob Member", "bob@example.com")


@pytest.fixture()
def events() -> RecordingPublisher:
    """Recorder with no projections attached."""
    return RecordingPublisher()


@pytest.fixture()
def projected_events(session_factory) -> RecordingPublisher:
    """Recorder wired to the real notification and activity projections."""
    return build_event_publisher(session_factory, RecordingPublisher())


@pytest.fixture()
def lifecycle(db, events) -> TaskLifecycleService:
    return TaskLifecycleService(db, events)


@pytest.fixture()
async def client(session_factory, projected_events):
    """HTTP client against a fresh app bound to the test database."""
    from taskhub.main import create_app

    app = create_app()

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_event_publisher] = lambda: projected_events

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
