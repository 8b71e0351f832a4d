"""Shared fixtures: a throwaway SQLite database, in-memory cache, fake notifier."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CACHE_BACKEND", "memory")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.service import TaskCache, task_cache_config
from app.cache.store import MemoryCacheStore
from app.core.config import Settings
from app.core.decorators import drain_background_tasks
from app.database import create_db_and_tables, get_db, get_session_factory
from app.dependencies import get_cache_store, get_notifier
from app.main import app
from app.models import Project, Tag, User
from app.services.activity_service import ActivityService
from app.services.task_service import TaskService

from tests.helpers import RecordingNotifier


@pytest_asyncio.fixture(autouse=True)
async def drain_notifications():
    yield
    await drain_background_tasks()


@pytest.fixture
def settings():
    return Settings(_env_file=None, cache_backend="memory", notification_delay_seconds=0)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache_store():
    return MemoryCacheStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def activities(session_factory):
    return ActivityService(session_factory)


@pytest.fixture
def task_service(db, cache_store, activities, notifier, settings):
    cache = TaskCache(cache_store, task_cache_config(settings))
    return TaskService(db, cache, activities, notifier)


@pytest_asyncio.fixture
async def seed(db):
    """One user, one project and two tags; returns their ids."""
    alice = User(name="Alice", email="alice@example.com")
    bob = User(name="Bob", email="bob@example.com")
    project = Project(name="Website", description="Relaunch")
    urgent = Tag(name="urgent")
    backend = Tag(name="backend")
    db.add_all([alice, bob, project, urgent, backend])
    await db.commit()
    return {
        "alice": alice.id,
        "bob": bob.id,
        "project": project.id,
        "tags": [urgent.id, backend.id],
    }


@pytest_asyncio.fixture
async def client(session_factory, cache_store, notifier):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_cache_store] = lambda: cache_store
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
