# tests/conftest.py

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from app.cache.layer import CacheLayer
from app.core.config import Settings
from app.database import Database
from app.dependencies import get_task_service
from app.main import create_app
from app.models import Task
from app.repositories.task_repository import TaskRepository
from app.services.task_service import TaskService


class FakeTaskRepo:
    """
    In-memory TaskRepository that counts every call.

    Keeps coordinator tests about cache/store interaction only: which
    store calls happen, in what number, and what they return.
    """

    _epoch = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __init__(self) -> None:
        self.tasks: dict[int, Task] = {}
        self.next_id = 1
        self.calls: Counter[str] = Counter()
        self.fail_with: Exception | None = None

    async def _check(self, name: str) -> None:
        self.calls[name] += 1
        # yield like a real driver so gathered calls interleave
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with

    async def list_all(self) -> list[Task]:
        await self._check("list_all")
        return sorted(
            self.tasks.values(), key=lambda t: (t.created_at, t.id), reverse=True
        )

    async def get(self, task_id: int) -> Task | None:
        await self._check("get")
        return self.tasks.get(task_id)

    async def insert(self, title: str, description: str | None) -> Task:
        await self._check("insert")
        task = Task(
            id=self.next_id,
            title=title,
            description=description,
            completed=False,
            created_at=self._epoch + timedelta(seconds=self.next_id),
        )
        self.tasks[task.id] = task
        self.next_id += 1
        return task

    async def update(self, task_id, title, description, completed) -> Task | None:
        await self._check("update")
        task = self.tasks.get(task_id)
        if task is None:
            return None
        task.title = title
        task.description = description
        task.completed = completed
        return task

    async def delete(self, task_id: int) -> int | None:
        await self._check("delete")
        if self.tasks.pop(task_id, None) is None:
            return None
        return task_id


def failing_redis() -> AsyncMock:
    """Redis client whose every command fails as if the server were down."""
    redis = AsyncMock()
    down = RedisConnectionError("Connection refused")
    redis.ping.side_effect = down
    redis.get.side_effect = down
    redis.set.side_effect = down
    redis.delete.side_effect = down
    return redis


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'tasks.sqlite3'}",
        redis_dsn="memory://",
        cache_namespace="test:",
        cache_ttl_seconds=60,
        log_level="DEBUG",
    )


@pytest.fixture()
def clock() -> list[float]:
    """Mutable monotonic clock for the memory cache backend."""
    return [1000.0]


@pytest.fixture()
async def cache(settings: Settings, clock: list[float]) -> CacheLayer:
    layer = CacheLayer(settings, timer=lambda: clock[0])
    await layer.init_cache()
    yield layer
    await layer.close()


@pytest.fixture()
async def broken_cache(settings: Settings) -> CacheLayer:
    layer = CacheLayer(settings, redis=failing_redis())
    await layer.init_cache()
    return layer


@pytest.fixture()
def repo() -> FakeTaskRepo:
    return FakeTaskRepo()


@pytest.fixture()
def service(repo: FakeTaskRepo, cache: CacheLayer) -> TaskService:
    return TaskService(repo, cache, cache_ttl=60)


@pytest.fixture()
async def database(settings: Settings) -> Database:
    db = Database(settings)
    db.connect()
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture()
def repository(database: Database) -> TaskRepository:
    return TaskRepository(database.session_factory)


async def _client_for(app, **transport_kwargs):
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app, **transport_kwargs)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture()
def app(settings: Settings):
    return create_app(settings)


@pytest.fixture()
async def client(app):
    """Async client against the app with SQLite and the memory cache."""
    async for c in _client_for(app):
        yield c


@pytest.fixture()
async def degraded_client(settings: Settings):
    """Async client against an app whose Redis is unreachable."""
    app = create_app(settings, cache=CacheLayer(settings, redis=failing_redis()))
    async for c in _client_for(app):
        yield c


@pytest.fixture()
async def store_down_client(tmp_path: Path):
    """Async client against an app whose database cannot be opened."""
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'tasks.sqlite3'}",
        redis_dsn="memory://",
        auto_create_tables=False,
    )
    async for c in _client_for(create_app(settings)):
        yield c


class ExplodingRepo(FakeTaskRepo):
    """Repository that fails with an error the app has no mapping for."""

    async def list_all(self) -> list[Task]:
        raise RuntimeError("boom")


@pytest.fixture()
async def crashing_client(settings: Settings):
    """
    Async client whose task service hits an unexpected exception.

    raise_app_exceptions=False lets the 500 response through instead of
    re-raising the server error into the test.
    """
    app = create_app(settings)
    app.dependency_overrides[get_task_service] = lambda: TaskService(
        ExplodingRepo(), app.state.cache, cache_ttl=60
    )
    async for c in _client_for(app, raise_app_exceptions=False):
        yield c
