from __future__ import annotations

import asyncio
import os
import sys
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOGGING_LEVEL", "DEBUG")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(PROJECT_ROOT))

# ruff: noqa: E402
from config.database import get_database_session
from main import create_app
from notifications.application.ports import NotificationChangeNotifier
from notifications.domain.exceptions import SubscriptionError
from notifications.infrastructure import models  # noqa: F401
from notifications.infrastructure.factory import (
    get_notification_change_notifier,
    get_notification_repository_scope,
)
from notifications.infrastructure.repositories import NotificationRepository


class StubChangeNotifier(NotificationChangeNotifier):
    """In-process change channel with hooks for refusing and dropping listeners."""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any]]] = []
        self.refuse_listens = 0
        self.listen_calls = 0
        self._listeners: dict[str, list[asyncio.Queue]] = defaultdict(list)

    async def publish(self, recipient_id: str, change: dict[str, Any]) -> None:
        self.published.append((recipient_id, change))
        for queue in list(self._listeners[recipient_id]):
            queue.put_nowait(change)

    @asynccontextmanager
    async def listen(self, recipient_id: str):
        self.listen_calls += 1
        if self.refuse_listens:
            self.refuse_listens -= 1
            raise SubscriptionError(f"refused listener for {recipient_id}")

        queue: asyncio.Queue = asyncio.Queue()
        self._listeners[recipient_id].append(queue)
        try:
            yield self._changes(queue)
        finally:
            self._listeners[recipient_id].remove(queue)

    async def _changes(self, queue: asyncio.Queue):
        while True:
            change = await queue.get()
            if change is None:
                return
            if isinstance(change, Exception):
                raise change
            yield change

    def drop(self, recipient_id: str, error: Exception | None = None) -> None:
        """End every open listener of a recipient, optionally with an error."""
        for queue in list(self._listeners[recipient_id]):
            queue.put_nowait(error)

    def listener_count(self, recipient_id: str) -> int:
        return len(self._listeners[recipient_id])


async def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture()
def change_notifier() -> StubChangeNotifier:
    return StubChangeNotifier()


@pytest.fixture()
async def repository(session_factory, change_notifier) -> AsyncIterator[NotificationRepository]:
    async with session_factory() as session:
        yield NotificationRepository(session, change_notifier=change_notifier)


@pytest.fixture()
def repository_scope(session_factory, change_notifier):
    @asynccontextmanager
    async def scope():
        async with session_factory() as session:
            yield NotificationRepository(session, change_notifier=change_notifier)

    return scope


@pytest.fixture()
def app(session_factory, change_notifier, repository_scope):
    app = create_app()

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_database_session] = override_session
    app.dependency_overrides[get_notification_change_notifier] = lambda: change_notifier
    app.dependency_overrides[get_notification_repository_scope] = lambda: repository_scope
    return app


@pytest.fixture()
async def client(app) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client


@pytest.fixture()
def wait_until():
    return _wait_until
