from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.base import Settings, get_settings
from config.database import database_session, get_database_session
from core.infrastructure.factory import get_redis_service

from ..application.ports import NotificationChangeNotifier, RepositoryScope
from .repositories import NotificationRepository
from .services import RedisNotificationChangeNotifier


async def get_notification_change_notifier() -> NotificationChangeNotifier:
    """Provide the Redis-backed change channel.

    Returns
    -------
    NotificationChangeNotifier
        Instance of RedisNotificationChangeNotifier
    """
    redis_service = await get_redis_service()
    return RedisNotificationChangeNotifier(redis_service)


async def get_notification_repository(
    session: AsyncSession = Depends(get_database_session),
    change_notifier: NotificationChangeNotifier = Depends(
        get_notification_change_notifier
    ),
    settings: Settings = Depends(get_settings),
) -> NotificationRepository:
    """Provide a request-scoped NotificationRepository instance.

    Parameters
    ----------
    session : AsyncSession
        Asynchronous SQLAlchemy database session, injected as a dependency
    change_notifier : NotificationChangeNotifier
        Channel announcing committed writes, injected as a dependency
    settings : Settings
        Application settings, injected as a dependency

    Returns
    -------
    NotificationRepository
        Instance of NotificationRepository
    """
    return NotificationRepository(
        session,
        change_notifier=change_notifier,
        timeout_seconds=settings.store_timeout_seconds,
    )


async def get_notification_repository_scope(
    change_notifier: NotificationChangeNotifier = Depends(
        get_notification_change_notifier
    ),
    settings: Settings = Depends(get_settings),
) -> RepositoryScope:
    """Provide a factory of short-lived repositories for long-running streams.

    A live feed outlives the request that opened it, so each snapshot opens and
    closes its own session instead of holding the request session.

    Returns
    -------
    RepositoryScope
        Callable returning an async context manager around a fresh repository
    """

    @asynccontextmanager
    async def repository_scope() -> AsyncIterator[NotificationRepository]:
        async with database_session() as session:
            yield NotificationRepository(
                session,
                change_notifier=change_notifier,
                timeout_seconds=settings.store_timeout_seconds,
            )

    return repository_scope
