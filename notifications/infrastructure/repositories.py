import asyncio
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Dict, List

from loguru import logger
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import asc, desc, select

from ..application.ports import NotificationChangeNotifier
from ..application.ports import NotificationRepository as DomainNotificationRepository
from ..domain.entities import Notification as DomainNotification
from ..domain.entities import (
    NotificationChangeEvent,
    NotificationFilter,
    NotificationPriority,
    NotificationType,
)
from ..domain.exceptions import NotFound, StoreUnavailable
from .models import Notification


class NotificationRepository(DomainNotificationRepository):
    """Concrete implementation of NotificationRepository backed by SQLModel tables.

    Every committed write is announced on the recipient's change channel.
    """

    def __init__(
        self,
        session: AsyncSession,
        change_notifier: NotificationChangeNotifier | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """Initialize the repository with a database session.

        Parameters
        ----------
        session : AsyncSession
            Asynchronous SQLAlchemy database session
        change_notifier : NotificationChangeNotifier | None, optional
            Channel receiving an announcement after each committed write
        timeout_seconds : float | None, optional
            Upper bound for each store call, None for no bound
        """
        self._session = session
        self._change_notifier = change_notifier
        self._timeout_seconds = timeout_seconds

    async def insert(self, notification: DomainNotification) -> str:
        """Create a new notification record in the database.

        Parameters
        ----------
        notification : DomainNotification
            Domain notification entity to be created

        Returns
        -------
        str
            Database-assigned notification ID

        Raises
        ------
        StoreUnavailable
            If the database rejects the write or cannot be reached
        """
        pydantic_notification = self._to_pydantic_model(notification)

        async with self._store_operation("insert notification"):
            self._session.add(pydantic_notification)
            await self._session.commit()

        await self._announce(
            pydantic_notification.recipient_id,
            NotificationChangeEvent.CREATED,
            notification_id=pydantic_notification.id,
        )

        return pydantic_notification.id

    async def get_by_id(self, notification_id: str) -> DomainNotification:
        """Retrieve a notification by its ID.

        Parameters
        ----------
        notification_id : str
            ID of the notification

        Returns
        -------
        DomainNotification
            Stored notification

        Raises
        ------
        NotFound
            If no notification has this ID
        StoreUnavailable
            If the database cannot be reached
        """
        return self._to_domain_model(await self._get_record(notification_id))

    async def update(
        self,
        notification_id: str,
        changes: Dict[str, Any],
        *,
        require_unread: bool = False,
    ) -> bool:
        """Apply a partial update to one notification.

        Parameters
        ----------
        notification_id : str
            ID of the notification
        changes : Dict[str, Any]
            Column names mapped to new values
        require_unread : bool, default=False
            Only update the row while it is still unread

        Returns
        -------
        bool
            True if the row changed

        Raises
        ------
        NotFound
            If no notification has this ID, including one deleted mid-update
        StoreUnavailable
            If the database rejects the write or cannot be reached
        """
        pydantic_notification = await self._get_record(notification_id)

        query = update(Notification).where(Notification.id == notification_id)
        if require_unread:
            query = query.where(Notification.read == False)  # noqa: E712

        query = query.values(**changes).execution_options(synchronize_session=False)

        async with self._store_operation("update notification"):
            result = await self._session.execute(query)
            await self._session.commit()

        if result.rowcount == 0:
            # the row may have been deleted after it was loaded
            if not await self._exists(notification_id):
                raise NotFound(notification_id)
            return False

        await self._announce(
            pydantic_notification.recipient_id,
            self._change_event(changes),
            notification_id=notification_id,
        )
        return True

    async def update_many(
        self,
        notification_ids: List[str],
        changes: Dict[str, Any],
        *,
        require_unread: bool = False,
    ) -> int:
        """Apply the same partial update to several notifications.

        Parameters
        ----------
        notification_ids : List[str]
            IDs of the notifications, unknown IDs are ignored
        changes : Dict[str, Any]
            Column names mapped to new values
        require_unread : bool, default=False
            Only update rows that are still unread

        Returns
        -------
        int
            Number of rows changed

        Raises
        ------
        StoreUnavailable
            If the database rejects the write or cannot be reached
        """
        if not notification_ids:
            return 0

        recipients_query = (
            select(Notification.recipient_id)
            .where(Notification.id.in_(notification_ids))
            .distinct()
        )

        query = update(Notification).where(Notification.id.in_(notification_ids))
        if require_unread:
            query = query.where(Notification.read == False)  # noqa: E712

        query = query.values(**changes).execution_options(synchronize_session=False)

        async with self._store_operation("update notifications"):
            recipient_ids = (await self._session.execute(recipients_query)).scalars()
            recipient_ids = list(recipient_ids.all())
            result = await self._session.execute(query)
            await self._session.commit()

        if result.rowcount:
            for recipient_id in recipient_ids:
                await self._announce(
                    recipient_id, self._change_event(changes), count=result.rowcount
                )

        return result.rowcount

    async def delete(self, notification_id: str) -> None:
        """Delete a notification.

        Parameters
        ----------
        notification_id : str
            ID of the notification

        Raises
        ------
        NotFound
            If no notification has this ID
        StoreUnavailable
            If the database rejects the write or cannot be reached
        """
        pydantic_notification = await self._get_record(notification_id)
        recipient_id = pydantic_notification.recipient_id

        async with self._store_operation("delete notification"):
            await self._session.delete(pydantic_notification)
            await self._session.commit()

        await self._announce(
            recipient_id,
            NotificationChangeEvent.DELETED,
            notification_id=notification_id,
        )

    async def query(
        self,
        notification_filter: NotificationFilter,
        limit: int | None = None,
        newest_first: bool = True,
    ) -> List[DomainNotification]:
        """Retrieve notifications matching a filter.

        Parameters
        ----------
        notification_filter : NotificationFilter
            Recipient, read-state and type criteria
        limit : int | None, optional
            Maximum number of notifications to return
        newest_first : bool, default=True
            Sort by creation time descending

        Returns
        -------
        List[DomainNotification]
            List of notifications matching the criteria

        Raises
        ------
        StoreUnavailable
            If the database cannot be reached
        """
        query = self._apply_filter(select(Notification), notification_filter)

        ordering = desc if newest_first else asc
        query = query.order_by(ordering(Notification.created_at)).limit(limit)
        query = query.execution_options(populate_existing=True)

        async with self._store_operation("query notifications"):
            pydantic_notifications = await self._session.execute(query)
            pydantic_notifications = pydantic_notifications.scalars().all()

        return [
            self._to_domain_model(notification)
            for notification in pydantic_notifications
        ]

    async def count(self, notification_filter: NotificationFilter) -> int:
        """Count notifications matching a filter.

        Parameters
        ----------
        notification_filter : NotificationFilter
            Recipient, read-state and type criteria

        Returns
        -------
        int
            Number of matching notifications

        Raises
        ------
        StoreUnavailable
            If the database cannot be reached
        """
        query = self._apply_filter(
            select(func.count()).select_from(Notification), notification_filter
        )

        async with self._store_operation("count notifications"):
            result = await self._session.execute(query)

        return result.scalar_one()

    async def _get_record(self, notification_id: str) -> Notification:
        async with self._store_operation("fetch notification"):
            pydantic_notification = await self._session.get(
                Notification, notification_id, populate_existing=True
            )

        if pydantic_notification is None:
            raise NotFound(notification_id)

        return pydantic_notification

    async def _exists(self, notification_id: str) -> bool:
        query = select(Notification.id).where(Notification.id == notification_id)

        async with self._store_operation("fetch notification"):
            result = await self._session.execute(query)

        return result.first() is not None

    @asynccontextmanager
    async def _store_operation(self, action: str):
        """Translate database failures and timeouts into `StoreUnavailable`.

        Parameters
        ----------
        action : str
            Short description of the operation, used in logs and errors

        Raises
        ------
        StoreUnavailable
            If the wrapped block raised a SQLAlchemy error or timed out
        """
        try:
            async with asyncio.timeout(self._timeout_seconds):
                yield

        except (SQLAlchemyError, TimeoutError) as e:
            await self._rollback()
            logger.error(f"🔴 Failed to {action}: {type(e).__name__}: {e}")
            raise StoreUnavailable(
                f"Notification store failed to {action}: {type(e).__name__}"
            ) from e

    async def _rollback(self) -> None:
        try:
            await self._session.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"🟠 Rollback failed: {type(e).__name__}: {e}")

    async def _announce(
        self, recipient_id: str, event: NotificationChangeEvent, **details: Any
    ) -> None:
        """Publish a change for a recipient after a committed write.

        The write is already durable, so a publishing failure is only logged.
        Live feeds re-snapshot on reconnect.
        """
        if self._change_notifier is None:
            return

        try:
            await self._change_notifier.publish(
                recipient_id, {"event": event.value, **details}
            )
        except Exception as e:
            logger.warning(
                f"🟠 Could not announce '{event.value}' for recipient {recipient_id}: {e}"
            )

    @staticmethod
    def _change_event(changes: Dict[str, Any]) -> NotificationChangeEvent:
        if changes.get("read"):
            return NotificationChangeEvent.READ
        return NotificationChangeEvent.UPDATED

    @staticmethod
    def _apply_filter(query, notification_filter: NotificationFilter):
        query = query.where(Notification.recipient_id == notification_filter.recipient_id)

        if notification_filter.read is not None:
            query = query.where(Notification.read == notification_filter.read)

        if notification_filter.types:
            query = query.where(
                Notification.type.in_([t.value for t in notification_filter.types])
            )

        return query

    def _to_pydantic_model(
        self, domain_notification: DomainNotification
    ) -> Notification:
        """Convert a domain notification entity to a pydantic model.

        Parameters
        ----------
        domain_notification : DomainNotification
            Domain entity to convert

        Returns
        -------
        Notification
            Pydantic model instance with store-assigned ID and creation time
        """
        return Notification(
            recipient_id=domain_notification.recipient_id,
            sender_id=domain_notification.sender_id,
            type=domain_notification.type,
            title=domain_notification.title,
            message=domain_notification.message,
            data=domain_notification.data,
            action_url=domain_notification.action_url,
            priority=domain_notification.priority,
            read=False,
            archived=domain_notification.archived,
        )

    def _to_domain_model(
        self, pydantic_notification: Notification
    ) -> DomainNotification:
        """Convert a pydantic notification model to a domain entity.

        Parameters
        ----------
        pydantic_notification : Notification
            Pydantic model to convert

        Returns
        -------
        DomainNotification
            Domain notification entity instance
        """
        return DomainNotification(
            id=pydantic_notification.id,
            recipient_id=pydantic_notification.recipient_id,
            sender_id=pydantic_notification.sender_id,
            type=NotificationType(pydantic_notification.type),
            title=pydantic_notification.title,
            message=pydantic_notification.message,
            data=pydantic_notification.data or {},
            action_url=pydantic_notification.action_url,
            priority=NotificationPriority(pydantic_notification.priority),
            read=pydantic_notification.read,
            read_at=self._as_utc(pydantic_notification.read_at),
            archived=pydantic_notification.archived,
            created_at=self._as_utc(pydantic_notification.created_at),
        )

    @staticmethod
    def _as_utc(value: datetime | None) -> datetime | None:
        # SQLite drops tzinfo on the way back
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
