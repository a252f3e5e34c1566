import asyncio
import json
from datetime import UTC, datetime
from typing import AsyncGenerator, Callable, Iterable, List

from loguru import logger

from core.infrastructure.factory import get_data_sanitizer

from ..domain.entities import FanOutResult, NewNotification
from ..domain.entities import Notification as DomainNotification
from ..domain.entities import NotificationFilter, NotificationPriority, NotificationType
from ..domain.exceptions import (
    InvalidNotificationType,
    NotificationError,
    SubscriptionError,
    ValidationError,
)
from .feed import LiveNotificationFeed
from .ports import NotificationRepository

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100


def parse_notification_type(value: str, field: str = "type") -> NotificationType:
    """Resolve a raw type value against the closed set of notification types.

    Raises
    ------
    InvalidNotificationType
        If the value is not a known notification type.
    """
    try:
        return NotificationType(value)
    except ValueError:
        raise InvalidNotificationType(value, field=field) from None


def parse_notification_types(
    values: Iterable[str] | None,
) -> List[NotificationType] | None:
    """Resolve a type filter; an empty or missing filter means all types."""
    if not values:
        return None

    return [parse_notification_type(value, field="types") for value in values]


def require_text(value: str | None, field: str) -> str:
    """Ensure a required text field is present and not blank.

    Raises
    ------
    ValidationError
        Naming the offending field.
    """
    if value is None or not str(value).strip():
        raise ValidationError(f"Field '{field}' is required", field=field)

    return value


def build_notification(
    new_notification: NewNotification, recipient_id: str | None = None
) -> DomainNotification:
    """Validate writer input and turn it into an unsaved domain notification.

    Parameters
    ----------
    new_notification : NewNotification
        Raw input from a producer.
    recipient_id : str | None, optional
        Overrides the input's recipient, used when the input is a fan-out template.

    Returns
    -------
    DomainNotification
        Notification ready for the store.

    Raises
    ------
    ValidationError
        If a required field is blank or the priority is unknown.
    InvalidNotificationType
        If the type is not one of the known notification types.
    """
    recipient_id = require_text(
        recipient_id if recipient_id is not None else new_notification.recipient_id,
        "recipient_id",
    )
    notification_type = parse_notification_type(new_notification.type)
    title = require_text(new_notification.title, "title")
    message = require_text(new_notification.message, "message")

    if new_notification.priority is None:
        priority = NotificationPriority.NORMAL
    else:
        try:
            priority = NotificationPriority(new_notification.priority)
        except ValueError:
            raise ValidationError(
                f"Unknown priority: {new_notification.priority!r}", field="priority"
            ) from None

    return DomainNotification(
        recipient_id=recipient_id,
        sender_id=new_notification.sender_id,
        type=notification_type,
        title=title,
        message=message,
        data=new_notification.data or {},
        action_url=new_notification.action_url,
        priority=priority,
    )


class CreateNotificationRule:
    """Business logic for validating and persisting a single notification.

    Live feeds are not pushed to from here; they observe the store's change channel.
    """

    def __init__(
        self,
        new_notification: NewNotification,
        notification_repository: NotificationRepository,
    ) -> None:
        self.new_notification = new_notification
        self.notification_repository = notification_repository

    async def execute(self) -> DomainNotification:
        """Execute the notification creation process.

        Returns
        -------
        DomainNotification
            Stored notification with ID, creation time and `read=False`.

        Raises
        ------
        ValidationError
            If a required field is blank or the priority is unknown.
        InvalidNotificationType
            If the type is not recognised. Nothing is stored.
        StoreUnavailable
            If the store cannot persist the notification.
        """
        notification = build_notification(self.new_notification)
        notification_id = await self.notification_repository.insert(notification)

        logger.info(
            f"📬 Created '{notification.type}' notification {notification_id} "
            f"for recipient {notification.recipient_id}"
        )

        return await self.notification_repository.get_by_id(notification_id)


class CreateNotificationsForManyRule:
    """Business logic for fanning one template out to many recipients.

    Each recipient gets an independent notification. A failure for one recipient
    is recorded in its result and never aborts the others; nothing is rolled back.
    Duplicate recipient IDs within one call receive a single notification.
    """

    def __init__(
        self,
        recipient_ids: List[str],
        template: NewNotification,
        notification_repository: NotificationRepository,
    ) -> None:
        self.recipient_ids = recipient_ids
        self.template = template
        self.notification_repository = notification_repository

    async def execute(self) -> List[FanOutResult]:
        """Execute the fan-out.

        Returns
        -------
        List[FanOutResult]
            One result per distinct recipient, in request order.

        Raises
        ------
        ValidationError
            If the template itself is invalid; no recipient is attempted.
        InvalidNotificationType
            If the template type is not recognised; no recipient is attempted.
        """
        build_notification(self.template, recipient_id="template")

        results: List[FanOutResult] = []
        for recipient_id in dict.fromkeys(self.recipient_ids):
            try:
                notification = await CreateNotificationRule(
                    new_notification=NewNotification(
                        recipient_id=recipient_id,
                        type=self.template.type,
                        title=self.template.title,
                        message=self.template.message,
                        sender_id=self.template.sender_id,
                        data=dict(self.template.data or {}),
                        action_url=self.template.action_url,
                        priority=self.template.priority,
                    ),
                    notification_repository=self.notification_repository,
                ).execute()
            except NotificationError as e:
                logger.warning(
                    f"🟠 Fan-out to recipient {recipient_id!r} failed: {e.code}: {e.detail}"
                )
                results.append(FanOutResult(recipient_id=recipient_id, error=e))
            else:
                results.append(
                    FanOutResult(recipient_id=recipient_id, notification=notification)
                )

        failed = sum(1 for result in results if not result.succeeded)
        logger.info(
            f"📦 Fanned out '{self.template.type}' to {len(results) - failed} "
            f"recipient(s), {failed} failed"
        )

        return results


class ListNotificationsRule:
    """Business logic for retrieving a recipient's notifications, newest first."""

    def __init__(
        self,
        recipient_id: str,
        notification_repository: NotificationRepository,
        unread_only: bool = False,
        types: List[str] | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        max_limit: int = MAX_LIST_LIMIT,
    ) -> None:
        self.recipient_id = recipient_id
        self.notification_repository = notification_repository
        self.unread_only = unread_only
        self.types = types
        self.limit = limit
        self.max_limit = max_limit

    async def execute(self) -> List[DomainNotification]:
        """Execute the notification retrieval process.

        Returns
        -------
        List[DomainNotification]
            At most `min(limit, max_limit)` notifications. Unknown recipients
            simply have none.

        Raises
        ------
        ValidationError
            If the recipient is blank or the limit is below 1.
        InvalidNotificationType
            If the type filter names an unknown type.
        """
        require_text(self.recipient_id, "recipient_id")

        if self.limit < 1:
            raise ValidationError("Field 'limit' must be at least 1", field="limit")

        return await self.notification_repository.query(
            NotificationFilter(
                recipient_id=self.recipient_id,
                read=False if self.unread_only else None,
                types=parse_notification_types(self.types),
            ),
            limit=min(self.limit, self.max_limit),
        )


class CountUnreadNotificationsRule:
    """Business logic for counting a recipient's unread notifications."""

    def __init__(
        self, recipient_id: str, notification_repository: NotificationRepository
    ) -> None:
        self.recipient_id = recipient_id
        self.notification_repository = notification_repository

    async def execute(self) -> int:
        require_text(self.recipient_id, "recipient_id")

        return await self.notification_repository.count(
            NotificationFilter(recipient_id=self.recipient_id, read=False)
        )


class GetNotificationRule:
    """Business logic for fetching one notification by ID."""

    def __init__(
        self, notification_id: str, notification_repository: NotificationRepository
    ) -> None:
        self.notification_id = notification_id
        self.notification_repository = notification_repository

    async def execute(self) -> DomainNotification:
        return await self.notification_repository.get_by_id(self.notification_id)


class MarkNotificationReadRule:
    """Business logic for marking one notification as read.

    Idempotent: the read flag and `read_at` are only written on the first
    transition, so repeated or concurrent calls leave the original `read_at`.
    """

    def __init__(
        self,
        notification_id: str,
        notification_repository: NotificationRepository,
    ) -> None:
        self.notification_id = notification_id
        self.notification_repository = notification_repository

    async def execute(self) -> bool:
        """Execute the mark as read process.

        Returns
        -------
        bool
            True if this call flipped the notification to read, False if it
            already was.

        Raises
        ------
        NotFound
            If the notification does not exist.
        """
        marked = await self.notification_repository.update(
            self.notification_id,
            {"read": True, "read_at": datetime.now(tz=UTC)},
            require_unread=True,
        )

        if marked:
            logger.info(f"📖 Marked notification {self.notification_id} as read")
        else:
            logger.debug(f"Notification {self.notification_id} was already read")

        return marked


class MarkAllNotificationsReadRule:
    """Business logic for marking every unread notification of a recipient as read.

    Snapshot-then-update: the unread set is read first and then updated in one
    statement. Notifications created between the two steps are not included;
    callers must not treat this as a barrier against concurrent creation.
    """

    def __init__(
        self, recipient_id: str, notification_repository: NotificationRepository
    ) -> None:
        self.recipient_id = recipient_id
        self.notification_repository = notification_repository

    async def execute(self) -> int:
        """Execute the bulk mark as read process.

        Returns
        -------
        int
            Number of notifications that transitioned to read.
        """
        require_text(self.recipient_id, "recipient_id")

        unread = await self.notification_repository.query(
            NotificationFilter(recipient_id=self.recipient_id, read=False),
            limit=None,
        )
        marked_count = await self.notification_repository.update_many(
            [notification.id for notification in unread],
            {"read": True, "read_at": datetime.now(tz=UTC)},
            require_unread=True,
        )

        logger.info(
            f"📚 Marked {marked_count} notification(s) read for recipient {self.recipient_id}"
        )

        return marked_count


class DeleteNotificationRule:
    """Business logic for deleting one notification."""

    def __init__(
        self, notification_id: str, notification_repository: NotificationRepository
    ) -> None:
        self.notification_id = notification_id
        self.notification_repository = notification_repository

    async def execute(self) -> None:
        await self.notification_repository.delete(self.notification_id)
        logger.info(f"🗑️ Deleted notification {self.notification_id}")


class StreamUnreadNotificationsRule:
    """Business logic for exposing a live feed as Server-Sent Events.

    Only the most recent snapshot is kept between reads of the stream; a slow
    client skips intermediate states instead of queueing them.
    """

    def __init__(
        self,
        feed: LiveNotificationFeed,
        serialize: Callable[[List[DomainNotification]], str],
    ) -> None:
        self.feed = feed
        self.serialize = serialize

    async def execute(self) -> AsyncGenerator[str, None]:
        """Execute the SSE stream.

        Yields
        ------
        str
            SSE-formatted unread snapshots, then a terminal error event if the
            feed fails.
        """
        sanitizer = get_data_sanitizer()
        latest: asyncio.Queue = asyncio.Queue(maxsize=1)

        def keep_latest(item) -> None:
            if latest.full():
                latest.get_nowait()
            latest.put_nowait(item)

        handle = self.feed.subscribe(
            on_update=lambda unread: keep_latest(("snapshot", unread)),
            on_error=lambda error: keep_latest(("error", error)),
        )
        logger.info(f"📡 SSE stream opened for recipient {self.feed.recipient_id}")

        try:
            while True:
                kind, payload = await latest.get()

                if kind == "error":
                    error: SubscriptionError = payload
                    body = json.dumps({"error": error.code, "detail": error.detail})
                    logger.warning(sanitizer.sanitize_for_logging(body))
                    yield f"event: error\ndata: {body}\n\n"
                    return

                yield f"data: {self.serialize(payload)}\n\n"

        finally:
            handle.cancel()
            logger.info(f"📴 SSE stream closed for recipient {self.feed.recipient_id}")
