import json
from typing import List

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import StreamingResponse
from loguru import logger

from config.base import Settings, get_settings

from ..application.feed import LiveNotificationFeed
from ..application.rules import (
    CountUnreadNotificationsRule,
    CreateNotificationRule,
    CreateNotificationsForManyRule,
    DeleteNotificationRule,
    GetNotificationRule,
    ListNotificationsRule,
    MarkAllNotificationsReadRule,
    MarkNotificationReadRule,
    StreamUnreadNotificationsRule,
)
from ..domain.entities import Notification as DomainNotification
from ..infrastructure.factory import (
    get_notification_change_notifier,
    get_notification_repository,
    get_notification_repository_scope,
)
from .requests import (
    CreateNotificationRequest,
    CreateNotificationsForManyRequest,
    MarkAllReadRequest,
)
from .responses import (
    FanOutResponse,
    FanOutResultResponse,
    MarkAllReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/notifications")


def serialize_notifications(notifications: List[DomainNotification]) -> str:
    """Render an unread snapshot as the JSON array sent in one SSE event."""
    return json.dumps(
        [
            NotificationResponse.from_domain(notification).model_dump(
                mode="json", by_alias=True
            )
            for notification in notifications
        ]
    )


def split_types(types: List[str] | None) -> List[str]:
    """Accept `types` both repeated and comma separated."""
    if not types:
        return []

    return [item.strip() for value in types for item in value.split(",") if item.strip()]


@router.post(
    "", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED
)
async def create_notification(
    request: CreateNotificationRequest,
    notification_repository=Depends(get_notification_repository),
):
    """Create a notification for a single recipient.

    Parameters
    ----------
    request : CreateNotificationRequest
        Notification creation request data
    notification_repository
        Dependency-injected notification repository

    Returns
    -------
    NotificationResponse
        Created notification
    """
    create_notification_rule = CreateNotificationRule(
        new_notification=request.to_new_notification(),
        notification_repository=notification_repository,
    )

    created_notification = await create_notification_rule.execute()

    return NotificationResponse.from_domain(created_notification)


@router.post("/bulk", response_model=FanOutResponse, status_code=status.HTTP_200_OK)
async def create_notifications_for_many(
    request: CreateNotificationsForManyRequest,
    notification_repository=Depends(get_notification_repository),
):
    """Fan one notification out to many recipients.

    Per-recipient failures are reported in the results; the request itself only
    fails when the shared content is invalid.

    Parameters
    ----------
    request : CreateNotificationsForManyRequest
        Recipients and shared notification content
    notification_repository
        Dependency-injected notification repository

    Returns
    -------
    FanOutResponse
        One result per distinct recipient, in request order
    """
    fan_out_rule = CreateNotificationsForManyRule(
        recipient_ids=request.recipient_ids,
        template=request.notification.to_new_notification(),
        notification_repository=notification_repository,
    )

    results = await fan_out_rule.execute()

    return FanOutResponse(
        results=[FanOutResultResponse.from_domain(result) for result in results]
    )


@router.get(
    "", response_model=List[NotificationResponse], status_code=status.HTTP_200_OK
)
async def list_notifications(
    recipient_id: str = Query(alias="recipientId"),
    unread_only: bool = Query(False, alias="unreadOnly"),
    types: List[str] | None = Query(None),
    limit: int | None = Query(None),
    notification_repository=Depends(get_notification_repository),
    settings: Settings = Depends(get_settings),
):
    """List a recipient's notifications, newest first.

    Parameters
    ----------
    recipient_id : str
        Recipient whose notifications are listed
    unread_only : bool
        If True, return only unread notifications
    types : List[str] | None
        Type filter, repeated or comma separated; empty means all types
    limit : int | None
        Maximum number of notifications, capped by configuration
    notification_repository
        Dependency-injected notification repository
    settings : Settings
        Application settings

    Returns
    -------
    List[NotificationResponse]
        Matching notifications
    """
    list_notifications_rule = ListNotificationsRule(
        recipient_id=recipient_id,
        notification_repository=notification_repository,
        unread_only=unread_only,
        types=split_types(types),
        limit=settings.notification_list_default_limit if limit is None else limit,
        max_limit=settings.notification_list_max_limit,
    )

    notifications = await list_notifications_rule.execute()

    return [NotificationResponse.from_domain(n) for n in notifications]


@router.get(
    "/unread-count", response_model=UnreadCountResponse, status_code=status.HTTP_200_OK
)
async def count_unread_notifications(
    recipient_id: str = Query(alias="recipientId"),
    notification_repository=Depends(get_notification_repository),
):
    count_rule = CountUnreadNotificationsRule(
        recipient_id=recipient_id, notification_repository=notification_repository
    )

    return UnreadCountResponse(count=await count_rule.execute())


@router.get("/stream", response_class=StreamingResponse)
async def stream_notifications(
    recipient_id: str = Query(alias="recipientId"),
    repository_scope=Depends(get_notification_repository_scope),
    change_notifier=Depends(get_notification_change_notifier),
    settings: Settings = Depends(get_settings),
):
    """Stream a recipient's unread snapshot over Server-Sent Events.

    Every event carries the complete unread list, newest first. The stream ends
    with an `error` event if the live feed cannot recover.

    Parameters
    ----------
    recipient_id : str
        Recipient whose unread notifications are streamed
    repository_scope
        Dependency-injected factory of short-lived repositories
    change_notifier
        Dependency-injected change channel
    settings : Settings
        Application settings

    Returns
    -------
    StreamingResponse
        SSE stream of unread snapshots
    """
    logger.info(f"Establishing SSE connection for recipient {recipient_id}")

    feed = LiveNotificationFeed(
        recipient_id=recipient_id,
        repository_scope=repository_scope,
        change_notifier=change_notifier,
        snapshot_limit=settings.notification_feed_snapshot_limit,
        reconnect_attempts=settings.notification_feed_reconnect_attempts,
        reconnect_delay_seconds=settings.notification_feed_reconnect_delay_seconds,
    )
    stream_rule = StreamUnreadNotificationsRule(
        feed=feed, serialize=serialize_notifications
    )

    return StreamingResponse(
        stream_rule.execute(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post(
    "/mark-all-read", response_model=MarkAllReadResponse, status_code=status.HTTP_200_OK
)
async def mark_all_notifications_read(
    request: MarkAllReadRequest,
    notification_repository=Depends(get_notification_repository),
):
    """Mark every unread notification of a recipient as read.

    Returns
    -------
    MarkAllReadResponse
        Number of notifications that transitioned to read
    """
    mark_all_rule = MarkAllNotificationsReadRule(
        recipient_id=request.recipient_id,
        notification_repository=notification_repository,
    )

    return MarkAllReadResponse(marked_count=await mark_all_rule.execute())


@router.get(
    "/{notification_id}",
    response_model=NotificationResponse,
    status_code=status.HTTP_200_OK,
)
async def get_notification(
    notification_id: str,
    notification_repository=Depends(get_notification_repository),
):
    get_notification_rule = GetNotificationRule(
        notification_id=notification_id,
        notification_repository=notification_repository,
    )

    return NotificationResponse.from_domain(await get_notification_rule.execute())


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_notification_read(
    notification_id: str,
    notification_repository=Depends(get_notification_repository),
):
    """Mark a specific notification as read.

    Marking an already read notification succeeds and keeps its original
    read time.

    Parameters
    ----------
    notification_id : str
        ID of the notification to mark as read
    notification_repository
        Dependency-injected notification repository
    """
    mark_notification_rule = MarkNotificationReadRule(
        notification_id=notification_id,
        notification_repository=notification_repository,
    )

    await mark_notification_rule.execute()

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    notification_repository=Depends(get_notification_repository),
):
    delete_rule = DeleteNotificationRule(
        notification_id=notification_id,
        notification_repository=notification_repository,
    )

    await delete_rule.execute()

    return Response(status_code=status.HTTP_204_NO_CONTENT)
