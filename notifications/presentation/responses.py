from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..domain.entities import FanOutResult
from ..domain.entities import Notification as DomainNotification


class CamelResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationResponse(CamelResponse):
    """Response model for a notification.

    Serialized in camelCase with ISO-8601 timestamps.

    Attributes
    ----------
    id : str
        Unique identifier of the notification
    recipient_id : str
        Identifier of the recipient
    sender_id : str | None
        Identifier of the sender
    type : str
        Category of the notification
    title : str
        Brief title of the notification
    message : str
        Detailed notification message
    data : Dict[str, Any]
        Opaque payload associated with the notification
    action_url : str | None
        Deep link opened when the notification is activated
    priority : str
        Urgency level of the notification
    read : bool
        Whether the notification has been read
    read_at : datetime | None
        Timestamp of the first read
    archived : bool
        Whether the notification has been archived
    created_at : datetime
        Timestamp of notification creation
    """

    id: str
    recipient_id: str
    sender_id: str | None = None
    type: str
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: str | None = None
    priority: str
    read: bool
    read_at: datetime | None = None
    archived: bool = False
    created_at: datetime

    @classmethod
    def from_domain(cls, notification: DomainNotification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            recipient_id=notification.recipient_id,
            sender_id=notification.sender_id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            data=notification.data,
            action_url=notification.action_url,
            priority=notification.priority.value,
            read=notification.read,
            read_at=notification.read_at,
            archived=notification.archived,
            created_at=notification.created_at,
        )


class UnreadCountResponse(CamelResponse):
    count: int


class MarkAllReadResponse(CamelResponse):
    marked_count: int


class FanOutErrorResponse(CamelResponse):
    error: str
    detail: str


class FanOutResultResponse(CamelResponse):
    """Response model for one recipient of a fan-out.

    Attributes
    ----------
    recipient_id : str
        Recipient this result belongs to
    notification : NotificationResponse | None
        Created notification, None when creation failed
    error : FanOutErrorResponse | None
        Failure code and detail, None when creation succeeded
    """

    recipient_id: str
    notification: NotificationResponse | None = None
    error: FanOutErrorResponse | None = None

    @classmethod
    def from_domain(cls, result: FanOutResult) -> "FanOutResultResponse":
        if result.succeeded:
            return cls(
                recipient_id=result.recipient_id,
                notification=NotificationResponse.from_domain(result.notification),
            )

        return cls(
            recipient_id=result.recipient_id,
            error=FanOutErrorResponse(
                error=getattr(result.error, "code", type(result.error).__name__),
                detail=getattr(result.error, "detail", str(result.error)),
            ),
        )


class FanOutResponse(CamelResponse):
    results: List[FanOutResultResponse]
