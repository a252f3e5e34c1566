from datetime import datetime
from enum import StrEnum
from typing import Any, Dict, List

from pydantic import ConfigDict, Field, dataclasses


class NotificationType(StrEnum):
    """Closed set of notification types produced across the marketplace."""

    NEW_MESSAGE = "new_message"
    LIVE_SESSION_STARTING = "live_session_starting"
    LIVE_SESSION_REMINDER = "live_session_reminder"
    COURSE_UPDATE = "course_update"
    ASSIGNMENT_DUE = "assignment_due"
    GRADE_RECEIVED = "grade_received"
    COURSE_COMPLETED = "course_completed"
    NEW_COURSE_AVAILABLE = "new_course_available"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    SYSTEM_ANNOUNCEMENT = "system_announcement"


class NotificationPriority(StrEnum):
    """Priority levels for notifications categorization and filtering."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class NotificationChangeEvent(StrEnum):
    """Kinds of store writes announced on a recipient's change channel.

    `UPDATED` covers partial updates that do not set `read`, such as edits
    made directly through the repository's `update` / `update_many`.
    """

    CREATED = "created"
    READ = "read"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclasses.dataclass
class Notification:
    """Core domain entity representing a notification addressed to one recipient.

    Attributes
    ----------
    recipient_id : str
        Identifier of the user this notification is for.
    type : NotificationType
        Category of the notification.
    title : str
        Short human-readable headline.
    message : str
        Body text.
    sender_id : str | None, optional
        Identifier of the originating actor, None for system notifications.
    data : Dict[str, Any]
        Opaque payload specific to the notification type.
    action_url : str | None, optional
        Deep link the client navigates to when the notification is activated.
    priority : NotificationPriority, default=NotificationPriority.NORMAL
        Urgency level of the notification.
    read : bool, default=False
        Boolean indicating if the notification has been read.
    read_at : datetime | None, optional
        Datetime when the notification was first marked read.
    archived : bool, default=False
        Boolean indicating if the notification has been archived.
    created_at : datetime | None, optional
        Datetime when the notification was stored.
    id : str | None, optional
        Unique identifier assigned by the store.
    """

    recipient_id: str
    type: NotificationType
    title: str
    message: str
    sender_id: str | None = None
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: str | None = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    read: bool = False
    read_at: datetime | None = None
    archived: bool = False
    created_at: datetime | None = None
    id: str | None = None


@dataclasses.dataclass
class NewNotification:
    """Unvalidated input accepted by the notification writer.

    Fields are kept as plain strings so that unknown types and priorities
    reach the writer and are rejected with a typed error.

    Attributes
    ----------
    recipient_id : str
        Identifier of the recipient; ignored when used as a fan-out template.
    type : str
        Requested notification type.
    title : str
        Short human-readable headline.
    message : str
        Body text.
    sender_id : str | None, optional
        Identifier of the originating actor.
    data : Dict[str, Any]
        Opaque payload passed through untouched.
    action_url : str | None, optional
        Deep link passed through untouched.
    priority : str | None, optional
        Requested priority, "normal" when omitted.
    """

    recipient_id: str
    type: str
    title: str
    message: str
    sender_id: str | None = None
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: str | None = None
    priority: str | None = None


@dataclasses.dataclass
class NotificationFilter:
    """Store query filter.

    Attributes
    ----------
    recipient_id : str
        Equality filter on the recipient.
    read : bool | None, optional
        Equality filter on read-state, None to match both.
    types : List[NotificationType] | None, optional
        Set-membership filter on type, None to match all.
    """

    recipient_id: str
    read: bool | None = None
    types: List[NotificationType] | None = None


@dataclasses.dataclass(config=ConfigDict(arbitrary_types_allowed=True))
class FanOutResult:
    """Outcome of one recipient in a fan-out creation.

    Exactly one of `notification` and `error` is set.
    """

    recipient_id: str
    notification: Notification | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None
