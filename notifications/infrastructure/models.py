import uuid
from datetime import UTC, datetime
from typing import Any, Dict

from sqlalchemy import DateTime
from sqlmodel import JSON, Column, Field, SQLModel

from ..domain.entities import NotificationPriority


class Notification(SQLModel, table=True):
    """SQLModel table representation for the Notification entity.

    Attributes
    ----------
    id : str
        Primary key, random UUID hex string
    recipient_id : str
        Identifier of the recipient
    sender_id : str | None
        Identifier of the sender, nullable for system notifications
    type : str
        Category of the notification (stored as string)
    title : str
        Brief title of the notification
    message : str
        Detailed notification message
    data : Dict[str, Any]
        Opaque JSON payload associated with the notification
    action_url : str | None
        Deep link opened when the notification is activated
    priority : str
        Urgency level of the notification (stored as string)
    read : bool
        Whether the notification has been read
    read_at : datetime | None
        Timestamp of the first read
    archived : bool
        Whether the notification has been archived
    created_at : datetime
        Timestamp of notification creation
    """

    id: str = Field(
        default_factory=lambda: uuid.uuid4().hex, primary_key=True, max_length=32
    )
    recipient_id: str = Field(nullable=False, index=True, max_length=128)
    sender_id: str | None = Field(default=None, nullable=True, max_length=128)
    type: str = Field(nullable=False, index=True, max_length=32)
    title: str = Field(nullable=False)
    message: str = Field(nullable=False)
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    action_url: str | None = Field(default=None, nullable=True)
    priority: str = Field(default=NotificationPriority.NORMAL.value, max_length=16)
    read: bool = Field(default=False, index=True)
    read_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    archived: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=UTC),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
