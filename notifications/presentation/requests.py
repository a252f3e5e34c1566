from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..domain.entities import NewNotification


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationTemplateRequest(CamelModel):
    """Request model for the content shared by every recipient of a fan-out.

    Attributes
    ----------
    type : str
        Notification type, checked against the known types by the writer
    title : str
        Brief title of the notification
    message : str
        Detailed notification message
    sender_id : str | None
        Identifier of the sender, None for system notifications
    data : Dict[str, Any]
        Opaque payload passed through untouched
    action_url : str | None
        Deep link opened when the notification is activated
    priority : str | None
        Urgency level, "normal" when omitted
    """

    type: str
    title: str
    message: str
    sender_id: str | None = None
    data: Dict[str, Any] = Field(default_factory=dict)
    action_url: str | None = None
    priority: str | None = None

    def to_new_notification(self, recipient_id: str = "") -> NewNotification:
        return NewNotification(
            recipient_id=recipient_id,
            type=self.type,
            title=self.title,
            message=self.message,
            sender_id=self.sender_id,
            data=self.data,
            action_url=self.action_url,
            priority=self.priority,
        )


class CreateNotificationRequest(NotificationTemplateRequest):
    """Request model for creating a single notification.

    Attributes
    ----------
    recipient_id : str
        Identifier of the recipient
    """

    recipient_id: str

    def to_new_notification(self, recipient_id: str | None = None) -> NewNotification:
        return super().to_new_notification(recipient_id or self.recipient_id)


class CreateNotificationsForManyRequest(CamelModel):
    """Request model for fanning one notification out to many recipients.

    Attributes
    ----------
    recipient_ids : List[str]
        Recipients, duplicates receive a single notification
    notification : NotificationTemplateRequest
        Content shared by every recipient
    """

    recipient_ids: List[str]
    notification: NotificationTemplateRequest


class MarkAllReadRequest(CamelModel):
    recipient_id: str
