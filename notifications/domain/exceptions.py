class NotificationError(Exception):
    """Base class for every failure raised by the notification core.

    Attributes
    ----------
    code : str
        Stable identifier callers branch on (also used in API error bodies).
    detail : str
        Human-readable description of the failure.
    """

    code = "NotificationError"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(NotificationError, ValueError):
    """Malformed or missing required input field."""

    code = "ValidationError"

    def __init__(self, detail: str, field: str | None = None) -> None:
        super().__init__(detail)
        self.field = field


class InvalidNotificationType(ValidationError):
    """Notification type outside the closed set of known types."""

    code = "InvalidNotificationType"

    def __init__(self, value: str, field: str = "type") -> None:
        super().__init__(f"Unknown notification type: {value!r}", field=field)
        self.value = value


class NotFound(NotificationError, LookupError):
    """Operation referenced a notification id that does not exist."""

    code = "NotFound"

    def __init__(self, notification_id: str) -> None:
        super().__init__(f"Notification {notification_id!r} does not exist")
        self.notification_id = notification_id


class StoreUnavailable(NotificationError):
    """Notification store could not be reached, rejected a write, or timed out."""

    code = "StoreUnavailable"


class SubscriptionError(NotificationError):
    """Live change channel failed and the feed could not recover."""

    code = "SubscriptionError"
