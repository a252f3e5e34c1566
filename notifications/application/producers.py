"""Notification templates emitted by the marketplace's producers.

Each builder returns a `NewNotification`. Single-recipient builders are passed
to `CreateNotificationRule`; fan-out builders leave `recipient_id` empty and are
passed to `CreateNotificationsForManyRule` together with the recipient list.
"""

from datetime import datetime
from typing import Any, Dict

from ..domain.entities import NewNotification, NotificationPriority, NotificationType

FAN_OUT_RECIPIENT = ""


def _format_naira(amount: float) -> str:
    if float(amount).is_integer():
        return f"₦{amount:,.0f}"
    return f"₦{amount:,.2f}"


def new_message_for_student(
    student_id: str,
    lecturer_id: str,
    lecturer_name: str,
    message_preview: str,
    course_title: str | None = None,
) -> NewNotification:
    return NewNotification(
        recipient_id=student_id,
        sender_id=lecturer_id,
        type=NotificationType.NEW_MESSAGE,
        title=f"New message from {lecturer_name}",
        message=message_preview,
        data={"senderName": lecturer_name, "courseTitle": course_title},
        action_url="/student/messages",
        priority=NotificationPriority.NORMAL,
    )


def new_message_for_lecturer(
    lecturer_id: str,
    student_id: str,
    student_name: str,
    message_preview: str,
    course_title: str | None = None,
) -> NewNotification:
    return NewNotification(
        recipient_id=lecturer_id,
        sender_id=student_id,
        type=NotificationType.NEW_MESSAGE,
        title=f"New message from {student_name}",
        message=message_preview,
        data={"senderName": student_name, "courseTitle": course_title},
        action_url="/lecturer/messages",
        priority=NotificationPriority.NORMAL,
    )


def live_session_starting(
    session_title: str,
    course_title: str,
    start_time: datetime,
    join_url: str,
    minutes_until_start: int = 15,
) -> NewNotification:
    """Fan-out template announcing an imminent live session to enrolled students.

    Parameters
    ----------
    session_title : str
        Title of the live session.
    course_title : str
        Course the session belongs to.
    start_time : datetime
        Scheduled start of the session.
    join_url : str
        Meeting link students join through.
    minutes_until_start : int, default=15
        Lead time mentioned in the message.

    Returns
    -------
    NewNotification
        High priority template without a recipient.
    """
    return NewNotification(
        recipient_id=FAN_OUT_RECIPIENT,
        type=NotificationType.LIVE_SESSION_STARTING,
        title="Live session starting soon",
        message=(
            f'"{session_title}" for {course_title} starts in '
            f"{minutes_until_start} minutes"
        ),
        data={
            "sessionTitle": session_title,
            "courseTitle": course_title,
            "startTime": start_time.isoformat(),
            "joinUrl": join_url,
        },
        action_url="/student/live-sessions",
        priority=NotificationPriority.HIGH,
    )


def live_session_reminder(
    student_id: str,
    session_title: str,
    course_title: str,
    start_time: datetime,
) -> NewNotification:
    """Reminder for a live session a student is registered for, sent ahead of time."""
    return NewNotification(
        recipient_id=student_id,
        type=NotificationType.LIVE_SESSION_REMINDER,
        title="Live session reminder",
        message=(
            f'"{session_title}" for {course_title} is scheduled for '
            f"{start_time.strftime('%d %b %Y, %H:%M %Z').strip()}"
        ),
        data={
            "sessionTitle": session_title,
            "courseTitle": course_title,
            "startTime": start_time.isoformat(),
        },
        action_url="/student/live-sessions",
        priority=NotificationPriority.NORMAL,
    )


def course_completed(
    student_id: str, course_title: str, certificate_url: str
) -> NewNotification:
    return NewNotification(
        recipient_id=student_id,
        type=NotificationType.COURSE_COMPLETED,
        title="Congratulations! Course completed",
        message=(
            f'You have successfully completed "{course_title}". '
            "Your certificate is ready!"
        ),
        data={"courseTitle": course_title, "certificateUrl": certificate_url},
        action_url="/certificates",
        priority=NotificationPriority.HIGH,
    )


def course_update(
    course_title: str, update_message: str, update_type: str
) -> NewNotification:
    """Fan-out template telling enrolled students a course changed."""
    return NewNotification(
        recipient_id=FAN_OUT_RECIPIENT,
        type=NotificationType.COURSE_UPDATE,
        title=f"Course update: {course_title}",
        message=update_message,
        data={"courseTitle": course_title, "updateType": update_type},
        action_url="/student/dashboard",
        priority=NotificationPriority.NORMAL,
    )


def payment_confirmed(
    student_id: str, course_title: str, amount: float, transaction_id: str
) -> NewNotification:
    return NewNotification(
        recipient_id=student_id,
        type=NotificationType.PAYMENT_CONFIRMATION,
        title="Payment confirmed",
        message=(
            f"Your payment of {_format_naira(amount)} for "
            f'"{course_title}" has been confirmed. '
            "You now have full access to the course."
        ),
        data={
            "courseTitle": course_title,
            "amount": amount,
            "transactionId": transaction_id,
        },
        action_url="/student/dashboard",
        priority=NotificationPriority.HIGH,
    )


def system_announcement(
    title: str,
    message: str,
    target_role: str = "all",
    priority: str = NotificationPriority.NORMAL,
) -> NewNotification:
    """Fan-out template for platform-wide announcements.

    The recipients matching `target_role` are resolved by the caller; the role is
    only recorded in the payload.
    """
    data: Dict[str, Any] = {"targetRole": target_role, "isSystemAnnouncement": True}

    return NewNotification(
        recipient_id=FAN_OUT_RECIPIENT,
        type=NotificationType.SYSTEM_ANNOUNCEMENT,
        title=title,
        message=message,
        data=data,
        priority=priority,
    )
