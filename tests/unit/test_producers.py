from __future__ import annotations

from datetime import UTC, datetime

from notifications.application import producers
from notifications.application.rules import (
    CreateNotificationRule,
    CreateNotificationsForManyRule,
)
from notifications.domain.entities import NotificationPriority, NotificationType

START = datetime(2026, 3, 2, 14, 30, tzinfo=UTC)


def test_new_message_templates_link_to_each_side():
    to_student = producers.new_message_for_student("s1", "l1", "Dr. Ada", "Read chapter 2")
    to_lecturer = producers.new_message_for_lecturer("l1", "s1", "Tunde", "Question about chapter 2")

    assert to_student.title == "New message from Dr. Ada"
    assert to_student.action_url == "/student/messages"
    assert to_student.sender_id == "l1"
    assert to_lecturer.title == "New message from Tunde"
    assert to_lecturer.action_url == "/lecturer/messages"
    assert to_lecturer.recipient_id == "l1"


def test_live_session_starting_is_a_high_priority_template():
    template = producers.live_session_starting(
        "Derivatives", "Calculus I", START, "https://meet.example/abc?token=xyz"
    )

    assert template.type == NotificationType.LIVE_SESSION_STARTING
    assert template.title == "Live session starting soon"
    assert template.message == '"Derivatives" for Calculus I starts in 15 minutes'
    assert template.priority == NotificationPriority.HIGH
    assert template.data == {
        "sessionTitle": "Derivatives",
        "courseTitle": "Calculus I",
        "startTime": START.isoformat(),
        "joinUrl": "https://meet.example/abc?token=xyz",
    }


def test_payment_confirmed_formats_naira_amount():
    whole = producers.payment_confirmed("s1", "Calculus I", 15000, "txn-1")
    fractional = producers.payment_confirmed("s1", "Calculus I", 2500.5, "txn-2")

    assert whole.message == (
        'Your payment of ₦15,000 for "Calculus I" has been confirmed. '
        "You now have full access to the course."
    )
    assert "₦2,500.50" in fractional.message
    assert whole.data == {"courseTitle": "Calculus I", "amount": 15000, "transactionId": "txn-1"}
    assert whole.priority == NotificationPriority.HIGH


def test_course_completed_and_reminder():
    completed = producers.course_completed("s1", "Calculus I", "https://cdn.example/cert.pdf")
    reminder = producers.live_session_reminder("s1", "Derivatives", "Calculus I", START)

    assert completed.title == "Congratulations! Course completed"
    assert completed.action_url == "/certificates"
    assert reminder.type == NotificationType.LIVE_SESSION_REMINDER
    assert "02 Mar 2026, 14:30" in reminder.message


def test_system_announcement_records_target_role():
    template = producers.system_announcement("Maintenance", "Back at 02:00", "student", "high")

    assert template.sender_id is None
    assert template.data == {"targetRole": "student", "isSystemAnnouncement": True}
    assert template.priority == "high"


async def test_producer_templates_are_accepted_by_the_writer(repository):
    created = await CreateNotificationRule(
        producers.course_completed("s1", "Calculus I", "https://cdn.example/cert.pdf"),
        repository,
    ).execute()
    assert created.type == NotificationType.COURSE_COMPLETED
    assert created.priority == NotificationPriority.HIGH

    results = await CreateNotificationsForManyRule(
        ["s1", "s2"],
        producers.course_update("Calculus I", "Week 3 notes uploaded", "content"),
        repository,
    ).execute()
    assert all(result.succeeded for result in results)
    assert results[1].notification.title == "Course update: Calculus I"
    assert results[1].notification.data == {"courseTitle": "Calculus I", "updateType": "content"}
