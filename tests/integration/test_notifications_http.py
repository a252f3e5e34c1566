from __future__ import annotations

from notifications.domain.exceptions import StoreUnavailable
from notifications.infrastructure.factory import get_notification_repository
from notifications.infrastructure.repositories import NotificationRepository


def payload(recipient_id: str = "u1", **overrides) -> dict:
    body = {
        "recipientId": recipient_id,
        "type": "payment_confirmation",
        "title": "Payment confirmed",
        "message": "₦5000 received",
    }
    body.update(overrides)
    return body


async def test_create_then_list_unread(client):
    create_response = await client.post("/notifications", json=payload())
    assert create_response.status_code == 201
    created = create_response.json()
    assert created["id"]
    assert created["read"] is False
    assert created["readAt"] is None
    assert created["createdAt"]
    assert created["recipientId"] == "u1"
    assert created["priority"] == "normal"

    list_response = await client.get(
        "/notifications", params={"recipientId": "u1", "unreadOnly": "true"}
    )
    assert list_response.status_code == 200
    assert [n["id"] for n in list_response.json()] == [created["id"]]


async def test_read_flow_and_counts(client):
    first = (await client.post("/notifications", json=payload("u2", title="First"))).json()
    second = (await client.post("/notifications", json=payload("u2", title="Second"))).json()

    read_response = await client.post(f"/notifications/{first['id']}/read")
    assert read_response.status_code == 204
    again = await client.post(f"/notifications/{first['id']}/read")
    assert again.status_code == 204

    listed = (
        await client.get("/notifications", params={"recipientId": "u2", "limit": 10})
    ).json()
    assert [n["id"] for n in listed] == [second["id"], first["id"]]
    assert [n["read"] for n in listed] == [False, True]
    assert listed[1]["readAt"] is not None

    count = await client.get("/notifications/unread-count", params={"recipientId": "u2"})
    assert count.json() == {"count": 1}

    mark_all = await client.post("/notifications/mark-all-read", json={"recipientId": "u2"})
    assert mark_all.status_code == 200
    assert mark_all.json() == {"markedCount": 1}

    count = await client.get("/notifications/unread-count", params={"recipientId": "u2"})
    assert count.json() == {"count": 0}


async def test_get_and_delete_notification(client):
    created = (await client.post("/notifications", json=payload())).json()

    fetched = await client.get(f"/notifications/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Payment confirmed"

    deleted = await client.delete(f"/notifications/{created['id']}")
    assert deleted.status_code == 204

    missing = await client.get(f"/notifications/{created['id']}")
    assert missing.status_code == 404
    body = missing.json()
    assert body["success"] is False
    assert body["error"] == "NotFound"
    assert body["status_code"] == 404
    assert body["method"] == "GET"

    assert (await client.delete(f"/notifications/{created['id']}")).status_code == 404
    assert (await client.post(f"/notifications/{created['id']}/read")).status_code == 404


async def test_unknown_type_is_rejected(client):
    response = await client.post("/notifications", json=payload(type="flash_sale"))

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "InvalidNotificationType"
    assert "flash_sale" in body["detail"]
    assert "type" in body["errors"]

    listed = await client.get("/notifications", params={"recipientId": "u1"})
    assert listed.json() == []


async def test_invalid_requests_return_validation_errors(client):
    blank_title = await client.post("/notifications", json=payload(title="  "))
    assert blank_title.status_code == 400
    assert blank_title.json()["error"] == "ValidationError"

    missing_field = await client.post("/notifications", json={"recipientId": "u1"})
    assert missing_field.status_code == 400
    assert missing_field.json()["error"] == "ValidationError"

    missing_recipient = await client.get("/notifications")
    assert missing_recipient.status_code == 400
    assert missing_recipient.json()["error"] == "ValidationError"

    zero_limit = await client.get("/notifications", params={"recipientId": "u1", "limit": 0})
    assert zero_limit.status_code == 400

    bad_filter = await client.get("/notifications", params={"recipientId": "u1", "types": "bogus"})
    assert bad_filter.status_code == 400
    assert bad_filter.json()["error"] == "InvalidNotificationType"

    no_stream_recipient = await client.get("/notifications/stream")
    assert no_stream_recipient.status_code == 400


async def test_type_filter_accepts_repeated_and_comma_separated_values(client):
    for kind in ("new_message", "course_update", "payment_confirmation"):
        await client.post("/notifications", json=payload("u3", type=kind))

    repeated = await client.get(
        "/notifications",
        params=[("recipientId", "u3"), ("types", "new_message"), ("types", "course_update")],
    )
    comma = await client.get(
        "/notifications", params={"recipientId": "u3", "types": "new_message,course_update"}
    )

    assert sorted(n["type"] for n in repeated.json()) == ["course_update", "new_message"]
    assert sorted(n["type"] for n in comma.json()) == ["course_update", "new_message"]


async def test_bulk_reports_each_recipient(client):
    response = await client.post(
        "/notifications/bulk",
        json={
            "recipientIds": ["s1", "s2", "s1", ""],
            "notification": {
                "type": "course_update",
                "title": "Course update: Calculus I",
                "message": "Week 3 notes uploaded",
                "data": {"courseTitle": "Calculus I", "updateType": "content"},
                "actionUrl": "/student/dashboard",
            },
        },
    )

    assert response.status_code == 200
    results = response.json()["results"]
    assert [r["recipientId"] for r in results] == ["s1", "s2", ""]
    assert results[0]["notification"]["actionUrl"] == "/student/dashboard"
    assert results[0]["error"] is None
    assert results[2]["notification"] is None
    assert results[2]["error"]["error"] == "ValidationError"

    count = await client.get("/notifications/unread-count", params={"recipientId": "s1"})
    assert count.json() == {"count": 1}


async def test_bulk_with_invalid_template_fails_whole_request(client):
    response = await client.post(
        "/notifications/bulk",
        json={
            "recipientIds": ["s1"],
            "notification": {"type": "nope", "title": "t", "message": "m"},
        },
    )

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidNotificationType"


async def test_writes_are_announced_on_change_channel(client, change_notifier):
    created = (await client.post("/notifications", json=payload("u9"))).json()
    await client.post(f"/notifications/{created['id']}/read")

    assert change_notifier.published == [
        ("u9", {"event": "created", "notification_id": created["id"]}),
        ("u9", {"event": "read", "notification_id": created["id"]}),
    ]


async def test_unknown_route_uses_error_envelope(client):
    response = await client.get("/nope")

    assert response.status_code == 404
    assert response.json()["success"] is False


class UnreachableRepository(NotificationRepository):
    def __init__(self) -> None:
        super().__init__(session=None)

    async def count(self, notification_filter):
        raise StoreUnavailable("Notification store failed to count notifications")

    async def insert(self, notification):
        raise StoreUnavailable("Notification store failed to insert notification")


async def test_unreachable_store_returns_service_unavailable(app, client):
    app.dependency_overrides[get_notification_repository] = UnreachableRepository

    count = await client.get("/notifications/unread-count", params={"recipientId": "u1"})
    assert count.status_code == 503
    body = count.json()
    assert body["success"] is False
    assert body["error"] == "StoreUnavailable"
    assert body["status_code"] == 503
    assert "count notifications" in body["detail"]

    created = await client.post("/notifications", json=payload())
    assert created.status_code == 503
    assert created.json()["error"] == "StoreUnavailable"
