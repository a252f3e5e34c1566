from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager

import pytest

from notifications.application.feed import LiveNotificationFeed
from notifications.application.rules import (
    CreateNotificationRule,
    MarkNotificationReadRule,
    StreamUnreadNotificationsRule,
)
from notifications.domain.entities import NewNotification
from notifications.domain.exceptions import StoreUnavailable, SubscriptionError
from notifications.presentation.notification import serialize_notifications


async def create(repository, recipient_id: str, title: str):
    return await CreateNotificationRule(
        new_notification=NewNotification(
            recipient_id=recipient_id,
            type="course_update",
            title=title,
            message=f"{title} body",
        ),
        notification_repository=repository,
    ).execute()


def make_feed(repository_scope, change_notifier, recipient_id="s1", **overrides):
    options = {"reconnect_attempts": 3, "reconnect_delay_seconds": 0}
    options.update(overrides)
    return LiveNotificationFeed(
        recipient_id=recipient_id,
        repository_scope=repository_scope,
        change_notifier=change_notifier,
        **options,
    )


async def test_snapshot_follows_creates_and_reads(
    repository, repository_scope, change_notifier, wait_until
):
    created = [await create(repository, "s1", f"n{i}") for i in range(3)]
    snapshots = []

    feed = make_feed(repository_scope, change_notifier)
    handle = feed.subscribe(on_update=snapshots.append)
    try:
        await wait_until(lambda: len(snapshots) == 1)
        assert [n.id for n in snapshots[0]] == [n.id for n in reversed(created)]

        fourth = await create(repository, "s1", "n3")
        await wait_until(lambda: len(snapshots[-1]) == 4)
        assert snapshots[-1][0].id == fourth.id

        await MarkNotificationReadRule(created[0].id, repository).execute()
        await wait_until(lambda: len(snapshots[-1]) == 3)
        assert created[0].id not in {n.id for n in snapshots[-1]}
        assert all(not n.read for n in snapshots[-1])
    finally:
        handle.cancel()


async def test_other_recipients_do_not_trigger_updates(
    repository, repository_scope, change_notifier, wait_until
):
    snapshots = []
    handle = make_feed(repository_scope, change_notifier).subscribe(snapshots.append)
    try:
        await wait_until(lambda: len(snapshots) == 1)
        await create(repository, "someone-else", "hello")
        await asyncio.sleep(0.1)
        assert snapshots == [[]]
    finally:
        handle.cancel()


async def test_snapshot_is_capped_at_limit(repository, repository_scope, change_notifier, wait_until):
    for i in range(5):
        await create(repository, "s1", f"n{i}")
    snapshots = []

    handle = make_feed(repository_scope, change_notifier, snapshot_limit=2).subscribe(
        snapshots.append
    )
    try:
        await wait_until(lambda: len(snapshots) == 1)
        assert [n.title for n in snapshots[0]] == ["n4", "n3"]
    finally:
        handle.cancel()


async def test_changes_during_delivery_collapse_into_one_snapshot(
    repository, repository_scope, change_notifier, wait_until
):
    gate = asyncio.Event()
    snapshots = []

    async def on_update(unread):
        snapshots.append(unread)
        if len(snapshots) == 1:
            await gate.wait()

    handle = make_feed(repository_scope, change_notifier).subscribe(on_update)
    try:
        await wait_until(lambda: len(snapshots) == 1)
        for i in range(5):
            await create(repository, "s1", f"n{i}")
        await asyncio.sleep(0.05)

        gate.set()
        await wait_until(lambda: len(snapshots) == 2)
        await asyncio.sleep(0.1)

        assert len(snapshots) == 2
        assert len(snapshots[1]) == 5
    finally:
        handle.cancel()


async def test_cancel_stops_deliveries_and_is_idempotent(
    repository, repository_scope, change_notifier, wait_until
):
    snapshots = []
    feed = make_feed(repository_scope, change_notifier)
    handle = feed.subscribe(snapshots.append)
    await wait_until(lambda: len(snapshots) == 1)

    handle.cancel()
    handle.cancel()
    assert handle.cancelled

    await wait_until(lambda: change_notifier.listener_count("s1") == 0)
    await create(repository, "s1", "late")
    await asyncio.sleep(0.1)

    assert len(snapshots) == 1
    assert not feed.running


async def test_subscribe_twice_is_rejected(repository_scope, change_notifier):
    feed = make_feed(repository_scope, change_notifier)
    handle = feed.subscribe(lambda unread: None)
    try:
        with pytest.raises(RuntimeError):
            feed.subscribe(lambda unread: None)
    finally:
        handle.cancel()


async def test_refused_listens_are_retried(repository, repository_scope, change_notifier, wait_until):
    await create(repository, "s1", "n0")
    change_notifier.refuse_listens = 2
    snapshots, errors = [], []

    handle = make_feed(repository_scope, change_notifier).subscribe(
        snapshots.append, errors.append
    )
    try:
        await wait_until(lambda: len(snapshots) == 1)
        assert change_notifier.listen_calls == 3
        assert len(snapshots[0]) == 1
        assert errors == []
    finally:
        handle.cancel()


async def test_dropped_channel_reconnects_and_resends_snapshot(
    repository, repository_scope, change_notifier, wait_until
):
    await create(repository, "s1", "n0")
    snapshots, errors = [], []

    handle = make_feed(repository_scope, change_notifier).subscribe(
        snapshots.append, errors.append
    )
    try:
        await wait_until(lambda: len(snapshots) == 1)

        change_notifier.drop("s1", SubscriptionError("connection reset"))
        await wait_until(lambda: len(snapshots) == 2)

        assert [n.id for n in snapshots[1]] == [n.id for n in snapshots[0]]
        assert change_notifier.listen_calls == 2
        assert errors == []

        await create(repository, "s1", "n1")
        await wait_until(lambda: len(snapshots[-1]) == 2)
    finally:
        handle.cancel()


async def test_gives_up_after_reconnect_attempts(repository_scope, change_notifier, wait_until):
    change_notifier.refuse_listens = 100
    snapshots, errors = [], []

    handle = make_feed(repository_scope, change_notifier, reconnect_attempts=2).subscribe(
        snapshots.append, errors.append
    )
    await wait_until(lambda: len(errors) == 1)
    await asyncio.sleep(0.05)

    assert isinstance(errors[0], SubscriptionError)
    assert errors[0].code == "SubscriptionError"
    assert change_notifier.listen_calls == 3
    assert snapshots == []
    assert not handle.cancelled


async def test_failing_callback_reports_error(repository_scope, change_notifier, wait_until):
    errors = []

    def on_update(unread):
        raise RuntimeError("render failed")

    make_feed(repository_scope, change_notifier).subscribe(on_update, errors.append)
    await wait_until(lambda: len(errors) == 1)

    assert "render failed" in errors[0].detail
    await wait_until(lambda: change_notifier.listener_count("s1") == 0)


async def test_stream_emits_sse_snapshots_and_cancels_feed(
    repository, repository_scope, change_notifier
):
    await create(repository, "s1", "n0")
    feed = make_feed(repository_scope, change_notifier)
    stream = StreamUnreadNotificationsRule(feed, serialize_notifications).execute()

    first = await asyncio.wait_for(stream.__anext__(), 3)
    assert first.startswith("data: ") and first.endswith("\n\n")
    payload = json.loads(first[len("data: "):])
    assert [item["title"] for item in payload] == ["n0"]
    assert {"recipientId", "actionUrl", "readAt", "createdAt"} <= set(payload[0])

    await create(repository, "s1", "n1")
    second = json.loads((await asyncio.wait_for(stream.__anext__(), 3))[len("data: "):])
    assert [item["title"] for item in second] == ["n1", "n0"]

    await stream.aclose()
    assert feed.cancelled


async def test_stream_ends_with_error_event(repository_scope, change_notifier):
    change_notifier.refuse_listens = 100
    feed = make_feed(repository_scope, change_notifier, reconnect_attempts=0)
    stream = StreamUnreadNotificationsRule(feed, serialize_notifications).execute()

    event = await asyncio.wait_for(stream.__anext__(), 3)
    assert event.startswith("event: error\ndata: ")
    assert json.loads(event.split("data: ", 1)[1])["error"] == "SubscriptionError"

    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert feed.cancelled


def failing_scope(repository_scope, failures: int):
    """Repository scope whose first `failures` openings raise StoreUnavailable."""
    remaining = [failures]

    @asynccontextmanager
    async def scope():
        if remaining[0]:
            remaining[0] -= 1
            raise StoreUnavailable("Notification store failed to query notifications")
        async with repository_scope() as notification_repository:
            yield notification_repository

    return scope


async def test_failed_snapshot_reconnects_and_delivers(
    repository, repository_scope, change_notifier, wait_until
):
    await create(repository, "s1", "n0")
    snapshots, errors = [], []

    feed = make_feed(failing_scope(repository_scope, 3), change_notifier)
    handle = feed.subscribe(snapshots.append, errors.append)
    try:
        await wait_until(lambda: len(snapshots) == 1)
        assert [n.title for n in snapshots[0]] == ["n0"]
        assert change_notifier.listen_calls == 4
        assert errors == []
    finally:
        handle.cancel()


async def test_failed_snapshots_beyond_reconnect_attempts_report_error(
    repository_scope, change_notifier, wait_until
):
    snapshots, errors = [], []

    make_feed(failing_scope(repository_scope, 4), change_notifier).subscribe(
        snapshots.append, errors.append
    )
    await wait_until(lambda: len(errors) == 1)

    assert isinstance(errors[0], SubscriptionError)
    assert "store" in errors[0].detail
    assert change_notifier.listen_calls == 4
    assert snapshots == []
    await wait_until(lambda: change_notifier.listener_count("s1") == 0)
