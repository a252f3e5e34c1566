from __future__ import annotations

import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from notifications.domain.exceptions import SubscriptionError
from notifications.infrastructure.services import RedisNotificationChangeNotifier


class FakePubSub:
    def __init__(self, messages, fail_subscribe=False) -> None:
        self.messages = messages
        self.fail_subscribe = fail_subscribe
        self.subscribed: list[str] = []
        self.closed = False

    async def subscribe(self, channel):
        if self.fail_subscribe:
            raise RedisConnectionError("refused")
        self.subscribed.append(channel)

    async def unsubscribe(self, channel):
        self.subscribed.remove(channel)

    async def aclose(self):
        self.closed = True

    async def listen(self):
        for message in self.messages:
            if isinstance(message, Exception):
                raise message
            yield message


class FakeRedis:
    def __init__(self, pubsub: FakePubSub | None = None) -> None:
        self.published: list[tuple[str, str]] = []
        self._pubsub = pubsub

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    def pubsub(self):
        return self._pubsub


class FakeRedisService:
    def __init__(self, redis) -> None:
        self.redis = redis

    async def _get_redis(self):
        return self.redis


async def test_publish_stamps_recipient_and_timestamp():
    redis = FakeRedis()
    notifier = RedisNotificationChangeNotifier(FakeRedisService(redis))

    await notifier.publish("u1", {"event": "created", "notification_id": "abc"})

    channel, message = redis.published[0]
    body = json.loads(message)
    assert channel == "notifications:changes:u1"
    assert body["event"] == "created"
    assert body["notification_id"] == "abc"
    assert body["recipient_id"] == "u1"
    assert "timestamp" in body


async def test_listen_yields_decoded_messages_and_skips_noise():
    pubsub = FakePubSub(
        [
            {"type": "subscribe", "data": 1},
            {"type": "message", "data": "not json"},
            {"type": "message", "data": json.dumps({"event": "read"})},
        ]
    )
    notifier = RedisNotificationChangeNotifier(FakeRedisService(FakeRedis(pubsub)))

    async with notifier.listen("u1") as changes:
        assert pubsub.subscribed == ["notifications:changes:u1"]
        received = [change async for change in changes]

    assert received == [{"event": "read"}]
    assert pubsub.subscribed == []
    assert pubsub.closed


async def test_listen_failures_become_subscription_errors():
    refused = FakePubSub([], fail_subscribe=True)
    notifier = RedisNotificationChangeNotifier(FakeRedisService(FakeRedis(refused)))

    with pytest.raises(SubscriptionError):
        async with notifier.listen("u1"):
            pass
    assert refused.closed

    dropped = FakePubSub([RedisConnectionError("reset")])
    notifier = RedisNotificationChangeNotifier(FakeRedisService(FakeRedis(dropped)))

    with pytest.raises(SubscriptionError):
        async with notifier.listen("u1") as changes:
            async for _ in changes:
                pass
    assert dropped.closed
