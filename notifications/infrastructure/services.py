import json
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, AsyncIterator, Dict

from loguru import logger
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from core.infrastructure.services import RedisService

from ..application.ports import NotificationChangeNotifier
from ..domain.exceptions import SubscriptionError


class RedisNotificationChangeNotifier(NotificationChangeNotifier):
    """Redis pub/sub implementation of the per-recipient change channel."""

    def __init__(
        self, redis_service: RedisService, channel_prefix: str = "notifications:changes"
    ):
        """Initialize the Redis change notifier.

        Parameters
        ----------
        redis_service : RedisService
            Shared Redis connection holder.
        channel_prefix : str, default="notifications:changes"
            Prefix of every recipient channel name.
        """
        self.redis_service = redis_service
        self._channel_prefix = channel_prefix

    def channel_for(self, recipient_id: str) -> str:
        return f"{self._channel_prefix}:{recipient_id}"

    async def publish(self, recipient_id: str, change: Dict[str, Any]) -> None:
        """Publish a change to the recipient's Redis channel.

        Parameters
        ----------
        recipient_id : str
            Recipient whose notifications changed
        change : Dict[str, Any]
            Change description, stamped with recipient and timestamp before publishing
        """
        redis_client = await self.redis_service._get_redis()

        message = json.dumps(
            {
                **change,
                "recipient_id": recipient_id,
                "timestamp": datetime.now(tz=UTC).isoformat(),
            }
        )
        receivers = await redis_client.publish(self.channel_for(recipient_id), message)
        logger.debug(
            f"📣 Published '{change.get('event')}' change for recipient {recipient_id} "
            f"to {receivers} listener(s)"
        )

    @asynccontextmanager
    async def listen(self, recipient_id: str) -> AsyncIterator[AsyncIterator[Dict[str, Any]]]:
        """Subscribe to a recipient's Redis channel for the lifetime of the context.

        Parameters
        ----------
        recipient_id : str
            Recipient to listen for

        Yields
        ------
        AsyncIterator[Dict[str, Any]]
            Decoded change messages

        Raises
        ------
        SubscriptionError
            If the subscription cannot be established
        """
        redis_client = await self.redis_service._get_redis()
        pubsub = redis_client.pubsub()
        channel = self.channel_for(recipient_id)

        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            await pubsub.aclose()
            raise SubscriptionError(
                f"Could not subscribe to changes for recipient {recipient_id}: {e}"
            ) from e

        logger.debug(f"👂 Listening on {channel}")

        try:
            yield self._changes(pubsub, recipient_id)
        finally:
            try:
                await pubsub.unsubscribe(channel)
            except RedisError as e:
                logger.warning(f"🟠 Could not unsubscribe from {channel}: {e}")
            await pubsub.aclose()
            logger.debug(f"🔕 Stopped listening on {channel}")

    async def _changes(
        self, pubsub: PubSub, recipient_id: str
    ) -> AsyncIterator[Dict[str, Any]]:
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue

                try:
                    yield json.loads(message["data"])
                except json.JSONDecodeError:
                    logger.warning(
                        f"🟠 Ignoring malformed change message for recipient {recipient_id}"
                    )

        except RedisError as e:
            raise SubscriptionError(
                f"Change channel for recipient {recipient_id} dropped: {e}"
            ) from e
