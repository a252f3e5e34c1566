"""Live unread-notification feed for a single connected recipient."""

import asyncio
import inspect
from typing import Any, AsyncIterator, Callable, Dict, List

from loguru import logger

from ..domain.entities import Notification as DomainNotification
from ..domain.entities import NotificationFilter
from ..domain.exceptions import StoreUnavailable, SubscriptionError
from .ports import NotificationChangeNotifier, RepositoryScope

UpdateCallback = Callable[[List[DomainNotification]], Any]
ErrorCallback = Callable[[SubscriptionError], Any]


class CancelHandle:
    """Stops a running feed. Cancelling is idempotent and never raises."""

    def __init__(self, feed: "LiveNotificationFeed") -> None:
        self._feed = feed

    @property
    def cancelled(self) -> bool:
        return self._feed.cancelled

    def cancel(self) -> None:
        self._feed.cancel()


class LiveNotificationFeed:
    """Pushes a recipient's current unread snapshot whenever it changes.

    Every delivery is the full unread set, newest first and capped at
    `snapshot_limit`, never a delta. Changes that arrive while a delivery is
    running collapse into one follow-up snapshot (last value wins).

    If the change channel drops or a snapshot query fails, the feed listens
    again and re-emits a fresh snapshot. After `reconnect_attempts`
    consecutive failures, or if a callback raises, `on_error` receives a
    `SubscriptionError` and the feed stops.
    """

    def __init__(
        self,
        recipient_id: str,
        repository_scope: RepositoryScope,
        change_notifier: NotificationChangeNotifier,
        snapshot_limit: int = 10,
        reconnect_attempts: int = 3,
        reconnect_delay_seconds: float = 1.0,
    ) -> None:
        self.recipient_id = recipient_id
        self.repository_scope = repository_scope
        self.change_notifier = change_notifier
        self.snapshot_limit = snapshot_limit
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay_seconds = reconnect_delay_seconds

        self._on_update: UpdateCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._pending = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._cancelled = False
        self._delivered = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(
        self, on_update: UpdateCallback, on_error: ErrorCallback | None = None
    ) -> CancelHandle:
        """Start pushing unread snapshots to `on_update`.

        Returns immediately; the first snapshot follows as soon as the change
        channel is listening. Must be called from a running event loop.

        Parameters
        ----------
        on_update : UpdateCallback
            Receives each unread snapshot. May be a coroutine function.
        on_error : ErrorCallback | None, optional
            Receives the terminal `SubscriptionError`. May be a coroutine function.

        Returns
        -------
        CancelHandle
            Handle stopping further deliveries.

        Raises
        ------
        RuntimeError
            If the feed was already subscribed.
        """
        if self._task is not None or self._cancelled:
            raise RuntimeError(
                f"Feed for recipient {self.recipient_id} was already subscribed"
            )

        self._on_update = on_update
        self._on_error = on_error
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"notification-feed:{self.recipient_id}"
        )
        logger.info(f"🟢 Live feed started for recipient {self.recipient_id}")

        return CancelHandle(self)

    def cancel(self) -> None:
        if self._cancelled:
            return

        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

        logger.info(f"🔕 Live feed cancelled for recipient {self.recipient_id}")

    async def snapshot(self) -> List[DomainNotification]:
        """Load the recipient's current unread notifications.

        Returns
        -------
        List[DomainNotification]
            Unread notifications, newest first, capped at `snapshot_limit`.
        """
        async with self.repository_scope() as notification_repository:
            return await notification_repository.query(
                NotificationFilter(recipient_id=self.recipient_id, read=False),
                limit=self.snapshot_limit,
            )

    async def _run(self) -> None:
        failures = 0

        while not self._cancelled:
            self._delivered = False

            try:
                await self._listen_and_deliver()
                failure = SubscriptionError(
                    f"Change channel for recipient {self.recipient_id} closed"
                )
            except (SubscriptionError, StoreUnavailable) as e:
                failure = e
            except Exception as e:
                await self._fail(
                    SubscriptionError(
                        f"Live feed for recipient {self.recipient_id} stopped: "
                        f"{type(e).__name__}: {e}"
                    )
                )
                return

            if self._cancelled:
                return

            # a session that delivered at least once starts a fresh failure streak
            failures = 1 if self._delivered else failures + 1

            if failures > self.reconnect_attempts:
                await self._fail(
                    SubscriptionError(
                        f"Live feed for recipient {self.recipient_id} gave up after "
                        f"{self.reconnect_attempts} reconnect attempts: {failure.detail}"
                    )
                )
                return

            logger.warning(
                f"🟠 Live feed for recipient {self.recipient_id} lost its channel "
                f"({failure.detail}), reconnecting "
                f"({failures}/{self.reconnect_attempts})"
            )
            await asyncio.sleep(self.reconnect_delay_seconds)

    async def _listen_and_deliver(self) -> None:
        async with self.change_notifier.listen(self.recipient_id) as changes:
            self._pending.set()

            watcher = asyncio.create_task(self._watch(changes))
            deliverer = asyncio.create_task(self._deliver())

            try:
                done, _ = await asyncio.wait(
                    {watcher, deliverer}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                for task in (watcher, deliverer):
                    task.cancel()
                await asyncio.gather(watcher, deliverer, return_exceptions=True)

            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()

    async def _watch(self, changes: AsyncIterator[Dict[str, Any]]) -> None:
        async for change in changes:
            logger.debug(
                f"🔔 Change '{change.get('event')}' for recipient {self.recipient_id}"
            )
            self._pending.set()

    async def _deliver(self) -> None:
        while True:
            await self._pending.wait()
            self._pending.clear()

            unread = await self.snapshot()
            if self._cancelled:
                return

            await self._invoke(self._on_update, unread)
            self._delivered = True

    async def _fail(self, error: SubscriptionError) -> None:
        logger.error(f"🔴 {error.detail}")

        if self._cancelled or self._on_error is None:
            return

        try:
            await self._invoke(self._on_error, error)
        except Exception as e:
            logger.error(
                f"🔴 Error callback for recipient {self.recipient_id} raised: {e}"
            )

    @staticmethod
    async def _invoke(callback: Callable[[Any], Any] | None, value: Any) -> None:
        if callback is None:
            return

        result = callback(value)
        if inspect.isawaitable(result):
            await result
