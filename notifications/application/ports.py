from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, AsyncIterator, Callable, Dict, List

from ..domain.entities import Notification as DomainNotification
from ..domain.entities import NotificationFilter


class NotificationRepository(ABC):
    """Abstract base class for notification persistence.

    The only boundary allowed to talk to the underlying database.
    Every method raises `StoreUnavailable` when the database cannot be reached,
    rejects a write, or times out. Nothing is retried here.
    """

    @abstractmethod
    async def insert(self, notification: DomainNotification) -> str:
        """Store a new notification.

        Parameters
        ----------
        notification : DomainNotification
            Notification entity to store. `id` and `created_at` are assigned here.

        Returns
        -------
        str
            Identifier of the stored notification.
        """
        pass

    @abstractmethod
    async def get_by_id(self, notification_id: str) -> DomainNotification:
        """Retrieve a single notification.

        Parameters
        ----------
        notification_id : str
            ID of the notification.

        Returns
        -------
        DomainNotification
            Stored notification.

        Raises
        ------
        NotFound
            If no notification has this ID.
        """
        pass

    @abstractmethod
    async def update(
        self,
        notification_id: str,
        changes: Dict[str, Any],
        *,
        require_unread: bool = False,
    ) -> bool:
        """Apply a partial update to one notification.

        Parameters
        ----------
        notification_id : str
            ID of the notification.
        changes : Dict[str, Any]
            Field names mapped to their new values.
        require_unread : bool, default=False
            Only apply the update while the notification is still unread.

        Returns
        -------
        bool
            True if the record changed, False if `require_unread` held it back.

        Raises
        ------
        NotFound
            If no notification has this ID.
        """
        pass

    @abstractmethod
    async def update_many(
        self,
        notification_ids: List[str],
        changes: Dict[str, Any],
        *,
        require_unread: bool = False,
    ) -> int:
        """Apply the same partial update to several notifications.

        Parameters
        ----------
        notification_ids : List[str]
            IDs of the notifications. Unknown IDs are ignored.
        changes : Dict[str, Any]
            Field names mapped to their new values.
        require_unread : bool, default=False
            Only touch notifications that are still unread.

        Returns
        -------
        int
            Number of notifications changed.
        """
        pass

    @abstractmethod
    async def delete(self, notification_id: str) -> None:
        """Delete a notification.

        Parameters
        ----------
        notification_id : str
            ID of the notification.

        Raises
        ------
        NotFound
            If no notification has this ID.
        """
        pass

    @abstractmethod
    async def query(
        self,
        notification_filter: NotificationFilter,
        limit: int | None = None,
        newest_first: bool = True,
    ) -> List[DomainNotification]:
        """Retrieve notifications matching a filter.

        Parameters
        ----------
        notification_filter : NotificationFilter
            Recipient, read-state and type criteria.
        limit : int | None, optional
            Maximum number of notifications to return. None returns every match.
        newest_first : bool, default=True
            Sort by creation time descending.

        Returns
        -------
        List[DomainNotification]
            Matching notifications.
        """
        pass

    @abstractmethod
    async def count(self, notification_filter: NotificationFilter) -> int:
        """Count notifications matching a filter.

        Parameters
        ----------
        notification_filter : NotificationFilter
            Recipient, read-state and type criteria.

        Returns
        -------
        int
            Number of matching notifications.
        """
        pass


class NotificationChangeNotifier(ABC):
    """Abstract base class for the per-recipient change channel.

    The store announces every committed write here and live feeds listen to it.
    """

    @abstractmethod
    async def publish(self, recipient_id: str, change: Dict[str, Any]) -> None:
        """Announce a change to a recipient's notifications.

        Parameters
        ----------
        recipient_id : str
            Recipient whose notifications changed.
        change : Dict[str, Any]
            JSON-serializable description of the change.
        """
        pass

    @abstractmethod
    def listen(
        self, recipient_id: str
    ) -> AbstractAsyncContextManager[AsyncIterator[Dict[str, Any]]]:
        """Listen to a recipient's change channel.

        The subscription is established when the context is entered, so no change
        published afterwards is missed.

        Parameters
        ----------
        recipient_id : str
            Recipient to listen for.

        Returns
        -------
        AbstractAsyncContextManager[AsyncIterator[Dict[str, Any]]]
            Context yielding an iterator of change descriptions.
            The iterator raises `SubscriptionError` if the channel drops.
        """
        pass


RepositoryScope = Callable[[], AbstractAsyncContextManager[NotificationRepository]]
"""Factory opening a short-lived repository, used by callers that outlive a request."""
