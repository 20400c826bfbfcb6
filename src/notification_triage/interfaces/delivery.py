"""Abstract interfaces for notification delivery channels."""

from typing import Any, Protocol

from ..models.notification import NotificationRecord


class DirectAlertSender(Protocol):
    """Sends an immediate, user-visible alert outside the originating channel."""

    async def send_direct_alert(self, user_id: str, payload: dict[str, Any]) -> str:
        """
        Deliver a rendered alert to a user.

        Args:
            user_id: Recipient user identifier
            payload: Rendered alert with ``text`` and optional ``blocks``

        Returns:
            Platform identifier of the delivered alert

        Raises:
            DeliveryError: If the alert could not be delivered
        """
        ...


class FeedWriter(Protocol):
    """Stores a non-interrupting record of a triaged message."""

    async def append_to_feed(self, user_id: str, record: NotificationRecord) -> None:
        """
        Append a record to the user's feed.

        Raises:
            DeliveryError: If the record could not be stored
        """
        ...
