"""Data models for incoming chat messages and the context around them."""

from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(frozen=True)
class IncomingMessage:
    """A normalized message from a chat platform."""

    message_id: str  # Platform message id (Slack "ts")
    text: str
    user_id: str  # Sender
    channel_id: str
    timestamp: datetime
    thread_id: str | None = None  # None if not in a thread

    @property
    def wire_timestamp(self) -> str:
        """Timestamp as sent to the classifier.

        The chat timestamp when the message id is one, otherwise ISO-8601.
        """
        try:
            float(self.message_id)
        except ValueError:
            ts = self.timestamp if self.timestamp.tzinfo else self.timestamp.replace(tzinfo=UTC)
            return ts.isoformat()
        return self.message_id


@dataclass(frozen=True)
class UserProfile:
    """The recipient whose notifications are being triaged."""

    user_id: str
    team_id: str
    name: str | None = None
    email: str | None = None
    timezone: str | None = None


@dataclass(frozen=True)
class ChannelInfo:
    """Metadata of the channel a message was posted in."""

    channel_id: str
    name: str
    is_private: bool = False
    member_count: int | None = None
