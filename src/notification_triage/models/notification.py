"""Data models for delivery decisions and notification records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .classification import ClassificationResult
from .enums import ClassificationSource


@dataclass(frozen=True)
class DeliveryDecision:
    """Where a classified message goes for one user.

    ``send_dm`` and ``store_in_feed`` may both be true (alert and feed) or
    both be false (the message is dropped).
    """

    send_dm: bool
    store_in_feed: bool
    suppressed_by_quiet_hours: bool = False

    @property
    def dropped(self) -> bool:
        return not (self.send_dm or self.store_in_feed)


@dataclass(frozen=True)
class NotificationRecord:
    """Audit entry for one triaged message; written once."""

    message_id: str
    user_id: str
    team_id: str
    channel_id: str
    channel_name: str
    classification: ClassificationResult
    decision: DeliveryDecision
    source: ClassificationSource
    processed_at: datetime
    dm_delivered: bool = False
    feed_stored: bool = False
    delivery_errors: tuple[str, ...] = ()

    @property
    def partially_failed(self) -> bool:
        """True when a requested side effect did not happen."""
        return bool(self.delivery_errors)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready rendering for collaborators."""
        return {
            "message_id": self.message_id,
            "user_id": self.user_id,
            "team_id": self.team_id,
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
            "classification": self.classification.to_dict(),
            "decision": {
                "send_dm": self.decision.send_dm,
                "store_in_feed": self.decision.store_in_feed,
                "suppressed_by_quiet_hours": self.decision.suppressed_by_quiet_hours,
            },
            "source": self.source.value,
            "dm_delivered": self.dm_delivered,
            "feed_stored": self.feed_stored,
            "delivery_errors": list(self.delivery_errors),
            "processed_at": self.processed_at.isoformat(),
        }
