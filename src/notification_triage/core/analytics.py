"""Per-user triage analytics over notification records."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from notification_triage.models.notification import NotificationRecord

TOP_CHANNELS_LIMIT = 5


class AnalyticsPeriod(StrEnum):
    """Reporting window ending at the report time."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def length(self) -> timedelta:
        return {
            AnalyticsPeriod.DAY: timedelta(days=1),
            AnalyticsPeriod.WEEK: timedelta(weeks=1),
            AnalyticsPeriod.MONTH: timedelta(days=30),
        }[self]


@dataclass(frozen=True)
class ChannelActivity:
    """Message volume of one channel within the period."""

    channel_id: str
    channel_name: str
    message_count: int
    filtered_count: int


@dataclass(frozen=True)
class UserAnalytics:
    """Summary of how the engine triaged one user's messages."""

    user_id: str
    period: AnalyticsPeriod
    total_messages: int
    filtered_messages: int
    notifications_sent: int
    channels_active: int
    top_channels: tuple[ChannelActivity, ...] = field(default_factory=tuple)
    filter_effectiveness: int = 0  # percent of messages that did not interrupt

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "period": self.period.value,
            "metrics": {
                "total_messages": self.total_messages,
                "filtered_messages": self.filtered_messages,
                "notifications_sent": self.notifications_sent,
                "channels_active": self.channels_active,
                "top_channels": [
                    {
                        "channel_id": channel.channel_id,
                        "channel_name": channel.channel_name,
                        "message_count": channel.message_count,
                        "filtered_count": channel.filtered_count,
                    }
                    for channel in self.top_channels
                ],
                "filter_effectiveness": self.filter_effectiveness,
            },
        }


def build_user_analytics(
    records: Iterable[NotificationRecord],
    user_id: str,
    period: AnalyticsPeriod | str = AnalyticsPeriod.WEEK,
    now: datetime | None = None,
) -> UserAnalytics:
    """Summarize a user's records processed within ``period`` before ``now``.

    A message counts as filtered when the engine decided not to send a direct
    alert for it; ``notifications_sent`` counts alerts that were delivered.
    Top channels are ranked by message count, then by channel id.
    """
    period = AnalyticsPeriod(period)
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    since = now - period.length

    selected = [
        record
        for record in records
        if record.user_id == user_id and since <= _aware(record.processed_at) <= now
    ]

    message_counts: Counter[str] = Counter()
    filtered_counts: Counter[str] = Counter()
    channel_names: dict[str, str] = {}
    filtered = 0
    sent = 0

    for record in selected:
        message_counts[record.channel_id] += 1
        channel_names[record.channel_id] = record.channel_name
        if not record.decision.send_dm:
            filtered += 1
            filtered_counts[record.channel_id] += 1
        if record.dm_delivered:
            sent += 1

    ranked = sorted(message_counts.items(), key=lambda item: (-item[1], item[0]))
    top_channels = tuple(
        ChannelActivity(
            channel_id=channel_id,
            channel_name=channel_names[channel_id],
            message_count=count,
            filtered_count=filtered_counts[channel_id],
        )
        for channel_id, count in ranked[:TOP_CHANNELS_LIMIT]
    )

    total = len(selected)
    return UserAnalytics(
        user_id=user_id,
        period=period,
        total_messages=total,
        filtered_messages=filtered,
        notifications_sent=sent,
        channels_active=len(message_counts),
        top_channels=top_channels,
        filter_effectiveness=(filtered * 100) // total if total else 0,
    )


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
