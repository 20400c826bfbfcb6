"""In-memory notification feed.

Keeps the most recent records per user in a bounded deque. Suitable for
tests and single-process deployments; a persistent feed implements the
same FeedWriter protocol.
"""

from __future__ import annotations

from collections import deque

import structlog

from ...models.notification import NotificationRecord

log = structlog.get_logger()

DEFAULT_MAX_ENTRIES = 500


class InMemoryFeed:
    """Bounded per-user feed implementing the FeedWriter protocol.

    Example:
        feed = InMemoryFeed(max_entries_per_user=100)
        await feed.append_to_feed("U123", record)
        latest = feed.entries("U123")[-1]
    """

    def __init__(self, max_entries_per_user: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries_per_user < 1:
            raise ValueError("max_entries_per_user must be at least 1")
        self._max_entries = max_entries_per_user
        self._feeds: dict[str, deque[NotificationRecord]] = {}

    async def append_to_feed(self, user_id: str, record: NotificationRecord) -> None:
        feed = self._feeds.get(user_id)
        if feed is None:
            feed = self._feeds[user_id] = deque(maxlen=self._max_entries)
        feed.append(record)
        log.debug("feed_appended", user_id=user_id, message_id=record.message_id, size=len(feed))

    def entries(self, user_id: str) -> list[NotificationRecord]:
        """Return the user's feed, oldest first."""
        return list(self._feeds.get(user_id, ()))

    def all_records(self) -> list[NotificationRecord]:
        """Return every stored record across users."""
        return [record for feed in self._feeds.values() for record in feed]

    def clear(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._feeds.clear()
        else:
            self._feeds.pop(user_id, None)
