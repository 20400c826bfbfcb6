"""Per-user delivery policy: direct alert, feed entry, both, or neither."""

from __future__ import annotations

from datetime import UTC, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from notification_triage.models.classification import ClassificationResult
from notification_triage.models.enums import Category, Priority
from notification_triage.models.notification import DeliveryDecision
from notification_triage.models.settings import QuietHours, UserSettings

log = structlog.get_logger()


def in_window(current: time, start: time, end: time) -> bool:
    """Return True if ``current`` lies in the half-open window ``[start, end)``.

    A window with ``start > end`` spans midnight. ``start == end`` is empty.
    """
    if start == end:
        return False
    if start < end:
        return start <= current < end
    return current >= start or current < end


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("unknown_timezone", timezone=name, fallback="UTC")
        return ZoneInfo("UTC")


def local_time_of_day(now: datetime, timezone: str) -> time:
    """Convert ``now`` to a time of day in ``timezone``; naive values are UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(_zone(timezone)).time().replace(tzinfo=None)


def is_quiet_time(quiet_hours: QuietHours, now: datetime) -> bool:
    if not quiet_hours.enabled:
        return False
    current = local_time_of_day(now, quiet_hours.timezone)
    return in_window(current, quiet_hours.start, quiet_hours.end)


class DeliveryPolicyResolver:
    """Turns a classification and the user's settings into a delivery decision.

    The feed is never held back by quiet hours. Urgent messages bypass quiet
    hours entirely; every other category loses its direct alert while the
    user's quiet window is active, and only earns one when the classifier
    said the user should be notified.
    """

    def resolve(
        self,
        result: ClassificationResult,
        settings: UserSettings,
        now: datetime,
    ) -> DeliveryDecision:
        prefs = settings.delivery_preferences
        store_in_feed = prefs.feed_enabled

        in_quiet_hours = result.category != Category.URGENT and is_quiet_time(
            settings.quiet_hours, now
        )
        if in_quiet_hours:
            return DeliveryDecision(
                send_dm=False,
                store_in_feed=store_in_feed,
                suppressed_by_quiet_hours=True,
            )

        if result.category == Category.URGENT:
            send_dm = prefs.urgent_via_dm
        elif not result.should_notify:
            send_dm = False
        elif result.category == Category.IMPORTANT:
            send_dm = prefs.important_via_dm
        elif result.category == Category.MENTION:
            send_dm = prefs.mentions_via_dm
        else:
            send_dm = result.priority == Priority.HIGH and prefs.urgent_via_dm

        return DeliveryDecision(send_dm=send_dm, store_in_feed=store_in_feed)
