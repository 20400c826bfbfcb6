"""Per-message triage pipeline.

This module implements the NotificationDispatcher class that runs one
message through the full pipeline:
1. Load (or create) the recipient's settings
2. Classify remotely, or with the rule-based fallback when the remote
   classifier is unavailable
3. Apply the user's keyword triggers
4. Resolve the delivery decision
5. Send the direct alert and append to the feed, each best-effort
6. Return a NotificationRecord
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from notification_triage.core.delivery_policy import DeliveryPolicyResolver
from notification_triage.core.derivation import apply_keyword_triggers
from notification_triage.core.fallback import RuleFallbackClassifier
from notification_triage.core.rendering import render_direct_alert
from notification_triage.models.classification import ClassificationRequest
from notification_triage.models.enums import ClassificationSource, PipelineState
from notification_triage.models.notification import NotificationRecord
from notification_triage.utils.async_helpers import ClassifierProtocolError, ClassifierUnavailable
from notification_triage.utils.logging import LogEvent, bind_context, unbind_context
from notification_triage.utils.metrics import get_metrics
from notification_triage.utils.security import clean_text

if TYPE_CHECKING:
    from notification_triage.core.classification_client import ClassificationClient
    from notification_triage.interfaces.delivery import DirectAlertSender, FeedWriter
    from notification_triage.interfaces.settings_store import UserSettingsStore
    from notification_triage.models.classification import ClassificationResult
    from notification_triage.models.message import ChannelInfo, IncomingMessage, UserProfile
    from notification_triage.models.notification import DeliveryDecision

log = structlog.get_logger()


class NotificationDispatcher:
    """Runs the triage pipeline for one message and one recipient.

    Responsibilities:
    - Route classification to the remote client or the fallback
    - Resolve and emit the delivery decision
    - Keep delivery failures from escaping the pipeline

    Each message moves through ``RECEIVED -> CLASSIFYING -> CLASSIFIED |
    FALLBACK_CLASSIFIED -> POLICY_RESOLVED -> DISPATCHED`` exactly once; only
    the classification step retries, inside the client.

    Example:
        dispatcher = NotificationDispatcher(client, store, sender, feed)
        record = await dispatcher.process(message, profile, channel)
    """

    def __init__(
        self,
        client: ClassificationClient,
        settings_store: UserSettingsStore,
        alert_sender: DirectAlertSender | None = None,
        feed: FeedWriter | None = None,
        fallback: RuleFallbackClassifier | None = None,
        policy: DeliveryPolicyResolver | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            client: Remote classification client
            settings_store: Per-user settings storage
            alert_sender: Direct alert channel (alerts are skipped if None)
            feed: Feed storage (feed entries are skipped if None)
            fallback: Rule-based classifier used when the client is unavailable
            policy: Delivery policy resolver
            clock: Returns the current time (defaults to UTC now)
        """
        self._client = client
        self._settings = settings_store
        self._alert_sender = alert_sender
        self._feed = feed
        self._fallback = fallback or RuleFallbackClassifier()
        self._policy = policy or DeliveryPolicyResolver()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._metrics = get_metrics()

    async def process(
        self,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> NotificationRecord:
        """Triage a message for one recipient.

        Args:
            message: The incoming chat message
            profile: The recipient whose settings apply
            channel: Metadata of the channel the message was posted in

        Returns:
            The record of what was decided and delivered
        """
        start_time = time.perf_counter()
        bind_context(
            message_id=message.message_id,
            user_id=profile.user_id,
            team_id=profile.team_id,
        )
        try:
            self._metrics.messages_received.inc()
            self._transition(PipelineState.RECEIVED)
            log.info(
                LogEvent.MESSAGE_RECEIVED,
                channel_id=message.channel_id,
                sender=message.user_id,
                text=clean_text(message.text, max_length=100),
            )

            settings = await self._settings.get_or_create(profile.user_id, profile.team_id)
            request = ClassificationRequest(
                message=message,
                user_settings=settings,
                channel_info=channel,
            )

            result, source = await self._classify(request)
            result = apply_keyword_triggers(result, settings.keywords, message.text)

            decision = self._policy.resolve(result, settings, self._clock())
            self._transition(
                PipelineState.POLICY_RESOLVED,
                send_dm=decision.send_dm,
                store_in_feed=decision.store_in_feed,
                suppressed_by_quiet_hours=decision.suppressed_by_quiet_hours,
            )
            if decision.suppressed_by_quiet_hours:
                self._metrics.quiet_hours_suppressions.inc()

            record = await self._dispatch(message, profile, channel, result, decision, source)
            self._transition(
                PipelineState.DISPATCHED,
                dm_delivered=record.dm_delivered,
                feed_stored=record.feed_stored,
            )

            duration = time.perf_counter() - start_time
            self._metrics.messages_processed.inc(labels={"source": source.value})
            self._metrics.pipeline_duration.observe(duration, labels={"source": source.value})
            log.info(
                LogEvent.MESSAGE_PROCESSED,
                category=result.category,
                should_notify=result.should_notify,
                source=source.value,
                delivery_errors=list(record.delivery_errors),
                duration_ms=int(duration * 1000),
            )
            return record

        except Exception as e:
            self._metrics.messages_errors.inc()
            log.exception(LogEvent.MESSAGE_ERROR, error=str(e))
            raise
        finally:
            unbind_context("message_id", "user_id", "team_id")

    async def _classify(
        self,
        request: ClassificationRequest,
    ) -> tuple[ClassificationResult, ClassificationSource]:
        self._transition(PipelineState.CLASSIFYING, provider=self._client.provider_name)
        try:
            result = await self._client.classify(request)
        except (ClassifierUnavailable, ClassifierProtocolError) as e:
            log.warning(
                "classifier_failed_using_fallback",
                exception_type=type(e).__name__,
                error=str(e),
            )
            self._metrics.fallback_classifications.inc()
            result = self._fallback.classify(request)
            self._transition(PipelineState.FALLBACK_CLASSIFIED, category=result.category)
            return result, ClassificationSource.FALLBACK

        self._transition(PipelineState.CLASSIFIED, category=result.category)
        return result, ClassificationSource.REMOTE

    async def _dispatch(
        self,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
        result: ClassificationResult,
        decision: DeliveryDecision,
        source: ClassificationSource,
    ) -> NotificationRecord:
        """Emit the decision; the DM and the feed entry never block each other."""
        errors: list[str] = []
        dm_delivered = False

        if decision.send_dm:
            dm_delivered = await self._send_direct_alert(message, profile, channel, result, errors)

        record = NotificationRecord(
            message_id=message.message_id,
            user_id=profile.user_id,
            team_id=profile.team_id,
            channel_id=channel.channel_id,
            channel_name=channel.name,
            classification=result,
            decision=decision,
            source=source,
            processed_at=self._clock(),
            dm_delivered=dm_delivered,
            delivery_errors=tuple(errors),
        )

        feed_stored = False
        if decision.store_in_feed:
            feed_stored = await self._append_to_feed(profile, record, errors)

        return replace(record, feed_stored=feed_stored, delivery_errors=tuple(errors))

    async def _send_direct_alert(
        self,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
        result: ClassificationResult,
        errors: list[str],
    ) -> bool:
        if self._alert_sender is None:
            errors.append("dm: no direct alert sender configured")
            return False

        try:
            payload = render_direct_alert(message, channel, result)
            alert_id = await self._alert_sender.send_direct_alert(profile.user_id, payload)
        except Exception as e:
            self._metrics.delivery_failures.inc(labels={"channel": "dm"})
            log.error(LogEvent.DIRECT_ALERT_FAILED, exception_type=type(e).__name__, error=str(e))
            errors.append(f"dm: {e}")
            return False

        self._metrics.direct_alerts_sent.inc(labels={"category": str(result.category)})
        log.info(LogEvent.DIRECT_ALERT_SENT, alert_id=alert_id)
        return True

    async def _append_to_feed(
        self,
        profile: UserProfile,
        record: NotificationRecord,
        errors: list[str],
    ) -> bool:
        if self._feed is None:
            errors.append("feed: no feed configured")
            return False

        try:
            await self._feed.append_to_feed(profile.user_id, record)
        except Exception as e:
            self._metrics.delivery_failures.inc(labels={"channel": "feed"})
            log.error(LogEvent.FEED_APPEND_FAILED, exception_type=type(e).__name__, error=str(e))
            errors.append(f"feed: {e}")
            return False

        self._metrics.feed_entries.inc()
        log.debug(LogEvent.FEED_APPENDED)
        return True

    def _transition(self, state: PipelineState, **details: object) -> None:
        log.debug(LogEvent.PIPELINE_STATE, state=state.value, **details)
