"""Tests for the per-message triage pipeline."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from notification_triage.adapters.feed.memory import InMemoryFeed
from notification_triage.config.schema import RetryConfig
from notification_triage.core.classification_client import ClassificationClient
from notification_triage.core.dispatcher import NotificationDispatcher
from notification_triage.core.fallback import FALLBACK_TAG
from notification_triage.core.settings_store import InMemorySettingsStore
from notification_triage.models.classification import ClassificationRequest, ClassificationResult
from notification_triage.models.enums import Category, ClassificationSource, Priority
from notification_triage.models.message import ChannelInfo, IncomingMessage, UserProfile
from notification_triage.utils.async_helpers import ClassifierProtocolError, DeliveryError
from notification_triage.utils.metrics import get_metrics

NOON = datetime(2024, 4, 5, 12, 0, tzinfo=UTC)


class HangingProvider:
    """Classifier endpoint that never answers."""

    name = "hanging"
    endpoint = "http://classifier.test/api/v1/classify"

    def __init__(self) -> None:
        self.calls = 0

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        self.calls += 1
        await asyncio.sleep(10)
        raise AssertionError("unreachable")

    async def health_check(self) -> bool:
        return False

    async def aclose(self) -> None:
        pass


async def no_sleep(seconds: float) -> None:
    pass


@pytest.fixture
def store() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture
def feed() -> InMemoryFeed:
    return InMemoryFeed()


@pytest.fixture
def sender() -> MagicMock:
    """Create a mock direct alert sender."""
    mock = MagicMock()
    mock.send_direct_alert = AsyncMock(return_value="1712345679.000200")
    return mock


@pytest.fixture
def provider() -> MagicMock:
    """Create a mock classifier provider."""
    mock = MagicMock()
    mock.name = "mock"
    mock.endpoint = "http://classifier.test/api/v1/classify"
    mock.classify = AsyncMock()
    return mock


@pytest.fixture
def make_dispatcher(
    store: InMemorySettingsStore,
    feed: InMemoryFeed,
    sender: MagicMock,
) -> Callable[..., NotificationDispatcher]:
    """Build dispatchers around the shared store, feed and sender."""

    def _make(
        client: ClassificationClient | None = None,
        **kwargs: object,
    ) -> NotificationDispatcher:
        options: dict[str, object] = {
            "settings_store": store,
            "alert_sender": sender,
            "feed": feed,
            "clock": lambda: NOON,
        }
        options.update(kwargs)
        return NotificationDispatcher(
            client or ClassificationClient.unconfigured(),
            **options,  # type: ignore[arg-type]
        )

    return _make


class TestRemoteClassification:
    """Test the pipeline with a working classifier."""

    async def test_remote_result_is_dispatched(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        provider: MagicMock,
        sender: MagicMock,
        feed: InMemoryFeed,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
        result_factory: Callable[..., ClassificationResult],
    ) -> None:
        """Test an urgent remote result is alerted and stored."""
        provider.classify.return_value = result_factory(
            category="urgent", priority=Priority.HIGH, confidence=95
        )
        dispatcher = make_dispatcher(ClassificationClient(provider, sleep=no_sleep))

        record = await dispatcher.process(message, profile, channel)

        assert record.source == ClassificationSource.REMOTE
        assert record.decision.send_dm is True
        assert record.dm_delivered is True
        assert record.feed_stored is True
        assert record.delivery_errors == ()
        assert record.processed_at == NOON
        assert record.channel_name == "engineering"

        user_id, payload = sender.send_direct_alert.await_args.args
        assert user_id == "U0RECIPIENT"
        assert "#engineering" in payload["text"]
        assert [r.message_id for r in feed.entries("U0RECIPIENT")] == [message.message_id]

        metrics = get_metrics()
        assert metrics.messages_processed.get(labels={"source": "remote"}) == 1
        assert metrics.direct_alerts_sent.get(labels={"category": "urgent"}) == 1

    async def test_settings_are_sent_to_classifier(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        store: InMemorySettingsStore,
        provider: MagicMock,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
        result_factory: Callable[..., ClassificationResult],
    ) -> None:
        """Test the recipient's stored settings are part of the request."""
        await store.update(profile.user_id, profile.team_id, {"keywords": ["deploy"]})
        provider.classify.return_value = result_factory()
        dispatcher = make_dispatcher(ClassificationClient(provider, sleep=no_sleep))

        await dispatcher.process(message, profile, channel)

        request = provider.classify.await_args.args[0]
        assert request.user_settings.keywords == ["deploy"]
        assert request.channel_info == channel


class TestFallback:
    """Test degraded classification."""

    async def test_timeouts_fall_back_and_still_produce_record(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        feed: InMemoryFeed,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test a classifier that times out on every attempt leads to fallback."""
        hanging = HangingProvider()
        client = ClassificationClient(
            hanging, retry=RetryConfig(max_retries=3), timeout=0.01, sleep=no_sleep
        )
        dispatcher = make_dispatcher(client)

        record = await dispatcher.process(message, profile, channel)

        assert hanging.calls == 3
        assert record.source == ClassificationSource.FALLBACK
        assert FALLBACK_TAG in record.classification.tags
        assert record.classification.category == Category.URGENT
        assert record.decision.send_dm is True
        assert record.feed_stored is True
        assert len(feed.entries(profile.user_id)) == 1
        assert get_metrics().fallback_classifications.get() == 1

    async def test_unconfigured_client_uses_fallback(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        sender: MagicMock,
        message_factory: Callable[..., IncomingMessage],
        profile: UserProfile,
        channel: ChannelInfo,
        store: InMemorySettingsStore,
    ) -> None:
        """Test small talk for a mentions-only user is stored but not alerted."""
        await store.update(profile.user_id, profile.team_id, {"notification_level": "mentions"})
        dispatcher = make_dispatcher()

        record = await dispatcher.process(
            message_factory(text="Anyone want to grab coffee?"), profile, channel
        )

        assert record.source == ClassificationSource.FALLBACK
        assert record.classification.should_notify is False
        assert record.classification.category == Category.GENERAL
        assert record.decision.send_dm is False
        assert record.decision.store_in_feed is True
        sender.send_direct_alert.assert_not_awaited()

    async def test_protocol_error_falls_back(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        provider: MagicMock,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test an unparseable classifier response is not retried but falls back."""
        provider.classify.side_effect = ClassifierProtocolError("bad envelope")
        dispatcher = make_dispatcher(ClassificationClient(provider, sleep=no_sleep))

        record = await dispatcher.process(message, profile, channel)

        assert provider.classify.await_count == 1
        assert record.source == ClassificationSource.FALLBACK

    async def test_unexpected_http_error_falls_back(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        provider: MagicMock,
        feed: InMemoryFeed,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test a non-transport HTTP failure still yields a fallback record."""
        provider.classify.side_effect = httpx.DecodingError("bad gzip")
        dispatcher = make_dispatcher(ClassificationClient(provider, sleep=no_sleep))

        record = await dispatcher.process(message, profile, channel)

        assert record.source == ClassificationSource.FALLBACK
        assert FALLBACK_TAG in record.classification.tags
        assert record.decision.store_in_feed is True
        assert len(feed.entries(profile.user_id)) == 1


class TestKeywordTriggers:
    """Test keyword-triggered notifications."""

    async def test_keyword_forces_notification(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        store: InMemorySettingsStore,
        message_factory: Callable[..., IncomingMessage],
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test a keyword match turns a skip into a notification."""
        await store.update(profile.user_id, profile.team_id, {"keywords": ["Coffee"]})
        dispatcher = make_dispatcher()

        record = await dispatcher.process(
            message_factory(text="Anyone want to grab coffee?"), profile, channel
        )

        assert record.classification.should_notify is True
        assert "keyword:coffee" in record.classification.tags
        assert record.classification.reasoning.startswith("Matched your keywords (Coffee).")


class TestDeliveryFailures:
    """Test best-effort side effects."""

    async def test_dm_failure_still_stores_feed(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        sender: MagicMock,
        feed: InMemoryFeed,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test a failing direct alert does not block the feed entry."""
        sender.send_direct_alert.side_effect = DeliveryError("channel_not_found")
        dispatcher = make_dispatcher()

        record = await dispatcher.process(message, profile, channel)

        assert record.decision.send_dm is True
        assert record.dm_delivered is False
        assert record.feed_stored is True
        assert record.delivery_errors == ("dm: channel_not_found",)
        assert record.partially_failed is True
        assert len(feed.entries(profile.user_id)) == 1
        assert get_metrics().delivery_failures.get(labels={"channel": "dm"}) == 1

    async def test_feed_failure_keeps_dm(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        sender: MagicMock,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test a failing feed write is recorded after the alert went out."""
        broken_feed = MagicMock()
        broken_feed.append_to_feed = AsyncMock(side_effect=OSError("disk full"))
        dispatcher = make_dispatcher(feed=broken_feed)

        record = await dispatcher.process(message, profile, channel)

        assert record.dm_delivered is True
        assert record.feed_stored is False
        assert record.delivery_errors == ("feed: disk full",)

    async def test_missing_adapters_are_recorded(
        self,
        store: InMemorySettingsStore,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test missing sender and feed are reported, not raised."""
        dispatcher = NotificationDispatcher(ClassificationClient.unconfigured(), store)

        record = await dispatcher.process(message, profile, channel)

        assert record.dm_delivered is False
        assert record.feed_stored is False
        assert record.delivery_errors == (
            "dm: no direct alert sender configured",
            "feed: no feed configured",
        )

    async def test_quiet_hours_suppression_counted(
        self,
        make_dispatcher: Callable[..., NotificationDispatcher],
        store: InMemorySettingsStore,
        sender: MagicMock,
        message_factory: Callable[..., IncomingMessage],
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test a suppressed alert is counted and not sent."""
        await store.update(
            profile.user_id,
            profile.team_id,
            {"quiet_hours": {"enabled": True, "start_time": "09:00", "end_time": "17:00"}},
        )
        dispatcher = make_dispatcher()

        record = await dispatcher.process(
            message_factory(text="Important: please review the report"), profile, channel
        )

        assert record.decision.suppressed_by_quiet_hours is True
        assert record.decision.send_dm is False
        sender.send_direct_alert.assert_not_awaited()
        assert get_metrics().quiet_hours_suppressions.get() == 1


class TestUnexpectedErrors:
    """Test errors outside the best-effort paths."""

    async def test_settings_failure_propagates(
        self,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test an unexpected failure is counted and re-raised."""
        broken_store = MagicMock()
        broken_store.get_or_create = AsyncMock(side_effect=RuntimeError("store offline"))
        dispatcher = NotificationDispatcher(ClassificationClient.unconfigured(), broken_store)

        with pytest.raises(RuntimeError, match="store offline"):
            await dispatcher.process(message, profile, channel)

        assert get_metrics().messages_errors.get() == 1
