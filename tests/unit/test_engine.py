"""Tests for the triage engine and its factory."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from notification_triage.adapters.feed.memory import InMemoryFeed
from notification_triage.config.schema import TriageConfig
from notification_triage.core.engine import (
    EngineStoppedError,
    TriageEngine,
    create_classification_client,
    create_engine,
)
from notification_triage.core.settings_store import InMemorySettingsStore
from notification_triage.models.classification import ClassificationResult
from notification_triage.models.enums import ClassificationSource
from notification_triage.models.message import ChannelInfo, IncomingMessage, UserProfile
from notification_triage.models.notification import DeliveryDecision, NotificationRecord


@pytest.fixture
def record_factory(
    result_factory: Callable[..., ClassificationResult],
) -> Callable[..., NotificationRecord]:
    """Build notification records."""

    def _make(
        message_id: str = "1712345678.000100",
        source: ClassificationSource = ClassificationSource.REMOTE,
    ) -> NotificationRecord:
        return NotificationRecord(
            message_id=message_id,
            user_id="U0RECIPIENT",
            team_id="T0TEAM",
            channel_id="C0ENG",
            channel_name="engineering",
            classification=result_factory(),
            decision=DeliveryDecision(send_dm=False, store_in_feed=True),
            source=source,
            processed_at=datetime(2024, 4, 5, 12, 0, tzinfo=UTC),
            feed_stored=True,
        )

    return _make


@pytest.fixture
def dispatcher() -> MagicMock:
    """Create a mock dispatcher."""
    mock = MagicMock()
    mock.process = AsyncMock()
    return mock


@pytest.fixture
def client() -> MagicMock:
    """Create a mock classification client."""
    mock = MagicMock()
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def engine(dispatcher: MagicMock, client: MagicMock) -> TriageEngine:
    return TriageEngine(dispatcher, max_concurrent=2, shutdown_timeout=1.0, client=client)


class TestTriageEngine:
    """Test engine lifecycle and statistics."""

    async def test_start_and_stop(self, engine: TriageEngine, client: MagicMock) -> None:
        """Test lifecycle flags and client shutdown."""
        assert engine.is_running is False

        await engine.start()
        assert engine.is_running is True

        await engine.stop()
        assert engine.is_running is False
        client.aclose.assert_awaited_once()

    async def test_stop_is_idempotent(self, engine: TriageEngine, client: MagicMock) -> None:
        """Test stopping twice closes the client once."""
        await engine.start()
        await engine.stop()
        await engine.stop()

        client.aclose.assert_awaited_once()

    async def test_process_counts_sources(
        self,
        engine: TriageEngine,
        dispatcher: MagicMock,
        record_factory: Callable[..., NotificationRecord],
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test processed and fallback counters."""
        dispatcher.process.side_effect = [
            record_factory(source=ClassificationSource.REMOTE),
            record_factory(source=ClassificationSource.FALLBACK),
        ]

        first = await engine.process(message, profile, channel)
        second = await engine.process(message, profile, channel)

        assert first is not None and first.source == ClassificationSource.REMOTE
        assert second is not None and second.source == ClassificationSource.FALLBACK
        assert engine.stats == {
            "messages_processed": 2,
            "fallback_count": 1,
            "errors_count": 0,
            "active_tasks": 0,
        }

    async def test_process_error_returns_none(
        self,
        engine: TriageEngine,
        dispatcher: MagicMock,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test a failing pipeline is counted, not raised."""
        dispatcher.process.side_effect = RuntimeError("boom")

        assert await engine.process(message, profile, channel) is None
        assert engine.stats["errors_count"] == 1
        assert engine.stats["messages_processed"] == 0

    async def test_submit_runs_in_background(
        self,
        engine: TriageEngine,
        dispatcher: MagicMock,
        record_factory: Callable[..., NotificationRecord],
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test submitted pipelines resolve to their record."""
        record = record_factory()
        dispatcher.process.return_value = record
        await engine.start()

        task = engine.submit(message, profile, channel)

        assert await task is record
        await engine.stop()
        assert engine.stats["active_tasks"] == 0

    async def test_submit_after_stop_rejected(
        self,
        engine: TriageEngine,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test a stopping engine rejects new messages."""
        await engine.start()
        await engine.stop()

        with pytest.raises(EngineStoppedError):
            engine.submit(message, profile, channel)

    async def test_concurrency_is_bounded(
        self,
        engine: TriageEngine,
        dispatcher: MagicMock,
        record_factory: Callable[..., NotificationRecord],
        message_factory: Callable[..., IncomingMessage],
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test no more than max_concurrent pipelines run at once."""
        running = 0
        peak = 0

        async def slow_process(
            message: IncomingMessage, profile: UserProfile, channel: ChannelInfo
        ) -> NotificationRecord:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return record_factory(message_id=message.message_id)

        dispatcher.process.side_effect = slow_process
        await engine.start()

        tasks = [
            engine.submit(message_factory(message_id=f"1712.{i:04d}"), profile, channel)
            for i in range(6)
        ]
        records = await asyncio.gather(*tasks)

        assert peak == 2
        assert [r.message_id for r in records if r] == [f"1712.{i:04d}" for i in range(6)]
        await engine.stop()

    async def test_stop_cancels_stragglers(
        self,
        dispatcher: MagicMock,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test pipelines that outlive the shutdown timeout are cancelled."""

        async def hang(*args: object) -> None:
            await asyncio.sleep(10)

        dispatcher.process.side_effect = hang
        engine = TriageEngine(dispatcher, shutdown_timeout=0.01)
        await engine.start()

        task = engine.submit(message, profile, channel)
        await engine.stop()

        assert task.cancelled()


class TestCreateEngine:
    """Test the factory."""

    async def test_defaults_are_fallback_only(
        self,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test the default config triages with the fallback into an in-memory feed."""
        feed = InMemoryFeed()
        engine = create_engine(TriageConfig.model_validate({}), feed=feed)

        assert engine.client is not None
        assert engine.client.configured is False

        await engine.start()
        record = await engine.process(message, profile, channel)
        await engine.stop()

        assert record is not None
        assert record.source == ClassificationSource.FALLBACK
        assert len(feed.entries(profile.user_id)) == 1

    async def test_backend_provider(self) -> None:
        """Test the backend provider is wired from config."""
        config = TriageConfig.model_validate(
            {
                "classifier": {
                    "provider": "backend",
                    "timeout": 2,
                    "backend": {"base_url": "http://localhost:8000"},
                },
                "runtime": {"max_concurrent": 3},
            }
        )

        client = create_classification_client(config)

        assert client.configured is True
        assert client.provider_name == "backend"
        await client.aclose()

    async def test_completion_provider(self) -> None:
        """Test the completion provider is wired from config."""
        config = TriageConfig.model_validate(
            {"classifier": {"provider": "completion", "completion": {"api_key": "sk-test"}}}
        )

        client = create_classification_client(config)

        assert client.provider_name == "completion"
        await client.aclose()

    def test_missing_provider_section_rejected(self) -> None:
        """Test a provider without its section cannot be built."""
        config = TriageConfig.model_validate({"classifier": {"provider": "backend"}})

        with pytest.raises(ValueError, match="Backend configuration required"):
            create_engine(config)

    async def test_injected_empty_store_is_used(
        self,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> None:
        """Test a caller-provided store is used even while it is empty."""
        store = InMemorySettingsStore()
        engine = create_engine(TriageConfig.model_validate({}), settings_store=store)

        await engine.process(message, profile, channel)
        await engine.stop()

        assert len(store) == 1
