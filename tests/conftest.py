"""Shared test fixtures for the notification triage engine."""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime

import pytest

from notification_triage.models.classification import ClassificationRequest, ClassificationResult
from notification_triage.models.enums import Priority
from notification_triage.models.message import ChannelInfo, IncomingMessage, UserProfile
from notification_triage.models.settings import UserSettings
from notification_triage.utils.metrics import MetricsRegistry

URGENT_TEXT = "Production is down! Need immediate help."
SOCIAL_TEXT = "Anyone want to grab coffee?"


@pytest.fixture(autouse=True)
def fresh_metrics() -> Iterator[None]:
    """Give every test its own metrics registry."""
    MetricsRegistry._instance = None
    yield
    MetricsRegistry._instance = None


@pytest.fixture
def message_factory() -> Callable[..., IncomingMessage]:
    """Build incoming messages with sensible defaults."""

    def _make(
        text: str = URGENT_TEXT,
        message_id: str = "1712345678.000100",
        user_id: str = "U0SENDER",
        channel_id: str = "C0ENG",
        thread_id: str | None = None,
    ) -> IncomingMessage:
        return IncomingMessage(
            message_id=message_id,
            text=text,
            user_id=user_id,
            channel_id=channel_id,
            timestamp=datetime(2024, 4, 5, 19, 21, 18, tzinfo=UTC),
            thread_id=thread_id,
        )

    return _make


@pytest.fixture
def message(message_factory: Callable[..., IncomingMessage]) -> IncomingMessage:
    return message_factory()


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(user_id="U0RECIPIENT", team_id="T0TEAM", name="Sam")


@pytest.fixture
def channel() -> ChannelInfo:
    return ChannelInfo(channel_id="C0ENG", name="engineering", is_private=False, member_count=42)


@pytest.fixture
def default_settings() -> UserSettings:
    return UserSettings.default()


@pytest.fixture
def request_factory(
    message_factory: Callable[..., IncomingMessage],
    channel: ChannelInfo,
) -> Callable[..., ClassificationRequest]:
    """Build classification requests around a message text."""

    def _make(
        text: str = URGENT_TEXT,
        settings: UserSettings | None = None,
    ) -> ClassificationRequest:
        return ClassificationRequest(
            message=message_factory(text=text),
            user_settings=settings or UserSettings.default(),
            channel_info=channel,
        )

    return _make


@pytest.fixture
def result_factory() -> Callable[..., ClassificationResult]:
    """Build classification results with sensible defaults."""

    def _make(
        should_notify: bool = True,
        category: str = "important",
        priority: Priority = Priority.MEDIUM,
        confidence: int = 85,
        reasoning: str = "test reasoning",
        tags: frozenset[str] = frozenset(),
    ) -> ClassificationResult:
        return ClassificationResult(
            should_notify=should_notify,
            confidence=confidence,
            category=category,
            priority=priority,
            reasoning=reasoning,
            tags=tags,
        )

    return _make
