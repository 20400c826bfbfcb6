"""Triage engine that runs many message pipelines concurrently.

This module implements the TriageEngine class that serves as the main entry
point for callers that feed messages into the engine. It:
- Bounds concurrent pipelines with a semaphore
- Tracks in-flight pipelines and drains them on shutdown
- Handles graceful shutdown on signals (SIGTERM, SIGINT)
- Keeps processing statistics
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

import structlog

from notification_triage.config.schema import TriageConfig
from notification_triage.core.classification_client import ClassificationClient
from notification_triage.core.dispatcher import NotificationDispatcher
from notification_triage.core.settings_store import InMemorySettingsStore
from notification_triage.models.enums import ClassificationSource
from notification_triage.utils.async_helpers import TriageError
from notification_triage.utils.logging import LogEvent
from notification_triage.utils.metrics import get_metrics

if TYPE_CHECKING:
    from notification_triage.interfaces.classifier import ClassifierProvider
    from notification_triage.interfaces.delivery import DirectAlertSender, FeedWriter
    from notification_triage.interfaces.settings_store import UserSettingsStore
    from notification_triage.models.message import ChannelInfo, IncomingMessage, UserProfile
    from notification_triage.models.notification import NotificationRecord

log = structlog.get_logger()


class EngineError(TriageError):
    """Base exception for engine errors."""


class EngineStoppedError(EngineError):
    """The engine is shutting down and accepts no new messages."""


class TriageEngine:
    """Runs message pipelines with bounded concurrency.

    Responsibilities:
    - Schedule one pipeline task per (message, recipient)
    - Limit concurrent pipelines to ``max_concurrent``
    - Drain in-flight pipelines on stop, cancelling stragglers
    - Count processed, fallback-classified and failed messages

    Example:
        engine = TriageEngine(dispatcher, max_concurrent=5)
        engine.submit(message, profile, channel)
        record = await engine.process(message, profile, channel)
        await engine.stop()
    """

    DEFAULT_MAX_CONCURRENT = 5
    DEFAULT_SHUTDOWN_TIMEOUT = 30.0

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        client: ClassificationClient | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            dispatcher: Pipeline runner for single messages
            max_concurrent: Maximum number of pipelines in flight
            shutdown_timeout: Seconds to wait for in-flight pipelines on stop
            client: Classification client to close on stop
        """
        self._dispatcher = dispatcher
        self._client = client
        self._max_concurrent = max_concurrent
        self._shutdown_timeout = shutdown_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._active_tasks: set[asyncio.Task[NotificationRecord | None]] = set()
        self._metrics = get_metrics()

        self._running = False
        self._stopping = False

        self._messages_processed = 0
        self._fallback_count = 0
        self._errors_count = 0

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def client(self) -> ClassificationClient | None:
        return self._client

    @property
    def is_running(self) -> bool:
        """Return True if the engine has been started and not stopped."""
        return self._running

    @property
    def stats(self) -> dict[str, int]:
        """Return processing statistics."""
        return {
            "messages_processed": self._messages_processed,
            "fallback_count": self._fallback_count,
            "errors_count": self._errors_count,
            "active_tasks": len(self._active_tasks),
        }

    async def start(self, install_signal_handlers: bool = False) -> None:
        """Mark the engine as running and optionally stop on SIGTERM/SIGINT."""
        if self._running:
            log.warning("engine_already_running")
            return

        self._stopping = False
        self._running = True
        if install_signal_handlers:
            self._setup_signal_handlers()
        log.info(LogEvent.ENGINE_STARTED, max_concurrent=self._max_concurrent)

    async def stop(self) -> None:
        """Gracefully stop the engine.

        This method:
        1. Rejects new submissions
        2. Waits for in-flight pipelines (up to the shutdown timeout)
        3. Cancels pipelines that did not finish
        4. Closes the classification client
        """
        if self._stopping:
            return
        self._stopping = True

        log.info(LogEvent.ENGINE_STOPPING, active_tasks=len(self._active_tasks))
        await self._wait_for_tasks()

        if self._client is not None:
            try:
                await self._client.aclose()
            except Exception as e:
                log.warning("classifier_close_error", error=str(e))

        self._running = False
        log.info(
            LogEvent.ENGINE_STOPPED,
            messages_processed=self._messages_processed,
            fallback_count=self._fallback_count,
            errors=self._errors_count,
        )

    def submit(
        self,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> asyncio.Task[NotificationRecord | None]:
        """Schedule a pipeline for one message and recipient.

        Returns:
            The pipeline task; it resolves to the record, or None on failure

        Raises:
            EngineStoppedError: If the engine is stopping
        """
        if self._stopping:
            raise EngineStoppedError("Engine is stopping; message rejected")

        task = asyncio.create_task(
            self.process(message, profile, channel),
            name=f"triage_{message.message_id}_{profile.user_id}",
        )
        self._active_tasks.add(task)
        task.add_done_callback(self._active_tasks.discard)
        return task

    async def process(
        self,
        message: IncomingMessage,
        profile: UserProfile,
        channel: ChannelInfo,
    ) -> NotificationRecord | None:
        """Run one pipeline, respecting the concurrency limit.

        Errors are logged and counted rather than raised.

        Returns:
            The notification record, or None if the pipeline failed
        """
        async with self._semaphore:
            self._metrics.active_tasks.inc()
            try:
                record = await self._dispatcher.process(message, profile, channel)
            except Exception as e:
                log.exception(
                    "message_processing_error",
                    message_id=message.message_id,
                    user_id=profile.user_id,
                    error=str(e),
                )
                self._errors_count += 1
                return None
            finally:
                self._metrics.active_tasks.dec()

        self._messages_processed += 1
        if record.source == ClassificationSource.FALLBACK:
            self._fallback_count += 1
        return record

    async def _wait_for_tasks(self) -> None:
        """Wait for active tasks to complete with timeout."""
        if not self._active_tasks:
            return

        log.info("waiting_for_active_tasks", count=len(self._active_tasks))

        done, pending = await asyncio.wait(
            set(self._active_tasks),
            timeout=self._shutdown_timeout,
        )

        if pending:
            log.warning("cancelling_pending_tasks", count=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        log.info("tasks_completed", completed=len(done), cancelled=len(pending))

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda s: asyncio.create_task(self._handle_signal(s)),
                sig,
            )
            log.debug("signal_handler_registered", signal=sig.name)

    async def _handle_signal(self, sig: signal.Signals) -> None:
        log.info("received_signal", signal=sig.name)
        await self.stop()


def create_engine(
    config: TriageConfig,
    settings_store: UserSettingsStore | None = None,
    alert_sender: DirectAlertSender | None = None,
    feed: FeedWriter | None = None,
) -> TriageEngine:
    """Factory function to create a TriageEngine with all dependencies.

    Adapters not passed in are built from the configuration: the classifier
    provider from ``classifier.provider``, the Slack sender when
    ``delivery.slack`` is set, and an in-memory feed.

    Raises:
        ValueError: If configuration is invalid
    """
    client = create_classification_client(config)

    if settings_store is None:
        settings_store = InMemorySettingsStore()
    if alert_sender is None:
        alert_sender = _create_alert_sender(config)
    if feed is None:
        feed = _create_feed(config)

    dispatcher = NotificationDispatcher(
        client=client,
        settings_store=settings_store,
        alert_sender=alert_sender,
        feed=feed,
    )

    return TriageEngine(
        dispatcher,
        max_concurrent=config.runtime.max_concurrent,
        shutdown_timeout=config.runtime.shutdown_timeout,
        client=client,
    )


def create_classification_client(config: TriageConfig) -> ClassificationClient:
    """Build the classification client; unconfigured when no provider is selected."""
    provider = _create_classifier_provider(config)
    if provider is None:
        log.warning("classifier_not_configured", mode="fallback_only")
        return ClassificationClient.unconfigured()

    return ClassificationClient(
        provider,
        retry=config.retry,
        timeout=config.classifier.timeout,
    )


def _create_classifier_provider(config: TriageConfig) -> ClassifierProvider | None:
    """Create a classifier adapter based on configuration.

    Returns:
        Classifier provider instance, or None when no classifier is configured

    Raises:
        ValueError: If provider is not supported
    """
    provider = config.classifier.provider

    if provider == "none":
        return None

    if provider == "backend":
        if not config.classifier.backend:
            raise ValueError("Backend configuration required when provider is 'backend'")
        # Import here to avoid loading unnecessary dependencies
        from notification_triage.adapters.classifier.backend import BackendClassifierAdapter

        return BackendClassifierAdapter(config.classifier.backend)

    if provider == "completion":
        if not config.classifier.completion:
            raise ValueError("Completion configuration required when provider is 'completion'")
        from notification_triage.adapters.classifier.completion import (
            CompletionClassifierAdapter,
        )

        return CompletionClassifierAdapter(config.classifier.completion)

    raise ValueError(f"Unsupported classifier provider: {provider}")


def _create_alert_sender(config: TriageConfig) -> DirectAlertSender | None:
    if config.delivery.slack is None:
        log.warning("direct_alerts_disabled", reason="no slack delivery configured")
        return None

    from notification_triage.adapters.chat.slack import SlackDeliveryAdapter

    return SlackDeliveryAdapter(config.delivery.slack)


def _create_feed(config: TriageConfig) -> FeedWriter:
    from notification_triage.adapters.feed.memory import InMemoryFeed

    return InMemoryFeed(max_entries_per_user=config.delivery.feed_max_entries)
