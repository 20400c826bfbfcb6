"""Resilient invocation of a remote classifier.

The client wraps a ``ClassifierProvider`` with a per-attempt timeout and a
bounded retry loop with linear backoff. It never falls back by itself: when
the provider stays unavailable it raises ``ClassifierUnavailable`` and the
dispatcher decides what to do.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from notification_triage.config.schema import RetryConfig
from notification_triage.utils.async_helpers import (
    RETRYABLE_ERRORS,
    ClassifierProtocolError,
    ClassifierUnavailable,
    create_linear_retry,
    with_timeout,
)
from notification_triage.utils.logging import LogEvent
from notification_triage.utils.metrics import get_metrics

if TYPE_CHECKING:
    from notification_triage.interfaces.classifier import ClassifierProvider
    from notification_triage.models.classification import (
        ClassificationRequest,
        ClassificationResult,
    )

log = structlog.get_logger()

DEFAULT_TIMEOUT = 30.0


class ClassificationClient:
    """Calls a classifier provider with timeout and bounded retry.

    Retry policy:
    - up to ``retry.max_retries`` attempts in total
    - after failed attempt ``n`` wait ``retry.base_delay * n`` seconds
    - the last failed attempt raises ``ClassifierUnavailable`` instead of waiting

    Transport errors, HTTP error statuses, ``success: false`` envelopes and
    attempt timeouts are retried. ``ClassifierProtocolError`` is raised at
    once. Any other provider error is raised as ``ClassifierUnavailable``
    without a retry.

    Example:
        client = ClassificationClient(provider, RetryConfig(max_retries=3))
        result = await client.classify(request)
    """

    def __init__(
        self,
        provider: ClassifierProvider | None,
        retry: RetryConfig | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            provider: Classifier adapter, or None when no classifier is configured
            retry: Retry settings (defaults to 3 attempts with a 1 s base delay)
            timeout: Per-attempt timeout in seconds
            sleep: Coroutine used to wait between attempts (for tests)
        """
        self._provider = provider
        self._retry = retry or RetryConfig()
        self._timeout = timeout
        self._sleep = sleep
        self._metrics = get_metrics()

    @classmethod
    def unconfigured(cls) -> ClassificationClient:
        """Return a client whose ``classify`` always raises ``ClassifierUnavailable``."""
        return cls(provider=None)

    @property
    def configured(self) -> bool:
        return self._provider is not None

    @property
    def provider_name(self) -> str:
        return self._provider.name if self._provider is not None else "none"

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        """Classify a message, retrying transient failures.

        Raises:
            ClassifierUnavailable: If no provider is configured, all attempts failed
                or the provider raised an unexpected error
            ClassifierProtocolError: If the provider's response could not be parsed
        """
        provider = self._provider
        if provider is None:
            raise ClassifierUnavailable("No classifier configured", attempts=0)

        attempts = 0
        start = time.perf_counter()
        retrying = create_linear_retry(
            max_attempts=self._retry.max_retries,
            base_delay=self._retry.base_delay,
            sleep=self._sleep,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    self._metrics.classifier_attempts.inc(labels={"provider": provider.name})
                    log.info(
                        LogEvent.CLASSIFIER_ATTEMPT,
                        provider=provider.name,
                        method="POST",
                        endpoint=provider.endpoint,
                        attempt=attempts,
                        timestamp=datetime.now(UTC).isoformat(),
                    )
                    result = await with_timeout(
                        provider.classify(request),
                        self._timeout,
                        f"Classifier did not answer within {self._timeout}s",
                    )
        except ClassifierProtocolError as e:
            self._metrics.classifier_failures.inc(labels={"provider": provider.name})
            log.warning(
                LogEvent.CLASSIFIER_PROTOCOL_ERROR,
                provider=provider.name,
                attempt=attempts,
                error=str(e),
            )
            raise
        except RETRYABLE_ERRORS as e:
            self._metrics.classifier_failures.inc(labels={"provider": provider.name})
            log.error(
                LogEvent.CLASSIFIER_UNAVAILABLE,
                provider=provider.name,
                attempts=attempts,
                exception_type=type(e).__name__,
                error=str(e),
            )
            raise ClassifierUnavailable(
                f"Classifier {provider.name} unavailable after {attempts} attempts: {e}",
                attempts=attempts,
            ) from e
        except Exception as e:
            # Not retried; still routed to the fallback
            self._metrics.classifier_failures.inc(labels={"provider": provider.name})
            log.exception(
                LogEvent.CLASSIFIER_UNAVAILABLE,
                provider=provider.name,
                attempts=attempts,
                exception_type=type(e).__name__,
                error=str(e),
            )
            raise ClassifierUnavailable(
                f"Classifier {provider.name} failed unexpectedly: {e}",
                attempts=attempts,
            ) from e
        finally:
            self._metrics.classifier_duration.observe(
                time.perf_counter() - start, labels={"provider": provider.name}
            )

        return result

    async def health_check(self) -> bool:
        """Check whether the provider is reachable."""
        if self._provider is None:
            return False
        try:
            return await asyncio.wait_for(self._provider.health_check(), timeout=self._timeout)
        except Exception as e:
            log.warning("classifier_health_check_failed", provider=self.provider_name, error=str(e))
            return False

    async def aclose(self) -> None:
        """Close the provider's HTTP client."""
        if self._provider is not None:
            await self._provider.aclose()
