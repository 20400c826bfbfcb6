"""Async utility functions for resilient classifier calls.

This module provides:
- The triage error taxonomy
- A retry factory with linearly increasing backoff
- Timeout wrappers for async operations
"""

from __future__ import annotations

import asyncio
import builtins
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

log = structlog.get_logger()

T = TypeVar("T")


# =============================================================================
# Custom Exceptions
# =============================================================================


class TriageError(Exception):
    """Base exception for all triage engine errors."""


class ClassifierError(TriageError):
    """Base exception for classification failures."""


class ClassifierUnavailable(ClassifierError):
    """The classifier could not be reached after all retries, or is not configured.

    Attributes:
        attempts: Number of attempts made before giving up.
    """

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class ClassifierProtocolError(ClassifierError):
    """The classifier answered, but the response could not be parsed."""


class ClassifierRejected(ClassifierError):
    """The classifier answered with an application-level failure (``success: false``).

    Attributes:
        code: Error code reported by the backend, if any.
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class DeliveryError(TriageError):
    """A direct alert or feed write could not be delivered."""


class SettingsValidationError(TriageError):
    """A settings update does not describe valid user settings."""


class TimeoutError(TriageError):
    """Operation timed out."""


# =============================================================================
# Retry
# =============================================================================

# Failures that count as one failed attempt and are retried.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    httpx.HTTPStatusError,
    ClassifierRejected,
    TimeoutError,
    builtins.TimeoutError,
)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts for debugging."""
    if retry_state.outcome is None:
        return

    exception = retry_state.outcome.exception()
    if exception:
        log.warning(
            "classifier_retry",
            attempt=retry_state.attempt_number,
            exception_type=type(exception).__name__,
            exception_message=str(exception),
            wait_time=retry_state.next_action.sleep if retry_state.next_action else 0,
        )


def create_linear_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> AsyncRetrying:
    """Create an async retry controller with linear backoff.

    After failed attempt ``n`` the controller waits ``base_delay * n`` seconds.
    The last failed attempt re-raises its exception instead of sleeping.

    Args:
        max_attempts: Total number of attempts, including the first.
        base_delay: Delay after the first failure (seconds).
        retry_on: Exception types that trigger another attempt.
        sleep: Coroutine used to wait between attempts (defaults to asyncio.sleep).

    Returns:
        A tenacity ``AsyncRetrying`` iterator.
    """
    kwargs: dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=base_delay, increment=base_delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        reraise=True,
        **kwargs,
    )


# =============================================================================
# Timeout Utilities
# =============================================================================


async def with_timeout(
    coro: Awaitable[T],
    timeout: float,
    error_message: str | None = None,
) -> T:
    """Execute an awaitable with a timeout.

    Args:
        coro: The coroutine to execute.
        timeout: Timeout in seconds.
        error_message: Custom error message for timeout.

    Returns:
        The result of the coroutine.

    Raises:
        TimeoutError: If the operation times out.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except builtins.TimeoutError as e:
        msg = error_message or f"Operation timed out after {timeout}s"
        log.warning("operation_timeout", timeout=timeout)
        raise TimeoutError(msg) from e

