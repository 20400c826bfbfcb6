"""Utility functions and helpers.

This module provides various utilities for the triage engine:
- security: Secret redaction, text cleaning, config masking
- async_helpers: Error taxonomy, linear-backoff retry, timeouts
- logging: Structured logging with secret sanitization
- health: Health check utilities
- metrics: Application metrics collection
"""

from notification_triage.utils.async_helpers import (
    ClassifierError,
    ClassifierProtocolError,
    ClassifierRejected,
    ClassifierUnavailable,
    DeliveryError,
    SettingsValidationError,
    TriageError,
)
from notification_triage.utils.health import (
    HealthChecker,
    HealthReport,
    HealthStatus,
)
from notification_triage.utils.logging import (
    LogEvent,
    LogFormat,
    LogLevel,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from notification_triage.utils.metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    Timer,
    get_metrics,
)
from notification_triage.utils.security import (
    RedactionError,
    SecretRedactor,
    clean_text,
    mask_settings,
)

__all__ = [
    # Errors
    "ClassifierError",
    "ClassifierProtocolError",
    "ClassifierRejected",
    "ClassifierUnavailable",
    "DeliveryError",
    "SettingsValidationError",
    "TriageError",
    # Metrics
    "Counter",
    "Gauge",
    "Histogram",
    "MetricsRegistry",
    "Timer",
    "get_metrics",
    # Health
    "HealthChecker",
    "HealthReport",
    "HealthStatus",
    # Logging
    "LogEvent",
    "LogFormat",
    "LogLevel",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
    # Security
    "RedactionError",
    "SecretRedactor",
    "clean_text",
    "mask_settings",
]
