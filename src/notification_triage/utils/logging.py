"""Structured logging for the triage engine.

structlog renders every entry through the standard library so that file and
console handlers behave alike. Each entry carries the service name and the
message/user context bound by the pipeline, and credentials are scrubbed
from every value before rendering.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from enum import StrEnum
from pathlib import Path
from typing import Any, cast

import structlog
from structlog.typing import Processor, WrappedLogger

from notification_triage.utils.security import SecretRedactor

SERVICE_NAME = "notification-triage"

EventDict = MutableMapping[str, Any]


class LogFormat(StrEnum):
    JSON = "json"
    CONSOLE = "console"


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogEvent(StrEnum):
    """Stable event names that dashboards and alerts key on."""

    ENGINE_STARTED = "engine_started"
    ENGINE_STOPPING = "engine_stopping"
    ENGINE_STOPPED = "engine_stopped"

    MESSAGE_RECEIVED = "message_received"
    PIPELINE_STATE = "pipeline_state"
    MESSAGE_PROCESSED = "message_processed"
    MESSAGE_ERROR = "message_error"

    CLASSIFIER_ATTEMPT = "classifier_attempt"
    CLASSIFIER_PROTOCOL_ERROR = "classifier_protocol_error"
    CLASSIFIER_UNAVAILABLE = "classifier_unavailable"
    FALLBACK_CLASSIFICATION = "fallback_classification"

    DIRECT_ALERT_SENT = "direct_alert_sent"
    DIRECT_ALERT_FAILED = "direct_alert_failed"
    FEED_APPENDED = "feed_appended"
    FEED_APPEND_FAILED = "feed_append_failed"

    SETTINGS_CREATED = "settings_created"
    SETTINGS_UPDATED = "settings_updated"

    HEALTH_CHECK_START = "health_check_start"
    HEALTH_CHECK_COMPLETE = "health_check_complete"


class SecretScrubber:
    """structlog processor that redacts credentials from every value.

    Strings are redacted; mappings, lists and tuples are walked recursively
    and keep their type.
    """

    def __init__(self, redactor: SecretRedactor | None = None) -> None:
        self._redactor = redactor or SecretRedactor()

    def scrub(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._redactor.redact(value)
        if isinstance(value, dict):
            return {k: self.scrub(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.scrub(v) for v in value)
        return value

    def __call__(
        self, logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        for key, value in event_dict.items():
            event_dict[key] = self.scrub(value)
        return event_dict


def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag entries with the service name and version."""
    event_dict.setdefault("service", SERVICE_NAME)
    try:
        from notification_triage._version import __version__
    except (ImportError, RuntimeError):
        return event_dict
    event_dict.setdefault("version", __version__)
    return event_dict


def _renderer(log_format: LogFormat) -> Processor:
    if log_format == LogFormat.JSON:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(), exception_formatter=structlog.dev.plain_traceback
    )


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_format: LogFormat | str = LogFormat.JSON,
    file_path: Path | str | None = None,
    file_enabled: bool = False,
) -> None:
    """Configure structlog and the root logger.

    Safe to call more than once; the CLI calls it again once the config file
    has been read.

    Args:
        level: Minimum level to emit
        log_format: ``json`` for aggregation, ``console`` for humans
        file_path: Log file, used only when ``file_enabled`` is set
        file_enabled: Also write entries to ``file_path``
    """
    level = LogLevel(str(level).upper())
    log_format = LogFormat(str(log_format).lower())
    numeric_level = logging.getLevelName(level.value)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        SecretScrubber(),
        _renderer(log_format),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error: OSError | None = None
    if file_enabled and file_path:
        path = Path(file_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(path))
        except OSError as e:
            file_error = e
    for handler in handlers:
        handler.setLevel(numeric_level)

    logging.basicConfig(format="%(message)s", level=numeric_level, handlers=handlers, force=True)

    if file_error is not None:
        # Continue with console only
        get_logger(__name__).warning(
            "log_file_unavailable", path=str(file_path), error=str(file_error)
        )


def get_logger(name: str | None = None) -> WrappedLogger:
    return cast(WrappedLogger, structlog.get_logger(name))


def bind_context(**kwargs: Any) -> None:
    """Attach values to every entry logged from the current task.

    Example:
        bind_context(message_id="1712345678.000100", user_id="U456")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
