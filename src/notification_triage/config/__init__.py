"""Configuration loading and validation."""

from .loader import load_config, validate_config
from .schema import (
    BackendClassifierConfig,
    ClassifierConfig,
    CompletionClassifierConfig,
    DeliveryConfig,
    FileLoggingConfig,
    LoggingConfig,
    RetryConfig,
    RuntimeConfig,
    SlackConfig,
    TriageConfig,
)

__all__ = [
    # Loader
    "load_config",
    "validate_config",
    # Root config
    "TriageConfig",
    # Top-level configs
    "ClassifierConfig",
    "RetryConfig",
    "DeliveryConfig",
    "LoggingConfig",
    "RuntimeConfig",
    # Provider-specific configs
    "BackendClassifierConfig",
    "CompletionClassifierConfig",
    "SlackConfig",
    "FileLoggingConfig",
]
