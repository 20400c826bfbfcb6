"""Protocol definitions for pluggable adapters."""

from .classifier import ClassifierProvider
from .delivery import DirectAlertSender, FeedWriter
from .settings_store import UserSettingsStore

__all__ = ["ClassifierProvider", "DirectAlertSender", "FeedWriter", "UserSettingsStore"]
