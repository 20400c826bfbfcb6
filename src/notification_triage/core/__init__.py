"""Core business logic components.

This module exports the main business logic classes:
- TriageEngine: Runs message pipelines with bounded concurrency
- NotificationDispatcher: Orchestrates the per-message triage pipeline
- ClassificationClient: Calls the remote classifier with retry and timeout
- RuleFallbackClassifier: Keyword heuristic used when the classifier is down
- DeliveryPolicyResolver: Decides between direct alert, feed, both or neither
- InMemorySettingsStore: Per-user settings with per-key locking
"""

from notification_triage.core.analytics import AnalyticsPeriod, UserAnalytics, build_user_analytics
from notification_triage.core.classification_client import ClassificationClient
from notification_triage.core.delivery_policy import DeliveryPolicyResolver
from notification_triage.core.dispatcher import NotificationDispatcher
from notification_triage.core.engine import TriageEngine, create_engine
from notification_triage.core.fallback import RuleFallbackClassifier, classify_heuristically
from notification_triage.core.rendering import render_direct_alert
from notification_triage.core.settings_store import InMemorySettingsStore

__all__ = [
    "AnalyticsPeriod",
    "ClassificationClient",
    "DeliveryPolicyResolver",
    "InMemorySettingsStore",
    "NotificationDispatcher",
    "RuleFallbackClassifier",
    "TriageEngine",
    "UserAnalytics",
    "build_user_analytics",
    "classify_heuristically",
    "create_engine",
    "render_direct_alert",
]
