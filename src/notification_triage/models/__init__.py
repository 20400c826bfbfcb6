"""Data models and transfer objects."""

from .classification import ClassificationRequest, ClassificationResult
from .enums import (
    Category,
    ClassificationSource,
    NotificationLevel,
    PipelineState,
    Priority,
)
from .message import ChannelInfo, IncomingMessage, UserProfile
from .notification import DeliveryDecision, NotificationRecord
from .settings import (
    ChannelPreference,
    DeliveryPreferences,
    FilterSettings,
    QuietHours,
    UserSettings,
    UserSettingsUpdate,
)

__all__ = [
    # Enumerations
    "Category",
    "ClassificationSource",
    "NotificationLevel",
    "PipelineState",
    "Priority",
    # Message models
    "ChannelInfo",
    "IncomingMessage",
    "UserProfile",
    # Settings models
    "ChannelPreference",
    "DeliveryPreferences",
    "FilterSettings",
    "QuietHours",
    "UserSettings",
    "UserSettingsUpdate",
    # Classification models
    "ClassificationRequest",
    "ClassificationResult",
    # Delivery models
    "DeliveryDecision",
    "NotificationRecord",
]
