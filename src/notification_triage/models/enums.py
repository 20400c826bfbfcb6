"""Enumerations shared by settings, classification and delivery models."""

from enum import StrEnum


class NotificationLevel(StrEnum):
    """Coarse global notification filter chosen by the user."""

    ALL = "all"
    MENTIONS = "mentions"
    IMPORTANT = "important"
    NONE = "none"


class Category(StrEnum):
    """Well-known classification categories.

    The category vocabulary is open: a classification backend may return
    other values, which are carried through as plain strings.
    """

    URGENT = "urgent"
    IMPORTANT = "important"
    MENTION = "mention"
    KEYWORD = "keyword"
    SPAM = "spam"
    GENERAL = "general"
    QUESTION = "question"
    MEETING = "meeting"
    SOCIAL = "social"


class Priority(StrEnum):
    """Delivery priority derived from the category."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ClassificationSource(StrEnum):
    """Which classifier produced a result."""

    REMOTE = "remote"
    FALLBACK = "fallback"


class PipelineState(StrEnum):
    """Per-message pipeline states, visited strictly in order."""

    RECEIVED = "received"
    CLASSIFYING = "classifying"
    CLASSIFIED = "classified"
    FALLBACK_CLASSIFIED = "fallback_classified"
    POLICY_RESOLVED = "policy_resolved"
    DISPATCHED = "dispatched"
