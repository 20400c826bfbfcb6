"""Shared classification derivation.

Both the completion classifier and the rule-based fallback produce only a
should-notify boolean. Everything else in a ``ClassificationResult``
(category, priority, confidence, tags, reasoning) is derived here from the
message text, so the two paths cannot drift apart.
"""

from __future__ import annotations

import random
import re
from collections.abc import Iterable
from dataclasses import replace

from notification_triage.models.classification import ClassificationResult
from notification_triage.models.enums import Category, NotificationLevel, Priority
from notification_triage.models.settings import UserSettings

CONFIDENCE_BASELINES: dict[str, int] = {
    Category.URGENT: 95,
    Category.MENTION: 90,
    Category.IMPORTANT: 85,
    Category.SPAM: 88,
}
DEFAULT_CONFIDENCE = 75
CONFIDENCE_JITTER = 5
MIN_CONFIDENCE = 60
MAX_CONFIDENCE = 99

# Checked in order; the first matching category wins.
CATEGORY_PATTERNS: tuple[tuple[Category, re.Pattern[str]], ...] = (
    (
        Category.URGENT,
        re.compile(
            r"\b(urgent|emergency|asap|immediate(ly)?|outage|critical|down|broken)\b",
            re.IGNORECASE,
        ),
    ),
    (Category.MENTION, re.compile(r"<@[\w.-]+>|@|\bmention(s|ed)?\b", re.IGNORECASE)),
    (Category.IMPORTANT, re.compile(r"\b(important|deadlines?|meetings?)\b", re.IGNORECASE)),
    (Category.SPAM, re.compile(r"\b(spam|advertisements?|promotions?)\b", re.IGNORECASE)),
)

TAG_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("meeting", re.compile(r"meeting", re.IGNORECASE)),
    ("deadline", re.compile(r"deadline", re.IGNORECASE)),
    ("urgent", re.compile(r"urgent|asap", re.IGNORECASE)),
    ("help-request", re.compile(r"help|assist", re.IGNORECASE)),
    ("question", re.compile(r"question|\?", re.IGNORECASE)),
    ("technical", re.compile(r"bug|error|issue", re.IGNORECASE)),
    ("social", re.compile(r"lunch|coffee|social", re.IGNORECASE)),
)

LEVEL_DESCRIPTIONS: dict[NotificationLevel, str] = {
    NotificationLevel.ALL: "I want to receive notifications for all messages.",
    NotificationLevel.MENTIONS: (
        "I only want to be notified when I am mentioned or messaged directly."
    ),
    NotificationLevel.IMPORTANT: (
        "I only want to be notified about important messages, urgent issues "
        "and direct mentions."
    ),
    NotificationLevel.NONE: "I do not want any notifications unless it is extremely urgent.",
}

_REASONING: dict[tuple[str, bool], str] = {
    (Category.URGENT, True): "Urgent wording indicates immediate attention is required.",
    (Category.URGENT, False): (
        "Urgent wording is present, but the message does not call for action from you."
    ),
    (Category.MENTION, True): "You were mentioned or addressed directly in this message.",
    (Category.MENTION, False): "The mention looks casual or informational only.",
    (Category.IMPORTANT, True): (
        "The content looks important given your notification preferences."
    ),
    (Category.IMPORTANT, False): "Informational message that needs no immediate action.",
    (Category.SPAM, True): "Promotional or spam-like content detected.",
    (Category.SPAM, False): "Promotional or spam-like content detected.",
    (Category.GENERAL, True): "The message looks relevant to your notification preferences.",
    (Category.GENERAL, False): "Casual conversation that does not need a notification.",
}


def build_user_description(settings: UserSettings) -> str:
    """Describe the user's preferences as a sentence for the classifier prompt."""
    description = LEVEL_DESCRIPTIONS[settings.notification_level]
    if settings.keywords:
        description += (
            " Pay special attention to messages containing these keywords: "
            f"{', '.join(settings.keywords)}."
        )
    return description


def derive_category(text: str, should_notify: bool) -> str:
    """Assign a category from the message text; the first matching pattern wins."""
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(text):
            return category
    return Category.IMPORTANT if should_notify else Category.GENERAL


def derive_priority(category: str) -> Priority:
    if category == Category.URGENT:
        return Priority.HIGH
    if category in (Category.IMPORTANT, Category.MENTION):
        return Priority.MEDIUM
    return Priority.LOW


def derive_confidence(category: str, rng: random.Random | None = None) -> int:
    """Per-category baseline plus bounded jitter, clamped to [60, 99]."""
    rng = rng or random.Random()
    confidence = CONFIDENCE_BASELINES.get(category, DEFAULT_CONFIDENCE)
    confidence += rng.randint(-CONFIDENCE_JITTER, CONFIDENCE_JITTER)
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))


def derive_tags(text: str, category: str) -> frozenset[str]:
    tags = {str(category)}
    tags.update(tag for tag, pattern in TAG_PATTERNS if pattern.search(text))
    return frozenset(tags)


def derive_reasoning(category: str, should_notify: bool) -> str:
    key = (category if category in CONFIDENCE_BASELINES else Category.GENERAL, should_notify)
    return _REASONING[key]


def derive_result(
    text: str,
    should_notify: bool,
    rng: random.Random | None = None,
) -> ClassificationResult:
    """Build a complete result around a should-notify decision."""
    category = derive_category(text, should_notify)
    return ClassificationResult(
        should_notify=should_notify,
        confidence=derive_confidence(category, rng),
        category=category,
        priority=derive_priority(category),
        reasoning=derive_reasoning(category, should_notify),
        tags=derive_tags(text, category),
    )


def apply_keyword_triggers(
    result: ClassificationResult,
    keywords: Iterable[str],
    text: str,
) -> ClassificationResult:
    """Force a notification when the text contains one of the user's keywords.

    Matching is a case-insensitive substring test. Matched keywords are
    recorded as ``keyword:<word>`` tags next to a plain ``keyword`` tag.
    """
    lowered = text.lower()
    matched = [keyword for keyword in keywords if keyword and keyword.lower() in lowered]
    if not matched:
        return result

    tags = {"keyword", *(f"keyword:{keyword.lower()}" for keyword in matched)}
    reasoning = result.reasoning
    if not result.should_notify:
        reasoning = f"Matched your keywords ({', '.join(matched)}). {reasoning}"
    return replace(result.with_tags(*tags), should_notify=True, reasoning=reasoning)
