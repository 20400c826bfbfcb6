"""Tests for shared classification derivation."""

import random
from typing import Any

import pytest

from notification_triage.core.derivation import (
    apply_keyword_triggers,
    build_user_description,
    derive_category,
    derive_confidence,
    derive_priority,
    derive_reasoning,
    derive_result,
    derive_tags,
)
from notification_triage.models.classification import ClassificationResult
from notification_triage.models.enums import Category, NotificationLevel, Priority
from notification_triage.models.settings import UserSettings


class FixedJitter:
    """Random source whose jitter is always the same value."""

    def __init__(self, value: int) -> None:
        self.value = value

    def randint(self, a: int, b: int) -> int:
        return self.value


class TestDeriveCategory:
    """Test category assignment from message text."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Production is down! Need immediate help.", Category.URGENT),
            ("URGENT: payments broken", Category.URGENT),
            ("Hey <@U123ABC> can you review?", Category.MENTION),
            ("Team meeting moved to 3pm", Category.IMPORTANT),
            ("Deadline for the report is Friday", Category.IMPORTANT),
            ("Huge promotion, buy now", Category.SPAM),
        ],
    )
    def test_patterns(self, text: str, expected: Category) -> None:
        """Test each category pattern."""
        assert derive_category(text, should_notify=False) == expected

    def test_urgent_wins_over_mention(self) -> None:
        """Test the first matching pattern wins."""
        assert derive_category("<@U1> the site is down", should_notify=False) == Category.URGENT

    def test_no_pattern_follows_decision(self) -> None:
        """Test unmatched text is important when notifying, else general."""
        assert derive_category("Anyone want to grab coffee?", True) == Category.IMPORTANT
        assert derive_category("Anyone want to grab coffee?", False) == Category.GENERAL

    def test_words_are_matched_whole(self) -> None:
        """Test that words containing a pattern word do not match."""
        assert derive_category("Let me download the file", False) == Category.GENERAL


class TestDerivePriority:
    """Test priority derivation."""

    def test_priorities(self) -> None:
        """Test each category's priority."""
        assert derive_priority(Category.URGENT) == Priority.HIGH
        assert derive_priority(Category.IMPORTANT) == Priority.MEDIUM
        assert derive_priority(Category.MENTION) == Priority.MEDIUM
        assert derive_priority(Category.SPAM) == Priority.LOW
        assert derive_priority(Category.GENERAL) == Priority.LOW
        assert derive_priority("something-new") == Priority.LOW


class TestDeriveConfidence:
    """Test confidence baselines and jitter."""

    def test_baselines(self) -> None:
        """Test per-category baselines without jitter."""
        no_jitter = FixedJitter(0)
        assert derive_confidence(Category.URGENT, no_jitter) == 95  # type: ignore[arg-type]
        assert derive_confidence(Category.MENTION, no_jitter) == 90  # type: ignore[arg-type]
        assert derive_confidence(Category.IMPORTANT, no_jitter) == 85  # type: ignore[arg-type]
        assert derive_confidence(Category.SPAM, no_jitter) == 88  # type: ignore[arg-type]
        assert derive_confidence(Category.GENERAL, no_jitter) == 75  # type: ignore[arg-type]

    def test_clamped_to_upper_bound(self) -> None:
        """Test that jitter cannot push confidence past 99."""
        assert derive_confidence(Category.URGENT, FixedJitter(5)) == 99  # type: ignore[arg-type]

    def test_jitter_stays_in_range(self) -> None:
        """Test confidence stays within bounds for any seed."""
        rng = random.Random(1234)
        values = {derive_confidence(Category.GENERAL, rng) for _ in range(200)}
        assert min(values) >= 70
        assert max(values) <= 80


class TestDeriveTags:
    """Test tag extraction."""

    def test_category_is_always_a_tag(self) -> None:
        """Test the category itself is tagged."""
        assert derive_tags("hello", Category.GENERAL) == {"general"}

    def test_content_tags(self) -> None:
        """Test content patterns add tags."""
        tags = derive_tags("Can you help with this bug before the meeting?", Category.IMPORTANT)
        assert tags == {"important", "help-request", "technical", "meeting", "question"}

    def test_social_tag(self) -> None:
        """Test social small talk is tagged."""
        assert "social" in derive_tags("Anyone want to grab coffee?", Category.GENERAL)


class TestDeriveResult:
    """Test full result derivation."""

    def test_urgent_message(self) -> None:
        """Test an outage message derives an urgent high-priority result."""
        jitter: Any = FixedJitter(0)
        result = derive_result("Production is down! Need immediate help.", True, jitter)

        assert result.should_notify is True
        assert result.category == Category.URGENT
        assert result.priority == Priority.HIGH
        assert result.confidence == 95
        assert result.tags == {"urgent", "help-request"}
        assert result.reasoning == derive_reasoning(Category.URGENT, True)

    def test_unknown_category_uses_general_reasoning(self) -> None:
        """Test categories without their own reasoning fall back to general."""
        assert derive_reasoning("question", False) == derive_reasoning(Category.GENERAL, False)


class TestUserDescription:
    """Test the preference sentence given to classifiers."""

    def test_only_all_level_mentions_all(self) -> None:
        """Test that only the ALL level contains the word "all"."""
        for level in NotificationLevel:
            description = build_user_description(UserSettings(notification_level=level))
            assert ("all" in description.lower()) is (level == NotificationLevel.ALL)

    def test_keywords_listed(self) -> None:
        """Test keywords are appended to the description."""
        settings = UserSettings(keywords=["deploy", "billing"])
        assert "deploy, billing" in build_user_description(settings)


class TestKeywordTriggers:
    """Test keyword-triggered notifications."""

    def _result(self, should_notify: bool) -> ClassificationResult:
        return ClassificationResult(
            should_notify=should_notify,
            confidence=75,
            category="general",
            priority=Priority.LOW,
            reasoning="Casual conversation.",
            tags=frozenset({"general"}),
        )

    def test_match_forces_notification(self) -> None:
        """Test that a matched keyword turns a skip into a notification."""
        result = apply_keyword_triggers(self._result(False), ["Deploy"], "the deploy failed")

        assert result.should_notify is True
        assert result.tags == {"general", "keyword", "keyword:deploy"}
        assert result.reasoning.startswith("Matched your keywords (Deploy).")
        assert result.category == "general"

    def test_reasoning_kept_when_already_notifying(self) -> None:
        """Test the reasoning is untouched when the result already notifies."""
        result = apply_keyword_triggers(self._result(True), ["deploy"], "deploy done")

        assert result.reasoning == "Casual conversation."
        assert "keyword:deploy" in result.tags

    def test_no_match_returns_same_result(self) -> None:
        """Test that no match leaves the result as-is."""
        original = self._result(False)
        assert apply_keyword_triggers(original, ["billing"], "lunch?") is original
        assert apply_keyword_triggers(original, [], "lunch?") is original
