"""Rule-based classifier used when the remote classifier is unavailable."""

from __future__ import annotations

import random
from dataclasses import replace

import structlog

from notification_triage.core.derivation import build_user_description, derive_result
from notification_triage.models.classification import ClassificationRequest, ClassificationResult
from notification_triage.utils.logging import LogEvent

log = structlog.get_logger()

URGENCY_VOCABULARY: tuple[str, ...] = ("urgent", "help", "important", "emergency", "asap")
FALLBACK_TAG = "fallback"
FALLBACK_REASONING_PREFIX = "[Fallback rules]"


def classify_heuristically(message_text: str, user_description: str) -> bool:
    """Decide whether to notify using a fixed urgency vocabulary.

    True when the message contains any urgency word (case-insensitive
    substring) or the user's stated preference mentions "all".
    """
    text = message_text.lower()
    if any(word in text for word in URGENCY_VOCABULARY):
        return True
    return "all" in user_description.lower()


class RuleFallbackClassifier:
    """Degraded-mode substitute for the remote classifier.

    The dispatcher calls this only once the remote path has failed or is
    not configured; it has no external dependency and does not raise.

    Example:
        fallback = RuleFallbackClassifier()
        result = fallback.classify(request)
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def classify(self, request: ClassificationRequest) -> ClassificationResult:
        text = request.message.text
        description = build_user_description(request.user_settings)
        should_notify = classify_heuristically(text, description)

        result = derive_result(text, should_notify, self._rng)
        result = replace(
            result.with_tags(FALLBACK_TAG),
            reasoning=f"{FALLBACK_REASONING_PREFIX} {result.reasoning}",
        )

        log.info(
            LogEvent.FALLBACK_CLASSIFICATION,
            message_id=request.message.message_id,
            should_notify=result.should_notify,
            category=result.category,
        )
        return result
