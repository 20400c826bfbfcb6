"""Direct-alert rendering.

Builds the payload handed to a ``DirectAlertSender``: a plain-text fallback
plus Slack Block Kit blocks.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

from notification_triage.models.classification import ClassificationResult
from notification_triage.models.enums import Priority
from notification_triage.models.message import ChannelInfo, IncomingMessage
from notification_triage.utils.security import clean_text

QUOTE_MAX_LENGTH = 200
ACKNOWLEDGE_ACTION_ID = "acknowledge_notification"

PRIORITY_EMOJI: dict[Priority, str] = {
    Priority.HIGH: ":rotating_light:",
    Priority.MEDIUM: ":warning:",
    Priority.LOW: ":speech_balloon:",
}

CATEGORY_EMOJI: dict[str, str] = {
    "urgent": ":rotating_light:",
    "important": ":warning:",
    "mention": ":loudspeaker:",
    "keyword": ":mag:",
    "question": ":question:",
    "meeting": ":date:",
    "social": ":speech_balloon:",
    "spam": ":wastebasket:",
    "general": ":speech_balloon:",
}


def category_emoji(category: str) -> str:
    return CATEGORY_EMOJI.get(category.lower(), ":speech_balloon:")


def message_permalink(message: IncomingMessage) -> str:
    """Slack app-redirect URL that opens the message in its channel."""
    query = urlencode({"channel": message.channel_id, "message_ts": message.message_id})
    return f"https://slack.com/app_redirect?{query}"


def render_direct_alert(
    message: IncomingMessage,
    channel: ChannelInfo,
    result: ClassificationResult,
) -> dict[str, Any]:
    """Render a classified message as a direct alert.

    Returns:
        A mapping with ``text`` (notification fallback) and ``blocks``.
    """
    emoji = PRIORITY_EMOJI.get(result.priority, ":speech_balloon:")
    quote = clean_text(message.text, max_length=QUOTE_MAX_LENGTH)
    quote = "\n".join(f"> {line}" for line in quote.splitlines() or [""])

    blocks: list[dict[str, Any]] = [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"{emoji} *Smart notification from #{channel.name}*\n"
                    f"_{str(result.category).upper()} • {result.confidence}% confidence_"
                ),
            },
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": quote},
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f":bulb: *Why you are seeing this:* {result.reasoning}",
                },
            ],
        },
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {
                        "type": "plain_text",
                        "text": ":eyes: View in channel",
                        "emoji": True,
                    },
                    "url": message_permalink(message),
                },
                {
                    "type": "button",
                    "text": {
                        "type": "plain_text",
                        "text": ":white_check_mark: Got it",
                        "emoji": True,
                    },
                    "action_id": ACKNOWLEDGE_ACTION_ID,
                    "value": message.message_id,
                },
            ],
        },
    ]

    return {
        "text": f"{category_emoji(result.category)} Smart notification from #{channel.name}",
        "blocks": blocks,
    }
