"""Slack delivery adapter using slack_sdk.

This module implements the DirectAlertSender protocol for Slack: alerts are
posted as direct messages from the bot to the recipient's user id. It also
converts raw Slack message events into the engine's IncomingMessage.

Event subscription and OAuth installation are handled by the hosting app;
this adapter only needs a bot token.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from ...config.schema import SlackConfig
from ...models.message import ChannelInfo, IncomingMessage, UserProfile
from ...utils.async_helpers import DeliveryError

log = structlog.get_logger()

# Message subtypes that are not user-authored chat messages
SKIPPED_SUBTYPES = frozenset(
    {
        "bot_message",
        "message_changed",
        "message_deleted",
        "message_replied",
        "channel_join",
        "channel_leave",
        "channel_topic",
        "channel_purpose",
        "channel_name",
    }
)


def parse_message_event(
    event: dict[str, Any],
    team_id: str | None = None,
) -> IncomingMessage | None:
    """Convert a Slack message event into an IncomingMessage.

    Args:
        event: The Slack ``message`` event payload.
        team_id: Workspace the event came from (falls back to ``event["team"]``).

    Returns:
        The message, or None for bot messages, non-chat subtypes, events
        without a user and blank messages.
    """
    if event.get("bot_id") or event.get("subtype") in SKIPPED_SUBTYPES:
        return None

    user_id = event.get("user")
    text = event.get("text") or ""
    message_id = event.get("ts") or ""
    channel_id = event.get("channel") or ""
    if not user_id or not text.strip() or not message_id or not channel_id:
        return None

    try:
        timestamp = datetime.fromtimestamp(float(message_id), tz=UTC)
    except (ValueError, TypeError, OverflowError):
        timestamp = datetime.now(UTC)

    log.debug(
        "message_event_parsed",
        channel_id=channel_id,
        message_id=message_id,
        team_id=team_id or event.get("team"),
    )

    return IncomingMessage(
        message_id=message_id,
        text=text,
        user_id=user_id,
        channel_id=channel_id,
        timestamp=timestamp,
        thread_id=event.get("thread_ts"),
    )


class SlackDeliveryAdapter:
    """Slack adapter implementing the DirectAlertSender protocol.

    Example:
        config = SlackConfig(bot_token="xoxb-...")
        adapter = SlackDeliveryAdapter(config)

        await adapter.send_direct_alert("U123", render_direct_alert(message, channel, result))
    """

    def __init__(self, config: SlackConfig, client: AsyncWebClient | None = None) -> None:
        """Initialize the Slack adapter.

        Args:
            config: Slack-specific configuration.
            client: Web API client. If None, creates one from the bot token.
        """
        self._config = config
        self._client = client or AsyncWebClient(token=config.bot_token)

    async def send_direct_alert(self, user_id: str, payload: dict[str, Any]) -> str:
        """Post a rendered alert as a direct message to ``user_id``.

        Returns:
            Message ID (ts) of the sent alert.

        Raises:
            DeliveryError: If the alert could not be delivered.
        """
        kwargs: dict[str, Any] = {
            "channel": user_id,
            "text": payload.get("text", ""),
            "unfurl_links": False,
            "unfurl_media": False,
        }
        if payload.get("blocks"):
            kwargs["blocks"] = payload["blocks"]

        try:
            result = await self._client.chat_postMessage(**kwargs)
        except SlackApiError as e:
            log.error(
                "direct_alert_post_failed",
                user_id=user_id,
                error=e.response.get("error", str(e)) if e.response is not None else str(e),
            )
            raise DeliveryError(f"Failed to send direct alert: {e}") from e

        message_ts: str = result.get("ts", "")
        log.debug("direct_alert_posted", user_id=user_id, message_ts=message_ts)
        return message_ts

    async def get_user_profile(self, user_id: str, team_id: str) -> UserProfile:
        """Look up a user's profile; falls back to a bare profile on API errors."""
        try:
            result = await self._client.users_info(user=user_id)
        except SlackApiError as e:
            log.warning("user_lookup_failed", user_id=user_id, error=str(e))
            return UserProfile(user_id=user_id, team_id=team_id)

        user: dict[str, Any] = result.get("user", {})
        profile: dict[str, Any] = user.get("profile", {})
        return UserProfile(
            user_id=user_id,
            team_id=user.get("team_id") or team_id,
            name=profile.get("display_name") or profile.get("real_name") or user.get("name"),
            email=profile.get("email"),
            timezone=user.get("tz"),
        )

    async def get_channel_info(self, channel_id: str) -> ChannelInfo:
        """Look up channel metadata; falls back to the id as name on API errors."""
        try:
            result = await self._client.conversations_info(
                channel=channel_id, include_num_members=True
            )
        except SlackApiError as e:
            log.warning("channel_lookup_failed", channel_id=channel_id, error=str(e))
            return ChannelInfo(channel_id=channel_id, name=channel_id)

        channel: dict[str, Any] = result.get("channel", {})
        return ChannelInfo(
            channel_id=channel_id,
            name=channel.get("name") or channel_id,
            is_private=bool(channel.get("is_private", False)),
            member_count=channel.get("num_members"),
        )
