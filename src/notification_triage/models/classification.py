"""Data models for classification requests and results."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from .enums import Priority
from .message import ChannelInfo, IncomingMessage
from .settings import UserSettings


@dataclass(frozen=True)
class ClassificationRequest:
    """Everything the classifier sees about one message."""

    message: IncomingMessage
    user_settings: UserSettings
    channel_info: ChannelInfo

    def to_payload(self) -> dict[str, Any]:
        """Render the request in the wire shape the classification backend expects."""
        message: dict[str, Any] = {
            "text": self.message.text,
            "user_id": self.message.user_id,
            "channel_id": self.message.channel_id,
            "timestamp": self.message.wire_timestamp,
        }
        if self.message.thread_id:
            message["thread_ts"] = self.message.thread_id

        channel_info: dict[str, Any] = {
            "name": self.channel_info.name,
            "is_private": self.channel_info.is_private,
        }
        if self.channel_info.member_count is not None:
            channel_info["member_count"] = self.channel_info.member_count

        return {
            "message": message,
            "context": {
                "user_settings": self.user_settings.model_dump(mode="json", by_alias=True),
                "channel_info": channel_info,
            },
        }


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying one message for one user."""

    should_notify: bool
    confidence: int  # 0 to 100
    category: str  # Open vocabulary; well-known values in Category
    priority: Priority
    reasoning: str
    tags: frozenset[str] = field(default_factory=frozenset)

    def with_tags(self, *tags: str) -> ClassificationResult:
        """Return a copy carrying additional tags."""
        return replace(self, tags=self.tags | frozenset(tags))

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_notify": self.should_notify,
            "confidence": self.confidence,
            "category": str(self.category),
            "priority": self.priority.value,
            "reasoning": self.reasoning,
            "tags": sorted(self.tags),
        }
