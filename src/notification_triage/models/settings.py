"""Per-user notification settings."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import time
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_serializer,
    field_validator,
)

from .enums import NotificationLevel, Priority

DEFAULT_QUIET_START = time(22, 0)
DEFAULT_QUIET_END = time(8, 0)
DEFAULT_TIMEZONE = "UTC"


class QuietHours(BaseModel):
    """Time-of-day window during which non-urgent direct alerts are held back.

    Times accept ``"HH:MM"`` strings and serialize back to that form under
    the ``start_time``/``end_time`` keys the classification backend expects.
    A missing or blank time falls back to the 22:00-08:00 default window.
    """

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    start: time = Field(default=DEFAULT_QUIET_START, alias="start_time")
    end: time = Field(default=DEFAULT_QUIET_END, alias="end_time")
    timezone: str = DEFAULT_TIMEZONE

    @field_validator("start", "end", mode="before")
    @classmethod
    def default_missing_time(cls, v: Any, info: ValidationInfo) -> Any:
        """Replace a missing start/end with the default window bound."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_QUIET_START if info.field_name == "start" else DEFAULT_QUIET_END
        return v

    @field_validator("timezone", mode="before")
    @classmethod
    def default_missing_timezone(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_TIMEZONE
        return v

    @field_serializer("start", "end")
    def serialize_time(self, value: time) -> str:
        return value.strftime("%H:%M")


class DeliveryPreferences(BaseModel):
    """Which categories may interrupt the user with a direct alert."""

    urgent_via_dm: bool = True
    important_via_dm: bool = True
    mentions_via_dm: bool = False
    feed_enabled: bool = True


class FilterSettings(BaseModel):
    """Filtering hints forwarded to the classification backend."""

    spam_detection: bool = True
    duplicate_detection: bool = True
    importance_threshold: int = Field(70, ge=0, le=100)


class ChannelPreference(BaseModel):
    """Per-channel rule forwarded to the classification backend."""

    enabled: bool = True
    priority: Priority = Priority.MEDIUM
    custom_rules: list[str] = []


class UserSettings(BaseModel):
    """Notification preferences of one user in one team."""

    notification_level: NotificationLevel = NotificationLevel.IMPORTANT
    keywords: list[str] = []
    channels: dict[str, ChannelPreference] = {}
    quiet_hours: QuietHours = QuietHours()
    delivery_preferences: DeliveryPreferences = DeliveryPreferences()
    filters: FilterSettings = FilterSettings()

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, v: list[str]) -> list[str]:
        """Strip blanks and drop case-insensitive duplicates, keeping order."""
        seen: set[str] = set()
        result: list[str] = []
        for keyword in v:
            keyword = keyword.strip()
            if keyword and keyword.lower() not in seen:
                seen.add(keyword.lower())
                result.append(keyword)
        return result

    @classmethod
    def default(cls) -> UserSettings:
        """Settings given to a user on first access."""
        return cls()

    def merged(self, partial: Mapping[str, Any]) -> UserSettings:
        """Return new settings with top-level groups from ``partial`` replacing ours.

        The merge is shallow: a group present in ``partial`` replaces the whole
        stored group (updating ``keywords`` replaces the list). Groups absent
        from ``partial`` are left untouched.

        Raises:
            KeyError: If ``partial`` names an unknown top-level group.
            pydantic.ValidationError: If the merged settings are invalid.
        """
        unknown = set(partial) - set(type(self).model_fields)
        if unknown:
            raise KeyError(f"Unknown settings fields: {', '.join(sorted(unknown))}")

        data = self.model_dump(by_alias=True)
        for key, value in partial.items():
            data[key] = value.model_dump(by_alias=True) if isinstance(value, BaseModel) else value
        return type(self).model_validate(data)


class UserSettingsUpdate(BaseModel):
    """A partial settings update; unset groups are left untouched."""

    notification_level: NotificationLevel | None = None
    keywords: list[str] | None = None
    channels: dict[str, ChannelPreference] | None = None
    quiet_hours: QuietHours | None = None
    delivery_preferences: DeliveryPreferences | None = None
    filters: FilterSettings | None = None

    def to_partial(self) -> dict[str, Any]:
        """Return only the groups that were explicitly provided."""
        return self.model_dump(exclude_unset=True, by_alias=True)
