"""Abstract interface for per-user settings storage."""

from collections.abc import Mapping
from typing import Any, Protocol

from ..models.settings import UserSettings, UserSettingsUpdate


class UserSettingsStore(Protocol):
    """Storage for notification settings keyed by ``(user_id, team_id)``.

    Implementations must serialize read-modify-write per key so that two
    concurrent ``update`` calls for the same user never lose a write.
    """

    async def get_or_create(self, user_id: str, team_id: str) -> UserSettings:
        """
        Return the stored settings, creating the defaults on first access.

        Never returns an empty value: missing settings are not an error.
        """
        ...

    async def update(
        self,
        user_id: str,
        team_id: str,
        partial: Mapping[str, Any] | UserSettingsUpdate,
    ) -> UserSettings:
        """
        Merge a partial update into the stored settings.

        Top-level groups present in ``partial`` replace the stored group;
        absent groups are left untouched.

        Returns:
            The merged settings

        Raises:
            SettingsValidationError: If the merged settings are invalid
        """
        ...
