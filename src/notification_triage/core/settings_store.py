"""In-memory user settings store with per-key locking."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from notification_triage.models.settings import UserSettings, UserSettingsUpdate
from notification_triage.utils.async_helpers import SettingsValidationError
from notification_triage.utils.logging import LogEvent

log = structlog.get_logger()

SettingsKey = tuple[str, str]


class InMemorySettingsStore:
    """Settings keyed by ``(user_id, team_id)`` held in process memory.

    Every operation on a key runs under that key's ``asyncio.Lock``, so a
    read-modify-write for one user never interleaves with another for the
    same user. Callers always receive copies; mutating a returned object
    does not change stored state.

    Example:
        store = InMemorySettingsStore()
        settings = await store.get_or_create("U123", "T001")
        settings = await store.update("U123", "T001", {"keywords": ["deploy"]})
    """

    def __init__(self, seed_defaults: UserSettings | None = None) -> None:
        """Initialize the store.

        Args:
            seed_defaults: Settings given to users on first access
                (defaults to ``UserSettings.default()``)
        """
        self._defaults = seed_defaults or UserSettings.default()
        self._settings: dict[SettingsKey, UserSettings] = {}
        self._locks: dict[SettingsKey, asyncio.Lock] = {}
        self._registry_lock = asyncio.Lock()

    async def _lock_for(self, key: SettingsKey) -> asyncio.Lock:
        async with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = asyncio.Lock()
            return lock

    def _load_or_seed(self, key: SettingsKey) -> UserSettings:
        settings = self._settings.get(key)
        if settings is None:
            settings = self._defaults.model_copy(deep=True)
            self._settings[key] = settings
            log.info(LogEvent.SETTINGS_CREATED, user_id=key[0], team_id=key[1])
        return settings

    async def _save(self, key: SettingsKey, settings: UserSettings) -> None:
        self._settings[key] = settings

    async def get_or_create(self, user_id: str, team_id: str) -> UserSettings:
        key = (user_id, team_id)
        async with await self._lock_for(key):
            return self._load_or_seed(key).model_copy(deep=True)

    async def update(
        self,
        user_id: str,
        team_id: str,
        partial: Mapping[str, Any] | UserSettingsUpdate,
    ) -> UserSettings:
        """Shallow-merge ``partial`` into the stored settings and return the result.

        Raises:
            SettingsValidationError: If ``partial`` names unknown groups or
                the merged settings fail validation
        """
        if isinstance(partial, UserSettingsUpdate):
            partial = partial.to_partial()

        key = (user_id, team_id)
        async with await self._lock_for(key):
            current = self._load_or_seed(key)
            try:
                merged = current.merged(partial)
            except KeyError as e:
                raise SettingsValidationError(str(e.args[0])) from e
            except ValidationError as e:
                raise SettingsValidationError(f"Invalid settings update: {e}") from e

            await self._save(key, merged)
            log.info(
                LogEvent.SETTINGS_UPDATED,
                user_id=user_id,
                team_id=team_id,
                groups=sorted(partial),
            )
            return merged.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._settings)
