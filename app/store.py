"""Whole-value persistence of the tracked collection and preferences."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import KeyValueEntry
from .models import Preferences, Show

logger = logging.getLogger(__name__)

SHOWS_KEY = "shows"
PREFERENCES_KEY = "preferences"


class ShowStore:
    """Read and write whole values in the keyed store.

    There are no partial updates: callers read the full collection, modify
    it, and write it back.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _read(self, key: str) -> Any:
        async with self._session_factory() as session:
            result = await session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            )
            return result.scalar_one_or_none()

    async def _write(self, key: str, value: Any) -> None:
        async with self._session_factory() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            await session.commit()

    async def load_shows(self) -> list[Show]:
        raw = await self._read(SHOWS_KEY)
        if not isinstance(raw, list):
            return []
        shows: list[Show] = []
        for entry in raw:
            try:
                shows.append(Show.model_validate(entry))
            except ValidationError:
                logger.warning("Skipping unreadable stored show: %r", entry)
        return shows

    async def save_shows(self, shows: Sequence[Show]) -> None:
        await self._write(SHOWS_KEY, [show.to_payload() for show in shows])

    async def load_preferences(self) -> Preferences:
        raw = await self._read(PREFERENCES_KEY)
        if not isinstance(raw, dict):
            return Preferences()
        try:
            return Preferences.model_validate(raw)
        except ValidationError:
            logger.warning("Stored preferences are invalid, using defaults")
            return Preferences()

    async def save_preferences(self, preferences: Preferences) -> None:
        await self._write(PREFERENCES_KEY, preferences.to_payload())
