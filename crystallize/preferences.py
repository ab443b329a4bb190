"""Application-level preferences kept outside any user's data."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from crystallize.errors import PersistenceFailure

if TYPE_CHECKING:
    from crystallize.db import RecordStore

logger = logging.getLogger(__name__)

USERNAME_KEY = "crystallize_username"
THEME_KEY = "crystallize_theme"


class Theme(StrEnum):
    LIGHT = "light"
    DARK = "dark"


class View(StrEnum):
    CHAT = "chat"
    KNOWLEDGE = "knowledge"


class PreferenceStore:
    """The active identity name and the light/dark preference.

    Both live in their own records, independent of any conversation.
    """

    def __init__(self, records: RecordStore) -> None:
        self._records = records

    async def get_identity(self) -> str | None:
        raw = await self._records.get(USERNAME_KEY)
        return raw or None

    async def set_identity(self, name: str) -> None:
        try:
            await self._records.put(USERNAME_KEY, name)
        except PersistenceFailure:
            logger.exception("Failed to remember identity (non-fatal)")

    async def clear_identity(self) -> None:
        try:
            await self._records.delete(USERNAME_KEY)
        except PersistenceFailure:
            logger.exception("Failed to forget identity (non-fatal)")

    async def get_theme(self) -> Theme:
        raw = await self._records.get(THEME_KEY)
        return Theme.DARK if raw == Theme.DARK else Theme.LIGHT

    async def set_theme(self, theme: Theme) -> None:
        try:
            await self._records.put(THEME_KEY, theme.value)
        except PersistenceFailure:
            logger.exception("Failed to save theme (non-fatal)")
