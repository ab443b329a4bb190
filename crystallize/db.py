"""RecordStore — aiosqlite key/value storage for structured-text records.

Every persisted piece of state (a user's crystals, a user's conversation,
the active identity, the theme) is one row keyed by a string and holding a
JSON document. Stores above this layer decide what the keys and documents
look like.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import aiosqlite

from crystallize.config import settings
from crystallize.errors import PersistenceFailure

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS records (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""


def knowledge_key(identity: str) -> str:
    """Record key of an identity's crystal collection."""
    return f"crystal_db_{identity}"


def conversation_key(identity: str) -> str:
    """Record key of an identity's conversation log."""
    return f"crystal_chat_{identity}"


class RecordStore:
    """Persists named records in SQLite.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    Reads return ``None`` for missing keys; failed writes and deletes raise
    :class:`PersistenceFailure`.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @property
    def path(self) -> Path:
        return self._db_path

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    # -- CRUD ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Fetch the stored document for *key*, or None if not found."""
        try:
            db = await self._connect()
        except (aiosqlite.Error, OSError):
            logger.exception("Failed to open record store at %s", self._db_path)
            return None
        try:
            cursor = await db.execute("SELECT value FROM records WHERE key = ?", (key,))
            row = await cursor.fetchone()
            return row[0] if row else None
        except aiosqlite.Error:
            logger.exception("Failed to read record %s", key)
            return None
        finally:
            await db.close()

    async def put(self, key: str, value: str) -> None:
        """Insert or replace the document stored under *key*."""
        now = datetime.now(UTC).isoformat()
        try:
            db = await self._connect()
            try:
                await db.execute(
                    "INSERT OR REPLACE INTO records (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, value, now),
                )
                await db.commit()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            raise PersistenceFailure(f"Could not write record {key}") from exc
        logger.debug("Wrote record %s (%d chars)", key, len(value))

    async def delete(self, key: str) -> bool:
        """Delete the record under *key*. Returns True if a row was removed."""
        try:
            db = await self._connect()
            try:
                cursor = await db.execute("DELETE FROM records WHERE key = ?", (key,))
                await db.commit()
                removed = cursor.rowcount > 0
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            raise PersistenceFailure(f"Could not delete record {key}") from exc
        if removed:
            logger.info("Deleted record %s", key)
        return removed

    async def keys(self) -> list[str]:
        """Return every stored key, sorted."""
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT key FROM records ORDER BY key")
            rows = await cursor.fetchall()
            return [row[0] for row in rows]
        finally:
            await db.close()
