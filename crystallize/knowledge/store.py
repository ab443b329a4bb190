"""KnowledgeStore — a user's crystallized records, most recent first."""

from __future__ import annotations

import json
import logging
from collections import deque
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from crystallize.db import knowledge_key
from crystallize.errors import PersistenceFailure
from crystallize.knowledge.models import Crystal

if TYPE_CHECKING:
    from crystallize.db import RecordStore

logger = logging.getLogger(__name__)

_CRYSTALS = TypeAdapter(list[Crystal])


class KnowledgeStore:
    """Crystal collection for a single identity.

    The in-memory collection is authoritative; each change is written back
    to the record store on a best-effort basis.
    """

    def __init__(self, records: RecordStore, identity: str) -> None:
        self._records = records
        self.identity = identity
        self._crystals: deque[Crystal] = deque()

    @classmethod
    async def load(cls, records: RecordStore, identity: str) -> KnowledgeStore:
        """Restore the persisted collection for *identity* (empty if none)."""
        store = cls(records, identity)
        raw = await records.get(store.key)
        if raw is None:
            return store

        try:
            store._crystals = deque(_CRYSTALS.validate_json(raw))
        except ValidationError:
            logger.exception("Discarding unreadable knowledge base for %s", identity)
            return store
        logger.info("Loaded %d crystals for %s", len(store._crystals), identity)
        return store

    @property
    def key(self) -> str:
        return knowledge_key(self.identity)

    # -- Read ------------------------------------------------------------------

    @property
    def crystals(self) -> list[Crystal]:
        return list(self._crystals)

    def __len__(self) -> int:
        return len(self._crystals)

    def get(self, crystal_id: str) -> Crystal | None:
        return next((c for c in self._crystals if c.id == crystal_id), None)

    def search(self, term: str) -> list[Crystal]:
        """Case-insensitive substring search across title, content, keywords and category.

        Results keep store order (most recent first). An empty term matches
        everything.
        """
        return [c for c in self._crystals if c.matches(term)]

    # -- Write -----------------------------------------------------------------

    async def add(self, crystal: Crystal) -> Crystal:
        """Prepend a crystal."""
        self._crystals.appendleft(crystal)
        await self._persist()
        logger.info("Stored crystal %s: %s", crystal.id, crystal.title[:80])
        return crystal

    async def remove(self, crystal_id: str) -> bool:
        """Remove the crystal with *crystal_id*. Returns False if it was absent."""
        crystal = self.get(crystal_id)
        if crystal is None:
            return False
        self._crystals.remove(crystal)
        await self._persist()
        logger.info("Deleted crystal %s", crystal_id)
        return True

    async def clear(self) -> int:
        """Empty the collection and delete its persisted record entirely."""
        count = len(self._crystals)
        self._crystals.clear()
        try:
            await self._records.delete(self.key)
        except PersistenceFailure:
            logger.exception("Failed to delete knowledge base for %s (non-fatal)", self.identity)
        return count

    # -- Helpers ---------------------------------------------------------------

    async def _persist(self) -> None:
        payload = json.dumps([c.model_dump(mode="json") for c in self._crystals])
        try:
            await self._records.put(self.key, payload)
        except PersistenceFailure:
            logger.exception("Failed to persist knowledge base for %s (non-fatal)", self.identity)
