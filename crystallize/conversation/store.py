"""ConversationStore — a user's ordered turn log with a capped persisted window."""

from __future__ import annotations

import json
import logging
from collections import OrderedDict
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from crystallize.config import settings
from crystallize.conversation.models import HistoryEntry, Turn
from crystallize.db import conversation_key
from crystallize.errors import PersistenceFailure

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from crystallize.db import RecordStore

logger = logging.getLogger(__name__)

INTERRUPTED_REPLY = "Request cancelled."

_TURNS = TypeAdapter(list[Turn])


class ConversationStore:
    """Conversation history for a single identity.

    Turns are held in an insertion-ordered map keyed by id, so a turn can be
    replaced by id without moving it. Every change writes the most recent
    ``window_size`` turns to the record store. Writes are best-effort: a
    failure is logged and the in-memory log stays authoritative.
    """

    def __init__(
        self,
        records: RecordStore,
        identity: str,
        window_size: int | None = None,
    ) -> None:
        self._records = records
        self.identity = identity
        self.window_size = window_size or settings.conversation_window_size
        self._turns: OrderedDict[str, Turn] = OrderedDict()

    @classmethod
    async def load(
        cls,
        records: RecordStore,
        identity: str,
        window_size: int | None = None,
    ) -> ConversationStore:
        """Restore the persisted conversation for *identity* (empty if none)."""
        store = cls(records, identity, window_size)
        raw = await records.get(store.key)
        if raw is None:
            return store

        try:
            turns = _TURNS.validate_json(raw)
        except ValidationError:
            logger.exception("Discarding unreadable conversation for %s", identity)
            return store

        for turn in turns:
            # A pending turn on disk means the process stopped mid-call.
            if turn.pending:
                turn = turn.complete(INTERRUPTED_REPLY)
            store._turns[turn.id] = turn
        logger.info("Loaded %d turns for %s", len(store._turns), identity)
        return store

    @property
    def key(self) -> str:
        return conversation_key(self.identity)

    # -- Read ------------------------------------------------------------------

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns.values())

    def __len__(self) -> int:
        return len(self._turns)

    def __contains__(self, turn_id: object) -> bool:
        return turn_id in self._turns

    def get(self, turn_id: str) -> Turn | None:
        return self._turns.get(turn_id)

    def previous(self, turn_id: str) -> Turn | None:
        """Return the turn immediately before *turn_id*, if any."""
        prior: Turn | None = None
        for current_id, turn in self._turns.items():
            if current_id == turn_id:
                return prior
            prior = turn
        return None

    @property
    def pending(self) -> Turn | None:
        """The pending placeholder, if one exists."""
        return next((t for t in self._turns.values() if t.pending), None)

    def history(self) -> list[HistoryEntry]:
        """Completed turns in the ``{speaker, text}`` shape sent to the model."""
        return [
            HistoryEntry(speaker=t.speaker, text=t.text)
            for t in self._turns.values()
            if not t.pending
        ]

    # -- Write -----------------------------------------------------------------

    async def append(self, turn: Turn) -> Turn:
        """Append a turn to the end of the log."""
        self._turns[turn.id] = turn
        await self._persist()
        return turn

    async def mutate(self, turn_id: str, updater: Callable[[Turn], Turn]) -> Turn | None:
        """Replace the turn *turn_id* with ``updater(turn)`` in place.

        Silently does nothing if the id is absent (e.g. the log was cleared
        while a response was in flight).
        """
        current = self._turns.get(turn_id)
        if current is None:
            logger.debug("Ignoring update for unknown turn %s", turn_id)
            return None
        updated = updater(current)
        self._turns[turn_id] = updated
        await self._persist()
        return updated

    async def replace_all(self, turns: Iterable[Turn]) -> None:
        """Swap the whole log for *turns*."""
        self._turns = OrderedDict((t.id, t) for t in turns)
        await self._persist()

    async def clear(self) -> int:
        """Empty the log and remove its persisted record. Returns the count cleared."""
        count = len(self._turns)
        self._turns.clear()
        try:
            await self._records.delete(self.key)
        except PersistenceFailure:
            logger.exception("Failed to delete conversation for %s (non-fatal)", self.identity)
        return count

    # -- Helpers ---------------------------------------------------------------

    def snapshot(self) -> list[Turn]:
        """The window of turns that a write would persist, oldest first."""
        return list(self._turns.values())[-self.window_size :]

    async def _persist(self) -> None:
        payload = json.dumps([t.model_dump(mode="json") for t in self.snapshot()])
        try:
            await self._records.put(self.key, payload)
        except PersistenceFailure:
            logger.exception("Failed to persist conversation for %s (non-fatal)", self.identity)
