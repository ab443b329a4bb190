"""Crystallization workflow — answer turn → extraction → knowledge store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from crystallize.config import settings
from crystallize.errors import ExtractionFailure, ValidationRejection
from crystallize.knowledge.models import Crystal
from crystallize.preferences import View

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from crystallize.conversation.store import ConversationStore
    from crystallize.knowledge.models import ExtractionPayload
    from crystallize.knowledge.store import KnowledgeStore

    ExtractFn = Callable[[str, str], Awaitable[ExtractionPayload]]

logger = logging.getLogger(__name__)

FAILURE_NOTICE = "Failed to crystallize insight. Try again."
DISCARDED_NOTICE = "The knowledge base was cleared while this insight was being crystallized."


@dataclass
class CrystallizeOutcome:
    """What the caller should show after a crystallization attempt."""

    crystal: Crystal | None = None
    notice: str | None = None
    switch_to: View | None = None

    @property
    def ok(self) -> bool:
        return self.crystal is not None


class CrystallizationOrchestrator:
    """Turns a completed assistant turn into a Crystal.

    State kept between calls: the set of turn ids currently being
    crystallized, which refuses a second concurrent request for the same turn,
    and a generation counter. :meth:`invalidate` bumps the counter when the
    knowledge base is reset or the session closes; an extraction that started
    under an older generation is dropped instead of stored.
    """

    def __init__(
        self,
        knowledge: KnowledgeStore,
        conversation: ConversationStore,
        extract: ExtractFn | None = None,
        default_context: str | None = None,
    ) -> None:
        self._knowledge = knowledge
        self._conversation = conversation
        if extract is None:
            from crystallize.knowledge.extraction import extract_knowledge

            extract = extract_knowledge
        self._extract = extract
        self.default_context = default_context or settings.default_context_label
        self._in_progress: set[str] = set()
        self._generation = 0

    def is_crystallizing(self, turn_id: str) -> bool:
        return turn_id in self._in_progress

    def invalidate(self) -> None:
        """Drop the results of every crystallization currently in flight."""
        self._generation += 1

    def resolve_context(self, turn_id: str) -> str:
        """The question behind *turn_id*: the preceding turn's text if a user wrote it.

        Falls back to the default label when there is no preceding turn or it
        is not a user turn.
        """
        previous = self._conversation.previous(turn_id)
        if previous is not None and previous.is_user:
            return previous.text
        return self.default_context

    async def crystallize(self, turn_id: str) -> CrystallizeOutcome:
        """Extract a Crystal from the assistant turn *turn_id* and store it.

        Returns:
            On success, the new crystal and a request to show the knowledge
            view. On extraction failure, a notice for the user; the store is
            left unchanged.

        Raises:
            ValidationRejection: If the turn is already being crystallized,
                does not exist, is a user turn, or is still pending.
        """
        if turn_id in self._in_progress:
            raise ValidationRejection("This answer is already being crystallized")

        self._in_progress.add(turn_id)
        try:
            return await self._run(turn_id)
        finally:
            self._in_progress.discard(turn_id)

    async def _run(self, turn_id: str) -> CrystallizeOutcome:
        turn = self._conversation.get(turn_id)
        if turn is None:
            raise ValidationRejection(f"No turn with id {turn_id}")
        if not turn.is_assistant:
            raise ValidationRejection("Only answers can be crystallized")
        if turn.pending:
            raise ValidationRejection("The answer is still being written")

        context = self.resolve_context(turn_id)
        generation = self._generation

        try:
            payload = await self._extract(turn.text, context)
        except ExtractionFailure as exc:
            logger.warning("Crystallization of turn %s failed: %s", turn_id, exc)
            return CrystallizeOutcome(notice=FAILURE_NOTICE)
        except Exception:
            logger.exception("Crystallization error for turn %s", turn_id)
            return CrystallizeOutcome(notice=FAILURE_NOTICE)

        if generation != self._generation:
            logger.info("Discarding crystal for turn %s: store was reset", turn_id)
            return CrystallizeOutcome(notice=DISCARDED_NOTICE)

        source_url = turn.citations[0].uri if turn.citations else None
        crystal = await self._knowledge.add(Crystal.from_payload(payload, source_url))
        return CrystallizeOutcome(crystal=crystal, switch_to=View.KNOWLEDGE)
