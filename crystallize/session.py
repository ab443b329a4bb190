"""Per-identity research session: both stores plus the orchestrators using them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crystallize.conversation.models import Speaker, Turn
from crystallize.conversation.orchestrator import ConversationOrchestrator
from crystallize.conversation.store import ConversationStore
from crystallize.errors import ValidationRejection
from crystallize.knowledge.orchestrator import CrystallizationOrchestrator
from crystallize.knowledge.store import KnowledgeStore

if TYPE_CHECKING:
    from crystallize.conversation.orchestrator import AnswerFn
    from crystallize.db import RecordStore
    from crystallize.knowledge.orchestrator import CrystallizeOutcome, ExtractFn

logger = logging.getLogger(__name__)

WELCOME_TURN_ID = "welcome"


def welcome_turn(identity: str) -> Turn:
    """The greeting that opens a fresh conversation."""
    return Turn(
        id=WELCOME_TURN_ID,
        speaker=Speaker.ASSISTANT,
        text=(
            f"Hello **{identity}**! I am **Crystallize AI**. \n\n"
            "I can research the web for you and help you build a personal "
            "knowledge base. Ask me anything!"
        ),
    )


class ResearchSession:
    """Everything one identity can see and change.

    Obtained with :meth:`open` when an identity becomes active and closed
    when it stops being active. Closing cancels any answer still in flight
    and detaches the conversation orchestrator from the identity, so a late
    completion can only touch this session's own conversation.
    """

    def __init__(
        self,
        identity: str,
        conversation: ConversationStore,
        knowledge: KnowledgeStore,
        *,
        answer: AnswerFn | None = None,
        extract: ExtractFn | None = None,
    ) -> None:
        self.identity = identity
        self.conversation = conversation
        self.knowledge = knowledge
        self.chat = ConversationOrchestrator(conversation, identity, answer)
        self.crystallizer = CrystallizationOrchestrator(knowledge, conversation, extract)
        self._closed = False

    @classmethod
    async def open(
        cls,
        identity: str,
        records: RecordStore,
        *,
        answer: AnswerFn | None = None,
        extract: ExtractFn | None = None,
        window_size: int | None = None,
    ) -> ResearchSession:
        """Load *identity*'s conversation and knowledge base."""
        conversation = await ConversationStore.load(records, identity, window_size)
        if not len(conversation):
            await conversation.replace_all([welcome_turn(identity)])
        knowledge = await KnowledgeStore.load(records, identity)
        logger.info(
            "Opened session for %s (%d turns, %d crystals)",
            identity,
            len(conversation),
            len(knowledge),
        )
        return cls(identity, conversation, knowledge, answer=answer, extract=extract)

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(self, text: str) -> Turn:
        self._check_open()
        return await self.chat.submit(text)

    async def crystallize(self, turn_id: str) -> CrystallizeOutcome:
        self._check_open()
        return await self.crystallizer.crystallize(turn_id)

    async def reset(self) -> None:
        """Clear the conversation and knowledge base, then greet again.

        Work still in flight is cancelled or discarded so nothing lands in the
        cleared stores.
        """
        self._check_open()
        self.chat.cancel()
        self.crystallizer.invalidate()
        await self.conversation.clear()
        await self.knowledge.clear()
        await self.conversation.replace_all([welcome_turn(self.identity)])
        logger.info("Reset all data for %s", self.identity)

    def close(self) -> None:
        """Cancel in-flight answers and crystallizations and stop accepting requests."""
        if self._closed:
            return
        if self.chat.cancel():
            logger.info("Cancelled in-flight answer for %s", self.identity)
        self.crystallizer.invalidate()
        self.chat.identity = None
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise ValidationRejection(f"Session for {self.identity} is closed")
