"""Turn-taking state machine for a research conversation."""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from crystallize.conversation.models import Speaker, Turn
from crystallize.conversation.store import INTERRUPTED_REPLY
from crystallize.errors import ServiceFailure, ValidationRejection

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from crystallize.conversation.models import Answer, HistoryEntry
    from crystallize.conversation.store import ConversationStore

    AnswerFn = Callable[[str, Sequence[HistoryEntry], str], Awaitable[Answer]]

logger = logging.getLogger(__name__)

EMPTY_ANSWER_REPLY = "I couldn't find anything on that, sorry."
ERROR_REPLY = (
    "I encountered an error accessing the knowledge stream. Please check your connection."
)


class ConversationState(StrEnum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


class ConversationOrchestrator:
    """Runs one question/answer exchange at a time against a ConversationStore.

    ``submit`` appends the user's turn and a pending assistant placeholder,
    calls the answer service, then fills the placeholder in place (by id)
    with the answer or with a fixed error message. Failures never escape
    and never leave a pending turn behind.
    """

    def __init__(
        self,
        store: ConversationStore,
        identity: str | None,
        answer: AnswerFn | None = None,
    ) -> None:
        self._store = store
        self.identity = identity
        if answer is None:
            from crystallize.llm.client import answer_query

            answer = answer_query
        self._answer = answer
        self._in_flight = False
        self._cancelled = False
        self._task: asyncio.Task[Answer] | None = None

    @property
    def state(self) -> ConversationState:
        if self._in_flight:
            return ConversationState.AWAITING_RESPONSE
        return ConversationState.IDLE

    @property
    def store(self) -> ConversationStore:
        return self._store

    async def submit(self, text: str) -> Turn:
        """Ask a question and wait for the assistant's turn to complete.

        Returns:
            The completed assistant turn (answer, fallback or error text).

        Raises:
            ValidationRejection: If *text* is blank, no identity is set, or a
                response is already being awaited. Nothing is changed.
        """
        if not text.strip():
            raise ValidationRejection("Message is empty")
        if not self.identity:
            raise ValidationRejection("No identity is set")
        if self._in_flight:
            raise ValidationRejection("Still waiting on the previous answer")

        self._in_flight = True
        self._cancelled = False
        try:
            return await self._exchange(text, self.identity)
        finally:
            self._task = None
            self._in_flight = False

    async def _exchange(self, text: str, identity: str) -> Turn:
        prior = self._store.history()
        await self._store.append(Turn(speaker=Speaker.USER, text=text))
        placeholder = await self._store.append(Turn(speaker=Speaker.ASSISTANT, pending=True))
        # cancel() may have run while the turns were being written.
        if self._cancelled:
            logger.info("Answer for turn %s cancelled before the call", placeholder.id)
            return await self._finish(placeholder, INTERRUPTED_REPLY)

        logger.info("Question from %s: %s", identity, text[:80])
        self._task = asyncio.create_task(self._answer(text, prior, identity))

        try:
            answer = await self._task
        except asyncio.CancelledError:
            logger.info("Answer for turn %s cancelled", placeholder.id)
            finished = await self._finish(placeholder, INTERRUPTED_REPLY)
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return finished
        except ServiceFailure:
            logger.warning("Answer service failed for turn %s", placeholder.id)
            return await self._finish(placeholder, ERROR_REPLY)
        except Exception:
            logger.exception("Error generating answer for turn %s", placeholder.id)
            return await self._finish(placeholder, ERROR_REPLY)

        return await self._finish(
            placeholder,
            answer.text if answer.text.strip() else EMPTY_ANSWER_REPLY,
            answer.citations,
        )

    async def _finish(self, placeholder: Turn, text: str, citations=None) -> Turn:
        updated = await self._store.mutate(
            placeholder.id, lambda turn: turn.complete(text, citations)
        )
        # The log may have been cleared mid-flight; report the detached result.
        return updated or placeholder.complete(text, citations)

    def cancel(self) -> bool:
        """Cancel the exchange in flight. Returns True if there was one.

        Before the answer call has started this stops it from being made;
        either way the placeholder ends up as the interruption text.
        """
        if not self._in_flight:
            return False
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return True
