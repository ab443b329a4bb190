"""Application state around the research session: identity, theme and view."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crystallize.db import RecordStore
from crystallize.errors import ValidationRejection
from crystallize.preferences import PreferenceStore, Theme, View
from crystallize.session import ResearchSession

if TYPE_CHECKING:
    from crystallize.conversation.models import Turn
    from crystallize.conversation.orchestrator import AnswerFn
    from crystallize.knowledge.models import Crystal
    from crystallize.knowledge.orchestrator import CrystallizeOutcome, ExtractFn

logger = logging.getLogger(__name__)


class Workspace:
    """The single active identity and what is currently shown.

    Switching identity closes the previous :class:`ResearchSession` (which
    cancels any in-flight answer) before the next one is opened.
    """

    def __init__(
        self,
        records: RecordStore | None = None,
        *,
        answer: AnswerFn | None = None,
        extract: ExtractFn | None = None,
    ) -> None:
        self.records = records or RecordStore()
        self.preferences = PreferenceStore(self.records)
        self.session: ResearchSession | None = None
        self.theme = Theme.LIGHT
        self.view = View.CHAT
        self._answer = answer
        self._extract = extract

    @property
    def identity(self) -> str | None:
        return self.session.identity if self.session else None

    # -- Lifecycle -------------------------------------------------------------

    async def restore(self) -> None:
        """Reload the saved theme and, if one was saved, the active identity."""
        self.theme = await self.preferences.get_theme()
        name = await self.preferences.get_identity()
        if name:
            await self._open(name)

    async def login(self, name: str) -> ResearchSession:
        """Make *name* the active identity. Blank names are rejected."""
        name = name.strip()
        if not name:
            raise ValidationRejection("Name is empty")
        self._close()
        await self.preferences.set_identity(name)
        self.view = View.CHAT
        return await self._open(name)

    async def logout(self) -> None:
        """Forget the active identity. Its stored data is kept."""
        self._close()
        await self.preferences.clear_identity()
        self.view = View.CHAT

    async def toggle_theme(self) -> Theme:
        self.theme = Theme.LIGHT if self.theme == Theme.DARK else Theme.DARK
        await self.preferences.set_theme(self.theme)
        return self.theme

    def show(self, view: View) -> None:
        self.view = view

    # -- Research --------------------------------------------------------------

    async def submit(self, text: str) -> Turn:
        return await self.require_session().submit(text)

    async def crystallize(self, turn_id: str) -> CrystallizeOutcome:
        outcome = await self.require_session().crystallize(turn_id)
        if outcome.switch_to is not None:
            self.view = outcome.switch_to
        return outcome

    def search(self, term: str = "") -> list[Crystal]:
        return self.require_session().knowledge.search(term)

    async def delete_crystal(self, crystal_id: str) -> bool:
        return await self.require_session().knowledge.remove(crystal_id)

    async def reset(self) -> None:
        await self.require_session().reset()

    # -- Helpers ---------------------------------------------------------------

    async def _open(self, name: str) -> ResearchSession:
        self.session = await ResearchSession.open(
            name, self.records, answer=self._answer, extract=self._extract
        )
        return self.session

    def _close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    def require_session(self) -> ResearchSession:
        if self.session is None:
            raise ValidationRejection("No identity is set")
        return self.session
