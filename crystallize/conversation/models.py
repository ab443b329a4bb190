"""Data models for conversation turns and their grounding sources."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field


class Speaker(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


def make_turn_id() -> str:
    """Generate a new turn ID."""
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(UTC)


class Citation(BaseModel):
    """A source reference attached to a completed assistant turn."""

    model_config = ConfigDict(frozen=True)

    uri: str
    label: str

    @classmethod
    def from_source(cls, uri: str, title: str | None = None) -> Citation:
        """Build a citation, labelling it with the uri's host when untitled."""
        label = (title or "").strip()
        if not label:
            label = urlparse(uri).hostname or uri
        return cls(uri=uri, label=label)


class Turn(BaseModel):
    """One message in a conversation.

    Attributes:
        id: Unique identifier (UUID hex); generation order is insertion order.
        speaker: Who authored the turn.
        text: Message body; empty while ``pending``.
        created_at: When the turn was created.
        pending: True only for the assistant placeholder awaiting a response.
        citations: Grounding sources, attached when the turn completes.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=make_turn_id)
    speaker: Speaker
    text: str = ""
    created_at: datetime = Field(default_factory=_now)
    pending: bool = False
    citations: tuple[Citation, ...] | None = None

    @property
    def is_assistant(self) -> bool:
        return self.speaker == Speaker.ASSISTANT

    @property
    def is_user(self) -> bool:
        return self.speaker == Speaker.USER

    def complete(self, text: str, citations: list[Citation] | tuple[Citation, ...] | None = None) -> Turn:
        """Return the finished form of a pending turn."""
        return self.model_copy(
            update={
                "text": text,
                "citations": tuple(citations) if citations is not None else None,
                "pending": False,
            }
        )


class HistoryEntry(BaseModel):
    """The ``{speaker, text}`` view of a turn sent to the remote capability."""

    speaker: Speaker
    text: str


class Answer(BaseModel):
    """Result of a grounded query."""

    text: str = ""
    citations: list[Citation] = Field(default_factory=list)
