"""Data models for crystallized knowledge."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def make_crystal_id() -> str:
    """Generate a new crystal ID."""
    return uuid.uuid4().hex


class ExtractionPayload(BaseModel):
    """Structured result requested from the extraction call.

    Validated strictly: every field is required and no value is coerced
    into a different type.
    """

    model_config = ConfigDict(strict=True, extra="ignore")

    title: str
    summary: str
    keywords: list[str]
    category: str


class Crystal(BaseModel):
    """A structured knowledge record distilled from an answer."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=make_crystal_id)
    title: str
    content: str
    keywords: tuple[str, ...] = ()
    category: str
    source_url: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("keywords", mode="before")
    @classmethod
    def _dedupe_keywords(cls, value):
        # Order-preserving set semantics.
        if isinstance(value, list | tuple):
            return tuple(dict.fromkeys(value))
        return value

    @classmethod
    def from_payload(cls, payload: ExtractionPayload, source_url: str | None = None) -> Crystal:
        """Build a crystal from a validated extraction payload."""
        return cls(
            title=payload.title,
            content=payload.summary,
            keywords=payload.keywords,
            category=payload.category,
            source_url=source_url,
        )

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on title, content, keywords, or category."""
        needle = term.lower()
        if not needle:
            return True
        return (
            needle in self.title.lower()
            or needle in self.content.lower()
            or any(needle in kw.lower() for kw in self.keywords)
            or needle in self.category.lower()
        )
