"""Fakes for the remote answer and extraction capabilities."""

from __future__ import annotations

import asyncio

from crystallize.conversation.models import Answer
from crystallize.knowledge.models import ExtractionPayload


class GatedAnswer:
    """Answer service fake that blocks until ``release`` is set."""

    def __init__(self, answer: Answer | None = None, exc: Exception | None = None) -> None:
        self.answer = answer or Answer(text="An answer.")
        self.exc = exc
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls: list[tuple] = []

    async def __call__(self, query, history, user_label) -> Answer:
        self.calls.append((query, list(history), user_label))
        self.started.set()
        await self.release.wait()
        if self.exc is not None:
            raise self.exc
        return self.answer


class GatedExtract:
    """Extraction service fake that blocks until ``release`` is set."""

    def __init__(self, payload: ExtractionPayload) -> None:
        self.payload = payload
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, source_text: str, context: str) -> ExtractionPayload:
        self.started.set()
        await self.release.wait()
        return self.payload


def make_payload(**overrides) -> ExtractionPayload:
    data = {
        "title": "Entropy",
        "summary": "Entropy measures disorder. It never decreases in an isolated system.",
        "keywords": ["thermodynamics", "entropy", "physics"],
        "category": "Science",
    }
    data.update(overrides)
    return ExtractionPayload.model_validate(data)
