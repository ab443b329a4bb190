"""Tests for ResearchSession — per-identity stores and orchestrators."""

import asyncio

import pytest
from helpers import GatedAnswer, GatedExtract, make_payload

from crystallize.conversation.models import Answer, Speaker
from crystallize.conversation.store import INTERRUPTED_REPLY, ConversationStore
from crystallize.db import knowledge_key
from crystallize.errors import ValidationRejection
from crystallize.knowledge.orchestrator import DISCARDED_NOTICE
from crystallize.knowledge.store import KnowledgeStore
from crystallize.session import WELCOME_TURN_ID, ResearchSession


async def _extract(source_text: str, context: str):
    return make_payload()


def _released(answer: Answer | None = None) -> GatedAnswer:
    gate = GatedAnswer(answer)
    gate.release.set()
    return gate


async def test_open_seeds_welcome_turn(records) -> None:
    session = await ResearchSession.open("alice", records, answer=_released())

    (welcome,) = session.conversation.turns
    assert welcome.id == WELCOME_TURN_ID
    assert welcome.speaker == Speaker.ASSISTANT
    assert "**alice**" in welcome.text
    assert "Crystallize AI" in welcome.text


async def test_open_restores_existing_conversation(records) -> None:
    first = await ResearchSession.open("alice", records, answer=_released())
    await first.submit("What is entropy?")

    again = await ResearchSession.open("alice", records, answer=_released())

    assert [t.text for t in again.conversation.turns][1:] == ["What is entropy?", "An answer."]


async def test_open_restores_knowledge(records) -> None:
    session = await ResearchSession.open(
        "alice", records, answer=_released(), extract=_extract
    )
    outcome = await session.crystallize(WELCOME_TURN_ID)

    again = await ResearchSession.open("alice", records, answer=_released())

    assert [c.id for c in again.knowledge.crystals] == [outcome.crystal.id]


async def test_reset_clears_both_stores_and_greets(records) -> None:
    session = await ResearchSession.open(
        "alice", records, answer=_released(), extract=_extract
    )
    await session.submit("Q")
    await session.crystallize(session.conversation.turns[-1].id)

    await session.reset()

    assert [t.id for t in session.conversation.turns] == [WELCOME_TURN_ID]
    assert session.knowledge.crystals == []
    assert (await KnowledgeStore.load(records, "alice")).crystals == []
    assert len(await ConversationStore.load(records, "alice")) == 1


async def test_close_cancels_in_flight_answer(records) -> None:
    gate = GatedAnswer(Answer(text="Too late."))
    session = await ResearchSession.open("alice", records, answer=gate)

    task = asyncio.create_task(session.submit("Q"))
    await gate.started.wait()
    session.close()
    reply = await task

    assert reply.text == INTERRUPTED_REPLY
    assert session.closed
    assert session.chat.identity is None
    assert session.conversation.pending is None


async def test_closed_session_rejects_requests(records) -> None:
    session = await ResearchSession.open("alice", records, answer=_released())
    session.close()

    with pytest.raises(ValidationRejection):
        await session.submit("Q")
    with pytest.raises(ValidationRejection):
        await session.crystallize(WELCOME_TURN_ID)
    with pytest.raises(ValidationRejection):
        await session.reset()


async def test_close_is_idempotent(records) -> None:
    session = await ResearchSession.open("alice", records, answer=_released())
    session.close()
    session.close()
    assert session.closed


async def test_close_before_answer_call_skips_it(records) -> None:
    gate = GatedAnswer(Answer(text="late answer"))
    session = await ResearchSession.open("alice", records, answer=gate)

    task = asyncio.create_task(session.submit("question"))
    await asyncio.sleep(0)  # submit is now writing the user turn
    session.close()
    gate.release.set()
    reply = await task

    assert gate.calls == []
    assert reply.text == INTERRUPTED_REPLY
    assert session.conversation.pending is None
    reloaded = await ConversationStore.load(records, "alice")
    assert [t.text for t in reloaded.turns][1:] == ["question", INTERRUPTED_REPLY]


async def test_reset_discards_crystal_still_being_extracted(records) -> None:
    gate = GatedExtract(make_payload())
    session = await ResearchSession.open("alice", records, answer=_released(), extract=gate)

    task = asyncio.create_task(session.crystallize(WELCOME_TURN_ID))
    await gate.started.wait()
    await session.reset()
    gate.release.set()
    outcome = await task

    assert not outcome.ok
    assert outcome.notice == DISCARDED_NOTICE
    assert session.knowledge.crystals == []
    assert await records.get(knowledge_key("alice")) is None


async def test_close_discards_crystal_still_being_extracted(records) -> None:
    gate = GatedExtract(make_payload())
    session = await ResearchSession.open("alice", records, answer=_released(), extract=gate)

    task = asyncio.create_task(session.crystallize(WELCOME_TURN_ID))
    await gate.started.wait()
    session.close()
    gate.release.set()
    outcome = await task

    assert not outcome.ok
    assert (await KnowledgeStore.load(records, "alice")).crystals == []
